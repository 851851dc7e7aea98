import logging

from fastapi import Depends

from tarification.models.errors import StorageError
from tarification.services.storage_service import STORAGE_COLLECTIONS
from tarification.services.tarification_service import TarificationService, get_tarification_service

logger = logging.getLogger(__name__)


class HealthService:
    """
    Service layer for health-related logic.
    """

    def __init__(self, tarification_service: TarificationService):
        self.tarification_service = tarification_service

    def get_health_status(self) -> dict[str, str]:
        """
        Reports the service as up, and whether the catalog store answers.
        """
        try:
            self.tarification_service.storage_service.find_one({}, STORAGE_COLLECTIONS.GUARANTEES)
            catalog = "ok"
        except StorageError as e:
            logger.warning(f"Catalog store unavailable during health check: {e}")
            catalog = "unavailable"
        return {"status": "ok" if catalog == "ok" else "degraded", "catalog": catalog}


def get_health_service(
    tarification_service: TarificationService = Depends(get_tarification_service),
) -> HealthService:
    return HealthService(tarification_service)

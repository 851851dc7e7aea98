import logging
from datetime import datetime
from functools import lru_cache
from typing import Callable

from tarification.services.calculations.pricing_orchestrator import PricingOrchestrator
from tarification.services.catalog import (
    CatalogSeeder,
    CatalogStatsService,
    GuaranteeCatalogService,
    PackageCatalogService,
)
from tarification.services.catalog.guarantee_catalog_service import utc_now
from tarification.services.storage_service import StorageService, get_storage_service
from tarification.services.tariff_grid_repository import TariffGridRepository
from tarification.utils.config import get_tarification_config

logger = logging.getLogger(__name__)


class TarificationService:
    """Wires catalogs, grids and the pricing engine around one catalog store."""

    def __init__(self, storage_service: StorageService, tarification_config: dict = None,
                 clock: Callable[[], datetime] = utc_now):
        self.storage_service = storage_service
        self.tarification_config = tarification_config or get_tarification_config()
        self.grid_repository = TariffGridRepository(storage_service)
        self.guarantee_catalog = GuaranteeCatalogService(storage_service, clock)
        self.package_catalog = PackageCatalogService(storage_service, clock)
        self.stats_service = CatalogStatsService(self.guarantee_catalog, self.package_catalog)
        self.seeder = CatalogSeeder(storage_service, self.grid_repository)
        self.pricing = PricingOrchestrator(
            self.guarantee_catalog, self.package_catalog, self.grid_repository, self.tarification_config, clock)
        logger.info("TarificationService initialized")


@lru_cache(maxsize=1)
def get_tarification_service() -> TarificationService:
    return TarificationService(get_storage_service())

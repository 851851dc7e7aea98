from datetime import datetime, timezone

import mongomock
import pytest

from tarification.models.models import Vehicle
from tarification.services.storage_service import StorageService
from tarification.services.tarification_service import TarificationService
from tarification.utils.config import get_tarification_config

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def storage_service():
    return StorageService(db=mongomock.MongoClient().tarification)


@pytest.fixture
def tarification_config():
    return get_tarification_config(QUICK_ESTIMATE_SURCHARGE=15000.0, PRICING_RESOLVE_WORKERS=2)


@pytest.fixture
def tarification_service(storage_service, tarification_config):
    """Service over an in-memory store seeded with the bundled default catalog."""
    service = TarificationService(storage_service, tarification_config, clock=lambda: FIXED_NOW)
    service.seeder.seed()
    return service


@pytest.fixture
def grid_repository(tarification_service):
    return tarification_service.grid_repository


@pytest.fixture
def guarantee_catalog(tarification_service):
    return tarification_service.guarantee_catalog


@pytest.fixture
def package_catalog(tarification_service):
    return tarification_service.package_catalog


@pytest.fixture
def pricing(tarification_service):
    return tarification_service.pricing


@pytest.fixture
def vehicle():
    return Vehicle.model_validate({
        'categoryCode': '401',
        'energy': 'Essence',
        'fiscalPower': 6,
        'values': {'current': 5000000, 'new': 8000000},
        'seatCount': 5,
    })

import mongomock

from tarification.models.models import CalculationMethod, Guarantee
from tarification.services.catalog import CatalogSeeder
from tarification.services.storage_service import STORAGE_COLLECTIONS, StorageService
from tarification.services.tariff_grid_repository import TariffGridRepository
from tarification.services.tarification_service import TarificationService


def test_catalog_stats(tarification_service):
    stats = tarification_service.stats_service.get_stats()
    assert stats.total_guarantees == 12
    assert stats.active_guarantees == 12
    assert stats.total_packages == 4
    assert stats.active_packages == 4
    assert stats.average_package_price == 206250
    assert (stats.price_range.min, stats.price_range.max) == (85000, 320000)
    assert [(u.guarantee_id, u.usage_count) for u in stats.most_used_guarantees] == [
        ('guar-1', 4), ('guar-2', 4), ('guar-3', 3), ('guar-5', 3), ('guar-4', 2)]


def test_stats_follow_active_flags(tarification_service):
    tarification_service.guarantee_catalog.toggle_guarantee_active('guar-7')
    tarification_service.package_catalog.toggle_package_active('pack-4')
    stats = tarification_service.stats_service.get_stats()
    assert stats.active_guarantees == 11
    assert stats.active_packages == 3


def test_stats_on_empty_catalog():
    storage = StorageService(db=mongomock.MongoClient().empty)
    stats = TarificationService(storage).stats_service.get_stats()
    assert stats.total_packages == 0
    assert stats.average_package_price == 0
    assert stats.most_used_guarantees == []


def test_seed_loads_bundled_catalog():
    storage = StorageService(db=mongomock.MongoClient().fresh)
    seeder = CatalogSeeder(storage, TariffGridRepository(storage))
    assert seeder.seed() == {'tariff_grids': 28, 'guarantees': 12, 'packages': 4}
    assert len(storage.find({}, STORAGE_COLLECTIONS.TARIFF_RC)) == 8


def test_seed_is_idempotent(tarification_service, storage_service):
    assert tarification_service.seeder.seed() == {'tariff_grids': 0, 'guarantees': 0, 'packages': 0}
    assert len(storage_service.find({}, STORAGE_COLLECTIONS.GUARANTEES)) == 12


def test_seed_keeps_edited_records(tarification_service):
    tarification_service.guarantee_catalog.update_guarantee('guar-5', {'rate': 1.0})
    tarification_service.seeder.seed()
    assert tarification_service.guarantee_catalog.get_guarantee('guar-5').rate == 1.0


def test_seeded_legacy_guarantees(guarantee_catalog):
    assert guarantee_catalog.get_guarantee('guar-5').calculation_method == CalculationMethod.RATE_ON_CURRENT_VALUE
    vol = guarantee_catalog.get_guarantee('guar-6')
    assert vol.parameters.condition.threshold == 25000000
    assert guarantee_catalog.get_guarantee('guar-2').parameters.reduced_bundle_price == 4240


def test_missing_fixed_amount_comes_from_fixed_grid(tarification_service):
    guarantee = Guarantee.model_validate({
        'id': 'guar-acc', 'name': 'Vol des accessoires', 'code': 'ACC', 'category': 'ACCESSOIRES',
        'calculation_method': 'FIXED_AMOUNT',
    })
    tarification_service.seeder._fill_fixed_amount(guarantee)
    assert guarantee.rate == 15000
    assert guarantee.parameters.reduced_bundle_price == 15000

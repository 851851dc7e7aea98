import logging
from typing import Dict

from tarification.models.models import CalculationMethod, Guarantee, InsurancePackage
from tarification.services.catalog.guarantee_catalog_service import as_document
from tarification.services.storage_service import STORAGE_COLLECTIONS, StorageService
from tarification.services.tariff_grid_repository import TariffGridRepository
from tarification.utils.data_loader import DataLoader

logger = logging.getLogger(__name__)


class CatalogSeeder:
    """
    Loads the bundled default catalog into the store. Only missing records
    are inserted, so running it twice changes nothing.
    """

    def __init__(self, storage_service: StorageService, grid_repository: TariffGridRepository,
                 data_loader: DataLoader = None):
        self.storage_service = storage_service
        self.grid_repository = grid_repository
        self.data_loader = data_loader or DataLoader()

    def seed(self) -> Dict[str, int]:
        """Seeds grids, guarantees and packages. Returns the number of inserted records per kind."""
        inserted = {
            'tariff_grids': self.seed_tariff_grids(),
            'guarantees': self.seed_guarantees(),
            'packages': self.seed_packages(),
        }
        logger.info(f"Catalog seeding done: {inserted}")
        return inserted

    def seed_tariff_grids(self) -> int:
        """Fills each grid that is still empty."""
        loaders = [
            (STORAGE_COLLECTIONS.TARIFF_RC, self.data_loader.load_rc_tariffs, self.grid_repository.replace_rc_rows),
            (STORAGE_COLLECTIONS.TARIFF_IC_IPT, self.data_loader.load_injury_tariffs, self.grid_repository.replace_injury_rows),
            (STORAGE_COLLECTIONS.TARIFF_COLLISION, self.data_loader.load_collision_tariffs, self.grid_repository.replace_collision_rows),
            (STORAGE_COLLECTIONS.TARIFF_FIXED, self.data_loader.load_fixed_tariffs, self.grid_repository.replace_fixed_rows),
        ]
        count = 0
        for collection, load, replace in loaders:
            if self.storage_service.find_one({}, collection) is not None:
                logger.info(f"Grid {collection.value} already populated, skipping")
                continue
            count += len(replace(load()))
        return count

    def _fill_fixed_amount(self, guarantee: Guarantee):
        """Takes a missing fixed amount (and bundle price) from the fixed tariff of the same name."""
        if guarantee.calculation_method != CalculationMethod.FIXED_AMOUNT or guarantee.rate is not None:
            return
        row = self.grid_repository.fixed_tariff(guarantee.name)
        if row is None:
            logger.warning(f"Fixed-amount guarantee {guarantee.id} has no amount and no fixed tariff row")
            return
        guarantee.rate = row.premium
        if guarantee.parameters.reduced_bundle_price is None:
            guarantee.parameters.reduced_bundle_price = row.reduced_bundle_price

    def seed_guarantees(self) -> int:
        count = 0
        for record in self.data_loader.load_guarantees():
            if self.storage_service.find_one({'_id': record['id']}, STORAGE_COLLECTIONS.GUARANTEES):
                continue
            guarantee = Guarantee.model_validate(record)
            self._fill_fixed_amount(guarantee)
            self.storage_service.insert_one(as_document(guarantee), STORAGE_COLLECTIONS.GUARANTEES)
            count += 1
        return count

    def seed_packages(self) -> int:
        count = 0
        for record in self.data_loader.load_packages():
            if self.storage_service.find_one({'_id': record['id']}, STORAGE_COLLECTIONS.PACKAGES):
                continue
            package = InsurancePackage.model_validate(record)
            self.storage_service.insert_one(as_document(package), STORAGE_COLLECTIONS.PACKAGES)
            count += 1
        return count

from .guarantee_catalog_service import GuaranteeCatalogService, required_parameters
from .package_catalog_service import PackageCatalogService
from .catalog_stats_service import CatalogStatsService
from .catalog_seeder import CatalogSeeder

__all__ = [
    "GuaranteeCatalogService",
    "PackageCatalogService",
    "CatalogStatsService",
    "CatalogSeeder",
    "required_parameters",
]

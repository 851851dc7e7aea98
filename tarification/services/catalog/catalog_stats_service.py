import logging
from collections import Counter

from tarification.models.models import GuaranteeUsage, PriceRange, TarificationStats
from tarification.services.catalog.guarantee_catalog_service import GuaranteeCatalogService
from tarification.services.catalog.package_catalog_service import PackageCatalogService

logger = logging.getLogger(__name__)

MOST_USED_LIMIT = 5


class CatalogStatsService:
    """Dashboard figures for the guarantee and package catalogs."""

    def __init__(self, guarantee_catalog: GuaranteeCatalogService, package_catalog: PackageCatalogService):
        self.guarantee_catalog = guarantee_catalog
        self.package_catalog = package_catalog

    def get_stats(self) -> TarificationStats:
        guarantees = self.guarantee_catalog.list_guarantees()
        packages = self.package_catalog.list_packages()

        # Usage = number of packages listing the guarantee; ties keep catalog order
        usage = Counter(gid for p in packages for gid in set(p.guarantees))
        ranked = sorted(guarantees, key=lambda g: -usage[g.id])
        most_used = [
            GuaranteeUsage(guarantee_id=g.id, guarantee_name=g.name, usage_count=usage[g.id])
            for g in ranked[:MOST_USED_LIMIT]
        ]

        prices = [p.total_price for p in packages]
        stats = TarificationStats(
            total_guarantees=len(guarantees),
            active_guarantees=sum(1 for g in guarantees if g.is_active),
            total_packages=len(packages),
            active_packages=sum(1 for p in packages if p.is_active),
            most_used_guarantees=most_used,
            average_package_price=round(sum(prices) / len(prices), 2) if prices else 0,
            price_range=PriceRange(min=min(prices), max=max(prices)) if prices else PriceRange(),
        )
        logger.info(f"Catalog stats: {stats.total_guarantees} guarantees, {stats.total_packages} packages")
        return stats

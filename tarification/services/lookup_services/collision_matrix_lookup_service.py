import logging
from typing import Optional

from tarification.models.models import CollisionKind
from tarification.services.tariff_grid_repository import TariffGridRepository

logger = logging.getLogger(__name__)


def collision_premium(new_value: float, rate: Optional[float]) -> float:
    """new_value * rate / 100, 0 when no rate matched."""
    if rate is None:
        return 0.0
    return round(new_value * rate / 100, 2)


class CollisionMatrixLookupService:
    """Full/identified collision rate lookup (category, kind, franchise, new value band)."""

    def __init__(self, grid_repository: TariffGridRepository):
        self.grid_repository = grid_repository

    def get_collision_rate(self, category: str, guarantee_kind: CollisionKind, franchise: float,
                           new_value: float) -> Optional[float]:
        """Gets the rate in percent, or None when no row matches. No nearest-franchise fallback."""
        df = self.grid_repository.get_collision_tariffs()
        category = str(category).strip()
        kind = CollisionKind(guarantee_kind).value
        try:
            mask = (
                (df['category'] == category) &
                (df['guarantee_kind'] == kind) &
                (df['franchise'] == franchise) &
                (df['new_value_min'] <= new_value) &
                (df['new_value_max'] >= new_value)
            )
            return float(df.loc[mask, 'rate_percent'].iloc[0])
        except (KeyError, IndexError):
            logger.warning(
                f"No collision row for category={category}, kind={kind}, franchise={franchise}, new_value={new_value}")
            return None

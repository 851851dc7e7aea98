import logging

from tarification.services.tariff_grid_repository import TariffGridRepository

logger = logging.getLogger(__name__)


class RcTariffLookupService:
    """
    Civil liability premium lookup.
    A row matches on exact category and energy with the fiscal power inside its inclusive range.
    """

    def __init__(self, grid_repository: TariffGridRepository):
        self.grid_repository = grid_repository

    def get_rc_premium(self, category: str, energy: str, fiscal_power: int) -> float:
        """Gets the RC premium for a vehicle, 0 when no row matches."""
        df = self.grid_repository.get_rc_tariffs()
        category = str(category).strip()
        energy = str(energy).strip()
        try:
            mask = (
                (df['category'] == category) &
                (df['energy'] == energy) &
                (df['power_min'] <= fiscal_power) &
                (df['power_max'] >= fiscal_power)
            )
            premium = float(df.loc[mask, 'premium'].iloc[0])
            logger.info(f"RC premium for {category}/{energy}/CV{fiscal_power}: {premium}")
            return premium
        except (KeyError, IndexError):
            logger.warning(f"No RC tariff row for category={category}, energy={energy}, fiscal_power={fiscal_power}")
            return 0.0

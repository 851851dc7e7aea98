import logging

from tarification.models.models import CoverageKind
from tarification.services.tariff_grid_repository import TariffGridRepository

logger = logging.getLogger(__name__)

WILDCARD_SEAT_COUNT = 0


class InjuryTariffLookupService:
    """Driver (IC) and passenger (IPT) injury premium lookup by formula and seat count."""

    def __init__(self, grid_repository: TariffGridRepository):
        self.grid_repository = grid_repository

    def get_injury_premium(self, coverage_kind: CoverageKind, formula_number: int, seat_count: int) -> float:
        """
        Gets the premium of a formula. A row for the exact seat count wins over
        a wildcard row (seat count 0); 0 when neither exists.
        """
        df = self.grid_repository.get_injury_tariffs()
        kind = CoverageKind(coverage_kind).value
        try:
            candidates = df[(df['coverage_kind'] == kind) & (df['formula_number'] == formula_number)]
            exact = candidates[candidates['seat_count'] == seat_count]
            rows = exact if not exact.empty else candidates[candidates['seat_count'] == WILDCARD_SEAT_COUNT]
            premium = float(rows['premium'].iloc[0])
            logger.info(f"{kind} premium for formula {formula_number}, {seat_count} seats: {premium}")
            return premium
        except (KeyError, IndexError):
            logger.warning(f"No {kind} tariff row for formula={formula_number}, seat_count={seat_count}")
            return 0.0

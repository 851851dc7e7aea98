from .rc_tariff_lookup_service import RcTariffLookupService
from .injury_tariff_lookup_service import InjuryTariffLookupService
from .collision_matrix_lookup_service import CollisionMatrixLookupService

__all__ = [
    "RcTariffLookupService",
    "InjuryTariffLookupService",
    "CollisionMatrixLookupService",
]

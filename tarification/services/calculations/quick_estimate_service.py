import logging
from typing import Any, Iterable

logger = logging.getLogger(__name__)


def _is_selected(selection: Any) -> bool:
    if isinstance(selection, dict):
        return bool(selection.get('selected', False))
    if hasattr(selection, 'selected'):
        return bool(selection.selected)
    return bool(selection)


class QuickEstimateService:
    """
    Live approximation shown while a customer ticks guarantees: base price plus
    a flat surcharge per selected guarantee. Never an authoritative price and
    never computed through the pricing engine.
    """

    def __init__(self, tarification_config: dict):
        self.tarification_config = tarification_config

    def get_surcharge(self) -> float:
        return float(self.tarification_config["QUICK_ESTIMATE_SURCHARGE"])

    def estimate(self, base_price: float, selections: Iterable[Any]) -> float:
        """
        Estimates a price from a base price and the selection state.

        Args:
            base_price: Starting price (a package base price, or 0).
            selections: Booleans, {'id': ..., 'selected': bool} mappings, or objects with a `selected` attribute.

        Returns:
            base_price + number of selected entries * flat surcharge
        """
        selected = sum(1 for s in (selections or []) if _is_selected(s))
        estimate = (base_price or 0) + selected * self.get_surcharge()
        logger.debug(f"Quick estimate: {base_price} + {selected} x {self.get_surcharge()} = {estimate}")
        return estimate

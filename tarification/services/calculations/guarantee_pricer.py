import logging
from typing import Dict, Optional, Tuple

from tarification.models.models import (
    COLLISION_KIND_BY_CATEGORY,
    COVERAGE_KIND_BY_CATEGORY,
    METHOD_LABELS,
    CalculationMethod,
    CoverageKind,
    Guarantee,
    GuaranteePricing,
    PricingParameters,
    Vehicle,
)
from tarification.services.calculations.condition_evaluator import evaluate_condition
from tarification.services.lookup_services.collision_matrix_lookup_service import (
    CollisionMatrixLookupService,
    collision_premium,
)
from tarification.services.lookup_services.injury_tariff_lookup_service import (
    WILDCARD_SEAT_COUNT,
    InjuryTariffLookupService,
)
from tarification.services.lookup_services.rc_tariff_lookup_service import RcTariffLookupService
from tarification.services.tariff_grid_repository import TariffGridRepository

logger = logging.getLogger(__name__)

PriceAndDetails = Tuple[float, Dict]


def percentage_of(value: float, rate: float) -> float:
    return round(value * rate / 100, 2)


def apply_bounds(price: float, min_value: Optional[float], max_value: Optional[float]) -> float:
    """Min clamp first, then max clamp; each only when set."""
    if min_value is not None and price < min_value:
        price = min_value
    if max_value is not None and price > max_value:
        price = max_value
    return price


class GuaranteePricer:
    """
    Prices one guarantee for one vehicle. Dispatches on the calculation
    method, clamps, and reports the inputs it used. Lookups that find no
    row contribute 0.
    """

    def __init__(self, grid_repository: TariffGridRepository, tarification_config: dict):
        self.tarification_config = tarification_config
        self.rc_lookup = RcTariffLookupService(grid_repository)
        self.injury_lookup = InjuryTariffLookupService(grid_repository)
        self.collision_lookup = CollisionMatrixLookupService(grid_repository)
        self.strategies = {
            CalculationMethod.FREE: self._price_free,
            CalculationMethod.FIXED_AMOUNT: self._price_fixed_amount,
            CalculationMethod.RATE_ON_CURRENT_VALUE: self._price_rate_on_current_value,
            CalculationMethod.RATE_ON_NEW_VALUE: self._price_rate_on_new_value,
            CalculationMethod.CIVIL_LIABILITY_TARIFF: self._price_civil_liability,
            CalculationMethod.COLLISION_MATRIX: self._price_collision,
            CalculationMethod.INJURY_FORMULA: self._price_injury,
            CalculationMethod.CONDITIONAL_RATE: self._price_conditional_rate,
        }

    def price(self, guarantee: Guarantee, vehicle: Vehicle, parameters: PricingParameters,
              bundle_pricing: bool = False) -> GuaranteePricing:
        strategy = self.strategies[guarantee.calculation_method]
        raw_price, details = strategy(guarantee, vehicle, parameters, bundle_pricing)
        price = apply_bounds(raw_price, guarantee.min_value, guarantee.max_value)
        if price != raw_price:
            details['raw_price'] = raw_price
        logger.info(f"{guarantee.code} ({guarantee.calculation_method.value}): {price}")
        return GuaranteePricing(
            guarantee=guarantee,
            base_price=guarantee.rate if guarantee.rate is not None else 0,
            calculated_price=price,
            method_label=METHOD_LABELS[guarantee.calculation_method],
            calculation_details=details,
        )

    def _price_free(self, guarantee, vehicle, parameters, bundle_pricing) -> PriceAndDetails:
        return 0.0, {}

    def _price_fixed_amount(self, guarantee, vehicle, parameters, bundle_pricing) -> PriceAndDetails:
        amount = guarantee.parameters.amount
        if amount is None:
            amount = guarantee.rate if guarantee.rate is not None else 0.0
        reduced = guarantee.parameters.reduced_bundle_price
        if bundle_pricing and reduced is not None:
            return reduced, {'amount': amount, 'reduced_bundle_price_applied': True}
        return amount, {'amount': amount, 'reduced_bundle_price_applied': False}

    def _price_rate(self, guarantee: Guarantee, base_value: float, value_kind: str) -> PriceAndDetails:
        rate = guarantee.rate or 0.0
        return percentage_of(base_value, rate), {'rate': rate, 'base_value': base_value, 'value_kind': value_kind}

    def _price_rate_on_current_value(self, guarantee, vehicle, parameters, bundle_pricing) -> PriceAndDetails:
        return self._price_rate(guarantee, vehicle.values.current, 'current')

    def _price_rate_on_new_value(self, guarantee, vehicle, parameters, bundle_pricing) -> PriceAndDetails:
        return self._price_rate(guarantee, vehicle.values.new, 'new')

    def _price_civil_liability(self, guarantee, vehicle, parameters, bundle_pricing) -> PriceAndDetails:
        premium = self.rc_lookup.get_rc_premium(vehicle.category_code, vehicle.energy, vehicle.fiscal_power)
        return premium, {
            'category': vehicle.category_code,
            'energy': vehicle.energy,
            'fiscal_power': vehicle.fiscal_power,
        }

    def _price_collision(self, guarantee, vehicle, parameters, bundle_pricing) -> PriceAndDetails:
        kind = COLLISION_KIND_BY_CATEGORY.get(guarantee.category)
        franchise = parameters.chosen_franchise
        details = {
            'category': vehicle.category_code,
            'guarantee_kind': kind.value if kind else None,
            'franchise': franchise,
            'new_value': vehicle.values.new,
        }
        if kind is None or franchise is None:
            logger.warning(f"Collision guarantee {guarantee.code} priced at 0: kind={kind}, franchise={franchise}")
            return 0.0, details
        rate = self.collision_lookup.get_collision_rate(vehicle.category_code, kind, franchise, vehicle.values.new)
        details['rate_percent'] = rate
        return collision_premium(vehicle.values.new, rate), details

    def _price_injury(self, guarantee, vehicle, parameters, bundle_pricing) -> PriceAndDetails:
        kind = COVERAGE_KIND_BY_CATEGORY.get(guarantee.category)
        formula = parameters.chosen_formula or self.tarification_config["DEFAULT_INJURY_FORMULA"]
        # Seat count only discriminates passenger rows
        seats = vehicle.seat_count if kind == CoverageKind.PASSENGER else WILDCARD_SEAT_COUNT
        details = {'coverage_kind': kind.value if kind else None, 'formula': formula, 'seat_count': seats}
        if kind is None:
            logger.warning(f"Injury guarantee {guarantee.code} has category {guarantee.category.value}, priced at 0")
            return 0.0, details
        return self.injury_lookup.get_injury_premium(kind, formula, seats), details

    def _price_conditional_rate(self, guarantee, vehicle, parameters, bundle_pricing) -> PriceAndDetails:
        params = guarantee.parameters
        if params.condition is None and params.raw_condition:
            logger.warning(f"Malformed condition on {guarantee.code}: {params.raw_condition!r}, treated as false")
        current = vehicle.values.current
        matched = evaluate_condition(params.condition, current)
        if matched:
            rate = params.rate_if_true if params.rate_if_true is not None else self.tarification_config["DEFAULT_RATE_IF_TRUE"]
        else:
            rate = params.rate_if_false if params.rate_if_false is not None else self.tarification_config["DEFAULT_RATE_IF_FALSE"]
        return percentage_of(current, rate), {
            'condition': params.condition.model_dump() if params.condition else params.raw_condition,
            'matched': matched,
            'rate': rate,
            'base_value': current,
        }

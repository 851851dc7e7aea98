import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Union

from pydantic import ValidationError as PydanticValidationError

from tarification.models.errors import NotFoundError, ValidationError
from tarification.models.models import (
    COLLISION_KIND_BY_CATEGORY,
    CalculationMethod,
    Guarantee,
    PricingMode,
    PricingParameters,
    PricingRequest,
    PricingResult,
    ResolvedPricingRequest,
    ValidationResult,
    Vehicle,
)
from tarification.services.calculations.guarantee_pricer import GuaranteePricer
from tarification.services.calculations.quick_estimate_service import QuickEstimateService
from tarification.services.catalog.guarantee_catalog_service import GuaranteeCatalogService, required_parameters, utc_now
from tarification.services.catalog.package_catalog_service import PackageCatalogService
from tarification.services.tariff_grid_repository import TariffGridRepository

logger = logging.getLogger(__name__)

PARAMETER_MESSAGES = {
    'chosen_franchise': "a franchise must be chosen",
    'chosen_formula': "a formula must be chosen",
}


class PricingOrchestrator:
    """
    Prices a guarantee selection for a vehicle.

    Both selection modes first resolve to a ResolvedPricingRequest (guarantees
    plus base price); one shared loop then prices each active guarantee,
    clamps it and accumulates the total. Only a package id that does not
    resolve stops a calculation; every other miss contributes 0.
    """

    def __init__(self, guarantee_catalog: GuaranteeCatalogService, package_catalog: PackageCatalogService,
                 grid_repository: TariffGridRepository, tarification_config: dict,
                 clock: Callable[[], datetime] = utc_now):
        self.guarantee_catalog = guarantee_catalog
        self.package_catalog = package_catalog
        self.grid_repository = grid_repository
        self.tarification_config = tarification_config
        self.clock = clock
        self.guarantee_pricer = GuaranteePricer(grid_repository, tarification_config)
        self.quick_estimate_service = QuickEstimateService(tarification_config)

    def initialize(self):
        """Loads the tariff grids ahead of the first calculation."""
        self.grid_repository.initialize()
        logger.info("PricingOrchestrator initialized")

    # --- resolution ---

    def _resolve_guarantees(self, guarantee_ids: List[str]) -> List[Guarantee]:
        """Resolves ids in order, skipping the ones that no longer exist."""
        if not guarantee_ids:
            return []
        workers = min(self.tarification_config["PRICING_RESOLVE_WORKERS"], len(guarantee_ids))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            found = list(executor.map(self.guarantee_catalog.get_guarantee, guarantee_ids))
        resolved = []
        for guarantee_id, guarantee in zip(guarantee_ids, found):
            if guarantee is None:
                logger.warning(f"Guarantee {guarantee_id} not found, skipped")
                continue
            resolved.append(guarantee)
        return resolved

    def resolve_package(self, package_id: str) -> ResolvedPricingRequest:
        package = self.package_catalog.get_package(package_id)
        if package is None:
            raise NotFoundError("Package", package_id)
        return ResolvedPricingRequest(
            guarantees=self._resolve_guarantees(package.guarantees),
            base_price=package.base_price,
            package=package,
            bundle_pricing=True,
        )

    def resolve_tailor_made(self, guarantee_ids: List[str]) -> ResolvedPricingRequest:
        return ResolvedPricingRequest(guarantees=self._resolve_guarantees(list(guarantee_ids or [])))

    # --- calculation ---

    def calculate_price(self, vehicle: Union[Vehicle, Dict, None], mode: Union[PricingMode, str],
                        selection: Union[str, List[str], None],
                        parameters: Union[PricingParameters, Dict, None] = None) -> PricingResult:
        """
        Main method to price a selection.

        Args:
            vehicle: The vehicle to insure.
            mode: PACK (selection is a package id) or TAILOR_MADE (selection is a list of guarantee ids).
            selection: Package id or guarantee ids.
            parameters: Method inputs such as the chosen franchise or formula.

        Returns: PricingResult with the per-guarantee breakdown.
        """
        if vehicle is None:
            raise ValidationError("Vehicle information is required")
        try:
            vehicle = Vehicle.model_validate(vehicle) if isinstance(vehicle, dict) else vehicle
            parameters = PricingParameters.model_validate(parameters or {}) if not isinstance(
                parameters, PricingParameters) else parameters
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid pricing input: {e}") from e
        try:
            mode = PricingMode(mode)
        except ValueError as e:
            raise ValidationError(f"Unknown pricing mode: {mode!r}") from e

        if mode == PricingMode.PACK:
            if not selection or not isinstance(selection, str):
                raise ValidationError("A package id is required in package mode")
            resolved = self.resolve_package(selection)
        else:
            if selection is not None and not isinstance(selection, (list, tuple)):
                raise ValidationError("A list of guarantee ids is required in tailor-made mode")
            resolved = self.resolve_tailor_made(selection)

        logger.info(f"--- Starting {mode.value} pricing for {len(resolved.guarantees)} guarantees ---")
        breakdown = []
        total = 0.0
        for guarantee in resolved.guarantees:
            if not guarantee.is_active:
                logger.warning(f"Guarantee {guarantee.id} is inactive, skipped")
                continue
            entry = self.guarantee_pricer.price(guarantee, vehicle, parameters, resolved.bundle_pricing)
            breakdown.append(entry)
            total += entry.calculated_price
        total += resolved.base_price

        result = PricingResult(
            total_base_price=resolved.base_price,
            total_with_guarantees=round(total, 2),
            breakdown=breakdown,
            selected_package=resolved.package,
            calculation_timestamp=self.clock(),
        )
        logger.info(f"--- Pricing complete: total={result.total_with_guarantees} ---")
        return result

    def calculate(self, request: Union[PricingRequest, Dict]) -> PricingResult:
        try:
            request = PricingRequest.model_validate(request) if isinstance(request, dict) else request
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid pricing request: {e}") from e
        selection = request.package_id if request.mode == PricingMode.PACK else request.guarantee_ids
        return self.calculate_price(request.vehicle, request.mode, selection, request.parameters)

    # --- validation ---

    def validate(self, request: Union[PricingRequest, Dict]) -> ValidationResult:
        """Checks a request before calculation. Problems come back as messages, never raised."""
        if isinstance(request, dict):
            try:
                request = PricingRequest.model_validate(request)
            except PydanticValidationError as e:
                return ValidationResult(is_valid=False, errors=[
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()])

        errors = []
        if request.vehicle is None:
            errors.append("Vehicle information is required")

        guarantees: List[Guarantee] = []
        if request.mode == PricingMode.PACK:
            if not request.package_id:
                errors.append("A package must be selected")
            else:
                package = self.package_catalog.get_package(request.package_id)
                if package is None:
                    errors.append(f"Package '{request.package_id}' not found")
                else:
                    guarantees = self._resolve_guarantees(package.guarantees)
        else:
            if not request.guarantee_ids:
                errors.append("At least one guarantee must be selected")
            guarantees = self._resolve_guarantees(request.guarantee_ids)

        for guarantee in guarantees:
            if guarantee.is_active:
                errors.extend(self._parameter_errors(guarantee, request.parameters))

        return ValidationResult(is_valid=not errors, errors=errors)

    def _parameter_errors(self, guarantee: Guarantee, parameters: PricingParameters) -> List[str]:
        errors = []
        for name in required_parameters(guarantee):
            if getattr(parameters, name) is None:
                errors.append(f"{guarantee.name}: {PARAMETER_MESSAGES[name]}")
        franchise = parameters.chosen_franchise
        if (guarantee.calculation_method == CalculationMethod.COLLISION_MATRIX
                and guarantee.category in COLLISION_KIND_BY_CATEGORY
                and franchise is not None and guarantee.franchise_options
                and franchise not in guarantee.franchise_options):
            errors.append(f"{guarantee.name}: franchise {franchise:g} is not offered")
        return errors

    # --- approximate estimate ---

    def quick_estimate(self, base_price: float, selections: List[Any]) -> float:
        """Approximate live estimate; see QuickEstimateService. Not a price."""
        return self.quick_estimate_service.estimate(base_price, selections)

from typing import Any, Dict, List, Union

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

from tarification.models.models import PricingRequest, PricingResult, ValidationResult
from tarification.services.tarification_service import TarificationService, get_tarification_service

router = APIRouter(prefix="/pricing", tags=["Pricing"])


class QuickEstimateRequest(BaseModel):
    base_price: float = Field(0, ge=0, validation_alias=AliasChoices('base_price', 'basePrice'))
    selections: List[Union[bool, Dict[str, Any]]] = Field(default_factory=list)


class QuickEstimateResponse(BaseModel):
    estimate: float


@router.post("/validate", response_model=ValidationResult)
async def validate_pricing_request(
    request: PricingRequest,
    tarification_service: TarificationService = Depends(get_tarification_service),
):
    return tarification_service.pricing.validate(request)


@router.post("/calculate", response_model=PricingResult)
async def calculate_price(
    request: PricingRequest,
    tarification_service: TarificationService = Depends(get_tarification_service),
):
    """
    Prices a package or a tailor-made guarantee list for a vehicle.
    Validate first; a request that cannot be priced is answered with 422.
    """
    return tarification_service.pricing.calculate(request)


@router.post("/quick-estimate", response_model=QuickEstimateResponse)
async def quick_estimate(
    request: QuickEstimateRequest,
    tarification_service: TarificationService = Depends(get_tarification_service),
):
    """Approximate live estimate, not a price."""
    return {"estimate": tarification_service.pricing.quick_estimate(request.base_price, request.selections)}

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends

from tarification.models.models import (
    GuaranteeCategory,
    Guarantee,
    InsurancePackage,
    TarificationStats,
    calculation_method_labels,
    category_labels,
)
from tarification.services.tarification_service import TarificationService, get_tarification_service

router = APIRouter(tags=["Catalog"])


@router.get("/guarantees", response_model=List[Guarantee])
async def list_guarantees(
    category: Optional[GuaranteeCategory] = None,
    tarification_service: TarificationService = Depends(get_tarification_service),
):
    """Lists every guarantee, or the active ones of a category."""
    catalog = tarification_service.guarantee_catalog
    if category is not None:
        return catalog.list_guarantees_by_category(category)
    return catalog.list_guarantees()


@router.get("/packages", response_model=List[InsurancePackage])
async def list_packages(tarification_service: TarificationService = Depends(get_tarification_service)):
    return tarification_service.package_catalog.list_packages()


@router.get("/stats", response_model=TarificationStats)
async def get_stats(tarification_service: TarificationService = Depends(get_tarification_service)):
    return tarification_service.stats_service.get_stats()


@router.get("/labels")
async def get_labels() -> Dict[str, List[Dict[str, str]]]:
    return {"categories": category_labels(), "calculationMethods": calculation_method_labels()}

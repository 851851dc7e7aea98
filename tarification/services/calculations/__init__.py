from .condition_evaluator import evaluate, evaluate_condition, parse_condition
from .guarantee_pricer import GuaranteePricer, apply_bounds
from .quick_estimate_service import QuickEstimateService
from .pricing_orchestrator import PricingOrchestrator

__all__ = [
    "evaluate",
    "evaluate_condition",
    "parse_condition",
    "GuaranteePricer",
    "apply_bounds",
    "QuickEstimateService",
    "PricingOrchestrator",
]

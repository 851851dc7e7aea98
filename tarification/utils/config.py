import os
import logging
from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv())

logger = logging.getLogger(__name__)

DEFAULTS = {
    "QUICK_ESTIMATE_SURCHARGE": 15000.0,
    "PRICING_RESOLVE_WORKERS": 4,
    "DEFAULT_INJURY_FORMULA": 1,
    "DEFAULT_RATE_IF_TRUE": 1.1,
    "DEFAULT_RATE_IF_FALSE": 2.1,
    "SEED_ON_STARTUP": False,
}


def _read_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_tarification_config(**overrides) -> dict:
    """
    Builds the settings dict handed to every service constructor.
    Keyword overrides win over the environment (used by tests).
    """
    config = {
        "QUICK_ESTIMATE_SURCHARGE": float(os.environ.get("QUICK_ESTIMATE_SURCHARGE", DEFAULTS["QUICK_ESTIMATE_SURCHARGE"])),
        "PRICING_RESOLVE_WORKERS": int(os.environ.get("PRICING_RESOLVE_WORKERS", DEFAULTS["PRICING_RESOLVE_WORKERS"])),
        "DEFAULT_INJURY_FORMULA": int(os.environ.get("DEFAULT_INJURY_FORMULA", DEFAULTS["DEFAULT_INJURY_FORMULA"])),
        "DEFAULT_RATE_IF_TRUE": float(os.environ.get("DEFAULT_RATE_IF_TRUE", DEFAULTS["DEFAULT_RATE_IF_TRUE"])),
        "DEFAULT_RATE_IF_FALSE": float(os.environ.get("DEFAULT_RATE_IF_FALSE", DEFAULTS["DEFAULT_RATE_IF_FALSE"])),
        "SEED_ON_STARTUP": _read_bool("SEED_ON_STARTUP", DEFAULTS["SEED_ON_STARTUP"]),
    }
    config.update(overrides)

    if config["QUICK_ESTIMATE_SURCHARGE"] < 0:
        raise ValueError(f"QUICK_ESTIMATE_SURCHARGE must be >= 0, got {config['QUICK_ESTIMATE_SURCHARGE']}")
    if config["PRICING_RESOLVE_WORKERS"] < 1:
        logger.warning(f"PRICING_RESOLVE_WORKERS={config['PRICING_RESOLVE_WORKERS']} is invalid, using 1")
        config["PRICING_RESOLVE_WORKERS"] = 1
    return config

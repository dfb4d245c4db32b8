import logging
import os

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULTS = {
    "scoring": {
        "model_ref": "heuristic-v1",
        "match_threshold": 50.0,
        "weights": {"amount": 0.4, "date": 0.2, "text": 0.25, "reference": 0.15},
        "tolerances": {"amount": 1000.0, "days": 10},
        "top_n": 3,
    },
    "features": {"default_match_rate": 0.5, "default_avg_days": 30.0},
    "prefilter": {"min_amount_ratio": 0.5, "max_amount_ratio": 2.0, "max_days": 30},
    "training": {"min_examples": 50},
    "parsing": {"default_currency": "XAF"},
    "csv_templates": {},
}


def _config_path() -> str:
    default = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config", "reconciliation.yml")
    return os.getenv("RECON_CONFIG", default)


def load_recon_config() -> dict:
    load_dotenv()
    path = _config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.debug("No config at %s, using defaults", path)
        return {k: (dict(v) if isinstance(v, dict) else v) for k, v in DEFAULTS.items()}

    # shallow merge defaults
    merged = dict(DEFAULTS)
    for k, v in cfg.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged

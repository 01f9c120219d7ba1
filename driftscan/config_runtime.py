"""Runtime configuration for driftscan - centralized configuration management."""

import copy
import json
import os
from pathlib import Path
from typing import Any

from driftscan.exceptions import ConfigurationError
from driftscan.utils.logging import logger

EXTRACTION_MODES = ("auto", "grammar", "fallback", "hybrid")

DEFAULTS = {
    "scan": {
        "parallelism": min(8, os.cpu_count() or 4),
        "extraction_mode": "auto",
        "max_file_size": 2 * 1024 * 1024,
        "include": [],
        "exclude": [],
    },
    "entry_points": {
        # Each pattern is {"file": <glob>, "function": <glob>}
        "patterns": [],
        "framework_markers": True,
        "main_functions": True,
        "exported_functions": False,
    },
    "learner": {
        "min_support": 2,
        "min_confidence": 0.5,
        "carry_over": False,
    },
    "risk": {
        "tier_weights": {
            "public": 10.0,
            "internal": 35.0,
            "confidential": 70.0,
            "restricted": 100.0,
        },
        "distance_penalty": 0.1,
        "unreachable_score": 0.0,
        "operation_weights": {
            "read": 0.9,
            "query": 0.9,
            "write": 1.0,
            "delete": 1.0,
            "raw-sql": 1.0,
            "unknown": 0.8,
        },
        "severity_thresholds": {
            "critical": 75.0,
            "high": 50.0,
            "medium": 25.0,
            "low": 10.0,
        },
        "max_paths": 25,
    },
    "boundaries": {
        "rules_file": ".drift/boundaries.yml",
        # {"users.ssn": "restricted"} - treated as declared markers
        "sensitive_fields": {},
    },
}

# Sections whose dict-valued keys are merged key by key rather than replaced
_NESTED_KEYS = {("risk", "tier_weights"), ("risk", "operation_weights"), ("risk", "severity_thresholds")}


def load_runtime_config(root: str = ".") -> dict[str, Any]:
    """
    Load runtime configuration from .drift/config.json and environment variables.

    Config priority (highest to lowest):
    1. Environment variables (DRIFT_<SECTION>_<KEY>)
    2. .drift/config.json file
    3. Built-in defaults

    Args:
        root: Project root to look for the config file

    Returns:
        Configuration dictionary with merged values

    Raises:
        ConfigurationError: if a merged value cannot be used
    """
    cfg = copy.deepcopy(DEFAULTS)

    path = Path(root) / ".drift" / "config.json"
    try:
        if path.exists():
            with open(path, encoding="utf-8") as f:
                user = json.load(f)
            if isinstance(user, dict):
                merge_config(cfg, user)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"[CONFIG] Could not load config file from {path}: {e}")
        logger.info("[CONFIG] Continuing with default configuration")

    for section in cfg:
        for key in cfg[section]:
            env_var = f"DRIFT_{section.upper()}_{key.upper()}"
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]
            default_value = cfg[section][key]
            try:
                if isinstance(default_value, bool):
                    cfg[section][key] = value.strip().lower() in ("1", "true", "yes", "on")
                elif isinstance(default_value, int):
                    cfg[section][key] = int(value)
                elif isinstance(default_value, float):
                    cfg[section][key] = float(value)
                elif isinstance(default_value, list):
                    cfg[section][key] = [v.strip() for v in value.split(",") if v.strip()]
                elif isinstance(default_value, dict):
                    cfg[section][key] = json.loads(value)
                else:
                    cfg[section][key] = value
            except (ValueError, AttributeError) as e:
                logger.warning(f"[CONFIG] Invalid value for environment variable {env_var}: '{value}' - {e}")
                logger.info(f"[CONFIG] Using default value: {cfg[section][key]}")

    validate_config(cfg)
    return cfg


def merge_config(cfg: dict[str, Any], user: dict[str, Any]) -> dict[str, Any]:
    """Merge a user config dict into ``cfg`` section by section, in place.

    Unknown sections and keys are ignored; values must match the default's type
    (ints are accepted where floats are expected).
    """
    for section, values in user.items():
        if section not in cfg or not isinstance(values, dict):
            continue
        for key, value in values.items():
            if key not in cfg[section]:
                continue
            default_value = cfg[section][key]
            if (section, key) in _NESTED_KEYS and isinstance(value, dict):
                cfg[section][key].update(value)
            elif isinstance(default_value, float) and isinstance(value, int) and not isinstance(value, bool):
                cfg[section][key] = float(value)
            elif isinstance(value, type(default_value)):
                cfg[section][key] = value
            else:
                logger.warning(
                    f"[CONFIG] Ignoring {section}.{key}: expected {type(default_value).__name__}, "
                    f"got {type(value).__name__}"
                )
    return cfg


def validate_config(cfg: dict[str, Any]) -> None:
    """Raise ConfigurationError for values no component can work with."""
    scan = cfg["scan"]
    if scan["parallelism"] < 1:
        raise ConfigurationError(
            f"scan.parallelism must be >= 1, got {scan['parallelism']}",
            {"parallelism": scan["parallelism"]},
        )
    if scan["extraction_mode"] not in EXTRACTION_MODES:
        raise ConfigurationError(
            f"scan.extraction_mode must be one of {EXTRACTION_MODES}, got {scan['extraction_mode']!r}",
            {"extraction_mode": scan["extraction_mode"]},
        )

    if cfg["learner"]["min_support"] < 1:
        raise ConfigurationError("learner.min_support must be >= 1", {"min_support": cfg["learner"]["min_support"]})

    risk = cfg["risk"]
    for tier in ("public", "internal", "confidential", "restricted"):
        if tier not in risk["tier_weights"]:
            raise ConfigurationError(f"risk.tier_weights is missing tier {tier!r}")
    weights = [risk["tier_weights"][t] for t in ("public", "internal", "confidential", "restricted")]
    if any(w < 0 for w in weights) or weights != sorted(weights):
        raise ConfigurationError(
            "risk.tier_weights must be non-negative and non-decreasing from public to restricted",
            {"tier_weights": risk["tier_weights"]},
        )
    if risk["distance_penalty"] < 0:
        raise ConfigurationError("risk.distance_penalty must be >= 0")
    if any(w <= 0 for w in risk["operation_weights"].values()):
        raise ConfigurationError("risk.operation_weights must be positive", {"operation_weights": risk["operation_weights"]})
    floor = reachable_score_floor(risk)
    if not 0 <= risk["unreachable_score"] <= floor:
        raise ConfigurationError(
            f"risk.unreachable_score must be between 0 and {floor} (the lowest score a reachable point can get), "
            f"got {risk['unreachable_score']}",
            {"unreachable_score": risk["unreachable_score"], "reachable_floor": floor},
        )


def reachable_score_floor(risk: dict[str, Any]) -> float:
    """Greatest lower bound of the risk score of any reachable access point.

    With a distance penalty a far enough point tends to zero, so the bound
    is 0; without one it is the smallest tier weight times the smallest
    operation weight.
    """
    if risk["distance_penalty"] > 0:
        return 0.0
    lowest_tier = min(risk["tier_weights"].values(), default=0.0)
    lowest_operation = min(risk["operation_weights"].values(), default=0.0)
    return round(lowest_tier * lowest_operation, 4)

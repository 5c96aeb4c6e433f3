"""Configuration defaults and validation for every diagnostics component.

One nested dict, one section per component. Callers override individual
keys; merge_config() fills in the rest from DEFAULT_CONFIG and
validate_config() returns a list of error messages (empty list = valid).
Components call require_valid() in their constructors so that a bad
configuration fails fast, before any data is analyzed.

Usage::

    from expression_diagnostics.config import merge_config, validate_config

    witness_cfg = merge_config("witness", {"max_samples": 500})
    errors = validate_config({"witness": witness_cfg})
"""

from __future__ import annotations

import copy
import math

DEFAULT_CONFIG = {
    "gates": {
        "strict_epsilon": 1e-6,
    },
    "polarity": {
        "active_weight_epsilon": 1e-3,
        "min_usage_count": 3,
        "imbalance_threshold": 0.75,
    },
    "witness": {
        "max_samples": 2000,
        "hill_climb_seeds": 5,
        "hill_climb_iterations": 60,
        "perturbation_delta": 0.05,
        "timeout_ms": 5000,
        "max_trigger_rate": 0.001,
        "seed": 42,
    },
    "or_blocks": {
        "dead_weight_threshold": 0.01,
        "weak_contributor_threshold": 0.05,
        "threshold_reduction": 0.1,
        "enable_replacement_suggestions": False,
    },
    "validation": {
        "confidence_level": 0.95,
        "high_min_ess": 100,
        "high_max_width": 0.05,
        "medium_min_ess": 30,
        "medium_max_width": 0.15,
    },
    "edit_sets": {
        "target_band": (0.0001, 0.001),
        "max_edit_proposals": 5,
        "overshoot_factor": 10.0,
        "min_score": 0.05,
    },
    "report": {
        "very_low_rate_threshold": 0.001,
        "reduced_search_fraction": 0.25,
        "max_blockers": 10,
    },
}

_POSITIVE_NUMBERS = {
    ("gates", "strict_epsilon"),
    ("witness", "perturbation_delta"),
    ("witness", "timeout_ms"),
    ("edit_sets", "overshoot_factor"),
    ("report", "very_low_rate_threshold"),
}
_POSITIVE_INTEGERS = {
    ("polarity", "min_usage_count"),
    ("witness", "max_samples"),
    ("witness", "hill_climb_seeds"),
    ("edit_sets", "max_edit_proposals"),
    ("report", "max_blockers"),
    ("validation", "high_min_ess"),
    ("validation", "medium_min_ess"),
}
_NON_NEGATIVE_INTEGERS = {
    ("witness", "hill_climb_iterations"),
    ("witness", "seed"),
}
_UNIT_INTERVAL = {
    ("witness", "max_trigger_rate"),
    ("or_blocks", "dead_weight_threshold"),
    ("or_blocks", "weak_contributor_threshold"),
    ("or_blocks", "threshold_reduction"),
    ("validation", "high_max_width"),
    ("validation", "medium_max_width"),
    ("edit_sets", "min_score"),
    ("report", "reduced_search_fraction"),
}
_BOOLEANS = {
    ("or_blocks", "enable_replacement_suggestions"),
}


class ConfigurationError(ValueError):
    """Raised at construction time when a component is misconfigured."""


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def merge_config(section: str, overrides: dict | None = None) -> dict:
    """Return DEFAULT_CONFIG[section] updated with overrides.

    Raises:
        ConfigurationError: If the section is unknown or overrides is not
            a mapping.
    """
    if section not in DEFAULT_CONFIG:
        raise ConfigurationError(f"Unknown config section: {section}")
    merged = copy.deepcopy(DEFAULT_CONFIG[section])
    if overrides is None:
        return merged
    if not isinstance(overrides, dict):
        raise ConfigurationError(f"{section} config must be a dict")
    merged.update(overrides)
    return merged


def validate_config(config: dict) -> list[str]:
    """Validate a (possibly partial) nested config dict.

    Returns a list of error messages. Empty list = valid.
    """
    errors = []
    if not isinstance(config, dict):
        return ["config must be a dict"]

    for section, values in config.items():
        if section not in DEFAULT_CONFIG:
            errors.append(f"Unknown config section: {section}")
            continue
        if not isinstance(values, dict):
            errors.append(f"{section} must be a dict")
            continue
        for key, value in values.items():
            path = (section, key)
            name = f"{section}.{key}"
            if key not in DEFAULT_CONFIG[section]:
                errors.append(f"Unknown config key: {name}")
            elif path in _POSITIVE_NUMBERS:
                if not _is_number(value) or value <= 0:
                    errors.append(f"{name} must be a positive number, got {value!r}")
            elif path in _POSITIVE_INTEGERS:
                if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                    errors.append(f"{name} must be a positive integer, got {value!r}")
            elif path in _NON_NEGATIVE_INTEGERS:
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    errors.append(f"{name} must be a non-negative integer, got {value!r}")
            elif path in _UNIT_INTERVAL:
                if not _is_number(value) or not 0.0 <= value <= 1.0:
                    errors.append(f"{name} must be in [0, 1], got {value!r}")
            elif path in _BOOLEANS:
                if not isinstance(value, bool):
                    errors.append(f"{name} must be a boolean, got {value!r}")

    polarity = config.get("polarity")
    if isinstance(polarity, dict):
        eps = polarity.get("active_weight_epsilon", 0.0)
        if not _is_number(eps) or eps < 0:
            errors.append(f"polarity.active_weight_epsilon must be >= 0, got {eps!r}")
        ratio = polarity.get("imbalance_threshold", 0.75)
        if not _is_number(ratio) or not 0.5 < ratio <= 1.0:
            errors.append(f"polarity.imbalance_threshold must be in (0.5, 1], got {ratio!r}")

    validation = config.get("validation")
    if isinstance(validation, dict):
        level = validation.get("confidence_level", 0.95)
        if not _is_number(level) or not 0.0 < level < 1.0:
            errors.append(f"validation.confidence_level must be in (0, 1), got {level!r}")

    edit_sets = config.get("edit_sets")
    if isinstance(edit_sets, dict) and "target_band" in edit_sets:
        errors.extend(validate_target_band(edit_sets["target_band"]))

    or_blocks = config.get("or_blocks")
    if isinstance(or_blocks, dict):
        dead = or_blocks.get("dead_weight_threshold", 0.01)
        weak = or_blocks.get("weak_contributor_threshold", 0.05)
        if _is_number(dead) and _is_number(weak) and dead > weak:
            errors.append(
                "or_blocks.dead_weight_threshold must be <= "
                "or_blocks.weak_contributor_threshold"
            )

    return errors


def validate_target_band(band) -> list[str]:
    """Validate a (low, high) trigger-rate band."""
    if not isinstance(band, (list, tuple)) or len(band) != 2:
        return [f"target_band must be a (low, high) pair, got {band!r}"]
    low, high = band
    if not (_is_number(low) and _is_number(high)):
        return [f"target_band bounds must be numbers, got {band!r}"]
    if not 0.0 <= low <= high <= 1.0:
        return [f"target_band must satisfy 0 <= low <= high <= 1, got {band!r}"]
    return []


def require_valid(section: str, overrides: dict | None = None) -> dict:
    """Merge and validate one section, raising ConfigurationError on failure."""
    merged = merge_config(section, overrides)
    errors = validate_config({section: merged})
    if errors:
        raise ConfigurationError("; ".join(errors))
    return merged

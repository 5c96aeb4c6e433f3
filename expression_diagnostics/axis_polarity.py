"""Axis polarity audit across a prototype catalogue.

Flags axes that prototypes use almost exclusively with one sign of weight.
If every prototype that mentions ``threat`` weights it positively, no
prototype ever rewards low threat, and expressions that need calm states
have nothing to lean on. This is a catalogue-wide design smell, computed
independently of any single expression.

For each axis the analyzer counts positive, negative and near-zero weights
(|w| <= active_weight_epsilon counts as zero; NaN and +/-inf are skipped).
An axis is imbalanced when its active usage (positive + negative) reaches
min_usage_count and max(positive, negative) / usage reaches
imbalance_threshold. An exact tie is "balanced" and never flagged.
"""

from __future__ import annotations

import logging
import math

from expression_diagnostics.base import validate_logger
from expression_diagnostics.config import require_valid

logger = logging.getLogger(__name__)


def _weights_of(proto) -> dict:
    weights = getattr(proto, "weights", None)
    if weights is None and isinstance(proto, dict):
        weights = proto.get("weights")
    return dict(weights) if weights else {}


class AxisPolarityAnalyzer:
    """Counts weight signs per axis and flags one-sided axes.

    Args:
        config: Overrides for the "polarity" config section.
        logger: Anything with debug/warning/error methods.

    Example:
        report = AxisPolarityAnalyzer().analyze(registry.prototypes("emotion"))
        for entry in report["imbalanced_axes"]:
            print(entry["axis"], entry["direction"], entry["ratio"])
    """

    def __init__(self, config: dict | None = None, logger: logging.Logger | None = logger):
        self.config = require_valid("polarity", config)
        self.logger = validate_logger(logger)

    def analyze(self, prototypes, config: dict | None = None) -> dict:
        """Audit weight polarity across prototypes.

        Args:
            prototypes: Iterable of PrototypeDefinition (or dicts with a
                "weights" mapping).
            config: Per-call overrides merged over the constructor config.

        Returns:
            Dict with:
                "polarity_by_axis": {axis: {"positive", "negative", "zero",
                    "usage_count", "ratio", "dominant_direction"}},
                "imbalanced_axes": list of {"axis", "direction", "ratio",
                    "positive_count", "negative_count", "usage_count"},
                    most skewed first,
                "warnings": list[str], one per imbalanced axis,
                "total_axes_analyzed": int,
                "imbalanced_count": int,
        """
        cfg = dict(self.config)
        if config:
            cfg = require_valid("polarity", {**cfg, **config})
        eps = cfg["active_weight_epsilon"]

        counts: dict[str, dict] = {}
        for proto in prototypes or []:
            for axis, weight in _weights_of(proto).items():
                if isinstance(weight, bool) or not isinstance(weight, (int, float)):
                    continue
                if not math.isfinite(weight):
                    continue
                entry = counts.setdefault(axis, {"positive": 0, "negative": 0, "zero": 0})
                if abs(weight) <= eps:
                    entry["zero"] += 1
                elif weight > 0:
                    entry["positive"] += 1
                else:
                    entry["negative"] += 1

        polarity_by_axis = {}
        imbalanced = []
        for axis in sorted(counts):
            entry = counts[axis]
            pos, neg = entry["positive"], entry["negative"]
            usage = pos + neg
            if usage == 0:
                direction, ratio = "none", 0.0
            elif pos == neg:
                direction, ratio = "balanced", 0.5
            else:
                direction = "positive" if pos > neg else "negative"
                ratio = max(pos, neg) / usage
            polarity_by_axis[axis] = {
                **entry,
                "usage_count": usage,
                "ratio": ratio,
                "dominant_direction": direction,
            }
            if (
                direction in ("positive", "negative")
                and usage >= cfg["min_usage_count"]
                and ratio >= cfg["imbalance_threshold"]
            ):
                imbalanced.append({
                    "axis": axis,
                    "direction": direction,
                    "ratio": ratio,
                    "positive_count": pos,
                    "negative_count": neg,
                    "usage_count": usage,
                })

        imbalanced.sort(key=lambda item: (-item["ratio"], item["axis"]))
        warnings = []
        for item in imbalanced:
            opposite = "negative" if item["direction"] == "positive" else "positive"
            dominant = max(item["positive_count"], item["negative_count"])
            warnings.append(
                f"Axis '{item['axis']}' is weighted {item['direction']}ly in "
                f"{dominant} of {item['usage_count']} prototypes ({item['ratio']:.0%}); "
                f"few prototypes respond to {opposite} '{item['axis']}'."
            )
        if imbalanced:
            self.logger.debug("Polarity audit flagged %d of %d axes", len(imbalanced), len(counts))

        return {
            "polarity_by_axis": polarity_by_axis,
            "imbalanced_axes": imbalanced,
            "warnings": warnings,
            "total_axes_analyzed": len(polarity_by_axis),
            "imbalanced_count": len(imbalanced),
        }

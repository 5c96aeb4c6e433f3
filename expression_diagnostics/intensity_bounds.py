"""Reachable intensity bounds for a prototype's weighted axis score.

A prototype's intensity is the normalized weighted sum

    I = sum(w_i * x_i) / sum(|w_i|)

over axes x_i bounded by [lo_i, hi_i]. Because I is linear in each x_i and
the box constraints are independent, the extremes sit on box corners:

    max = sum(w_i >= 0 ? w_i * hi_i : w_i * lo_i) / sum(|w_i|)
    min = sum(w_i >= 0 ? w_i * lo_i : w_i * hi_i) / sum(|w_i|)

both clamped to [0, 1]. Mood axes default to [-1, 1], sexual axes and
affect traits to [0, 1]; axes outside the catalogue take the prototype
category's default. Intervals from GateConstraintExtractor narrow the
defaults.

An unknown prototype id or a prototype without weights yields zero bounds
(and, for unknown ids, a warning) so that scanning a large expression tree
never aborts on one bad reference.
"""

from __future__ import annotations

import logging
import math

from expression_diagnostics.base import AFFECT_TRAITS_SET, MOOD_AXES_SET, SEXUAL_AXES_SET, validate_logger
from expression_diagnostics.expression_ast import parse_logic, iter_comparisons
from expression_diagnostics.models import (
    AxisInterval,
    IntensityBounds,
    ThresholdReachability,
    UnreachableFinding,
)

logger = logging.getLogger(__name__)

MOOD_RANGE = (-1.0, 1.0)
UNIT_RANGE = (0.0, 1.0)

# Variable path prefix -> prototype category.
PATH_CATEGORIES = {
    "emotions": "emotion",
    "sexualStates": "sexual",
}


def default_axis_range(axis: str, category: str) -> tuple[float, float]:
    if axis in MOOD_AXES_SET:
        return MOOD_RANGE
    if axis in SEXUAL_AXES_SET or axis in AFFECT_TRAITS_SET or axis == "sexual_arousal":
        return UNIT_RANGE
    return MOOD_RANGE if category == "emotion" else UNIT_RANGE


def _interval_bounds(constraint) -> tuple[float | None, float | None]:
    if isinstance(constraint, AxisInterval):
        return constraint.lower, constraint.upper
    if isinstance(constraint, dict):
        lower = constraint.get("lower", constraint.get("min"))
        upper = constraint.get("upper", constraint.get("max"))
        return lower, upper
    return None, None


def split_prototype_path(var_path: str) -> tuple[str, str] | None:
    """Map "emotions.joy" -> ("emotion", "joy"); None for other paths."""
    if not isinstance(var_path, str) or "." not in var_path:
        return None
    prefix, _, proto_id = var_path.partition(".")
    category = PATH_CATEGORIES.get(prefix)
    if category is None or not proto_id or "." in proto_id:
        return None
    return category, proto_id


class IntensityBoundsCalculator:
    """Computes reachable min/max intensity and threshold reachability.

    Args:
        registry: Object with get(category, prototype_id) returning a
            PrototypeDefinition or None.
        logger: Anything with debug/warning/error methods.

    Example:
        calc = IntensityBoundsCalculator(registry)
        calc.calculate_bounds("joy", "emotion")          # IntensityBounds(0, 1, True)
        calc.check_threshold_reachability("joy", "emotion", 0.5).is_reachable
    """

    def __init__(self, registry, logger: logging.Logger | None = logger):
        if not callable(getattr(registry, "get", None)):
            raise TypeError("registry must provide a get(category, prototype_id) method")
        self.registry = registry
        self.logger = validate_logger(logger)

    def calculate_bounds(self, prototype_id: str, category: str, axis_constraints: dict | None = None) -> IntensityBounds:
        proto = self.registry.get(category, prototype_id)
        if proto is None:
            self.logger.warning("Unknown prototype '%s' in category '%s'", prototype_id, category)
            return IntensityBounds(0.0, 0.0, False)

        weights = {
            axis: float(w) for axis, w in proto.weights.items()
            if isinstance(w, (int, float)) and math.isfinite(w) and w != 0
        }
        total_abs = sum(abs(w) for w in weights.values())
        if total_abs == 0:
            return IntensityBounds(0.0, 0.0, False)

        constraints = axis_constraints or {}
        narrowed = False
        hi_sum = 0.0
        lo_sum = 0.0
        for axis, weight in weights.items():
            lo, hi = default_axis_range(axis, category)
            if axis in constraints:
                lower, upper = _interval_bounds(constraints[axis])
                if lower is not None and lower > lo:
                    lo, narrowed = float(lower), True
                if upper is not None and upper < hi:
                    hi, narrowed = float(upper), True
                if lo > hi:
                    self.logger.debug(
                        "Prototype '%s': axis '%s' has an empty range [%s, %s]; intensity is always 0",
                        prototype_id, axis, lo, hi,
                    )
                    return IntensityBounds(0.0, 0.0, False)
            if weight >= 0:
                hi_sum += weight * hi
                lo_sum += weight * lo
            else:
                hi_sum += weight * lo
                lo_sum += weight * hi

        return IntensityBounds(
            min=min(1.0, max(0.0, lo_sum / total_abs)),
            max=min(1.0, max(0.0, hi_sum / total_abs)),
            is_unbounded=not narrowed,
        )

    def check_threshold_reachability(
        self,
        prototype_id: str,
        category: str,
        threshold: float,
        axis_constraints: dict | None = None,
    ) -> ThresholdReachability:
        bounds = self.calculate_bounds(prototype_id, category, axis_constraints)
        reachable = bounds.max >= threshold
        return ThresholdReachability(
            is_reachable=reachable,
            threshold=float(threshold),
            max_possible=bounds.max,
            gap=0.0 if reachable else float(threshold) - bounds.max,
        )

    def analyze_expression(self, expression, axis_constraints: dict | None = None) -> list[UnreachableFinding]:
        """Report every `emotions.<id> >= t` / `sexualStates.<id> >= t` leaf that cannot pass.

        Leaves under OR are checked individually, exactly like leaves under
        AND. Paths that do not name a prototype are ignored. A malformed
        expression is logged and yields no findings.
        """
        try:
            root = parse_logic(expression)
        except ValueError as exc:
            self.logger.warning("Cannot analyze malformed expression: %s", exc)
            return []

        findings = []
        for leaf in iter_comparisons(root):
            if leaf.operator not in (">=", ">"):
                continue
            target = split_prototype_path(leaf.var_path)
            if target is None:
                continue
            category, proto_id = target
            bounds = self.calculate_bounds(proto_id, category, axis_constraints)
            if leaf.operator == ">=":
                reachable = bounds.max >= leaf.threshold
            else:
                reachable = bounds.max > leaf.threshold
            if reachable:
                continue
            findings.append(UnreachableFinding(
                prototype_id=proto_id,
                category=category,
                var_path=leaf.var_path,
                operator=leaf.operator,
                threshold=leaf.threshold,
                max_possible=bounds.max,
                gap=max(0.0, leaf.threshold - bounds.max),
            ))
        return findings

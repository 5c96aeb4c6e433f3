"""Gate constraint extraction: gate strings -> per-axis closed intervals.

A gate is a single-axis inequality written by a content author, e.g.
``"threat <= 0.20"``. The grammar, applied after trimming whitespace, is::

    <axis> <op> <number>      op in {>=, >, <=, <}

where the number is an optionally negative integer or decimal with at
least one leading digit (``0.5`` parses, ``.5`` does not). ``==``, ``!=``,
combinators such as ``&&`` and anything else are collected as unparsed.

Strict operators become non-strict bounds offset by ``strict_epsilon``
(``> t`` -> ``lower = t + eps``; ``< t`` -> ``upper = t - eps``). Gates on
the same axis intersect. An interval whose lower bound exceeds its upper
bound is returned with ``unsatisfiable=True`` and a warning is logged; it
is a finding, not an error.
"""

from __future__ import annotations

import logging
import math
import re

from expression_diagnostics.base import gate_scale_value, resolve_axis_value, validate_logger
from expression_diagnostics.config import DEFAULT_CONFIG, ConfigurationError
from expression_diagnostics.models import AxisInterval, GateParseResult

logger = logging.getLogger(__name__)

GATE_PATTERN = re.compile(r"^(\w+)\s*(>=|>|<=|<)\s*(-?\d+\.?\d*)$")


def parse_gate(gate) -> tuple[str, str, float] | None:
    """Parse one gate string into (axis, operator, threshold), or None."""
    if not isinstance(gate, str):
        return None
    match = GATE_PATTERN.match(gate.strip())
    if match is None:
        return None
    axis, operator, number = match.groups()
    return axis, operator, float(number)


def gate_passes(gate, context: dict) -> bool | None:
    """Evaluate a gate against a sampled context.

    The axis value is looked up in the context and converted to the gate
    scale (mood axes /100 onto [-1, 1], traits and sexual axes onto [0, 1]).

    Returns:
        True/False, or None when the gate is unparseable or the context has
        no usable value for its axis.
    """
    parsed = parse_gate(gate)
    if parsed is None:
        return None
    axis, operator, threshold = parsed
    value = gate_scale_value(axis, resolve_axis_value(context, axis))
    if value is None:
        return None
    if operator == ">=":
        return value >= threshold
    if operator == ">":
        return value > threshold
    if operator == "<=":
        return value <= threshold
    return value < threshold


class GateConstraintExtractor:
    """Turns a prototype's gate list into per-axis intervals.

    Stateless between calls: every extract() allocates fresh intervals and
    never touches the caller's list.

    Args:
        strict_epsilon: Offset applied to strict operators. Must be a
            positive finite number.
        logger: Anything with debug/warning/error methods. Defaults to the
            module logger.

    Raises:
        ConfigurationError: If strict_epsilon is missing or not positive.
        TypeError: If logger lacks debug/warning/error.

    Example:
        extractor = GateConstraintExtractor()
        result = extractor.extract(["arousal >= 0.80", "arousal <= 0.20"])
        result.intervals["arousal"].unsatisfiable  # True
    """

    def __init__(
        self,
        strict_epsilon: float = DEFAULT_CONFIG["gates"]["strict_epsilon"],
        logger: logging.Logger | None = logger,
    ):
        if (
            strict_epsilon is None
            or isinstance(strict_epsilon, bool)
            or not isinstance(strict_epsilon, (int, float))
            or not math.isfinite(strict_epsilon)
            or strict_epsilon <= 0
        ):
            raise ConfigurationError(
                f"strict_epsilon must be a positive number, got {strict_epsilon!r}"
            )
        self.strict_epsilon = float(strict_epsilon)
        self.logger = validate_logger(logger)

    def extract(self, gates) -> GateParseResult:
        """Parse gates into intervals.

        Args:
            gates: Sequence of gate strings. None is treated as no gates.

        Returns:
            GateParseResult with intervals keyed by axis, the unparsed gate
            strings in input order and a parse_status of "complete" (all
            parsed), "failed" (none parsed, at least one given) or
            "partial".
        """
        gates = list(gates) if gates is not None else []
        bounds: dict[str, list] = {}
        unparsed = []

        for gate in gates:
            parsed = parse_gate(gate)
            if parsed is None:
                unparsed.append(gate)
                continue
            axis, operator, threshold = parsed
            lower, upper = bounds.setdefault(axis, [None, None])
            if operator == ">=":
                lower = threshold if lower is None else max(lower, threshold)
            elif operator == ">":
                value = threshold + self.strict_epsilon
                lower = value if lower is None else max(lower, value)
            elif operator == "<=":
                upper = threshold if upper is None else min(upper, threshold)
            else:
                value = threshold - self.strict_epsilon
                upper = value if upper is None else min(upper, value)
            bounds[axis] = [lower, upper]

        intervals = {}
        for axis, (lower, upper) in bounds.items():
            unsatisfiable = lower is not None and upper is not None and lower > upper
            if unsatisfiable:
                self.logger.warning(
                    "Unsatisfiable gate constraints for axis '%s': lower %s > upper %s",
                    axis, lower, upper,
                )
            intervals[axis] = AxisInterval(axis, lower, upper, unsatisfiable)

        if not unparsed:
            status = "complete"
        elif len(unparsed) == len(gates):
            status = "failed"
        else:
            status = "partial"
        if unparsed:
            self.logger.debug("Skipped %d unparseable gate(s): %s", len(unparsed), unparsed)

        return GateParseResult(
            intervals=intervals,
            unparsed_gates=tuple(unparsed),
            parse_status=status,
        )

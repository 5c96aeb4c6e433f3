"""Importance-sampling validation of proposed expression edits.

Re-evaluates the edited expression against the stored Monte Carlo contexts
instead of extrapolating from clause pass rates. Each stored context may
carry an importance ``weight`` (default 1.0) from a biased sampler:

    rate = sum(w * pass) / sum(w)
    ESS  = sum(w)^2 / sum(w^2)            (equals n for uniform weights)

The Wilson interval is taken over ESS at the configured confidence level.
Confidence is "high" when ESS >= high_min_ess and the interval is narrower
than high_max_width, "medium" at the medium thresholds, "low" otherwise.
"""

from __future__ import annotations

import logging
import math

from expression_diagnostics.base import validate_logger
from expression_diagnostics.config import require_valid
from expression_diagnostics.expression_ast import evaluate, parse_logic, remove_clauses, replace_thresholds
from expression_diagnostics.models import ValidationResult
from expression_diagnostics.statistics import calculate_wilson_interval, z_score_for_confidence

logger = logging.getLogger(__name__)


def apply_edits(root, edits):
    """Return a copy of the parsed expression with clause edits applied.

    "threshold" edits replace the leaf threshold, "delete" edits drop the
    leaf. Other edit types leave the tree unchanged.
    """
    thresholds = {
        e.clause_id: float(e.after) for e in edits
        if e.edit_type == "threshold" and isinstance(e.after, (int, float))
    }
    deletions = [e.clause_id for e in edits if e.edit_type == "delete"]
    edited = replace_thresholds(root, thresholds) if thresholds else root
    if deletions:
        edited = remove_clauses(edited, deletions)
    return edited


def _sample_weight(sample) -> float | None:
    weight = sample.get("weight", 1.0) if isinstance(sample, dict) else 1.0
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        return None
    if not math.isfinite(weight) or weight < 0:
        return None
    return float(weight)


class ImportanceSamplingValidator:
    """Estimates an edited expression's trigger rate from stored samples.

    Args:
        config: Overrides for the "validation" config section.
        logger: Anything with debug/warning/error methods.
    """

    def __init__(self, config: dict | None = None, logger: logging.Logger | None = logger):
        self.config = require_valid("validation", config)
        self.logger = validate_logger(logger)
        self.z = z_score_for_confidence(self.config["confidence_level"])

    def _confidence(self, ess: float, width: float) -> str:
        cfg = self.config
        if ess >= cfg["high_min_ess"] and width < cfg["high_max_width"]:
            return "high"
        if ess >= cfg["medium_min_ess"] and width < cfg["medium_max_width"]:
            return "medium"
        return "low"

    def validate(self, proposal, samples, clauses) -> ValidationResult:
        """Validate one proposal.

        Args:
            proposal: Edit (or anything with an ``edits`` sequence of
                ClauseEdit).
            samples: Stored contexts, optionally carrying "weight".
            clauses: The original expression (parsed node or JSON logic).

        Returns:
            ValidationResult. Missing proposal, samples or expression gives
            rate 0, interval (0, 1), confidence "low" and zero counts.
        """
        if proposal is None or not samples:
            return ValidationResult()
        try:
            root = parse_logic(clauses)
        except ValueError as exc:
            self.logger.warning("Cannot validate against malformed expression: %s", exc)
            return ValidationResult()
        if root is None:
            return ValidationResult()

        edited = apply_edits(root, getattr(proposal, "edits", ()))
        total_w = 0.0
        total_w2 = 0.0
        pass_w = 0.0
        count = 0
        for sample in samples:
            weight = _sample_weight(sample)
            if weight is None:
                continue
            count += 1
            total_w += weight
            total_w2 += weight * weight
            if evaluate(edited, sample):
                pass_w += weight

        if total_w <= 0:
            return ValidationResult(sample_count=count)

        rate = pass_w / total_w
        ess = (total_w * total_w) / total_w2
        ci = calculate_wilson_interval(rate * ess, ess, self.z)
        width = ci["high"] - ci["low"]
        return ValidationResult(
            estimated_rate=rate,
            confidence_interval=(ci["low"], ci["high"]),
            confidence=self._confidence(ess, width),
            sample_count=count,
            effective_sample_size=ess,
        )

    def validate_batch(self, proposals, samples, clauses) -> list[ValidationResult]:
        return [self.validate(proposal, samples, clauses) for proposal in proposals or []]

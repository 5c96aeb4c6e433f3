"""Edit set generation: ranked, validated edits toward a target trigger rate.

Collects candidate edits from three blocker sources:

    - unreachable thresholds (IntensityBoundsCalculator findings): lower the
      threshold to the prototype's reachable maximum
    - witness blockers (WitnessSearcher minimal adjustments): move the
      threshold to the value observed at the best witness
    - OR-block analysis: delete dead-weight alternatives, loosen weak ones

Each proposal (single edits, all threshold edits together, and the
combination of threshold and OR edits when both exist) is validated by
re-evaluating stored samples with importance sampling when samples exist,
otherwise by extrapolating clause pass rates. Proposals are scored in [0, 1]:

    score = band_score * confidence_multiplier * simplicity
    band_score  = 1.0 inside the target band, else
                  0.5 * max(0, 1 - log10_distance_to_band / 3)
    confidence  = high 1.0, medium 0.9, low 0.75
    simplicity  = 1 / (1 + 0.1 * (n_edits - 1))

Rewriting the top-level AND as an OR and proposals that overshoot the band
by more than overshoot_factor are listed as not recommended.
"""

from __future__ import annotations

import logging
import math

from expression_diagnostics.base import validate_logger
from expression_diagnostics.config import ConfigurationError, require_valid, validate_target_band
from expression_diagnostics.expression_ast import clause_id_for, iter_comparisons, parse_logic, top_level_clauses
from expression_diagnostics.importance_sampling import ImportanceSamplingValidator
from expression_diagnostics.models import ClauseEdit, Edit, EditSet, OrBlockAnalysis
from expression_diagnostics.or_blocks import OrBlockAnalyzer
from expression_diagnostics.witness import STRICT_OFFSET

logger = logging.getLogger(__name__)

CONFIDENCE_MULTIPLIERS = {"high": 1.0, "medium": 0.9, "low": 0.75}


def band_score(rate: float, band: tuple[float, float]) -> float:
    low, high = band
    if low <= rate <= high:
        return 1.0
    if rate <= 0:
        return 0.0
    if rate < low:
        distance = math.log10(low / rate)
    else:
        distance = math.log10(rate / high) if high > 0 else math.inf
    return 0.5 * max(0.0, 1.0 - distance / 3.0)


def score_proposal(rate: float, confidence: str, n_edits: int, band: tuple[float, float]) -> float:
    simplicity = 1.0 / (1.0 + 0.1 * (max(1, n_edits) - 1))
    return band_score(rate, band) * CONFIDENCE_MULTIPLIERS.get(confidence, 0.75) * simplicity


class EditSetGenerator:
    """Turns blockers into a ranked EditSet.

    Args:
        validator: ImportanceSamplingValidator (default: a new one).
        or_block_analyzer: OrBlockAnalyzer used for raw OR-block nodes
            (default: a new one).
        config: Overrides for the "edit_sets" config section.
        logger: Anything with debug/warning/error methods.
    """

    def __init__(
        self,
        validator: ImportanceSamplingValidator | None = None,
        or_block_analyzer: OrBlockAnalyzer | None = None,
        config: dict | None = None,
        logger: logging.Logger | None = logger,
    ):
        self.logger = validate_logger(logger)
        self.config = require_valid("edit_sets", config)
        self.validator = validator if validator is not None else ImportanceSamplingValidator(logger=self.logger)
        self.or_block_analyzer = (
            or_block_analyzer if or_block_analyzer is not None else OrBlockAnalyzer(logger=self.logger)
        )
        if not callable(getattr(self.validator, "validate", None)):
            raise TypeError("validator must provide validate(proposal, samples, clauses)")
        if not callable(getattr(self.or_block_analyzer, "analyze", None)):
            raise TypeError("or_block_analyzer must provide analyze(or_block, sample_count)")

    # ------------------------------------------------------------------ #
    #  Candidate collection                                                #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _threshold_edits(blockers: dict, leaves: dict) -> list[ClauseEdit]:
        edits = {}
        witness = blockers.get("witness")
        for adj in getattr(witness, "minimal_adjustments", ()) or ():
            if adj.clause_id in leaves:
                edits[adj.clause_id] = ClauseEdit(
                    adj.clause_id, "threshold", adj.current_threshold, adj.suggested_threshold
                )
        for finding in blockers.get("unreachable") or []:
            clause_id = clause_id_for(finding.var_path, finding.operator, finding.threshold)
            if clause_id in leaves and clause_id not in edits:
                after = finding.max_possible
                if finding.operator == ">":
                    after -= STRICT_OFFSET
                edits[clause_id] = ClauseEdit(clause_id, "threshold", finding.threshold, after)
        return list(edits.values())

    def _or_edits(self, blockers: dict, leaves: dict) -> list[ClauseEdit]:
        sample_count = int(blockers.get("sample_count") or 0)
        edits = []
        for block in blockers.get("or_blocks") or []:
            analysis = block if isinstance(block, OrBlockAnalysis) else self.or_block_analyzer.analyze(block, sample_count)
            for rec in analysis.recommendations:
                if rec.clause_id not in leaves:
                    continue
                if rec.action == "delete":
                    edits.append(ClauseEdit(rec.clause_id, "delete", leaves[rec.clause_id].label, None))
                elif rec.action == "lower-threshold" and rec.suggested_value is not None:
                    edits.append(ClauseEdit(
                        rec.clause_id, "threshold", leaves[rec.clause_id].threshold, rec.suggested_value
                    ))
        return edits

    # ------------------------------------------------------------------ #
    #  Validation                                                          #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _extrapolate(edits, blockers: dict, clauses: tuple) -> float:
        """Clause pass rates combined by node kind, edited clauses assumed to pass.

        AND multiplies its children; OR takes 1 - prod(1 - p) over its
        alternatives, the independence estimate (never below its best
        alternative). Deleted leaves and leaves without a known rate are left
        out.
        """
        pass_rates = blockers.get("clause_pass_rates") or {}
        edited = {edit.clause_id for edit in edits if edit.edit_type != "delete"}
        deleted = {edit.clause_id for edit in edits if edit.edit_type == "delete"}
        known = []

        def clause_rate(node):
            if node.kind == "leaf":
                if node.clause_id in deleted:
                    return None
                if node.clause_id in edited:
                    return 1.0
                if node.clause_id in pass_rates:
                    known.append(node.clause_id)
                    return float(pass_rates[node.clause_id])
                return None
            rates = [r for r in (clause_rate(child) for child in node.children) if r is not None]
            if not rates:
                return None
            if node.kind == "or":
                return 1.0 - math.prod(1.0 - r for r in rates)
            return math.prod(rates)

        rates = [r for r in (clause_rate(clause) for clause in clauses) if r is not None]
        if not known:
            return float(blockers.get("trigger_rate") or 0.0)
        return math.prod(rates)

    def _validate(self, edits: list[ClauseEdit], blockers: dict, root, clauses: tuple) -> Edit:
        samples = blockers.get("samples") or []
        draft = Edit(edits=tuple(edits), predicted_rate=0.0, confidence="low", validation_method="extrapolation")
        if samples:
            result = self.validator.validate(draft, samples, root)
            return Edit(
                edits=tuple(edits),
                predicted_rate=result.estimated_rate,
                confidence=result.confidence,
                validation_method="importance-sampling",
                confidence_interval=tuple(result.confidence_interval),
            )
        return Edit(
            edits=tuple(edits),
            predicted_rate=self._extrapolate(edits, blockers, clauses),
            confidence="low",
            validation_method="extrapolation",
        )

    # ------------------------------------------------------------------ #
    #  Main entry                                                          #
    # ------------------------------------------------------------------ #

    def generate(self, blockers: dict | None, target_band: tuple[float, float] | None = None) -> EditSet:
        """Build a ranked EditSet.

        Args:
            blockers: Dict with any of:
                "expression": JSON logic (or parsed node) being edited,
                "samples": stored contexts for importance sampling,
                "sample_count": total Monte Carlo samples,
                "trigger_rate": current trigger rate,
                "unreachable": UnreachableFinding list,
                "witness": WitnessResult,
                "or_blocks": OrBlockAnalysis list (or raw OR ClauseNodes),
                "clause_pass_rates": {clause_id: pass rate}.
            target_band: (low, high) trigger-rate band; defaults to config.

        Returns:
            EditSet. Any failure while generating is logged at error level
            and yields an empty EditSet for the requested band.
        """
        band = tuple(target_band) if target_band is not None else tuple(self.config["target_band"])
        try:
            return self._generate(blockers, band)
        except Exception as exc:
            self.logger.error("Edit set generation failed: %s", exc)
            return EditSet(target_band=band)

    def _generate(self, blockers, band) -> EditSet:
        errors = validate_target_band(band)
        if errors:
            raise ConfigurationError("; ".join(errors))
        if not blockers:
            self.logger.debug("No simulation result provided; returning empty edit set")
            return EditSet(target_band=band)

        self.logger.debug("Generating edit set for target band [%g, %g]", band[0], band[1])
        root = parse_logic(blockers.get("expression"))
        clauses = top_level_clauses(root)
        leaves = {leaf.clause_id: leaf for leaf in iter_comparisons(root)}

        threshold_edits = self._threshold_edits(blockers, leaves)
        or_edits = self._or_edits(blockers, leaves)

        candidates = [[edit] for edit in threshold_edits]
        if len(threshold_edits) > 1:
            candidates.append(list(threshold_edits))
        candidates.extend([edit] for edit in or_edits)
        if threshold_edits and or_edits:
            candidates.append(list(threshold_edits) + list(or_edits))

        not_recommended = []
        if root is not None and root.kind == "and" and len(clauses) > 1:
            not_recommended.append(
                "Rewrite the top-level AND as OR: fires whenever any single clause "
                "passes, which changes what the expression means."
            )

        if not candidates:
            self.logger.debug("No candidate edits generated")
            return EditSet(target_band=band, not_recommended=tuple(not_recommended))

        overshoot_limit = band[1] * self.config["overshoot_factor"]
        scored = []
        for edits in candidates:
            proposal = self._validate(edits, blockers, root, clauses)
            if proposal.predicted_rate > overshoot_limit:
                names = ", ".join(edit.clause_id for edit in edits)
                not_recommended.append(
                    f"{names}: predicted rate {proposal.predicted_rate:.2%} overshoots the "
                    f"target band by more than {self.config['overshoot_factor']:g}x."
                )
                continue
            score = score_proposal(proposal.predicted_rate, proposal.confidence, len(edits), band)
            if score < self.config["min_score"]:
                continue
            scored.append(Edit(
                edits=proposal.edits,
                predicted_rate=proposal.predicted_rate,
                confidence=proposal.confidence,
                validation_method=proposal.validation_method,
                score=score,
                confidence_interval=proposal.confidence_interval,
                rationale=f"{len(edits)} edit(s); predicted rate {proposal.predicted_rate:.4%}",
            ))

        scored.sort(key=lambda edit: (-edit.score, len(edit.edits)))
        self.logger.debug("Edit set: %d viable proposals of %d candidates", len(scored), len(candidates))
        if not scored:
            return EditSet(target_band=band, not_recommended=tuple(not_recommended))
        return EditSet(
            target_band=band,
            primary_recommendation=scored[0],
            alternative_edits=tuple(scored[1: 1 + self.config["max_edit_proposals"]]),
            not_recommended=tuple(not_recommended),
        )

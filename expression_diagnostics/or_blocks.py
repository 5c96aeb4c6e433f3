"""OR-block dead-weight analysis.

An OR alternative earns its place only if it fires when no sibling does.
For each alternative, using the runner's OR pass counts:

    exclusive coverage      exclusive passes / sample count
    marginal contribution   exclusive passes / OR union passes
    overlap ratio           (passes - exclusive passes) / passes

Pre-computed coverage and contribution values on the node win over the
derived ones. Alternatives with coverage <= dead_weight_threshold are dead
weight (recommend delete), <= weak_contributor_threshold are weak
(recommend lowering the threshold), anything above is meaningful.
"""

from __future__ import annotations

import logging

from expression_diagnostics.base import validate_logger
from expression_diagnostics.config import require_valid
from expression_diagnostics.expression_ast import ClauseNode
from expression_diagnostics.models import OrAlternative, OrBlockAnalysis, OrBlockRecommendation

logger = logging.getLogger(__name__)


def _as_node(block) -> ClauseNode | None:
    if isinstance(block, ClauseNode):
        return block
    if isinstance(block, dict):
        return ClauseNode.from_dict(block)
    return None


def _describe(node: ClauseNode) -> str:
    if node.node_type == "and":
        leaves = [leaf.description or "?" for leaf in node.iter_leaves()]
        return f"(AND: {' & '.join(leaves)})" if leaves else "AND group"
    return node.description or "Unknown condition"


def _pass_count(node: ClauseNode) -> int:
    if node.or_pass_count is not None:
        return int(node.or_pass_count)
    if node.evaluation_count is not None:
        return max(0, int(node.evaluation_count) - int(node.failure_count or 0))
    return 0


def _union_count(block: ClauseNode) -> int:
    if block.or_union_pass_count is not None:
        return int(block.or_union_pass_count)
    if block.evaluation_count is not None:
        return max(0, int(block.evaluation_count) - int(block.failure_count or 0))
    return 0


class OrBlockAnalyzer:
    """Classifies OR alternatives and proposes deletions or threshold cuts.

    Args:
        config: Overrides for the "or_blocks" config section.
        logger: Anything with debug/warning/error methods.
    """

    def __init__(self, config: dict | None = None, logger: logging.Logger | None = logger):
        self.config = require_valid("or_blocks", config)
        self.logger = validate_logger(logger)

    def _classify(self, coverage: float) -> str:
        if coverage <= self.config["dead_weight_threshold"]:
            return "dead-weight"
        if coverage <= self.config["weak_contributor_threshold"]:
            return "weak"
        return "meaningful"

    def _suggested_threshold(self, alt: OrAlternative) -> float | None:
        if alt.threshold is None:
            return None
        reduction = self.config["threshold_reduction"]
        if alt.operator in (">=", ">"):
            return alt.threshold * (1.0 - reduction)
        if alt.operator in ("<=", "<"):
            return alt.threshold * (1.0 + reduction)
        return None

    def analyze(self, or_block, sample_count: int) -> OrBlockAnalysis:
        """Analyze one OR block.

        Args:
            or_block: ClauseNode (or its wire dict) with node_type "or".
            sample_count: Total Monte Carlo samples.

        Returns:
            OrBlockAnalysis. Missing or childless input yields an empty
            analysis with block_id "unknown".
        """
        block = _as_node(or_block)
        if block is None or not block.children:
            return OrBlockAnalysis()

        union = _union_count(block)
        alternatives = []
        for index, child in enumerate(block.children):
            exclusive = int(child.or_exclusive_pass_count or 0)
            passes = _pass_count(child)
            if child.exclusive_coverage is not None:
                coverage = float(child.exclusive_coverage)
            else:
                coverage = exclusive / sample_count if sample_count and sample_count > 0 else 0.0
            if child.marginal_contribution is not None:
                marginal = float(child.marginal_contribution)
            else:
                marginal = exclusive / union if union > 0 else 0.0
            overlap = (passes - exclusive) / passes if passes > 0 else 0.0
            alternatives.append(OrAlternative(
                clause_id=child.clause_id or child.id or f"alt_{index}",
                description=_describe(child),
                exclusive_coverage=coverage,
                marginal_contribution=marginal,
                overlap_ratio=max(0.0, overlap),
                classification=self._classify(coverage),
                threshold=float(child.threshold) if child.threshold is not None else None,
                operator=child.operator,
            ))

        recommendations = []
        for alt in alternatives:
            if alt.classification == "dead-weight":
                recommendations.append(OrBlockRecommendation(
                    action="delete",
                    clause_id=alt.clause_id,
                    rationale=(
                        f"Fires alone in only {alt.exclusive_coverage:.2%} of samples; "
                        f"{alt.overlap_ratio:.0%} of its passes are covered by siblings."
                    ),
                ))
                if self.config["enable_replacement_suggestions"]:
                    recommendations.append(OrBlockRecommendation(
                        action="replace",
                        clause_id=alt.clause_id,
                        rationale="Replace with an alternative that covers states the other branches miss.",
                    ))
            elif alt.classification == "weak":
                suggested = self._suggested_threshold(alt)
                if suggested is not None:
                    recommendations.append(OrBlockRecommendation(
                        action="lower-threshold",
                        clause_id=alt.clause_id,
                        rationale=(
                            f"Weak contributor ({alt.exclusive_coverage:.2%} exclusive coverage); "
                            f"loosen {alt.operator} {alt.threshold:g} to {suggested:g}."
                        ),
                        suggested_value=suggested,
                    ))

        dead = [alt for alt in alternatives if alt.classification == "dead-weight"]
        if dead:
            lost = sum(alt.exclusive_coverage for alt in dead)
            summary = (
                f"{len(dead)} of {len(alternatives)} alternatives are dead weight; "
                f"removing them cuts block complexity by {len(dead) / len(alternatives):.0%} "
                f"and loses {lost:.2%} coverage."
            )
        else:
            summary = f"All {len(alternatives)} alternatives contribute exclusive coverage."
        self.logger.debug("OR block %s: %s", block.id or "unknown", summary)

        return OrBlockAnalysis(
            block_id=block.id or "unknown",
            block_description=" OR ".join(alt.description for alt in alternatives),
            alternatives=tuple(alternatives),
            dead_weight_count=len(dead),
            recommendations=tuple(recommendations),
            impact_summary=summary,
        )

    def analyze_all(self, blocks, sample_count: int) -> list[OrBlockAnalysis]:
        """Analyze every OR block in a list of blocks or breakdown roots."""
        analyses = []
        for block in blocks or []:
            node = _as_node(block)
            if node is None:
                continue
            for or_node in node.iter_or_blocks():
                analyses.append(self.analyze(or_node, sample_count))
        return analyses

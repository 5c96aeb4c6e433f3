"""Fit/feasibility conflicts: best-fitting prototypes the expression rules out.

Prototype fit ranking says which prototypes best match an expression's mood
regime. Two situations make that ranking misleading:

    gate_contradiction         a top prototype's own gates parse to an
                               unsatisfiable interval, so its intensity is
                               always zero
    fit_vs_clause_impossible   the expression requires a top prototype above
                               a threshold its bounds can never reach
"""

from __future__ import annotations

from expression_diagnostics.expression_ast import clause_id_for
from expression_diagnostics.models import FitFeasibilityConflict, PrototypeScore


def _as_score(entry) -> PrototypeScore:
    if isinstance(entry, PrototypeScore):
        return entry
    return PrototypeScore.from_dict(dict(entry))


def detect_fit_feasibility_conflicts(top_prototypes, unreachable_findings, gate_results: dict | None = None) -> list[FitFeasibilityConflict]:
    """Cross-check prototype fit against reachability and gate findings.

    Args:
        top_prototypes: Ranked PrototypeScore records (or wire dicts).
        unreachable_findings: UnreachableFinding records from
            IntensityBoundsCalculator.analyze_expression().
        gate_results: Optional {prototype_id: GateParseResult}.

    Returns:
        List of FitFeasibilityConflict, gate contradictions first.
    """
    scores = [_as_score(entry) for entry in (top_prototypes or [])]
    conflicts = []

    for score in scores:
        result = (gate_results or {}).get(score.prototype_id)
        if result is None:
            continue
        bad_axes = [
            interval for interval in result.intervals.values() if interval.unsatisfiable
        ]
        if not bad_axes:
            continue
        details = ", ".join(
            f"{interval.axis} (lower {interval.lower:g} > upper {interval.upper:g})"
            for interval in bad_axes
        )
        conflicts.append(FitFeasibilityConflict(
            type="gate_contradiction",
            top_prototypes=[score],
            explanation=(
                f"Prototype '{score.prototype_id}' fits the regime but its gates "
                f"contradict each other on {details}; its intensity is always 0."
            ),
            suggested_fixes=[
                f"Relax the gates on '{interval.axis}' for '{score.prototype_id}'."
                for interval in bad_axes
            ],
        ))

    top_ids = {score.prototype_id for score in scores}
    blocked = [f for f in (unreachable_findings or []) if f.prototype_id in top_ids]
    if blocked:
        blocked_ids = {f.prototype_id for f in blocked}
        conflicts.append(FitFeasibilityConflict(
            type="fit_vs_clause_impossible",
            top_prototypes=[score for score in scores if score.prototype_id in blocked_ids],
            impossible_clause_ids=[
                clause_id_for(f.var_path, f.operator, f.threshold) for f in blocked
            ],
            explanation=(
                "The best-fitting prototypes are required above thresholds they "
                "can never reach: "
                + ", ".join(
                    f"{f.var_path} {f.operator} {f.threshold:g} (max {f.max_possible:.3f})"
                    for f in blocked
                )
                + "."
            ),
            suggested_fixes=[
                f"Lower {f.var_path} threshold to <= {f.max_possible:.2f}, or loosen "
                f"the gates/weights of '{f.prototype_id}'."
                for f in blocked
            ],
        ))

    return conflicts

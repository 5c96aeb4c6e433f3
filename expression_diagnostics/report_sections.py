"""Section builders for the Monte Carlo diagnostics report.

Each builder takes already-computed data and returns one Markdown block.
Builders do no analysis of their own beyond simple ratios; the report
generator decides what to compute and wraps every builder so that a
failure degrades only its own section.

Section order in a full report:

    header, executive summary, probability funnel, OR overlap tables,
    blockers, static analysis cross-reference, conditional pass rates,
    prototype intensity, axis polarity, actionability, witness state
"""

from __future__ import annotations

from expression_diagnostics.expression_ast import ClauseNode, ComparisonNode, top_level_clauses
from expression_diagnostics.formatting import (
    format_count,
    format_intensity,
    format_number,
    format_percentage,
    format_rate_with_counts,
    ratio,
)
from expression_diagnostics.statistics import calculate_wilson_interval

NO_DATA = "*No data available for this section.*"
MOOD_PREFIXES = ("moodAxes.", "mood.")
MIN_CONDITIONAL_CONTEXTS = 10

OR_TABLE_HEADER = "| Population | Union (any pass) | Exclusive (exactly one) | Overlap (2+ pass) | Top overlap pair |"
OR_TABLE_DIVIDER = "|------------|------------------|------------------------|-------------------|------------------|"


def no_data_section(title: str) -> str:
    return f"## {title}\n\n{NO_DATA}\n"


def rarity_category(rate: float) -> str:
    if rate <= 0:
        return "impossible"
    if rate < 0.00001:
        return "extremely_rare"
    if rate < 0.0005:
        return "rare"
    if rate < 0.02:
        return "normal"
    return "frequent"


def trigger_stats(simulation_result: dict) -> tuple[float, dict]:
    """Trigger rate and its confidence interval from a runner result."""
    count = simulation_result.get("triggerCount")
    total = simulation_result.get("sampleCount")
    rate = simulation_result.get("triggerRate")
    if not isinstance(rate, (int, float)) or isinstance(rate, bool):
        rate = ratio(count, total) or 0.0
    ci = simulation_result.get("confidenceInterval")
    if not (isinstance(ci, dict) and "low" in ci and "high" in ci):
        ci = calculate_wilson_interval(count or 0, total or 0)
    return float(rate), ci


def mood_regime_clauses(root) -> list[ComparisonNode]:
    """Top-level AND leaves on mood axes: the mood-regime pre-filter."""
    return [
        clause for clause in top_level_clauses(root)
        if clause.kind == "leaf" and clause.var_path.startswith(MOOD_PREFIXES)
    ]


# --------------------------------------------------------------------------- #
#  Header and summary                                                           #
# --------------------------------------------------------------------------- #


def header_section(expression_name: str, simulation_result: dict) -> str:
    lines = [
        "# Monte Carlo Analysis Report",
        "",
        f"**Expression**: {expression_name or 'Unknown'}",
        f"**Samples**: {format_count(simulation_result.get('sampleCount'))}",
    ]
    mode = simulation_result.get("samplingMode")
    if mode:
        lines.append(f"**Sampling mode**: {mode}")
    return "\n".join(lines) + "\n\n---\n"


def executive_summary_section(simulation_result: dict, summary: str | None = None) -> str:
    rate, ci = trigger_stats(simulation_result)
    rarity = rarity_category(rate)
    note = ""
    if rate == 0:
        note = (
            f" (not triggered in {format_count(simulation_result.get('sampleCount'))} samples; "
            f"the rate is below the {format_percentage(ci['high'])} upper bound, "
            "which does not make it logically impossible)"
        )
    return (
        "## Executive Summary\n\n"
        f"**Trigger Rate**: {format_percentage(rate)} "
        f"(95% CI: {format_percentage(ci['low'])} - {format_percentage(ci['high'])})\n"
        f"**Rarity**: {rarity}{note}\n\n"
        f"{summary or 'No summary available.'}\n\n---\n"
    )


# --------------------------------------------------------------------------- #
#  Funnel                                                                       #
# --------------------------------------------------------------------------- #


def _leaf_label(leaf: ClauseNode) -> str:
    return leaf.description or leaf.clause_id or leaf.id or "?"


def _or_union(node: ClauseNode, in_regime: bool) -> tuple[int | None, int | None]:
    if in_regime:
        total = node.in_regime_evaluation_count
        if node.or_union_pass_in_regime_count is not None:
            return node.or_union_pass_in_regime_count, total
        return total - (node.in_regime_failure_count or 0), total
    total = node.evaluation_count
    if node.or_union_pass_count is not None:
        return node.or_union_pass_count, total
    if total is None:
        return None, None
    return total - (node.failure_count or 0), total


def probability_funnel_section(simulation_result: dict, breakdown: ClauseNode | None, max_clauses: int = 10) -> str:
    """Full sample -> mood regime -> per-clause gate pass -> OR union -> trigger."""
    sample_count = simulation_result.get("sampleCount")
    lines = ["### Probability Funnel", f"- **Full sample**: {format_count(sample_count)}"]

    regime_count = simulation_result.get("inRegimeSampleCount")
    lines.append(
        f"- **Mood-regime pass**: "
        f"{format_rate_with_counts(ratio(regime_count, sample_count), regime_count, sample_count)}"
    )

    leaves = [
        leaf for leaf in (breakdown.iter_leaves() if breakdown else [])
        if leaf.gate_pass_in_regime_count is not None and leaf.in_regime_evaluation_count is not None
    ]
    if leaves:
        for leaf in leaves[:max_clauses]:
            passed, total = leaf.gate_pass_in_regime_count, leaf.in_regime_evaluation_count
            lines.append(
                f"- **Gate pass | mood-pass ({_leaf_label(leaf)})**: "
                f"{format_rate_with_counts(ratio(passed, total), passed, total)}"
            )
            both = leaf.gate_pass_and_clause_pass_in_regime_count
            if both is not None:
                lines.append(
                    f"- **Threshold pass | gate-pass ({_leaf_label(leaf)})**: "
                    f"{format_rate_with_counts(ratio(both, passed), both, passed)}"
                )
    else:
        lines.append("- **Gate pass | mood-pass**: N/A")

    or_blocks = list(breakdown.iter_or_blocks()) if breakdown else []
    if or_blocks:
        for index, node in enumerate(or_blocks, start=1):
            in_regime = bool(node.in_regime_evaluation_count)
            union, total = _or_union(node, in_regime)
            lines.append(
                f"- **OR union pass | mood-pass (OR Block #{index})**: "
                f"{format_rate_with_counts(ratio(union, total), union, total)}"
            )
    else:
        lines.append("- **OR union pass | mood-pass**: N/A")

    trigger_count = simulation_result.get("triggerCount")
    parent = regime_count if isinstance(regime_count, (int, float)) and regime_count > 0 else sample_count
    lines.append(
        f"- **Final trigger**: "
        f"{format_rate_with_counts(ratio(trigger_count, parent), trigger_count, parent)}"
    )
    return "\n".join(lines) + "\n"


# --------------------------------------------------------------------------- #
#  OR overlap                                                                   #
# --------------------------------------------------------------------------- #


def _rate_cell(count, total) -> str:
    rate = ratio(count, total)
    if rate is None:
        return "N/A"
    return format_rate_with_counts(rate, count, total)


def _top_pair_cell(pairs, total, labels: dict) -> str:
    if not pairs:
        return "None"
    top = max(pairs, key=lambda pair: pair.pass_count)
    left = labels.get(top.left_id, top.left_id)
    right = labels.get(top.right_id, top.right_id)
    return f"`{left}` + `{right}` {_rate_cell(top.pass_count, total)}"


def or_overlap_table(node: ClauseNode, title: str, sample_count=None) -> str:
    """Absolute union/exclusive/overlap rates of one OR block.

    overlap = max(0, union - exclusive), all over the block's evaluation
    count, globally and (when in-regime counts exist) within the mood regime.
    The regime row shows N/A for exclusive and overlap when the runner did
    not count in-regime exclusive passes.
    """
    labels = {}
    for child in node.children:
        label = _leaf_label(child)
        for key in (child.clause_id, child.id):
            if key:
                labels[key] = label

    total = node.evaluation_count if node.evaluation_count is not None else sample_count
    if node.or_union_pass_count is not None:
        union = node.or_union_pass_count
    else:
        union = max(0, (total or 0) - (node.failure_count or 0))
    if node.or_block_exclusive_pass_count is not None:
        exclusive = node.or_block_exclusive_pass_count
    else:
        exclusive = sum(child.or_exclusive_pass_count or 0 for child in node.children)
    overlap = max(0, union - exclusive)
    rows = [
        f"| Global | {_rate_cell(union, total)} | {_rate_cell(exclusive, total)} | "
        f"{_rate_cell(overlap, total)} | {_top_pair_cell(node.or_pair_pass_counts, total, labels)} |"
    ]

    regime_total = node.in_regime_evaluation_count
    if regime_total:
        regime_union, _ = _or_union(node, in_regime=True)
        regime_exclusive = node.or_block_exclusive_pass_in_regime_count
        regime_overlap = None if regime_exclusive is None else max(0, regime_union - regime_exclusive)
        rows.append(
            f"| Mood regime | {_rate_cell(regime_union, regime_total)} | "
            f"{_rate_cell(regime_exclusive, regime_total)} | {_rate_cell(regime_overlap, regime_total)} | "
            f"{_top_pair_cell(node.or_pair_pass_in_regime_counts, regime_total, labels)} |"
        )

    return "\n".join([f"**{title} OR Overlap (absolute rates)**:", "", OR_TABLE_HEADER, OR_TABLE_DIVIDER, *rows])


def or_overlap_section(breakdown: ClauseNode | None, sample_count=None) -> str:
    blocks = list(breakdown.iter_or_blocks()) if breakdown else []
    if not blocks:
        return "## OR Block Overlap\n\nNo OR blocks in this expression.\n"
    tables = [
        or_overlap_table(node, f"OR Block #{index}", sample_count)
        for index, node in enumerate(blocks, start=1)
    ]
    return "## OR Block Overlap\n\n" + "\n\n".join(tables) + "\n"


def or_analysis_lines(analyses) -> list[str]:
    lines = []
    for index, analysis in enumerate(analyses, start=1):
        lines.append(f"- **OR Block #{index}**: {analysis.impact_summary}")
        for rec in analysis.recommendations:
            lines.append(f"  - {rec.action} `{rec.clause_id}`: {rec.rationale}")
    return lines


# --------------------------------------------------------------------------- #
#  Blockers                                                                     #
# --------------------------------------------------------------------------- #


def blockers_section(breakdown: ClauseNode | None, max_blockers: int = 10) -> str:
    """Leaf clauses ranked by global failure rate."""
    leaves = []
    for leaf in breakdown.iter_leaves() if breakdown else []:
        rate = leaf.failure_rate
        if rate is None:
            rate = ratio(leaf.failure_count, leaf.evaluation_count)
        if rate is None:
            continue
        regime_rate = leaf.in_regime_failure_rate
        if regime_rate is None:
            regime_rate = ratio(leaf.in_regime_failure_count, leaf.in_regime_evaluation_count)
        leaves.append((rate, regime_rate, leaf))
    if not leaves:
        return "## Blocker Analysis\n\nNo clause failure data available.\n"

    leaves.sort(key=lambda item: -item[0])
    lines = [
        "## Blocker Analysis",
        "",
        "| Rank | Clause | Fail% global | Fail% \\| mood-pass | Support |",
        "|------|--------|--------------|--------------------|---------|",
    ]
    for rank, (rate, regime_rate, leaf) in enumerate(leaves[:max_blockers], start=1):
        lines.append(
            f"| {rank} | `{_leaf_label(leaf)}` | {format_percentage(rate)} | "
            f"{format_percentage(regime_rate)} | {format_count(leaf.evaluation_count)} |"
        )
    return "\n".join(lines) + "\n"


# --------------------------------------------------------------------------- #
#  Static analysis                                                              #
# --------------------------------------------------------------------------- #


def static_analysis_section(unreachable, conflicts, gate_results: dict | None = None) -> str:
    lines = ["## Static Analysis Cross-Reference", ""]
    unsatisfiable = [
        (proto_id, interval)
        for proto_id, result in sorted((gate_results or {}).items())
        for interval in result.intervals.values()
        if interval.unsatisfiable
    ]
    if not unreachable and not conflicts and not unsatisfiable:
        lines.append("No static feasibility issues found.")
        return "\n".join(lines) + "\n"

    if unsatisfiable:
        lines.append("### Gate Conflicts")
        for proto_id, interval in unsatisfiable:
            lines.append(
                f"- `{proto_id}`: {interval.axis} needs >= {interval.lower:g} and <= {interval.upper:g}"
            )
        lines.append("")
    if unreachable:
        lines.append("### Unreachable Thresholds")
        for finding in unreachable:
            lines.append(
                f"- `{finding.var_path} {finding.operator} {finding.threshold:g}`: "
                f"max possible {format_intensity(finding.max_possible)} "
                f"(gap {format_intensity(finding.gap)})"
            )
        lines.append("")
    if conflicts:
        lines.append("### Fit/Feasibility Conflicts")
        for conflict in conflicts:
            lines.append(f"- **{conflict.type}**: {conflict.explanation}")
            lines.extend(f"  - {fix}" for fix in conflict.suggested_fixes)
    return "\n".join(lines).rstrip() + "\n"


# --------------------------------------------------------------------------- #
#  Conditional pass rates                                                       #
# --------------------------------------------------------------------------- #


def conditional_pass_rates_section(results, regime_size: int, total_contexts: int, constraints) -> str:
    constraint_list = ", ".join(f"`{c.label}`" for c in constraints) or "none"
    if regime_size < MIN_CONDITIONAL_CONTEXTS:
        return (
            "## Conditional Pass Rates\n\n"
            f"**Note**: Only {regime_size} out of {total_contexts} samples passed all mood constraints.\n"
            "Conditional analysis requires more samples for reliable estimates.\n\n---\n"
        )
    lines = [
        "## Conditional Pass Rates (Given Mood Constraints Satisfied)",
        "",
        f"**Mood regime filter**: {regime_size} contexts where all mood constraints pass",
        f"- Constraints: {constraint_list}",
        "",
        "| Condition | P(pass \\| mood) | Passes | CI (95%) |",
        "|-----------|-----------------|--------|----------|",
    ]
    for r in results:
        lines.append(
            f"| `{r['condition']}` | {format_percentage(r['conditional_pass_rate'])} | "
            f"{r['passes']}/{r['total']} | "
            f"[{format_percentage(r['ci']['low'])}, {format_percentage(r['ci']['high'])}] |"
        )
    return "\n".join(lines) + "\n\n---\n"


# --------------------------------------------------------------------------- #
#  Prototype intensity                                                          #
# --------------------------------------------------------------------------- #

PROTOTYPE_TABLE_HEADER = (
    "| Population | Samples | Gate pass | Raw median | Raw p95 | Final median | Final p90 | Final p95 | Final max |"
)
PROTOTYPE_TABLE_DIVIDER = (
    "|------------|---------|-----------|------------|---------|--------------|-----------|-----------|-----------|"
)


def _dist_cell(dist: dict | None, key: str) -> str:
    return format_intensity(dist[key]) if dist else "N/A"


def _regime_stats_row(population: str, count: int, stats: dict) -> str:
    raw, final = stats["raw_distribution"], stats["final_distribution"]
    cells = [
        _dist_cell(raw, "median"),
        _dist_cell(raw, "p95"),
        _dist_cell(final, "median"),
        _dist_cell(final, "p90"),
        _dist_cell(final, "p95"),
        _dist_cell(final, "max"),
    ]
    return (
        f"| {population} | {format_count(count)} | {format_percentage(stats['gate_pass_rate'])} | "
        + " | ".join(cells) + " |"
    )


def prototype_section(prototypes, regime_size: int, total_contexts: int) -> str:
    """Intensity distributions of each prototype the expression references.

    Args:
        prototypes: [{"var_path", "global", "regime", "gate_failure_rates",
            "axis_contributions"}], where "global" and "regime" are
            compute_prototype_regime_stats() results over all stored contexts
            and over the mood-regime subset.
        regime_size: Number of stored contexts inside the mood regime.
        total_contexts: Number of stored contexts.
    """
    lines = ["## Prototype Intensity", ""]
    if not total_contexts:
        lines.append("No stored contexts; intensity distributions need sampled contexts.")
        return "\n".join(lines) + "\n"
    if not prototypes:
        lines.append("No prototype clauses in this expression.")
        return "\n".join(lines) + "\n"

    lines.append(
        f"Populations: {format_count(total_contexts)} stored contexts, "
        f"{format_count(regime_size)} inside the mood regime."
    )
    for entry in prototypes:
        lines += [
            "",
            f"### {entry['var_path']}",
            "",
            PROTOTYPE_TABLE_HEADER,
            PROTOTYPE_TABLE_DIVIDER,
            _regime_stats_row("Global", total_contexts, entry["global"]),
            _regime_stats_row("Mood regime", regime_size, entry["regime"]),
        ]
        failures = entry.get("gate_failure_rates") or {}
        if failures:
            lines += ["", "**Gate failure rates** (global, each gate alone):"]
            lines.extend(f"- `{gate}`: {format_percentage(rate)}" for gate, rate in failures.items())
        contributions = entry.get("axis_contributions") or {}
        if contributions:
            lines += [
                "",
                "**Axis contributions** (mood regime, normalized axis values):",
                "",
                "| Axis | Weight | Mean value | Mean contribution |",
                "|------|--------|------------|-------------------|",
            ]
            ranked = sorted(
                contributions.items(), key=lambda item: -abs(item[1]["mean_contribution"] or 0.0)
            )
            for axis, c in ranked:
                lines.append(
                    f"| {axis} | {format_number(c['weight'])} | {format_intensity(c['mean_axis_value'])} | "
                    f"{format_intensity(c['mean_contribution'])} |"
                )
    return "\n".join(lines) + "\n"


# --------------------------------------------------------------------------- #
#  Polarity                                                                     #
# --------------------------------------------------------------------------- #


def axis_polarity_section(polarity: dict) -> str:
    lines = [
        "## Axis Polarity Audit",
        "",
        f"Axes analyzed: {polarity['total_axes_analyzed']}; imbalanced: {polarity['imbalanced_count']}",
    ]
    if not polarity["imbalanced_axes"]:
        lines += ["", "No imbalanced axes detected."]
        return "\n".join(lines) + "\n"
    lines += [
        "",
        "| Axis | Direction | Ratio | Positive | Negative |",
        "|------|-----------|-------|----------|----------|",
    ]
    for item in polarity["imbalanced_axes"]:
        lines.append(
            f"| {item['axis']} | {item['direction']} | {format_percentage(item['ratio'])} | "
            f"{item['positive_count']} | {item['negative_count']} |"
        )
    lines.append("")
    lines.extend(f"- {warning}" for warning in polarity["warnings"])
    return "\n".join(lines) + "\n"


# --------------------------------------------------------------------------- #
#  Actionability                                                                #
# --------------------------------------------------------------------------- #

TIER_ADVICE = {
    "zero": (
        "The expression never fired. A full witness search was run to find the "
        "closest achievable state and the thresholds in the way."
    ),
    "very_low": (
        "The expression fires very rarely. A reduced witness search and edit "
        "proposals target the recommended trigger band."
    ),
    "normal": "The trigger rate is in a workable range; no edits are proposed.",
}


def _describe_edit(edit) -> str:
    parts = []
    for change in edit.edits:
        if change.edit_type == "delete":
            parts.append(f"delete `{change.clause_id}`")
        elif change.edit_type == "threshold":
            parts.append(f"`{change.clause_id}` threshold {change.before:g} -> {change.after:g}")
        else:
            parts.append(f"{change.edit_type} `{change.clause_id}`")
    return "; ".join(parts)


def _edit_line(label: str, edit) -> str:
    low, high = edit.confidence_interval
    return (
        f"- **{label}**: {_describe_edit(edit)} (predicted {format_percentage(edit.predicted_rate)}, "
        f"CI {format_percentage(low)} - {format_percentage(high)}, confidence {edit.confidence}, "
        f"{edit.validation_method}, score {format_intensity(edit.score)})"
    )


def actionability_section(tier: str, witness=None, edit_set=None, or_analyses=()) -> str:
    lines = ["## Actionability", "", f"**Tier**: {tier}", "", TIER_ADVICE.get(tier, "")]

    if witness is not None and tier != "normal":
        lines += ["", "### Witness Search"]
        stats = witness.search_stats
        lines.append(
            f"- Found: {'yes' if witness.found else 'no'}; AND-block score "
            f"{format_percentage(witness.and_block_score)} after "
            f"{format_count(stats.get('samples_evaluated', 0))} samples"
        )
        for clause in witness.blocking_clauses:
            observed = format_intensity(clause.observed_value) if clause.observed_value is not None else "N/A"
            lines.append(
                f"- Blocking `{clause.description}`: observed {observed}, gap {format_intensity(clause.gap)}"
            )
        for adj in witness.minimal_adjustments:
            lines.append(
                f"- Adjust `{adj.clause_id}`: {adj.current_threshold:g} -> "
                f"{adj.suggested_threshold:g} ({adj.confidence} confidence)"
            )

    if or_analyses:
        lines += ["", "### OR Block Contributions", *or_analysis_lines(or_analyses)]

    if edit_set is not None and tier != "normal":
        low, high = edit_set.target_band
        lines += ["", f"### Recommended Edits (target band {format_percentage(low)} - {format_percentage(high)})"]
        if edit_set.primary_recommendation is None:
            lines.append("- No viable edits found.")
        else:
            lines.append(_edit_line("Primary", edit_set.primary_recommendation))
            for index, edit in enumerate(edit_set.alternative_edits, start=1):
                lines.append(_edit_line(f"Alternative {index}", edit))
        if edit_set.not_recommended:
            lines += ["", "**Not recommended**:"]
            lines.extend(f"- {reason}" for reason in edit_set.not_recommended)

    return "\n".join(lines).rstrip() + "\n"


def witness_section(formatter, witness) -> str:
    if witness is None or witness.best_candidate_state is None:
        return "## Witness State\n\nNo witness search was run.\n"
    title = "Satisfying Witness" if witness.found else "Nearest Witness"
    return "## Witness State\n\n" + formatter.format_witness(witness.best_candidate_state, title) + "\n"

"""Monte Carlo diagnostics report: runs the analyses and renders the sections.

MonteCarloReportGenerator takes one simulation-runner result and returns an
ordered list of Markdown blocks. It decides the actionability tier from the
trigger rate:

    zero       no triggers: full witness search + edit generation
    very_low   rate < very_low_rate_threshold: witness search with a budget
               of max_samples * reduced_search_fraction + edit generation
    normal     no witness search, no edits

Every section builder runs inside _safe_section(): an exception is logged at
error level with the section name, and that section renders the
"no data available" placeholder while the rest of the report is produced.

Simulation result (runner wire form), all keys optional:

    expressionName, expression | prerequisites, sampleCount, triggerCount,
    triggerRate, confidenceInterval {low, high}, inRegimeSampleCount,
    hierarchicalBreakdown, storedContexts, topPrototypes, summary
"""

from __future__ import annotations

import logging

from expression_diagnostics.axis_polarity import AxisPolarityAnalyzer
from expression_diagnostics.base import AffectStateModel, validate_logger
from expression_diagnostics.config import require_valid
from expression_diagnostics.edit_sets import EditSetGenerator
from expression_diagnostics.expression_ast import ClauseNode, evaluate, iter_comparisons, parse_logic
from expression_diagnostics.feasibility import detect_fit_feasibility_conflicts
from expression_diagnostics.gate_constraints import GateConstraintExtractor
from expression_diagnostics.intensity_bounds import IntensityBoundsCalculator, split_prototype_path
from expression_diagnostics.or_blocks import OrBlockAnalyzer
from expression_diagnostics.report_sections import (
    actionability_section,
    axis_polarity_section,
    blockers_section,
    conditional_pass_rates_section,
    executive_summary_section,
    header_section,
    mood_regime_clauses,
    no_data_section,
    or_overlap_section,
    probability_funnel_section,
    prototype_section,
    static_analysis_section,
    trigger_stats,
    witness_section,
)
from expression_diagnostics.statistics import (
    compute_axis_contributions,
    compute_conditional_pass_rates,
    compute_gate_failure_rates,
    compute_prototype_regime_stats,
)
from expression_diagnostics.witness import WitnessSearcher
from expression_diagnostics.witness_formatter import WitnessFormatter

logger = logging.getLogger(__name__)

GATE_OPERATORS = (">=", ">", "<=", "<")


def actionability_tier(trigger_rate: float, very_low_threshold: float) -> str:
    if trigger_rate <= 0:
        return "zero"
    if trigger_rate < very_low_threshold:
        return "very_low"
    return "normal"


def gate_number(value: float) -> str:
    """Fixed-decimal rendering the gate grammar accepts (no exponent form)."""
    text = f"{float(value):.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def mood_constraint_gates(root) -> list[str]:
    """Mood-regime leaves rewritten as gate strings on the [-1, 1] gate scale."""
    gates = []
    for clause in mood_regime_clauses(root):
        if clause.operator not in GATE_OPERATORS:
            continue
        axis = clause.var_path.split(".", 1)[1]
        gates.append(f"{axis} {clause.operator} {gate_number(clause.threshold / 100.0)}")
    return gates


class MonteCarloReportGenerator:
    """Builds the diagnostics report for one expression.

    Args:
        registry: PrototypeRegistry supplying emotion and sexual prototypes.
        witness_searcher: Defaults to a WitnessSearcher over AffectStateModel.
        edit_set_generator: Defaults to a new EditSetGenerator.
        config: Full nested config overrides ({"report": {...}, "witness": {...}}).
        logger: Anything with debug/warning/error methods.

    Example:
        generator = MonteCarloReportGenerator(registry)
        blocks = generator.generate(simulation_result)
        print(generator.to_markdown(blocks))
    """

    def __init__(
        self,
        registry,
        witness_searcher: WitnessSearcher | None = None,
        edit_set_generator: EditSetGenerator | None = None,
        config: dict | None = None,
        logger: logging.Logger | None = logger,
    ):
        for method in ("get", "all"):
            if not callable(getattr(registry, method, None)):
                raise TypeError(f"registry must provide a callable '{method}' method")
        self.logger = validate_logger(logger)
        config = config or {}
        self.config = require_valid("report", config.get("report"))
        self.registry = registry
        self.extractor = GateConstraintExtractor(
            strict_epsilon=require_valid("gates", config.get("gates"))["strict_epsilon"],
            logger=self.logger,
        )
        self.bounds = IntensityBoundsCalculator(registry, logger=self.logger)
        self.polarity = AxisPolarityAnalyzer(config.get("polarity"), logger=self.logger)
        self.or_blocks = OrBlockAnalyzer(config.get("or_blocks"), logger=self.logger)
        self.witness_searcher = witness_searcher if witness_searcher is not None else WitnessSearcher(
            AffectStateModel(registry), config.get("witness"), logger=self.logger
        )
        self.edit_sets = edit_set_generator if edit_set_generator is not None else EditSetGenerator(
            or_block_analyzer=self.or_blocks, config=config.get("edit_sets"), logger=self.logger
        )
        self.formatter = WitnessFormatter()

    # ------------------------------------------------------------------ #
    #  Analyses                                                            #
    # ------------------------------------------------------------------ #

    def _parse_expression(self, simulation_result: dict):
        raw = simulation_result.get("expression", simulation_result.get("prerequisites"))
        try:
            return parse_logic(raw)
        except ValueError as exc:
            self.logger.warning("Report expression is malformed: %s", exc)
            return None

    def _gate_results(self, root) -> dict:
        results = {}
        for leaf in iter_comparisons(root):
            target = split_prototype_path(leaf.var_path)
            if target is None:
                continue
            proto = self.registry.get(*target)
            if proto is not None and proto.id not in results:
                results[proto.id] = self.extractor.extract(proto.gates)
        return results

    def _witness(self, tier: str, root, simulation_result: dict):
        if tier == "normal" or root is None:
            return None
        budget = self.witness_searcher.config["max_samples"]
        if tier == "very_low":
            budget = max(1, int(budget * self.config["reduced_search_fraction"]))
        return self.witness_searcher.search({**simulation_result, "expression": root}, max_samples=budget)

    @staticmethod
    def _clause_pass_rates(breakdown: ClauseNode | None) -> dict:
        rates = {}
        for leaf in breakdown.iter_leaves() if breakdown else []:
            if not leaf.clause_id:
                continue
            if leaf.failure_rate is not None:
                rates[leaf.clause_id] = 1.0 - float(leaf.failure_rate)
            elif leaf.evaluation_count:
                rates[leaf.clause_id] = 1.0 - (leaf.failure_count or 0) / leaf.evaluation_count
        return rates

    def analyze(self, simulation_result: dict) -> dict:
        """Run every analysis the report needs; returns a dict of results."""
        root = self._parse_expression(simulation_result)
        breakdown = ClauseNode.from_dict(simulation_result.get("hierarchicalBreakdown"))
        sample_count = simulation_result.get("sampleCount") or 0
        rate, _ci = trigger_stats(simulation_result)
        tier = actionability_tier(rate, self.config["very_low_rate_threshold"])

        axis_constraints = self.extractor.extract(mood_constraint_gates(root)).intervals
        unreachable = self.bounds.analyze_expression(root, axis_constraints)
        gate_results = self._gate_results(root)
        conflicts = detect_fit_feasibility_conflicts(
            simulation_result.get("topPrototypes") or [], unreachable, gate_results
        )
        or_analyses = self.or_blocks.analyze_all([breakdown] if breakdown else [], sample_count)
        witness = self._witness(tier, root, simulation_result)

        edit_set = None
        if tier != "normal":
            edit_set = self.edit_sets.generate({
                "expression": root,
                "samples": simulation_result.get("storedContexts") or [],
                "sample_count": sample_count,
                "trigger_rate": rate,
                "unreachable": unreachable,
                "witness": witness,
                "or_blocks": or_analyses,
                "clause_pass_rates": self._clause_pass_rates(breakdown),
            })

        self.logger.debug(
            "Report analyses: tier=%s, %d unreachable, %d conflicts, %d OR blocks",
            tier, len(unreachable), len(conflicts), len(or_analyses),
        )
        return {
            "root": root,
            "breakdown": breakdown,
            "tier": tier,
            "unreachable": unreachable,
            "gate_results": gate_results,
            "conflicts": conflicts,
            "or_analyses": or_analyses,
            "witness": witness,
            "edit_set": edit_set,
        }

    # ------------------------------------------------------------------ #
    #  Rendering                                                           #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _regime_contexts(simulation_result: dict, root) -> tuple[list, list]:
        """(all stored contexts, those passing every mood-regime clause)."""
        contexts = simulation_result.get("storedContexts") or []
        regime = mood_regime_clauses(root)
        return contexts, [c for c in contexts if all(evaluate(clause, c) for clause in regime)]

    def _conditional_section(self, simulation_result: dict, root) -> str:
        contexts, in_regime = self._regime_contexts(simulation_result, root)
        conditions = [
            leaf for leaf in iter_comparisons(root)
            if split_prototype_path(leaf.var_path) is not None
        ]
        results = compute_conditional_pass_rates(in_regime, conditions)
        return conditional_pass_rates_section(results, len(in_regime), len(contexts), mood_regime_clauses(root))

    def prototype_stats(self, root, contexts, in_regime) -> list[dict]:
        """Global and mood-regime intensity statistics per referenced prototype."""
        stats = []
        seen = set()
        for leaf in iter_comparisons(root):
            target = split_prototype_path(leaf.var_path)
            if target is None or leaf.var_path in seen:
                continue
            seen.add(leaf.var_path)
            proto = self.registry.get(*target)
            if proto is None:
                continue
            stats.append({
                "var_path": leaf.var_path,
                "prototype_id": proto.id,
                "global": compute_prototype_regime_stats(contexts, leaf.var_path, proto.gates, proto.weights),
                "regime": compute_prototype_regime_stats(in_regime, leaf.var_path, proto.gates, proto.weights),
                "gate_failure_rates": compute_gate_failure_rates(proto.gates, contexts),
                "axis_contributions": compute_axis_contributions(in_regime, proto.weights),
            })
        return stats

    def _prototype_section(self, simulation_result: dict, root) -> str:
        contexts, in_regime = self._regime_contexts(simulation_result, root)
        stats = self.prototype_stats(root, contexts, in_regime) if contexts else []
        return prototype_section(stats, len(in_regime), len(contexts))

    def _safe_section(self, title: str, builder) -> str:
        try:
            return builder()
        except Exception as exc:
            self.logger.error("Report section '%s' failed: %s", title, exc)
            return no_data_section(title)

    def generate(self, simulation_result: dict | None, expression_name: str | None = None) -> list[str]:
        """Render the report as an ordered list of Markdown blocks."""
        blocks, _data = self.generate_with_data(simulation_result, expression_name)
        return blocks

    def generate_with_data(
        self, simulation_result: dict | None, expression_name: str | None = None
    ) -> tuple[list[str], dict | None]:
        """Render the report and return the analyses behind it.

        analyze() runs once. When it fails, the failure is logged, the
        data-dependent sections render the placeholder and the returned
        analyses are None.
        """
        if not isinstance(simulation_result, dict):
            self.logger.warning("No simulation result supplied; rendering an empty report")
            simulation_result = {}
        name = expression_name or simulation_result.get("expressionName") or "Unknown"
        self.logger.debug("Generating report for expression: %s", name)

        try:
            data = self.analyze(simulation_result)
        except Exception as exc:
            self.logger.error("Report analyses failed for %s: %s", name, exc)
            data = None

        def needs_data(builder):
            def run():
                if data is None:
                    raise ValueError("analyses unavailable")
                return builder()
            return run

        sample_count = simulation_result.get("sampleCount")
        sections = [
            ("Header", lambda: header_section(name, simulation_result)),
            ("Executive Summary", lambda: executive_summary_section(
                simulation_result, simulation_result.get("summary"))),
            ("Probability Funnel", needs_data(lambda: probability_funnel_section(
                simulation_result, data["breakdown"], self.config["max_blockers"]))),
            ("OR Block Overlap", needs_data(lambda: or_overlap_section(data["breakdown"], sample_count))),
            ("Blocker Analysis", needs_data(lambda: blockers_section(
                data["breakdown"], self.config["max_blockers"]))),
            ("Static Analysis Cross-Reference", needs_data(lambda: static_analysis_section(
                data["unreachable"], data["conflicts"], data["gate_results"]))),
            ("Conditional Pass Rates", needs_data(lambda: self._conditional_section(
                simulation_result, data["root"]))),
            ("Prototype Intensity", needs_data(lambda: self._prototype_section(
                simulation_result, data["root"]))),
            ("Axis Polarity Audit", lambda: axis_polarity_section(self.polarity.analyze(self.registry.all()))),
            ("Actionability", needs_data(lambda: actionability_section(
                data["tier"], data["witness"], data["edit_set"], data["or_analyses"]))),
            ("Witness State", needs_data(lambda: witness_section(self.formatter, data["witness"]))),
        ]
        return [self._safe_section(title, builder) for title, builder in sections], data

    @staticmethod
    def to_markdown(blocks) -> str:
        return "\n".join(block.rstrip("\n") + "\n" for block in blocks)

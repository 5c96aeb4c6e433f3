"""Tests for the Monte Carlo report (expression_diagnostics.report, report_sections).

Tests verify:
    1. OR overlap rows are absolute rates: union 80/100 and exclusive 50/100
       give an overlap of 30.00% (30/100).
    2. The probability funnel conditions each stage on the previous one.
    3. The executive summary reports rate, CI and rarity.
    4. Blockers are ranked by global failure rate.
    5. The actionability tier drives witness search and edit generation,
       with a reduced witness budget for very low rates.
    6. A failing section or analysis degrades to the "no data" placeholder
       and is logged; the rest of the report still renders.
    7. Prototype intensity distributions, gate failure rates and axis
       contributions are reported for all stored contexts and for the
       mood-regime subset.
    8. Mood gates derived from small thresholds stay parseable.
"""

import pytest

from expression_diagnostics.expression_ast import ClauseNode, parse_logic
from expression_diagnostics.models import WitnessResult
from expression_diagnostics.report import (
    MonteCarloReportGenerator,
    actionability_tier,
    gate_number,
    mood_constraint_gates,
)
from expression_diagnostics.report_sections import (
    NO_DATA,
    OR_TABLE_HEADER,
    actionability_section,
    blockers_section,
    conditional_pass_rates_section,
    executive_summary_section,
    or_overlap_section,
    or_overlap_table,
    probability_funnel_section,
    prototype_section,
    rarity_category,
    static_analysis_section,
    witness_section,
)
from expression_diagnostics.witness_formatter import WitnessFormatter

SECTION_TITLES = [
    "# Monte Carlo Analysis Report",
    "## Executive Summary",
    "### Probability Funnel",
    "## OR Block Overlap",
    "## Blocker Analysis",
    "## Static Analysis Cross-Reference",
    "## Conditional Pass Rates",
    "## Prototype Intensity",
    "## Axis Polarity Audit",
    "## Actionability",
    "## Witness State",
]


class FakeSearcher:
    """Records the budget it was given."""

    def __init__(self, fail=False):
        self.config = {"max_samples": 2000}
        self.fail = fail
        self.budgets = []

    def search(self, simulation_result, max_samples=None):
        if self.fail:
            raise RuntimeError("search crashed")
        self.budgets.append(max_samples)
        return WitnessResult()


@pytest.fixture
def generator(registry, recording_logger):
    return MonteCarloReportGenerator(
        registry, config={"witness": {"max_samples": 200}}, logger=recording_logger
    )


class TestOrOverlap:
    """Absolute union / exclusive / overlap rates."""

    def test_global_row(self, or_breakdown):
        block = next(ClauseNode.from_dict(or_breakdown).iter_or_blocks())
        table = or_overlap_table(block, "OR Block #1", 100)
        lines = table.split("\n")
        assert lines[0] == "**OR Block #1 OR Overlap (absolute rates)**:"
        assert lines[2] == OR_TABLE_HEADER
        assert lines[4] == (
            "| Global | 80.00% (80/100) | 50.00% (50/100) | 30.00% (30/100) | "
            "`emotions.fear >= 0.3` + `emotions.calm >= 0.3` 12.00% (12/100) |"
        )

    def test_mood_regime_row(self, or_breakdown):
        block = next(ClauseNode.from_dict(or_breakdown).iter_or_blocks())
        regime = or_overlap_table(block, "OR Block #1", 100).split("\n")[5]
        assert regime == "| Mood regime | 90.00% (54/60) | 50.00% (30/60) | 40.00% (24/60) | None |"

    def test_union_from_failures(self):
        block = ClauseNode.from_dict({
            "nodeType": "or", "evaluationCount": 10, "failureCount": 4,
            "children": [{"orExclusivePassCount": 2}, {"orExclusivePassCount": 1}],
        })
        row = or_overlap_table(block, "B", None).split("\n")[4]
        assert row.startswith("| Global | 60.00% (6/10) | 30.00% (3/10) | 30.00% (3/10) | None |")

    def test_regime_row_without_exclusive_count(self):
        block = ClauseNode.from_dict({
            "nodeType": "or", "evaluationCount": 100, "orUnionPassCount": 80,
            "inRegimeEvaluationCount": 60, "orUnionPassInRegimeCount": 54,
            "children": [{"orExclusivePassCount": 30}, {"orExclusivePassCount": 20}],
        })
        rows = or_overlap_table(block, "B", 100).split("\n")
        assert rows[4].startswith("| Global | 80.00% (80/100) | 50.00% (50/100) | 30.00% (30/100) |")
        assert rows[5] == "| Mood regime | 90.00% (54/60) | N/A | N/A | None |"

    def test_section_without_blocks(self):
        assert "No OR blocks in this expression." in or_overlap_section(None)


class TestFunnel:
    def test_stages(self, or_breakdown):
        sim = {"sampleCount": 100, "inRegimeSampleCount": 60, "triggerCount": 3}
        lines = probability_funnel_section(sim, ClauseNode.from_dict(or_breakdown)).splitlines()
        assert lines == [
            "### Probability Funnel",
            "- **Full sample**: 100",
            "- **Mood-regime pass**: 60.00% (60/100)",
            "- **Gate pass | mood-pass (emotions.joy >= 0.6)**: 75.00% (45/60)",
            "- **Threshold pass | gate-pass (emotions.joy >= 0.6)**: 22.22% (10/45)",
            "- **OR union pass | mood-pass (OR Block #1)**: 90.00% (54/60)",
            "- **Final trigger**: 5.00% (3/60)",
        ]

    def test_missing_data(self):
        lines = probability_funnel_section({"sampleCount": 1000, "triggerCount": 0}, None).splitlines()
        assert "- **Mood-regime pass**: N/A" in lines
        assert "- **Gate pass | mood-pass**: N/A" in lines
        assert "- **OR union pass | mood-pass**: N/A" in lines
        assert lines[-1] == "- **Final trigger**: 0.00% (0/1,000)"


class TestSummaryAndBlockers:
    def test_rarity(self):
        assert rarity_category(0.0) == "impossible"
        assert rarity_category(0.000001) == "extremely_rare"
        assert rarity_category(0.0003) == "rare"
        assert rarity_category(0.01) == "normal"
        assert rarity_category(0.2) == "frequent"

    def test_summary_with_runner_ci(self):
        sim = {"triggerRate": 0.0003, "confidenceInterval": {"low": 0.0002, "high": 0.0004}}
        text = executive_summary_section(sim, "Fires in calm, warm moods.")
        assert text.startswith("## Executive Summary")
        assert "**Trigger Rate**: 0.03% (95% CI: 0.02% - 0.04%)" in text
        assert "**Rarity**: rare" in text
        assert "Fires in calm, warm moods." in text

    def test_zero_rate_note(self):
        text = executive_summary_section({"sampleCount": 10000, "triggerCount": 0})
        assert "**Rarity**: impossible (not triggered in 10,000 samples" in text
        assert "No summary available." in text

    def test_blockers_ranked(self, or_breakdown):
        lines = blockers_section(ClauseNode.from_dict(or_breakdown)).splitlines()
        assert lines[4] == "| 1 | `emotions.joy >= 0.6` | 90.00% | 83.33% | 100 |"
        assert lines[5] == "| 2 | `moodAxes.valence >= 20` | 40.00% | 0.00% | 100 |"
        assert len(lines) == 6

    def test_blockers_without_data(self):
        assert "No clause failure data available." in blockers_section(None)

    def test_static_analysis_clean(self):
        assert "No static feasibility issues found." in static_analysis_section([], [], {})

    def test_conditional_note_for_small_regime(self):
        text = conditional_pass_rates_section([], 4, 200, [])
        assert "Only 4 out of 200 samples passed all mood constraints." in text


class TestActionability:
    def test_tiers(self):
        assert actionability_tier(0.0, 0.001) == "zero"
        assert actionability_tier(0.0005, 0.001) == "very_low"
        assert actionability_tier(0.001, 0.001) == "normal"

    def test_mood_constraint_gates(self):
        root = parse_logic({"and": [
            {">=": [{"var": "moodAxes.valence"}, 20]},
            {"<": [{"var": "mood.threat"}, -35]},
            {">=": [{"var": "emotions.joy"}, 0.6]},
        ]})
        assert mood_constraint_gates(root) == ["valence >= 0.2", "threat < -0.35"]

    def test_small_mood_thresholds_stay_parseable(self):
        root = parse_logic({"and": [
            {">=": [{"var": "moodAxes.valence"}, 0.001]},
            {"<=": [{"var": "moodAxes.threat"}, 0]},
        ]})
        assert mood_constraint_gates(root) == ["valence >= 0.00001", "threat <= 0"]

    def test_gate_number(self):
        assert gate_number(0.2) == "0.2"
        assert gate_number(-0.35) == "-0.35"
        assert gate_number(1.0) == "1"
        assert gate_number(-1e-9) == "0"

    def test_normal_tier_section(self):
        text = actionability_section("normal", None, None, ())
        assert "**Tier**: normal" in text
        assert "### Witness Search" not in text
        assert "### Recommended Edits" not in text

    def test_witness_section_without_witness(self):
        assert "No witness search was run." in witness_section(WitnessFormatter(), None)


class TestGenerate:
    """End-to-end report generation."""

    def test_full_report(self, generator, simulation_result, recording_logger):
        blocks = generator.generate(simulation_result)
        assert len(blocks) == 11
        for block, title in zip(blocks, SECTION_TITLES):
            assert block.startswith(title)
        assert "**Expression**: test:relieved_joy" in blocks[0]
        assert "**Tier**: zero" in blocks[9]
        assert "### Recommended Edits" in blocks[9]
        assert "Satisfying Witness" in blocks[10]
        assert "### Gate Conflicts" in blocks[5]
        assert recording_logger.messages("error") == []

    def test_to_markdown(self, generator, simulation_result):
        text = generator.to_markdown(generator.generate(simulation_result, expression_name="renamed"))
        assert text.startswith("# Monte Carlo Analysis Report\n")
        assert "**Expression**: renamed" in text

    def test_analyze_zero_tier(self, generator, simulation_result):
        data = generator.analyze(simulation_result)
        assert data["tier"] == "zero"
        assert data["unreachable"] == []
        assert "stuck" in data["gate_results"]
        assert [a.block_id for a in data["or_analyses"]] == ["or1"]
        assert data["witness"].found
        assert data["edit_set"] is not None

    def test_very_low_tier_reduces_budget(self, registry, simulation_result, recording_logger):
        searcher = FakeSearcher()
        generator = MonteCarloReportGenerator(registry, witness_searcher=searcher, logger=recording_logger)
        data = generator.analyze({**simulation_result, "triggerRate": 0.0005})
        assert data["tier"] == "very_low"
        assert searcher.budgets == [500]

    def test_normal_tier_skips_search_and_edits(self, registry, simulation_result, recording_logger):
        searcher = FakeSearcher()
        generator = MonteCarloReportGenerator(registry, witness_searcher=searcher, logger=recording_logger)
        blocks = generator.generate({**simulation_result, "triggerRate": 0.05})
        assert searcher.budgets == []
        assert "No witness search was run." in blocks[10]
        assert "### Recommended Edits" not in blocks[9]

    def test_failing_analysis_degrades(self, registry, simulation_result, recording_logger):
        generator = MonteCarloReportGenerator(
            registry, witness_searcher=FakeSearcher(fail=True), logger=recording_logger
        )
        blocks = generator.generate(simulation_result)
        assert len(blocks) == 11
        assert blocks[0].startswith("# Monte Carlo Analysis Report")
        assert blocks[1].startswith("## Executive Summary")
        assert blocks[8].startswith("## Axis Polarity Audit")
        for index in (2, 3, 4, 5, 6, 7, 9, 10):
            assert NO_DATA in blocks[index]
        errors = recording_logger.messages("error")
        assert any("search crashed" in e for e in errors)
        assert any("Report section 'Witness State' failed" in e for e in errors)

    def test_safe_section(self, generator, recording_logger):
        block = generator._safe_section("Blocker Analysis", lambda: 1 / 0)
        assert block == f"## Blocker Analysis\n\n{NO_DATA}\n"
        assert recording_logger.messages("error") == ["Report section 'Blocker Analysis' failed: division by zero"]

    def test_missing_simulation_result(self, generator, recording_logger):
        blocks = generator.generate(None)
        assert len(blocks) == 11
        assert "**Expression**: Unknown" in blocks[0]
        assert recording_logger.messages("warning")[0].startswith("No simulation result supplied")

    def test_registry_contract(self):
        with pytest.raises(TypeError):
            MonteCarloReportGenerator(object())


PROTOTYPE_CONTEXTS = [
    {"moodAxes": {"valence": 60}, "emotions": {"joy": 0.8}},
    {"moodAxes": {"valence": 60}, "emotions": {"joy": 0.6}},
    {"moodAxes": {"valence": -60}, "emotions": {"joy": 0.0}},
    {"moodAxes": {"valence": -60}, "emotions": {"joy": 0.0}},
]


class TestPrototypeIntensity:
    """Per-prototype distributions over stored contexts and the mood regime."""

    @pytest.fixture
    def blocks(self, registry, recording_logger):
        generator = MonteCarloReportGenerator(registry, logger=recording_logger)
        return generator.generate({
            "expressionName": "test:warm_joy",
            "expression": {"and": [
                {">=": [{"var": "moodAxes.valence"}, 20]},
                {">=": [{"var": "emotions.joy"}, 0.6]},
            ]},
            "sampleCount": 4,
            "triggerCount": 2,
            "storedContexts": PROTOTYPE_CONTEXTS,
        })

    def test_global_and_regime_rows(self, blocks, recording_logger):
        lines = blocks[7].splitlines()
        assert lines[0] == "## Prototype Intensity"
        assert lines[2] == "Populations: 4 stored contexts, 2 inside the mood regime."
        assert lines[4] == "### emotions.joy"
        assert lines[8] == "| Global | 4 | 50.00% | 0.600 | 0.600 | 0.600 | 0.800 | 0.800 | 0.800 |"
        assert lines[9] == "| Mood regime | 2 | 100.00% | 0.600 | 0.600 | 0.800 | 0.800 | 0.800 | 0.800 |"
        assert recording_logger.messages("error") == []

    def test_gate_failures_and_contributions(self, blocks):
        text = blocks[7]
        assert "- `valence >= 0.2`: 50.00%" in text
        assert "| valence | 1.000 | 0.800 | 0.800 |" in text

    def test_empty_regime_renders_not_available(self):
        empty = {"raw_distribution": None, "final_distribution": None, "gate_pass_rate": None}
        full = {
            "raw_distribution": {"median": 0.5, "p95": 0.9},
            "final_distribution": {"median": 0.4, "p90": 0.7, "p95": 0.8, "max": 1.0},
            "gate_pass_rate": 0.25,
        }
        text = prototype_section(
            [{"var_path": "emotions.fear", "global": full, "regime": empty}], 0, 10
        )
        assert "| Global | 10 | 25.00% | 0.500 | 0.900 | 0.400 | 0.700 | 0.800 | 1.000 |" in text
        assert "| Mood regime | 0 | N/A | N/A | N/A | N/A | N/A | N/A | N/A |" in text
        assert "**Gate failure rates**" not in text

    def test_without_stored_contexts(self):
        assert "No stored contexts" in prototype_section([], 0, 0)

"""Expression Diagnostics.

Authoring-time diagnostics for threshold-based expression triggers. An
expression fires when weighted combinations of affect axes (mood, sexual
state, affect traits) cross author-defined thresholds, each prototype
gated by interval constraints on those axes. The toolkit answers: can this
threshold ever be reached, how often does the expression fire, what is in
the way when it never does, and which edits bring it into a useful band.

Modules:
    base               -- StateModel protocol, axis catalogue, AffectStateModel
    config             -- Default configuration and validation
    models             -- Immutable result records
    prototypes         -- In-memory prototype registry
    expression_ast     -- JSON-logic AST and the runner's hierarchical breakdown
    gate_constraints   -- Gate strings to per-axis intervals
    intensity_bounds   -- Reachable min/max intensity and threshold reachability
    statistics         -- Distribution summaries, Wilson intervals, pass rates
    axis_polarity      -- Cross-prototype weight polarity audit
    feasibility        -- Fit/feasibility conflict detection
    or_blocks          -- OR-block dead-weight analysis
    importance_sampling -- Edit validation against stored samples
    witness            -- Witness search over the axis space
    edit_sets          -- Ranked, validated edit proposals
    formatting         -- Fixed-precision report number formatting
    witness_formatter  -- Markdown dumps of affect states
    report_sections    -- Report section builders
    report             -- Monte Carlo report generator
    output_schema      -- JSON envelope for reports
"""

from expression_diagnostics.base import AffectStateModel, StateModel
from expression_diagnostics.config import DEFAULT_CONFIG, ConfigurationError, merge_config, validate_config
from expression_diagnostics.prototypes import PrototypeRegistry
from expression_diagnostics.expression_ast import ClauseNode, evaluate, parse_logic
from expression_diagnostics.gate_constraints import GateConstraintExtractor
from expression_diagnostics.intensity_bounds import IntensityBoundsCalculator
from expression_diagnostics.statistics import (
    calculate_wilson_interval,
    compute_axis_contributions,
    compute_conditional_pass_rates,
    compute_distribution_stats,
    compute_gate_failure_rates,
    compute_gate_pass_rate,
    compute_prototype_regime_stats,
    get_nested_value,
)
from expression_diagnostics.axis_polarity import AxisPolarityAnalyzer
from expression_diagnostics.feasibility import detect_fit_feasibility_conflicts
from expression_diagnostics.or_blocks import OrBlockAnalyzer
from expression_diagnostics.importance_sampling import ImportanceSamplingValidator
from expression_diagnostics.witness import WitnessSearcher
from expression_diagnostics.edit_sets import EditSetGenerator
from expression_diagnostics.witness_formatter import WitnessFormatter
from expression_diagnostics.report import MonteCarloReportGenerator
from expression_diagnostics.output_schema import NumpyEncoder, ReportOutput, report_to_dict, validate_report

__version__ = "0.1.0"

__all__ = [
    "AffectStateModel",
    "StateModel",
    "DEFAULT_CONFIG",
    "ConfigurationError",
    "merge_config",
    "validate_config",
    "PrototypeRegistry",
    "ClauseNode",
    "evaluate",
    "parse_logic",
    "GateConstraintExtractor",
    "IntensityBoundsCalculator",
    "calculate_wilson_interval",
    "compute_axis_contributions",
    "compute_conditional_pass_rates",
    "compute_distribution_stats",
    "compute_gate_failure_rates",
    "compute_gate_pass_rate",
    "compute_prototype_regime_stats",
    "get_nested_value",
    "AxisPolarityAnalyzer",
    "detect_fit_feasibility_conflicts",
    "OrBlockAnalyzer",
    "ImportanceSamplingValidator",
    "WitnessSearcher",
    "EditSetGenerator",
    "WitnessFormatter",
    "MonteCarloReportGenerator",
    "NumpyEncoder",
    "ReportOutput",
    "report_to_dict",
    "validate_report",
]

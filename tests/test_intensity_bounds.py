"""Tests for reachable intensity bounds (expression_diagnostics.intensity_bounds).

Tests verify:
    1. A single positive weight on a mood axis spans [0, 1] (min clamped).
    2. Negative weights take the opposite corner of each axis.
    3. Axis constraints narrow the defaults without mutating the input.
    4. Unknown prototypes and weightless prototypes give zero bounds.
    5. Threshold reachability derives is_reachable and gap exactly.
    6. analyze_expression checks every prototype leaf under AND and OR.
"""

import pytest

from expression_diagnostics.intensity_bounds import (
    IntensityBoundsCalculator,
    default_axis_range,
    split_prototype_path,
)
from expression_diagnostics.models import AxisInterval, PrototypeDefinition


class TestCalculateBounds:
    """Corner optimization of the weighted score."""

    def test_single_positive_mood_weight(self, registry, recording_logger):
        bounds = IntensityBoundsCalculator(registry, recording_logger).calculate_bounds("joy", "emotion")
        assert bounds.min == pytest.approx(0.0)
        assert bounds.max == pytest.approx(1.0)
        assert bounds.is_unbounded

    def test_negative_weights_flip_corners(self, registry, recording_logger):
        calc = IntensityBoundsCalculator(registry, recording_logger)
        # fear: threat +1.0, valence -0.5; max at threat=1, valence=-1.
        bounds = calc.calculate_bounds("fear", "emotion")
        assert bounds.max == pytest.approx(1.0)
        assert bounds.min == pytest.approx(0.0)

    def test_constraints_narrow_range(self, registry, recording_logger):
        calc = IntensityBoundsCalculator(registry, recording_logger)
        constraints = {"valence": AxisInterval("valence", lower=None, upper=0.4)}
        bounds = calc.calculate_bounds("joy", "emotion", constraints)
        assert bounds.max == pytest.approx(0.4)
        assert not bounds.is_unbounded

    def test_mixed_weights_with_constraints(self, registry, recording_logger):
        calc = IntensityBoundsCalculator(registry, recording_logger)
        constraints = {
            "threat": AxisInterval("threat", lower=None, upper=0.5),
            "valence": AxisInterval("valence", lower=0.0, upper=None),
        }
        # max = (1.0 * 0.5 + -0.5 * 0.0) / 1.5
        bounds = calc.calculate_bounds("fear", "emotion", constraints)
        assert bounds.max == pytest.approx(0.5 / 1.5)

    def test_dict_constraints_accepted(self, registry, recording_logger):
        calc = IntensityBoundsCalculator(registry, recording_logger)
        bounds = calc.calculate_bounds("joy", "emotion", {"valence": {"min": 0.5, "max": 0.8}})
        assert bounds.min == pytest.approx(0.5)
        assert bounds.max == pytest.approx(0.8)

    def test_constraints_not_mutated(self, registry, recording_logger):
        constraints = {"valence": {"lower": -0.5, "upper": 0.5}}
        IntensityBoundsCalculator(registry, recording_logger).calculate_bounds("joy", "emotion", constraints)
        assert constraints == {"valence": {"lower": -0.5, "upper": 0.5}}

    def test_wider_constraint_does_not_widen(self, registry, recording_logger):
        calc = IntensityBoundsCalculator(registry, recording_logger)
        bounds = calc.calculate_bounds("joy", "emotion", {"valence": {"lower": -5.0, "upper": 5.0}})
        assert bounds.max == pytest.approx(1.0)
        assert bounds.is_unbounded

    def test_sexual_axes_default_to_unit_range(self, registry, recording_logger):
        bounds = IntensityBoundsCalculator(registry, recording_logger).calculate_bounds("lust", "sexual")
        # (1.0 * 1 + -1.0 * 0) / 2
        assert bounds.max == pytest.approx(0.5)
        assert bounds.min == pytest.approx(0.0)

    def test_unknown_prototype_warns_and_zeroes(self, registry, recording_logger):
        bounds = IntensityBoundsCalculator(registry, recording_logger).calculate_bounds("nope", "emotion")
        assert (bounds.min, bounds.max, bounds.is_unbounded) == (0.0, 0.0, False)
        assert any("nope" in m for m in recording_logger.messages("warning"))

    def test_weightless_prototype(self, registry, recording_logger):
        registry.add(PrototypeDefinition(id="blank", weights={"valence": 0.0}, category="emotion"))
        bounds = IntensityBoundsCalculator(registry, recording_logger).calculate_bounds("blank", "emotion")
        assert (bounds.min, bounds.max, bounds.is_unbounded) == (0.0, 0.0, False)

    def test_empty_range_gives_zero(self, registry, recording_logger):
        constraints = {"valence": AxisInterval("valence", lower=0.8, upper=0.2, unsatisfiable=True)}
        bounds = IntensityBoundsCalculator(registry, recording_logger).calculate_bounds("joy", "emotion", constraints)
        assert bounds.max == 0.0

    def test_registry_contract(self, recording_logger):
        with pytest.raises(TypeError):
            IntensityBoundsCalculator(object(), recording_logger)


class TestReachability:
    """Threshold reachability and gap."""

    def test_reachable_has_zero_gap(self, registry, recording_logger):
        result = IntensityBoundsCalculator(registry, recording_logger).check_threshold_reachability(
            "joy", "emotion", 0.5
        )
        assert result.is_reachable
        assert result.gap == 0.0
        assert result.max_possible == pytest.approx(1.0)

    def test_unreachable_gap_is_exact(self, registry, recording_logger):
        constraints = {"valence": {"upper": 0.3}}
        result = IntensityBoundsCalculator(registry, recording_logger).check_threshold_reachability(
            "joy", "emotion", 0.5, constraints
        )
        assert not result.is_reachable
        assert result.gap == pytest.approx(0.5 - result.max_possible)
        assert result.max_possible == pytest.approx(0.3)


class TestAnalyzeExpression:
    """Walking an expression for unreachable prototype leaves."""

    def test_or_children_checked_individually(self, registry, recording_logger):
        calc = IntensityBoundsCalculator(registry, recording_logger)
        expression = {"and": [
            {">=": [{"var": "sexualStates.lust"}, 0.7]},
            {"or": [
                {">=": [{"var": "emotions.joy"}, 0.5]},
                {">=": [{"var": "emotions.fear"}, 0.2]},
            ]},
        ]}
        constraints = {"valence": {"upper": 0.3}}
        findings = calc.analyze_expression(expression, constraints)
        paths = sorted(f.var_path for f in findings)
        assert paths == ["emotions.joy", "sexualStates.lust"]
        lust = next(f for f in findings if f.prototype_id == "lust")
        assert lust.category == "sexual"
        assert lust.gap == pytest.approx(0.2)

    def test_axis_paths_ignored(self, registry, recording_logger):
        calc = IntensityBoundsCalculator(registry, recording_logger)
        findings = calc.analyze_expression({">=": [{"var": "moodAxes.valence"}, 500]})
        assert findings == []

    def test_empty_and_malformed_expressions(self, registry, recording_logger):
        calc = IntensityBoundsCalculator(registry, recording_logger)
        assert calc.analyze_expression(None) == []
        assert calc.analyze_expression({"xor": []}) == []
        assert recording_logger.messages("warning")


class TestHelpers:
    def test_default_axis_range(self):
        assert default_axis_range("valence", "sexual") == (-1.0, 1.0)
        assert default_axis_range("sex_excitation", "emotion") == (0.0, 1.0)
        assert default_axis_range("harm_aversion", "emotion") == (0.0, 1.0)
        assert default_axis_range("mystery", "emotion") == (-1.0, 1.0)
        assert default_axis_range("mystery", "sexual") == (0.0, 1.0)

    def test_split_prototype_path(self):
        assert split_prototype_path("emotions.joy") == ("emotion", "joy")
        assert split_prototype_path("sexualStates.lust") == ("sexual", "lust")
        assert split_prototype_path("moodAxes.valence") is None
        assert split_prototype_path("emotions") is None

"""Base types and protocols for the expression diagnostics engine.

Defines the StateModel protocol that the witness searcher explores, the
axis catalogue shared by every analysis, and the logger contract each
component validates at construction time.

The StateModel protocol requires two methods:
    run(state: dict) -> dict
        Build a sampled context (mood axes, sexual axes, affect traits,
        computed emotions and sexual states) from a raw axis state.

    param_spec() -> dict[str, tuple[float, float]]
        Return the axis space as a mapping from axis name to its native
        (lower_bound, upper_bound) tuple.

Any object that provides these two methods -- the bundled AffectStateModel,
a wrapper around the live emotion calculator, or a hand-written fake in a
test -- can be searched by WitnessSearcher.

Axis scales:
    Mood axes are stored on [-100, 100], sexual excitation/inhibition and
    affect traits on [0, 100], baseline libido on [-50, 50] and the derived
    sexual_arousal scalar on [0, 1]. normalize_axis_value() maps each of
    them onto [0, 1]; gate_scale_value() maps them onto the scale gate
    strings are written in ([-1, 1] for mood axes, [0, 1] otherwise).
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import numpy as np

MOOD_AXES = (
    "valence",
    "arousal",
    "agency_control",
    "threat",
    "engagement",
    "future_expectancy",
    "self_evaluation",
    "affiliation",
)
SEXUAL_AXES = ("sex_excitation", "sex_inhibition", "baseline_libido")
AFFECT_TRAITS = ("affective_empathy", "cognitive_empathy", "harm_aversion")

MOOD_AXES_SET = frozenset(MOOD_AXES)
SEXUAL_AXES_SET = frozenset(SEXUAL_AXES)
AFFECT_TRAITS_SET = frozenset(AFFECT_TRAITS)

# Native storage ranges used when sampling raw states.
NATIVE_RANGES = {
    **{axis: (-100.0, 100.0) for axis in MOOD_AXES},
    "sex_excitation": (0.0, 100.0),
    "sex_inhibition": (0.0, 100.0),
    "baseline_libido": (-50.0, 50.0),
    **{trait: (0.0, 100.0) for trait in AFFECT_TRAITS},
}

_LOGGER_METHODS = ("debug", "warning", "error")


def validate_logger(logger) -> logging.Logger:
    """Return the logger if it offers debug/warning/error, else raise TypeError."""
    if logger is None:
        raise TypeError("logger is required")
    for method in _LOGGER_METHODS:
        if not callable(getattr(logger, method, None)):
            raise TypeError(f"logger must provide a callable '{method}' method")
    return logger


def _clamp01(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def normalize_axis_value(axis: str, raw_value):
    """Map a raw axis value from its native scale onto [0, 1].

    Non-numeric or non-finite values and unknown axes are returned as-is.
    """
    if not isinstance(raw_value, (int, float, np.integer, np.floating)):
        return raw_value
    value = float(raw_value)
    if not np.isfinite(value):
        return raw_value
    if axis in MOOD_AXES_SET:
        return _clamp01((value + 100.0) / 200.0)
    if axis in AFFECT_TRAITS_SET:
        return _clamp01(value / 100.0)
    if axis == "sexual_arousal":
        return _clamp01(value)
    if axis == "baseline_libido":
        return _clamp01((value + 50.0) / 100.0)
    if axis in SEXUAL_AXES_SET:
        return _clamp01(value / 100.0)
    return raw_value


def gate_scale_value(axis: str, raw_value):
    """Convert a raw context value onto the scale gate thresholds use."""
    if not isinstance(raw_value, (int, float, np.integer, np.floating)):
        return None
    value = float(raw_value)
    if not np.isfinite(value):
        return None
    if axis in MOOD_AXES_SET:
        return value / 100.0
    if axis in AFFECT_TRAITS_SET or axis in ("sex_excitation", "sex_inhibition"):
        return value / 100.0
    if axis == "baseline_libido":
        return (value + 50.0) / 100.0
    return value


def resolve_axis_value(context: dict, axis: str):
    """Look up a raw axis value in a sampled context, or None if absent."""
    if not isinstance(context, dict) or not isinstance(axis, str):
        return None
    if axis in MOOD_AXES_SET:
        for key in ("moodAxes", "mood"):
            section = context.get(key)
            if isinstance(section, dict) and axis in section:
                return section[axis]
        return None
    if axis in AFFECT_TRAITS_SET:
        section = context.get("affectTraits")
        return section.get(axis) if isinstance(section, dict) else None
    if axis == "sexual_arousal":
        return context.get("sexualArousal")
    if axis in SEXUAL_AXES_SET:
        for key in ("sexualAxes", "sexual"):
            section = context.get(key)
            if isinstance(section, dict) and axis in section:
                return section[axis]
        return None
    return None


@runtime_checkable
class StateModel(Protocol):
    """Protocol for any model that turns raw axis states into contexts.

    Example:
        class ToyModel:
            def run(self, state: dict) -> dict:
                return {"moodAxes": dict(state)}

            def param_spec(self) -> dict[str, tuple[float, float]]:
                return {"valence": (-100.0, 100.0)}

        assert isinstance(ToyModel(), StateModel)
    """

    def run(self, state: dict) -> dict:
        """Build the evaluation context for a raw axis state."""
        ...

    def param_spec(self) -> dict[str, tuple[float, float]]:
        """Return the searchable axis space as {axis: (low, high)}."""
        ...


class AffectStateModel:
    """StateModel backed by a prototype registry.

    Samples the eight mood axes, the three sexual axes and the three affect
    traits on their native scales. run() computes each prototype's
    intensity as the weighted sum of its gate-scale axis values divided by
    the sum of absolute weights, clamped to [0, 1], or 0 when any
    parseable gate fails. This is the same model IntensityBoundsCalculator
    bounds analytically.

    Args:
        registry: A PrototypeRegistry (or anything with a
            prototypes(category) method returning PrototypeDefinitions).
        axes: Optional subset of axes to expose in param_spec(). Defaults
            to every mood axis, sexual axis and affect trait.
    """

    def __init__(self, registry, axes: list[str] | None = None):
        if not callable(getattr(registry, "prototypes", None)):
            raise TypeError("registry must provide a prototypes(category) method")
        self.registry = registry
        names = list(axes) if axes is not None else list(NATIVE_RANGES.keys())
        unknown = [name for name in names if name not in NATIVE_RANGES]
        if unknown:
            raise ValueError(f"Unknown axes: {', '.join(unknown)}")
        self._spec = {name: NATIVE_RANGES[name] for name in names}

    def param_spec(self) -> dict[str, tuple[float, float]]:
        return dict(self._spec)

    def run(self, state: dict) -> dict:
        # Imported here: gate_constraints imports this module.
        from expression_diagnostics.gate_constraints import gate_passes

        mood = {axis: state[axis] for axis in MOOD_AXES if axis in state}
        sexual = {axis: state[axis] for axis in SEXUAL_AXES if axis in state}
        traits = {axis: state[axis] for axis in AFFECT_TRAITS if axis in state}
        context = {
            "moodAxes": mood,
            "sexualAxes": sexual,
            "affectTraits": traits,
        }
        if "sex_excitation" in sexual and "sex_inhibition" in sexual:
            libido = normalize_axis_value("baseline_libido", sexual.get("baseline_libido", 0.0))
            excitation = sexual["sex_excitation"] / 100.0
            inhibition = sexual["sex_inhibition"] / 100.0
            context["sexualArousal"] = _clamp01(excitation - inhibition + (libido - 0.5))

        for category, key in (("emotion", "emotions"), ("sexual", "sexualStates")):
            values = {}
            for proto in self.registry.prototypes(category):
                gated_out = any(gate_passes(gate, context) is False for gate in proto.gates)
                values[proto.id] = 0.0 if gated_out else self._intensity(proto.weights, context)
            context[key] = values
        return context

    @staticmethod
    def _intensity(weights: dict, context: dict) -> float:
        total_abs = sum(abs(w) for w in weights.values())
        if total_abs == 0:
            return 0.0
        raw = 0.0
        for axis, weight in weights.items():
            value = gate_scale_value(axis, resolve_axis_value(context, axis))
            if value is not None:
                raw += weight * value
        return _clamp01(raw / total_abs)

"""Markdown dumps of a witness (or any sampled) affect state.

Each part of the state is formatted independently: a context missing its
sexualAxes, or carrying a non-mapping there, still renders its mood axes,
and the missing part renders an explicit "no data" line.
"""

from __future__ import annotations

from expression_diagnostics.base import AFFECT_TRAITS, MOOD_AXES, SEXUAL_AXES
from expression_diagnostics.formatting import format_intensity, format_number


def _section(context, *keys):
    if not isinstance(context, dict):
        return None
    for key in keys:
        value = context.get(key)
        if isinstance(value, dict):
            return value
    return None


class WitnessFormatter:
    """Renders mood axes, sexual axes, affect traits and computed emotions.

    Args:
        max_emotions: How many of the strongest emotions to list.
    """

    def __init__(self, max_emotions: int = 10):
        self.max_emotions = max_emotions

    @staticmethod
    def _axis_lines(values, order, empty_message: str) -> list[str]:
        if not values:
            return [f"- {empty_message}"]
        names = [axis for axis in order if axis in values]
        names += sorted(axis for axis in values if axis not in order)
        return [f"- {axis}: {format_number(values[axis], 2)}" for axis in names]

    def format_mood_axes(self, context) -> str:
        lines = ["**Mood axes** (raw, [-100, 100]):"]
        lines += self._axis_lines(_section(context, "moodAxes", "mood"), MOOD_AXES, "No mood axis data")
        return "\n".join(lines)

    def format_sexual_axes(self, context) -> str:
        values = _section(context, "sexualAxes", "sexual")
        lines = ["**Sexual axes** (raw):"]
        lines += self._axis_lines(values, SEXUAL_AXES, "No sexual axis data")
        arousal = context.get("sexualArousal") if isinstance(context, dict) else None
        if arousal is not None:
            lines.append(f"- sexual_arousal: {format_intensity(arousal)}")
        return "\n".join(lines)

    def format_affect_traits(self, context) -> str:
        lines = ["**Affect traits** (raw, [0, 100]):"]
        lines += self._axis_lines(
            _section(context, "affectTraits"), AFFECT_TRAITS, "No affect trait data"
        )
        return "\n".join(lines)

    def format_emotions(self, context) -> str:
        emotions = _section(context, "emotions")
        lines = ["**Computed emotions** (intensity, [0, 1]):"]
        if not emotions:
            lines.append("- No emotion data")
            return "\n".join(lines)
        ranked = sorted(
            ((name, value) for name, value in emotions.items() if isinstance(value, (int, float))),
            key=lambda item: (-item[1], item[0]),
        )
        active = [(name, value) for name, value in ranked if value > 0][: self.max_emotions]
        if not active:
            lines.append("- All emotions at 0.000")
        lines += [f"- {name}: {format_intensity(value)}" for name, value in active]
        return "\n".join(lines)

    def format_witness(self, context, title: str = "Witness State") -> str:
        parts = [
            f"### {title}",
            self.format_mood_axes(context),
            self.format_sexual_axes(context),
            self.format_affect_traits(context),
            self.format_emotions(context),
        ]
        return "\n\n".join(parts)

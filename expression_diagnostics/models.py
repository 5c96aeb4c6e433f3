"""Immutable result records shared by every diagnostics component.

Every analysis returns one of these frozen dataclasses. Attributes are
snake_case; to_dict() renders the camelCase wire form the simulation runner
and the report renderer exchange, and PrototypeDefinition.from_dict() is the
validated boundary for raw mod content.

Usage::

    from expression_diagnostics.models import PrototypeDefinition

    proto = PrototypeDefinition.from_dict(
        {"id": "joy", "weights": {"valence": 1.0}, "gates": ["valence >= 0.2"]},
        category="emotion",
    )
    proto.to_dict()["weights"]  # {"valence": 1.0}
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, is_dataclass
from types import MappingProxyType

import numpy as np

CATEGORIES = ("emotion", "sexual")
CONFLICT_TYPES = ("fit_vs_clause_impossible", "gate_contradiction")
PARSE_STATUSES = ("complete", "partial", "failed")
CONFIDENCE_LEVELS = ("high", "medium", "low")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_wire(value):
    """Recursively convert records into JSON-ready camelCase dicts and lists."""
    if is_dataclass(value) and not isinstance(value, type):
        return {_camel(f.name): to_wire(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (dict, MappingProxyType)):
        return {k: to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    return value


class _Record:
    def to_dict(self) -> dict:
        return to_wire(self)


@dataclass(frozen=True)
class AxisInterval(_Record):
    """Closed constraint on one axis. Either bound may be None (open).

    Crossed bounds (lower > upper) always mark the interval unsatisfiable.
    """

    axis: str
    lower: float | None = None
    upper: float | None = None
    unsatisfiable: bool = False

    def __post_init__(self):
        if self.lower is not None and self.upper is not None and self.lower > self.upper:
            object.__setattr__(self, "unsatisfiable", True)

    def contains(self, value: float) -> bool:
        if self.lower is not None and value < self.lower:
            return False
        if self.upper is not None and value > self.upper:
            return False
        return True


@dataclass(frozen=True)
class GateParseResult(_Record):
    intervals: dict[str, AxisInterval] = field(default_factory=dict)
    unparsed_gates: tuple[str, ...] = ()
    parse_status: str = "complete"


@dataclass(frozen=True)
class IntensityBounds(_Record):
    min: float = 0.0
    max: float = 0.0
    is_unbounded: bool = False


@dataclass(frozen=True)
class ThresholdReachability(_Record):
    is_reachable: bool
    threshold: float
    max_possible: float
    gap: float


@dataclass(frozen=True)
class UnreachableFinding(_Record):
    """One `emotions.<id> >= t` style leaf whose threshold cannot be reached."""

    prototype_id: str
    category: str
    var_path: str
    operator: str
    threshold: float
    max_possible: float
    gap: float


@dataclass(frozen=True)
class PrototypeDefinition(_Record):
    """One emotion or sexual-state prototype from mod content.

    Weights are stored in a read-only mapping and gates in a tuple, so a
    definition can be shared between analyses without copying.
    """

    id: str
    weights: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    gates: tuple[str, ...] = ()
    category: str = "emotion"

    def __post_init__(self):
        if not isinstance(self.weights, MappingProxyType):
            object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))
        if not isinstance(self.gates, tuple):
            object.__setattr__(self, "gates", tuple(self.gates))

    @classmethod
    def from_dict(cls, raw: dict, category: str | None = None) -> PrototypeDefinition:
        """Build a definition from raw mod content.

        Args:
            raw: {"id", "weights": {axis: number}, "gates": [str], "category"?}.
            category: Overrides raw["category"] when given.

        Raises:
            ValueError: If the id is missing, weights is not a mapping of
                numbers, gates is not a list of strings, or the category is
                not "emotion" or "sexual".
        """
        if not isinstance(raw, dict):
            raise ValueError(f"Prototype definition must be a dict, got {type(raw).__name__}")
        proto_id = raw.get("id")
        if not isinstance(proto_id, str) or not proto_id:
            raise ValueError("Prototype definition requires a non-empty string 'id'")

        weights = raw.get("weights", {})
        if weights is None:
            weights = {}
        if not isinstance(weights, dict):
            raise ValueError(f"Prototype '{proto_id}': weights must be a mapping")
        clean = {}
        for axis, weight in weights.items():
            if not isinstance(axis, str):
                raise ValueError(f"Prototype '{proto_id}': axis names must be strings")
            if isinstance(weight, bool) or not isinstance(weight, (int, float, np.integer, np.floating)):
                raise ValueError(
                    f"Prototype '{proto_id}': weight for '{axis}' must be a number, got {weight!r}"
                )
            clean[axis] = float(weight)

        gates = raw.get("gates", [])
        if gates is None:
            gates = []
        if not isinstance(gates, (list, tuple)) or not all(isinstance(g, str) for g in gates):
            raise ValueError(f"Prototype '{proto_id}': gates must be a list of strings")

        resolved = category if category is not None else raw.get("category", "emotion")
        if resolved not in CATEGORIES:
            raise ValueError(f"Prototype '{proto_id}': unknown category {resolved!r}")

        return cls(id=proto_id, weights=clean, gates=tuple(gates), category=resolved)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "weights": dict(self.weights),
            "gates": list(self.gates),
            "category": self.category,
        }


@dataclass(frozen=True)
class PrototypeScore(_Record):
    prototype_id: str
    score: float
    category: str = "emotion"

    @classmethod
    def from_dict(cls, raw: dict) -> PrototypeScore:
        return cls(
            prototype_id=str(raw.get("prototypeId", raw.get("prototype_id", ""))),
            score=float(raw.get("score", raw.get("combinedScore", 0.0))),
            category=raw.get("category", raw.get("type", "emotion")),
        )


@dataclass(frozen=True)
class FitFeasibilityConflict(_Record):
    """A best-fitting prototype that the expression's own clauses rule out.

    Array fields are stored as tuples built from copies of the caller's
    sequences; nested scores are frozen PrototypeScore records.
    """

    type: str
    top_prototypes: tuple[PrototypeScore, ...] = ()
    impossible_clause_ids: tuple[str, ...] = ()
    explanation: str = ""
    suggested_fixes: tuple[str, ...] = ()

    def __post_init__(self):
        if self.type not in CONFLICT_TYPES:
            raise ValueError(f"Unknown conflict type: {self.type!r}")
        scores = tuple(
            s if isinstance(s, PrototypeScore) else PrototypeScore.from_dict(dict(s))
            for s in (self.top_prototypes or ())
        )
        object.__setattr__(self, "top_prototypes", scores)
        object.__setattr__(self, "impossible_clause_ids", tuple(self.impossible_clause_ids or ()))
        object.__setattr__(self, "suggested_fixes", tuple(self.suggested_fixes or ()))


@dataclass(frozen=True)
class BlockingClause(_Record):
    clause_id: str
    description: str
    observed_value: float | None
    threshold: float
    operator: str
    gap: float
    var_path: str = ""


@dataclass(frozen=True)
class Adjustment(_Record):
    clause_id: str
    current_threshold: float
    suggested_threshold: float
    delta: float
    confidence: str = "medium"


@dataclass(frozen=True)
class WitnessResult(_Record):
    found: bool = False
    best_candidate_state: dict | None = None
    and_block_score: float = 0.0
    blocking_clauses: tuple[BlockingClause, ...] = ()
    minimal_adjustments: tuple[Adjustment, ...] = ()
    search_stats: dict = field(
        default_factory=lambda: {"samples_evaluated": 0, "time_ms": 0.0, "hill_climb_iterations": 0}
    )


@dataclass(frozen=True)
class OrAlternative(_Record):
    """Contribution of one alternative inside an OR block."""

    clause_id: str
    description: str
    exclusive_coverage: float
    marginal_contribution: float
    overlap_ratio: float
    classification: str
    threshold: float | None = None
    operator: str | None = None


@dataclass(frozen=True)
class OrBlockRecommendation(_Record):
    action: str
    clause_id: str
    rationale: str
    suggested_value: float | None = None


@dataclass(frozen=True)
class OrBlockAnalysis(_Record):
    block_id: str = "unknown"
    block_description: str = ""
    alternatives: tuple[OrAlternative, ...] = ()
    dead_weight_count: int = 0
    recommendations: tuple[OrBlockRecommendation, ...] = ()
    impact_summary: str = "No alternatives to analyze."


@dataclass(frozen=True)
class ValidationResult(_Record):
    estimated_rate: float = 0.0
    confidence_interval: tuple[float, float] = (0.0, 1.0)
    confidence: str = "low"
    sample_count: int = 0
    effective_sample_size: float = 0.0


@dataclass(frozen=True)
class ClauseEdit(_Record):
    """One atomic change to a clause: a threshold move, a deletion or a rewrite."""

    clause_id: str
    edit_type: str
    before: float | str | None = None
    after: float | str | None = None


@dataclass(frozen=True)
class Edit(_Record):
    edits: tuple[ClauseEdit, ...]
    predicted_rate: float
    confidence: str
    validation_method: str
    score: float = 0.0
    confidence_interval: tuple[float, float] = (0.0, 1.0)
    rationale: str = ""

    def __post_init__(self):
        object.__setattr__(self, "edits", tuple(self.edits))
        if self.confidence not in CONFIDENCE_LEVELS:
            raise ValueError(f"Unknown confidence label: {self.confidence!r}")
        if not math.isfinite(self.predicted_rate):
            object.__setattr__(self, "predicted_rate", 0.0)


@dataclass(frozen=True)
class EditSet(_Record):
    target_band: tuple[float, float] = (0.0001, 0.001)
    primary_recommendation: Edit | None = None
    alternative_edits: tuple[Edit, ...] = ()
    not_recommended: tuple[str, ...] = ()

    @property
    def all_edits(self) -> list[Edit]:
        if self.primary_recommendation is None:
            return list(self.alternative_edits)
        return [self.primary_recommendation, *self.alternative_edits]

"""Expression prerequisite trees and the simulation runner's clause breakdown.

Two tree shapes flow through the engine:

    1. The prerequisite logic an author writes, in JSON-logic form::

           {"and": [
               {">=": [{"var": "emotions.joy"}, 0.6]},
               {"or": [
                   {"<=": [{"var": "moodAxes.threat"}, 20]},
                   {">=": [{"var": "sexualStates.aroused"}, 0.4]},
               ]},
           ]}

       parse_logic() turns it into a tagged union of AndNode / OrNode /
       ComparisonNode. Traversals match on ``node.kind`` ("and", "or",
       "leaf") instead of probing dict keys.

    2. The hierarchical clause breakdown the Monte Carlo runner attaches to
       its result (ClauseNode), carrying failure counts and OR-block pass
       counts. It is read-only input for the report and the OR-block
       analyzer.
"""

from __future__ import annotations

import math
import operator as _op
from dataclasses import dataclass, field
from typing import Iterator, Union

from expression_diagnostics.statistics import get_nested_value

COMPARATORS = {
    ">=": _op.ge,
    ">": _op.gt,
    "<=": _op.le,
    "<": _op.lt,
    "==": _op.eq,
    "!=": _op.ne,
}
# Flipping the operands of `t op var` gives `var FLIPPED[op] t`.
FLIPPED = {">=": "<=", ">": "<", "<=": ">=", "<": ">", "==": "==", "!=": "!="}


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def compare(value, operator: str, threshold: float) -> bool:
    """Apply a comparison operator; missing or non-numeric values fail."""
    fn = COMPARATORS.get(operator)
    if fn is None or not _is_number(value):
        return False
    return bool(fn(float(value), float(threshold)))


@dataclass(frozen=True)
class ComparisonNode:
    var_path: str
    operator: str
    threshold: float
    clause_id: str = ""
    kind: str = field(default="leaf", init=False)

    @property
    def label(self) -> str:
        return f"{self.var_path} {self.operator} {self.threshold:g}"

    def matches(self, context: dict) -> bool:
        return compare(get_nested_value(context, self.var_path), self.operator, self.threshold)

    def gap(self, value) -> float | None:
        """Distance the value must move for the comparison to pass (0 if passing)."""
        if not _is_number(value):
            return None
        if self.operator in (">=", ">"):
            return max(0.0, self.threshold - float(value))
        if self.operator in ("<=", "<"):
            return max(0.0, float(value) - self.threshold)
        if self.operator == "==":
            return abs(float(value) - self.threshold)
        return 0.0 if float(value) != self.threshold else 1e-6

    def with_threshold(self, threshold: float) -> ComparisonNode:
        return ComparisonNode(self.var_path, self.operator, float(threshold), self.clause_id)


@dataclass(frozen=True)
class AndNode:
    children: tuple = ()
    kind: str = field(default="and", init=False)


@dataclass(frozen=True)
class OrNode:
    children: tuple = ()
    kind: str = field(default="or", init=False)


LogicNode = Union[AndNode, OrNode, ComparisonNode]


def clause_id_for(var_path: str, operator: str, threshold: float) -> str:
    return f"var:{var_path}:{operator}:{threshold:g}"


def parse_logic(raw) -> LogicNode | None:
    """Parse a JSON-logic prerequisite into AndNode / OrNode / ComparisonNode.

    A list at the root is treated as an implicit AND. None or an empty
    list returns None.

    Raises:
        ValueError: If a node has an unsupported operator or shape.
    """
    if raw is None:
        return None
    if isinstance(raw, (AndNode, OrNode, ComparisonNode)):
        return raw
    if isinstance(raw, list):
        if not raw:
            return None
        raw = {"and": raw}
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ValueError(f"Logic node must be a single-key dict, got {raw!r}")

    (key, args), = raw.items()
    if key in ("and", "or"):
        if not isinstance(args, list):
            raise ValueError(f"'{key}' expects a list of children")
        children = tuple(parse_logic(child) for child in args)
        children = tuple(child for child in children if child is not None)
        return AndNode(children) if key == "and" else OrNode(children)

    if key in COMPARATORS:
        if not isinstance(args, list) or len(args) != 2:
            raise ValueError(f"'{key}' expects [operand, operand]")
        left, right = args
        operator = key
        if isinstance(right, dict) and "var" in right and _is_number(left):
            left, right = right, left
            operator = FLIPPED[key]
        if not (isinstance(left, dict) and isinstance(left.get("var"), str)):
            raise ValueError(f"Comparison needs a {{'var': path}} operand, got {left!r}")
        if not _is_number(right):
            raise ValueError(f"Comparison threshold must be a finite number, got {right!r}")
        path = left["var"]
        return ComparisonNode(path, operator, float(right), clause_id_for(path, operator, float(right)))

    raise ValueError(f"Unsupported logic operator: {key!r}")


def evaluate(node: LogicNode | None, context: dict) -> bool:
    if node is None:
        return False
    if node.kind == "and":
        return all(evaluate(child, context) for child in node.children)
    if node.kind == "or":
        return any(evaluate(child, context) for child in node.children)
    if node.kind == "leaf":
        return node.matches(context)
    raise ValueError(f"Unknown node kind: {node.kind!r}")


def iter_comparisons(node: LogicNode | None) -> Iterator[ComparisonNode]:
    """Yield every comparison leaf, under AND and OR alike, depth-first."""
    if node is None:
        return
    if node.kind == "leaf":
        yield node
    elif node.kind in ("and", "or"):
        for child in node.children:
            yield from iter_comparisons(child)
    else:
        raise ValueError(f"Unknown node kind: {node.kind!r}")


def top_level_clauses(node: LogicNode | None) -> tuple:
    """The clauses an AND-block is scored on: root AND children, else the root."""
    if node is None:
        return ()
    if node.kind == "and":
        return node.children
    return (node,)


def replace_thresholds(node: LogicNode | None, thresholds: dict) -> LogicNode | None:
    """Return a copy of the tree with leaf thresholds replaced by clause id."""
    if node is None:
        return None
    if node.kind == "leaf":
        if node.clause_id in thresholds:
            return node.with_threshold(thresholds[node.clause_id])
        return node
    children = tuple(replace_thresholds(child, thresholds) for child in node.children)
    return AndNode(children) if node.kind == "and" else OrNode(children)


def remove_clauses(node: LogicNode | None, clause_ids) -> LogicNode | None:
    """Return a copy of the tree without the given leaves.

    An OR that loses every alternative is dropped from its parent; an
    AND that loses every child becomes an empty AND (always true).
    """
    if node is None:
        return None
    clause_ids = set(clause_ids)
    if node.kind == "leaf":
        return None if node.clause_id in clause_ids else node
    children = tuple(
        child for child in (remove_clauses(c, clause_ids) for c in node.children)
        if child is not None
    )
    if node.kind == "or":
        return OrNode(children) if children else None
    return AndNode(children)


# --------------------------------------------------------------------------- #
#  Hierarchical breakdown from the Monte Carlo runner                           #
# --------------------------------------------------------------------------- #

_NODE_FIELDS = {
    "id": "id",
    "clauseId": "clause_id",
    "description": "description",
    "comparisonOperator": "operator",
    "thresholdValue": "threshold",
    "variablePath": "var_path",
    "evaluationCount": "evaluation_count",
    "failureCount": "failure_count",
    "failureRate": "failure_rate",
    "inRegimeEvaluationCount": "in_regime_evaluation_count",
    "inRegimeFailureCount": "in_regime_failure_count",
    "inRegimeFailureRate": "in_regime_failure_rate",
    "gatePassInRegimeCount": "gate_pass_in_regime_count",
    "gateFailInRegimeCount": "gate_fail_in_regime_count",
    "gatePassAndClausePassInRegimeCount": "gate_pass_and_clause_pass_in_regime_count",
    "orPassCount": "or_pass_count",
    "orExclusivePassCount": "or_exclusive_pass_count",
    "orUnionPassCount": "or_union_pass_count",
    "orBlockExclusivePassCount": "or_block_exclusive_pass_count",
    "orUnionPassInRegimeCount": "or_union_pass_in_regime_count",
    "orBlockExclusivePassInRegimeCount": "or_block_exclusive_pass_in_regime_count",
    "exclusiveCoverage": "exclusive_coverage",
    "marginalContribution": "marginal_contribution",
}


@dataclass(frozen=True)
class PairPassCount:
    left_id: str
    right_id: str
    pass_count: int


def _pairs(raw) -> tuple[PairPassCount, ...]:
    if not isinstance(raw, list):
        return ()
    pairs = []
    for entry in raw:
        if isinstance(entry, dict):
            pairs.append(PairPassCount(
                left_id=str(entry.get("leftId", "?")),
                right_id=str(entry.get("rightId", "?")),
                pass_count=int(entry.get("passCount", 0) or 0),
            ))
    return tuple(pairs)


@dataclass(frozen=True)
class ClauseNode:
    """Read-only node of the runner's hierarchical clause breakdown.

    node_type is "and", "or" or "leaf". Count fields the runner did not
    supply stay None so that callers can tell "zero" from "unknown".
    """

    node_type: str
    id: str | None = None
    clause_id: str | None = None
    description: str = ""
    operator: str | None = None
    threshold: float | None = None
    var_path: str | None = None
    evaluation_count: int | None = None
    failure_count: int | None = None
    failure_rate: float | None = None
    in_regime_evaluation_count: int | None = None
    in_regime_failure_count: int | None = None
    in_regime_failure_rate: float | None = None
    gate_pass_in_regime_count: int | None = None
    gate_fail_in_regime_count: int | None = None
    gate_pass_and_clause_pass_in_regime_count: int | None = None
    or_pass_count: int | None = None
    or_exclusive_pass_count: int | None = None
    or_union_pass_count: int | None = None
    or_block_exclusive_pass_count: int | None = None
    or_union_pass_in_regime_count: int | None = None
    or_block_exclusive_pass_in_regime_count: int | None = None
    exclusive_coverage: float | None = None
    marginal_contribution: float | None = None
    or_pair_pass_counts: tuple[PairPassCount, ...] = ()
    or_pair_pass_in_regime_counts: tuple[PairPassCount, ...] = ()
    children: tuple[ClauseNode, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict) -> ClauseNode | None:
        if not isinstance(raw, dict):
            return None
        node_type = raw.get("nodeType")
        if node_type not in ("and", "or", "leaf"):
            node_type = "leaf" if not raw.get("children") else "and"
        kwargs = {}
        for wire, attr in _NODE_FIELDS.items():
            value = raw.get(wire)
            if value is None:
                continue
            if attr in ("id", "clause_id", "description", "operator", "var_path"):
                kwargs[attr] = str(value)
            elif _is_number(value):
                kwargs[attr] = value
        children = tuple(
            child for child in (cls.from_dict(c) for c in raw.get("children") or [])
            if child is not None
        )
        return cls(
            node_type=node_type,
            or_pair_pass_counts=_pairs(raw.get("orPairPassCounts")),
            or_pair_pass_in_regime_counts=_pairs(raw.get("orPairPassInRegimeCounts")),
            children=children,
            **kwargs,
        )

    @property
    def is_compound(self) -> bool:
        return self.node_type in ("and", "or")

    def iter_leaves(self) -> Iterator[ClauseNode]:
        if self.node_type == "leaf":
            yield self
            return
        for child in self.children:
            yield from child.iter_leaves()

    def iter_or_blocks(self) -> Iterator[ClauseNode]:
        if self.node_type == "or":
            yield self
        for child in self.children:
            yield from child.iter_or_blocks()

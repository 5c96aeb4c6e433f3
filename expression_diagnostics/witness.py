"""Witness search: the best achievable state for an expression that never fires.

When Monte Carlo sampling finds zero (or almost zero) triggers, the author
needs to know whether the expression is *nearly* satisfiable and what is in
the way. WitnessSearcher explores the axis space of a StateModel looking for
the state that satisfies as many of the expression's top-level AND clauses
as possible.

Three phases, all drawing from one sample budget:
    1. Boundary states: all-min, all-max, midpoint, and each axis pushed to
       one extreme with the rest at midpoint. Intensity extremes of a
       weighted sum live on these corners.
    2. Random states: uniform within each axis's native bounds.
    3. Hill climbing: from the best few states found so far, perturb one
       axis at a time and keep the move if the score improves.

Candidates are ranked by the hard AND-block score (fraction of top-level
clauses satisfied) and then by a soft score that credits partial progress
toward each failing threshold, so hill climbing has a gradient to follow.

At the best state the searcher reports the leaf clauses still failing and
the smallest threshold change that would flip each of them.
"""

from __future__ import annotations

import logging
import time

import numpy as np

from expression_diagnostics.base import StateModel, validate_logger
from expression_diagnostics.config import require_valid
from expression_diagnostics.expression_ast import (
    evaluate,
    iter_comparisons,
    parse_logic,
    top_level_clauses,
)
from expression_diagnostics.models import Adjustment, BlockingClause, WitnessResult
from expression_diagnostics.statistics import get_nested_value

logger = logging.getLogger(__name__)

# Native span of the values a variable path points at.
PATH_SCALES = {
    "moodAxes": 200.0,
    "mood": 200.0,
    "sexualAxes": 100.0,
    "sexual": 100.0,
    "affectTraits": 100.0,
}
STRICT_OFFSET = 1e-6


def path_scale(var_path: str) -> float:
    return PATH_SCALES.get(var_path.split(".", 1)[0], 1.0)


def _soft_score(node, context: dict) -> float:
    """Partial credit in [0, 1]: 1 when satisfied, shrinking with the gap."""
    if node.kind == "and":
        if not node.children:
            return 1.0
        return float(np.mean([_soft_score(child, context) for child in node.children]))
    if node.kind == "or":
        if not node.children:
            return 0.0
        return max(_soft_score(child, context) for child in node.children)
    if node.matches(context):
        return 1.0
    gap = node.gap(get_nested_value(context, node.var_path))
    if gap is None:
        return 0.0
    return max(0.0, 1.0 - gap / path_scale(node.var_path)) * 0.99


class WitnessSearcher:
    """Searches a StateModel's axis space for a satisfying (or nearest) state.

    Args:
        state_model: Any StateModel (run(state) -> context, param_spec()).
        config: Overrides for the "witness" config section.
        logger: Anything with debug/warning/error methods.

    Example:
        searcher = WitnessSearcher(AffectStateModel(registry))
        result = searcher.search({"expression": logic, "triggerRate": 0.0})
        if not result.found:
            for adj in result.minimal_adjustments:
                print(adj.clause_id, adj.current_threshold, "->", adj.suggested_threshold)
    """

    def __init__(self, state_model, config: dict | None = None, logger: logging.Logger | None = logger):
        if not isinstance(state_model, StateModel):
            raise TypeError("state_model must provide run(state) and param_spec()")
        self.state_model = state_model
        self.config = require_valid("witness", config)
        self.logger = validate_logger(logger)
        self._spec = dict(state_model.param_spec())

    # ------------------------------------------------------------------ #
    #  Candidate generation                                                #
    # ------------------------------------------------------------------ #

    def boundary_states(self) -> list[dict]:
        names = list(self._spec.keys())
        all_min = {name: float(self._spec[name][0]) for name in names}
        all_max = {name: float(self._spec[name][1]) for name in names}
        midpoints = {name: (all_min[name] + all_max[name]) / 2.0 for name in names}
        states = [all_min, all_max, midpoints]
        for name in names:
            for extreme in (all_min[name], all_max[name]):
                state = dict(midpoints)
                state[name] = extreme
                states.append(state)
        return states

    def _random_state(self, rng: np.random.Generator) -> dict:
        return {name: float(rng.uniform(lo, hi)) for name, (lo, hi) in self._spec.items()}

    def _perturb(self, state: dict, rng: np.random.Generator) -> dict:
        name = list(self._spec.keys())[int(rng.integers(len(self._spec)))]
        lo, hi = self._spec[name]
        step = rng.normal(0.0, self.config["perturbation_delta"] * (hi - lo))
        moved = dict(state)
        moved[name] = float(np.clip(state[name] + step, lo, hi))
        return moved

    # ------------------------------------------------------------------ #
    #  Scoring                                                             #
    # ------------------------------------------------------------------ #

    def _score(self, clauses: tuple, context: dict) -> tuple[float, float]:
        hard = sum(1 for clause in clauses if evaluate(clause, context)) / len(clauses)
        soft = float(np.mean([_soft_score(clause, context) for clause in clauses]))
        return hard, soft

    # ------------------------------------------------------------------ #
    #  Blockers and adjustments                                            #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _blocking_clauses(clauses: tuple, context: dict) -> list[BlockingClause]:
        blocking = []
        for clause in clauses:
            if evaluate(clause, context):
                continue
            for leaf in iter_comparisons(clause):
                if leaf.matches(context):
                    continue
                value = get_nested_value(context, leaf.var_path)
                gap = leaf.gap(value)
                observed = float(value) if gap is not None else None
                blocking.append(BlockingClause(
                    clause_id=leaf.clause_id,
                    description=leaf.label,
                    observed_value=observed,
                    threshold=leaf.threshold,
                    operator=leaf.operator,
                    gap=gap if gap is not None else float("inf"),
                    var_path=leaf.var_path,
                ))
        return blocking

    @staticmethod
    def _adjustments(blocking: list[BlockingClause]) -> list[Adjustment]:
        adjustments = []
        for clause in blocking:
            if clause.observed_value is None or clause.operator not in (">=", ">", "<=", "<"):
                continue
            suggested = clause.observed_value
            if clause.operator == ">":
                suggested -= STRICT_OFFSET
            elif clause.operator == "<":
                suggested += STRICT_OFFSET
            delta = suggested - clause.threshold
            relative = abs(delta) / path_scale(clause.var_path)
            if relative <= 0.05:
                confidence = "high"
            elif relative <= 0.2:
                confidence = "medium"
            else:
                confidence = "low"
            adjustments.append(Adjustment(
                clause_id=clause.clause_id,
                current_threshold=clause.threshold,
                suggested_threshold=suggested,
                delta=delta,
                confidence=confidence,
            ))
        adjustments.sort(key=lambda adj: abs(adj.delta))
        return adjustments

    # ------------------------------------------------------------------ #
    #  Main search                                                         #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _trigger_rate(simulation_result: dict) -> float | None:
        rate = simulation_result.get("triggerRate")
        if isinstance(rate, (int, float)) and not isinstance(rate, bool):
            return float(rate)
        count = simulation_result.get("triggerCount")
        total = simulation_result.get("sampleCount")
        if isinstance(count, (int, float)) and isinstance(total, (int, float)) and total > 0:
            return float(count) / float(total)
        return None

    def search(self, simulation_result: dict | None, max_samples: int | None = None) -> WitnessResult:
        """Find the best witness state for the simulation's expression.

        Args:
            simulation_result: Dict with "expression" (or "prerequisites")
                as JSON logic or a parsed node, and optionally "triggerRate"
                or "triggerCount"/"sampleCount".
            max_samples: Overrides the configured sample budget.

        Returns:
            WitnessResult. A missing or empty expression returns the empty
            result (found=False, score 0). When the trigger rate exceeds
            max_trigger_rate the search is skipped and the empty result is
            returned with zero samples evaluated.
        """
        if not isinstance(simulation_result, dict):
            return WitnessResult()
        raw = simulation_result.get("expression", simulation_result.get("prerequisites"))
        try:
            root = parse_logic(raw)
        except ValueError as exc:
            self.logger.warning("Witness search skipped, malformed expression: %s", exc)
            return WitnessResult()
        clauses = top_level_clauses(root)
        if not clauses:
            return WitnessResult()

        rate = self._trigger_rate(simulation_result)
        if rate is not None and rate > self.config["max_trigger_rate"]:
            self.logger.debug(
                "Skipping witness search: trigger rate %.6f above %.6f",
                rate, self.config["max_trigger_rate"],
            )
            return WitnessResult()

        budget = int(max_samples) if max_samples is not None else self.config["max_samples"]
        budget = max(1, budget)
        deadline = time.perf_counter() + self.config["timeout_ms"] / 1000.0
        start = time.perf_counter()
        rng = np.random.default_rng(self.config["seed"])
        self.logger.debug("Witness search over %d axes, budget %d samples", len(self._spec), budget)

        evaluated = 0
        candidates = []

        def exhausted() -> bool:
            return evaluated >= budget or time.perf_counter() > deadline

        # --- Phase 1 + 2: boundary then random states ---
        climb_budget = min(budget // 2, self.config["hill_climb_seeds"] * self.config["hill_climb_iterations"])
        explore_budget = max(1, budget - climb_budget)
        for state in self.boundary_states():
            if evaluated >= explore_budget or exhausted():
                break
            context = self.state_model.run(state)
            evaluated += 1
            candidates.append((self._score(clauses, context), state, context))
        while evaluated < explore_budget and not exhausted():
            state = self._random_state(rng)
            context = self.state_model.run(state)
            evaluated += 1
            candidates.append((self._score(clauses, context), state, context))

        candidates.sort(key=lambda c: c[0], reverse=True)

        # --- Phase 3: hill climbing from the best seeds ---
        iterations = 0
        seeds = candidates[: self.config["hill_climb_seeds"]]
        climbed = []
        for score, state, context in seeds:
            if score[0] >= 1.0:
                climbed.append((score, state, context))
                continue
            for _ in range(self.config["hill_climb_iterations"]):
                if exhausted():
                    break
                moved = self._perturb(state, rng)
                moved_context = self.state_model.run(moved)
                evaluated += 1
                iterations += 1
                moved_score = self._score(clauses, moved_context)
                if moved_score > score:
                    score, state, context = moved_score, moved, moved_context
                    if score[0] >= 1.0:
                        break
            climbed.append((score, state, context))

        pool = climbed + candidates
        if not pool:
            return WitnessResult(search_stats={
                "samples_evaluated": evaluated,
                "time_ms": (time.perf_counter() - start) * 1000.0,
                "hill_climb_iterations": iterations,
            })
        (hard, _soft), _state, best_context = max(pool, key=lambda c: c[0])

        found = hard >= 1.0
        blocking = [] if found else self._blocking_clauses(clauses, best_context)
        adjustments = self._adjustments(blocking)
        elapsed = (time.perf_counter() - start) * 1000.0
        self.logger.debug(
            "Witness search: found=%s score=%.3f after %d samples (%d hill-climb steps)",
            found, hard, evaluated, iterations,
        )
        return WitnessResult(
            found=found,
            best_candidate_state=best_context,
            and_block_score=float(hard),
            blocking_clauses=tuple(blocking),
            minimal_adjustments=tuple(adjustments),
            search_stats={
                "samples_evaluated": evaluated,
                "time_ms": elapsed,
                "hill_climb_iterations": iterations,
            },
        )

"""Shared test fixtures for the expression diagnostics test suite.

Provides a toy prototype registry and the data shapes the simulation runner
hands to the diagnostics engine:

    registry: four emotions and one sexual state.
        joy      valence +1.0, gated on valence >= 0.2
        fear     threat +1.0, valence -0.5, gated on threat >= 0.3
        calm     arousal -1.0, threat -1.0, no gates
        stuck    valence +1.0, gates that contradict each other on arousal
        lust     sex_excitation +1.0, sex_inhibition -1.0 (sexual)

    RecordingLogger: keeps (level, message) pairs so tests can assert on
        warnings without configuring logging.

    contexts: 200 seeded random contexts produced by AffectStateModel.

    or_breakdown: hierarchical breakdown with one AND root and a
        four-alternative OR block whose union passes 80/100 samples and
        exclusive passes 50/100 (overlap 30%).

    simulation_result: zero-trigger runner result over that breakdown, with
        the seeded contexts stored for importance sampling.
"""

import numpy as np
import pytest

from expression_diagnostics.base import AffectStateModel
from expression_diagnostics.prototypes import PrototypeRegistry


class RecordingLogger:
    """Logger double that stores formatted messages by level."""

    def __init__(self):
        self.records = []

    def _log(self, level, message, *args):
        self.records.append((level, message % args if args else message))

    def debug(self, message, *args):
        self._log("debug", message, *args)

    def warning(self, message, *args):
        self._log("warning", message, *args)

    def error(self, message, *args):
        self._log("error", message, *args)

    def messages(self, level):
        return [message for lvl, message in self.records if lvl == level]


EMOTIONS = {
    "joy": {"weights": {"valence": 1.0}, "gates": ["valence >= 0.2"]},
    "fear": {"weights": {"threat": 1.0, "valence": -0.5}, "gates": ["threat >= 0.3"]},
    "calm": {"weights": {"arousal": -1.0, "threat": -1.0}, "gates": []},
    "stuck": {"weights": {"valence": 1.0}, "gates": ["arousal >= 0.80", "arousal <= 0.20"]},
}

SEXUAL_STATES = {
    "lust": {"weights": {"sex_excitation": 1.0, "sex_inhibition": -1.0}, "gates": []},
}


@pytest.fixture
def registry():
    return PrototypeRegistry(emotions=EMOTIONS, sexual_states=SEXUAL_STATES)


@pytest.fixture
def recording_logger():
    return RecordingLogger()


def make_contexts(registry, n=200, seed=0):
    model = AffectStateModel(registry)
    rng = np.random.default_rng(seed)
    contexts = []
    for _ in range(n):
        state = {
            name: float(rng.uniform(lo, hi)) for name, (lo, hi) in model.param_spec().items()
        }
        contexts.append(model.run(state))
    return contexts


@pytest.fixture
def contexts(registry):
    return make_contexts(registry)


@pytest.fixture
def or_breakdown():
    return {
        "nodeType": "and",
        "id": "root",
        "evaluationCount": 100,
        "failureCount": 95,
        "children": [
            {
                "nodeType": "leaf",
                "id": "n0",
                "clauseId": "var:moodAxes.valence:>=:20",
                "description": "moodAxes.valence >= 20",
                "comparisonOperator": ">=",
                "thresholdValue": 20,
                "variablePath": "moodAxes.valence",
                "evaluationCount": 100,
                "failureCount": 40,
                "failureRate": 0.4,
                "inRegimeEvaluationCount": 60,
                "inRegimeFailureCount": 0,
                "inRegimeFailureRate": 0.0,
            },
            {
                "nodeType": "leaf",
                "id": "n1",
                "clauseId": "var:emotions.joy:>=:0.6",
                "description": "emotions.joy >= 0.6",
                "comparisonOperator": ">=",
                "thresholdValue": 0.6,
                "variablePath": "emotions.joy",
                "evaluationCount": 100,
                "failureCount": 90,
                "failureRate": 0.9,
                "inRegimeEvaluationCount": 60,
                "inRegimeFailureCount": 50,
                "inRegimeFailureRate": 50 / 60,
                "gatePassInRegimeCount": 45,
                "gatePassAndClausePassInRegimeCount": 10,
            },
            {
                "nodeType": "or",
                "id": "or1",
                "description": "OR block",
                "evaluationCount": 100,
                "failureCount": 20,
                "orUnionPassCount": 80,
                "orBlockExclusivePassCount": 50,
                "inRegimeEvaluationCount": 60,
                "orUnionPassInRegimeCount": 54,
                "orBlockExclusivePassInRegimeCount": 30,
                "orPairPassCounts": [
                    {"leftId": "var:emotions.fear:>=:0.3", "rightId": "var:emotions.calm:>=:0.3", "passCount": 12},
                    {"leftId": "var:emotions.joy:>=:0.3", "rightId": "var:emotions.calm:>=:0.3", "passCount": 5},
                ],
                "children": [
                    {
                        "nodeType": "leaf",
                        "clauseId": "var:emotions.fear:>=:0.3",
                        "description": "emotions.fear >= 0.3",
                        "comparisonOperator": ">=",
                        "thresholdValue": 0.3,
                        "variablePath": "emotions.fear",
                        "orPassCount": 40,
                        "orExclusivePassCount": 25,
                    },
                    {
                        "nodeType": "leaf",
                        "clauseId": "var:emotions.calm:>=:0.3",
                        "description": "emotions.calm >= 0.3",
                        "comparisonOperator": ">=",
                        "thresholdValue": 0.3,
                        "variablePath": "emotions.calm",
                        "orPassCount": 45,
                        "orExclusivePassCount": 22,
                    },
                    {
                        "nodeType": "leaf",
                        "clauseId": "var:emotions.joy:>=:0.3",
                        "description": "emotions.joy >= 0.3",
                        "comparisonOperator": ">=",
                        "thresholdValue": 0.3,
                        "variablePath": "emotions.joy",
                        "orPassCount": 20,
                        "orExclusivePassCount": 3,
                    },
                    {
                        "nodeType": "leaf",
                        "clauseId": "var:emotions.stuck:>=:0.3",
                        "description": "emotions.stuck >= 0.3",
                        "comparisonOperator": ">=",
                        "thresholdValue": 0.3,
                        "variablePath": "emotions.stuck",
                        "orPassCount": 0,
                        "orExclusivePassCount": 0,
                    },
                ],
            },
        ],
    }


@pytest.fixture
def simulation_result(or_breakdown, contexts):
    """Runner result for an expression that never fired in 100 samples."""
    return {
        "expressionName": "test:relieved_joy",
        "expression": {"and": [
            {">=": [{"var": "moodAxes.valence"}, 20]},
            {">=": [{"var": "emotions.joy"}, 0.6]},
            {"or": [
                {">=": [{"var": "emotions.fear"}, 0.3]},
                {">=": [{"var": "emotions.calm"}, 0.3]},
                {">=": [{"var": "emotions.joy"}, 0.3]},
                {">=": [{"var": "emotions.stuck"}, 0.3]},
            ]},
        ]},
        "sampleCount": 100,
        "triggerCount": 0,
        "hierarchicalBreakdown": or_breakdown,
        "storedContexts": contexts,
    }

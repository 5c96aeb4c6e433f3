"""Statistical computations over Monte Carlo sample contexts.

Pure functions, no state, inputs never mutated. Degenerate input (empty or
missing contexts, NaN values, unparseable gates) yields None, empty dicts or
zero counts rather than exceptions.

    compute_distribution_stats      min / median / p90 / p95 / max / mean / count
    calculate_wilson_interval       Wilson score interval for a proportion
    compute_axis_contributions      mean weighted contribution of each axis
    compute_gate_failure_rates      per-gate failure fraction, in isolation
    compute_gate_pass_rate          conjunctive pass fraction of a gate list
    compute_prototype_regime_stats  raw/final intensity distributions + gate pass
    compute_conditional_pass_rates  pass rate per condition with Wilson CI
    get_nested_value                safe dotted-path lookup

Percentiles use the nearest-rank index round(p * (n - 1)), rounding halves
up and clamping to [0, n - 1], so on small samples p90/p95 can equal max.
"""

from __future__ import annotations

import math

import numpy as np

from expression_diagnostics.base import (
    MOOD_AXES_SET,
    gate_scale_value,
    normalize_axis_value,
    resolve_axis_value,
)
from expression_diagnostics.gate_constraints import gate_passes, parse_gate

Z_SCORES = {0.90: 1.645, 0.95: 1.96, 0.99: 2.576}


def _finite(value) -> bool:
    return (
        isinstance(value, (int, float, np.integer, np.floating))
        and not isinstance(value, bool)
        and math.isfinite(float(value))
    )


def get_nested_value(obj, path: str):
    """Look up "a.b.0.c" in nested dicts/lists; None when any step is missing."""
    if obj is None or not isinstance(path, str) or not path:
        return None
    current = obj
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple)):
            if not part.isdigit():
                return None
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def _percentile_index(p: float, n: int) -> int:
    index = int(math.floor(p * (n - 1) + 0.5))
    return min(max(index, 0), n - 1)


def compute_distribution_stats(values) -> dict | None:
    """Summarize a sample. Non-finite entries are ignored.

    Returns:
        {"min", "median", "p90", "p95", "max", "mean", "count"}, or None when
        there are no finite values.
    """
    if values is None:
        return None
    finite = [float(v) for v in values if _finite(v)]
    if not finite:
        return None
    arr = np.sort(np.asarray(finite, dtype=float))
    n = len(arr)
    return {
        "min": float(arr[0]),
        "median": float(arr[_percentile_index(0.5, n)]),
        "p90": float(arr[_percentile_index(0.9, n)]),
        "p95": float(arr[_percentile_index(0.95, n)]),
        "max": float(arr[-1]),
        "mean": float(np.mean(arr)),
        "count": n,
    }


def z_score_for_confidence(level: float) -> float:
    """z for 0.90 / 0.95 / 0.99; any other level falls back to 0.95."""
    for known, z in Z_SCORES.items():
        if _finite(level) and abs(float(level) - known) < 1e-9:
            return z
    return Z_SCORES[0.95]


def calculate_wilson_interval(successes: float, total: float, z: float = 1.96) -> dict:
    """Wilson score interval for successes / total.

    Returns {"low": 0.0, "high": 1.0} when total is zero (or not positive).
    Total may be fractional, e.g. an effective sample size.
    """
    if not _finite(total) or total <= 0 or not _finite(successes):
        return {"low": 0.0, "high": 1.0}
    n = float(total)
    p = min(1.0, max(0.0, float(successes) / n))
    z2 = z * z
    denom = 1.0 + z2 / n
    center = (p + z2 / (2.0 * n)) / denom
    margin = z * math.sqrt(p * (1.0 - p) / n + z2 / (4.0 * n * n)) / denom
    return {
        "low": float(max(0.0, center - margin)),
        "high": float(min(1.0, center + margin)),
    }


def _axis_value(context: dict, axis: str):
    value = resolve_axis_value(context, axis)
    if value is None:
        value = get_nested_value(context, axis)
    return value


def compute_axis_contributions(contexts, weights: dict) -> dict:
    """Mean contribution of each weighted axis across contexts.

    Mood axes are stored on [-100, 100] and are re-normalized to [0, 1]
    before weighting; other axes are used as stored.

    Returns:
        {axis: {"weight", "mean_axis_value", "mean_contribution"}}. Axes with
        no finite values in any context report None for both means.
    """
    result = {}
    if not weights:
        return result
    contexts = list(contexts or [])
    for axis, weight in weights.items():
        values = []
        for context in contexts:
            value = _axis_value(context, axis)
            if not _finite(value):
                continue
            if axis in MOOD_AXES_SET:
                value = normalize_axis_value(axis, value)
            values.append(float(value))
        if values:
            mean_value = float(np.mean(values))
            contribution = float(weight) * mean_value
        else:
            mean_value = None
            contribution = None
        result[axis] = {
            "weight": float(weight),
            "mean_axis_value": mean_value,
            "mean_contribution": contribution,
        }
    return result


def compute_gate_failure_rates(gates, contexts) -> dict:
    """Fraction of contexts failing each gate on its own.

    Unparseable gates are skipped. A context without a value for the gate's
    axis does not count as a failure.
    """
    rates = {}
    contexts = list(contexts or [])
    if not contexts:
        return rates
    for gate in gates or []:
        if parse_gate(gate) is None:
            continue
        failures = sum(1 for context in contexts if gate_passes(gate, context) is False)
        rates[gate] = failures / len(contexts)
    return rates


def compute_gate_pass_rate(gates, contexts) -> float | None:
    """Fraction of contexts passing every gate.

    Returns None without contexts and 1.0 without gates. Unparseable gates
    and missing axis values do not fail a context.
    """
    contexts = list(contexts or [])
    if not contexts:
        return None
    gates = list(gates or [])
    if not gates:
        return 1.0
    passes = sum(
        1 for context in contexts
        if all(gate_passes(gate, context) is not False for gate in gates)
    )
    return passes / len(contexts)


def _raw_intensity(weights: dict, context: dict) -> float | None:
    total_abs = sum(abs(w) for w in weights.values() if _finite(w))
    if total_abs == 0:
        return None
    raw = 0.0
    seen = False
    for axis, weight in weights.items():
        if not _finite(weight):
            continue
        value = gate_scale_value(axis, _axis_value(context, axis))
        if value is not None:
            raw += weight * value
            seen = True
    if not seen:
        return None
    return min(1.0, max(0.0, raw / total_abs))


def compute_prototype_regime_stats(contexts, var_path: str, gates, weights, callbacks: dict | None = None) -> dict:
    """Raw and final intensity distributions of one prototype over contexts.

    Args:
        contexts: Sampled contexts.
        var_path: Path of the prototype's final intensity, e.g. "emotions.joy".
        gates: The prototype's gate strings.
        weights: The prototype's axis weights.
        callbacks: Optional gate-trace accessors:
            "resolve_gate_trace_target"(var_path) -> (kind, prototype_id) or None
            "get_gate_trace_signals"(context, kind, prototype_id) ->
                {"raw": float, "final": float, "gate_pass": bool} or None

    Returns:
        {"raw_distribution", "final_distribution", "gate_pass_rate"}. With a
        resolvable gate trace all three come from the trace. Otherwise the
        final distribution is the bare value at var_path, the raw
        distribution is the ungated weighted score and the gate pass rate is
        recomputed from the gates.
    """
    contexts = list(contexts or [])
    callbacks = callbacks or {}
    resolve = callbacks.get("resolve_gate_trace_target")
    get_signals = callbacks.get("get_gate_trace_signals")

    if callable(resolve) and callable(get_signals):
        target = resolve(var_path)
        if target is not None:
            kind, proto_id = target
            raw_values, final_values, gate_flags = [], [], []
            for context in contexts:
                signals = get_signals(context, kind, proto_id)
                if not signals:
                    continue
                raw_values.append(signals.get("raw"))
                final_values.append(signals.get("final"))
                if isinstance(signals.get("gate_pass"), bool):
                    gate_flags.append(signals["gate_pass"])
            return {
                "raw_distribution": compute_distribution_stats(raw_values),
                "final_distribution": compute_distribution_stats(final_values),
                "gate_pass_rate": (sum(gate_flags) / len(gate_flags)) if gate_flags else None,
            }

    final_values = [get_nested_value(context, var_path) for context in contexts]
    raw_values = []
    if weights:
        raw_values = [_raw_intensity(dict(weights), context) for context in contexts]
    return {
        "raw_distribution": compute_distribution_stats(raw_values),
        "final_distribution": compute_distribution_stats(final_values),
        "gate_pass_rate": compute_gate_pass_rate(gates, contexts),
    }


def compute_conditional_pass_rates(contexts, conditions) -> list[dict]:
    """Pass rate of each condition over contexts, most restrictive first.

    Args:
        contexts: Contexts already filtered to the population of interest.
        conditions: Objects with matches(context) -> bool and a label
            attribute (ComparisonNode satisfies this).

    Returns:
        [{"condition", "conditional_pass_rate", "passes", "total", "ci"}]
        sorted ascending by conditional_pass_rate.
    """
    contexts = list(contexts or [])
    total = len(contexts)
    results = []
    for condition in conditions or []:
        passes = sum(1 for context in contexts if condition.matches(context)) if total else 0
        results.append({
            "condition": getattr(condition, "label", str(condition)),
            "conditional_pass_rate": passes / total if total else 0.0,
            "passes": passes,
            "total": total,
            "ci": calculate_wilson_interval(passes, total),
        })
    results.sort(key=lambda r: r["conditional_pass_rate"])
    return results

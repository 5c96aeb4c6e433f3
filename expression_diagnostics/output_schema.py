"""JSON envelope for diagnostics reports.

Wraps the rendered Markdown blocks and the analysis records behind them in
one JSON-serializable structure, so that tooling can store reports or diff
two runs without re-parsing Markdown.

Schema structure::

    {
        "schema_version": "1.0",
        "expression": {name, tier, sample_count, trigger_rate},
        "sections": [{index, title, markdown}],
        "analyses": {unreachable, conflicts, or_blocks, witness, edit_set},
        "metadata": {...},
    }

Usage::

    from expression_diagnostics.output_schema import ReportOutput, validate_report

    generator = MonteCarloReportGenerator(registry)
    output = ReportOutput.from_generator(generator, simulation_result)
    d = output.to_dict()
    errors = validate_report(d)
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

import numpy as np

from expression_diagnostics.models import to_wire

SCHEMA_VERSION = "1.0"
_TITLE = re.compile(r"^#+\s*(.+)$", re.MULTILINE)


class NumpyEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy types."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, (np.integer,)):
            return int(obj)
        if isinstance(obj, (np.floating,)):
            return float(obj)
        if isinstance(obj, (np.bool_,)):
            return bool(obj)
        return super().default(obj)


def section_title(block: str) -> str:
    """First Markdown heading of a block, or "" if it has none."""
    match = _TITLE.search(block or "")
    return match.group(1).strip() if match else ""


def report_to_dict(blocks, metadata: dict | None = None) -> dict:
    """Minimal envelope: schema version, sections and metadata."""
    return {
        "schema_version": SCHEMA_VERSION,
        "sections": [
            {"index": i, "title": section_title(block), "markdown": block}
            for i, block in enumerate(blocks or [])
        ],
        "metadata": dict(metadata or {}),
    }


@dataclass
class ReportOutput:
    """Report blocks plus the analysis records that produced them."""

    expression_name: str
    blocks: list[str] = field(default_factory=list)
    tier: str = "normal"
    sample_count: int = 0
    trigger_rate: float = 0.0
    analyses: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_generator(cls, generator, simulation_result: dict, expression_name: str | None = None) -> ReportOutput:
        simulation_result = simulation_result if isinstance(simulation_result, dict) else {}
        name = expression_name or simulation_result.get("expressionName") or "Unknown"
        blocks, data = generator.generate_with_data(simulation_result, expression_name=name)
        data = data or {}
        rate = simulation_result.get("triggerRate")
        if rate is None and simulation_result.get("sampleCount"):
            rate = (simulation_result.get("triggerCount") or 0) / simulation_result["sampleCount"]
        return cls(
            expression_name=name,
            blocks=blocks,
            tier=data.get("tier", "normal"),
            sample_count=int(simulation_result.get("sampleCount") or 0),
            trigger_rate=float(rate or 0.0),
            analyses={
                "unreachable": data.get("unreachable", []),
                "conflicts": data.get("conflicts", []),
                "or_blocks": data.get("or_analyses", []),
                "witness": data.get("witness"),
                "edit_set": data.get("edit_set"),
            },
        )

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dict following the report schema."""
        d = report_to_dict(self.blocks, self.metadata)
        d["expression"] = {
            "name": self.expression_name,
            "tier": self.tier,
            "sample_count": self.sample_count,
            "trigger_rate": self.trigger_rate,
        }
        d["analyses"] = {key: to_wire(value) for key, value in self.analyses.items()}
        return d

    def to_json(self, **kwargs) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), cls=NumpyEncoder, **kwargs)


def validate_report(d: dict) -> list[str]:
    """Validate a dict against the report schema.

    Returns a list of error messages. Empty list = valid.
    """
    errors = []
    if not isinstance(d, dict):
        return ["Report must be a dict"]

    if "schema_version" not in d:
        errors.append("Missing required key: schema_version")
    for section in ["sections", "metadata"]:
        if section not in d:
            errors.append(f"Missing required section: {section}")
    if errors:
        return errors

    if not isinstance(d["sections"], list):
        errors.append("sections must be a list")
    else:
        for i, section in enumerate(d["sections"]):
            if not isinstance(section, dict):
                errors.append(f"sections[{i}] must be a dict")
                continue
            if section.get("index") != i:
                errors.append(f"sections[{i}] has index {section.get('index')!r}")
            if not isinstance(section.get("markdown"), str):
                errors.append(f"sections[{i}].markdown must be a string")

    if not isinstance(d["metadata"], dict):
        errors.append("metadata must be a dict")

    if "expression" in d:
        expr = d["expression"]
        if "name" not in expr:
            errors.append("Missing expression.name")
        rate = expr.get("trigger_rate")
        if not isinstance(rate, (int, float)) or not 0.0 <= rate <= 1.0:
            errors.append(f"expression.trigger_rate must be in [0, 1], got {rate!r}")

    return errors

"""In-memory prototype registry: lookup of prototype definitions by category + id.

Stands in for the content registry that loads mod files. Raw entries are
validated once through PrototypeDefinition.from_dict(); lookups afterwards
hand out the frozen definitions.
"""

from __future__ import annotations

from expression_diagnostics.models import CATEGORIES, PrototypeDefinition


class PrototypeRegistry:
    """Holds emotion and sexual-state prototypes keyed by id.

    Args:
        emotions: Mapping of id -> raw definition dict (or a list of dicts
            carrying their own "id"). Defaults to empty.
        sexual_states: Same shape, for sexual-state prototypes.

    Example:
        registry = PrototypeRegistry(emotions={
            "joy": {"weights": {"valence": 1.0}, "gates": ["valence >= 0.2"]},
        })
        registry.get("emotion", "joy").weights["valence"]  # 1.0
    """

    def __init__(self, emotions=None, sexual_states=None):
        self._by_category = {category: {} for category in CATEGORIES}
        for category, entries in (("emotion", emotions), ("sexual", sexual_states)):
            for proto in self._coerce(entries, category):
                self._by_category[category][proto.id] = proto

    @staticmethod
    def _coerce(entries, category: str) -> list[PrototypeDefinition]:
        if entries is None:
            return []
        if isinstance(entries, dict):
            items = []
            for proto_id, raw in entries.items():
                if isinstance(raw, PrototypeDefinition):
                    items.append(raw)
                else:
                    items.append(PrototypeDefinition.from_dict({"id": proto_id, **raw}, category=category))
            return items
        return [
            raw if isinstance(raw, PrototypeDefinition)
            else PrototypeDefinition.from_dict(raw, category=category)
            for raw in entries
        ]

    def add(self, proto: PrototypeDefinition) -> None:
        self._by_category[proto.category][proto.id] = proto

    def get(self, category: str, proto_id: str) -> PrototypeDefinition | None:
        """Return the definition, or None for an unknown category or id."""
        return self._by_category.get(category, {}).get(proto_id)

    def prototypes(self, category: str) -> list[PrototypeDefinition]:
        return list(self._by_category.get(category, {}).values())

    def all(self) -> list[PrototypeDefinition]:
        return [proto for category in CATEGORIES for proto in self.prototypes(category)]

    def __len__(self) -> int:
        return sum(len(protos) for protos in self._by_category.values())

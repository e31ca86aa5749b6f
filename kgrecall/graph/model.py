"""Immutable graph snapshots returned by the store."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Node:
    id: str
    label: str
    name: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def document_id(self) -> str | None:
        return _optional_str(self.properties.get("documentId"))

    @property
    def source_chunk(self) -> str | None:
        return _optional_str(self.properties.get("sourceChunk"))


@dataclass(frozen=True)
class Predicate:
    id: str
    label: str

    @property
    def text(self) -> str:
        """Predicate string used for classification (label, else id)."""
        return self.label or self.id


@dataclass(frozen=True)
class Triplet:
    subject: Node
    predicate: Predicate
    object: Node

    def describe(self) -> str:
        """One-line human-readable fact."""
        return f"{self.subject.name} {self.predicate.text} {self.object.name}"


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def generate_entity_id(label: str, name: str) -> str:
    """Canonical entity id from label and name.

    Format: label:normalized_name
    Example: component:pressure_valve
    """
    normalized = name.lower().strip()
    normalized = normalized.replace(" ", "_").replace("-", "_")
    while "__" in normalized:
        normalized = normalized.replace("__", "_")
    normalized = normalized.strip("_")

    return f"{(label or 'entity').lower()}:{normalized}"

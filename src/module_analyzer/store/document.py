"""Completion document model: module records with optional sub-modules."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

from module_analyzer.errors import DocumentFormatError


class Complexity(str, Enum):
    """Complexity tier driving queue order and default timeout."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _COMPLEXITY_RANK[self]

    @classmethod
    def parse(cls, value: object) -> Complexity:
        """Map a raw value to a tier, falling back to medium."""

        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.MEDIUM


_COMPLEXITY_RANK = {Complexity.LOW: 0, Complexity.MEDIUM: 1, Complexity.HIGH: 2}


class ItemKey(NamedTuple):
    """Identity of a work item across the whole document."""

    id: str
    parent_id: str | None = None

    @property
    def display_name(self) -> str:
        if self.parent_id:
            return f"{self.parent_id}/{self.id}"
        return self.id

    @property
    def log_stem(self) -> str:
        if self.parent_id:
            return f"{self.parent_id}_{self.id}"
        return self.id


@dataclass(frozen=True, slots=True)
class WorkItem:
    """Read-only view of one schedulable module or sub-module."""

    id: str
    parent_id: str | None
    complexity: Complexity
    analyzed: bool

    @property
    def key(self) -> ItemKey:
        return ItemKey(self.id, self.parent_id)

    @property
    def is_child(self) -> bool:
        return self.parent_id is not None

    @property
    def display_name(self) -> str:
        return self.key.display_name


class Document:
    """Parsed completion document.

    The raw JSON payload is kept so unknown keys survive a load/save cycle;
    only the ``analyzed`` flags are ever rewritten.
    """

    def __init__(self, payload: dict[str, Any]) -> None:
        self._payload = payload
        self._records: dict[ItemKey, dict[str, Any]] = {}
        modules = payload.get("modules")
        if not isinstance(modules, list):
            raise DocumentFormatError("Document must contain a 'modules' list.")
        for module in modules:
            name = _record_name(module, context="module")
            self._register(ItemKey(name, None), module)
            sub_modules = module.get("subModules") or []
            if not isinstance(sub_modules, list):
                raise DocumentFormatError(f"'subModules' of {name!r} must be a list.")
            for sub_module in sub_modules:
                sub_name = _record_name(sub_module, context=f"sub-module of {name!r}")
                self._register(ItemKey(sub_name, name), sub_module)

    @classmethod
    def from_json(cls, text: str) -> Document:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as error:
            raise DocumentFormatError(f"Document is not valid JSON: {error}") from error
        if not isinstance(payload, dict):
            raise DocumentFormatError("Document must be a JSON object.")
        return cls(payload)

    def to_json(self) -> str:
        return json.dumps(self._payload, ensure_ascii=False, indent=2) + "\n"

    def __iter__(self) -> Iterator[WorkItem]:
        """Yield items in document order: each module, then its sub-modules."""

        for key, record in self._records.items():
            yield _to_item(key, record)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def get(self, key: ItemKey) -> WorkItem | None:
        record = self._records.get(key)
        if record is None:
            return None
        return _to_item(key, record)

    def set_analyzed(self, key: ItemKey, value: bool) -> None:
        try:
            record = self._records[key]
        except KeyError:
            raise KeyError(f"Unknown work item: {key.display_name}") from None
        record["analyzed"] = value

    def has_state(self) -> bool:
        """Whether any top-level module already carries an ``analyzed`` flag."""

        return any(
            "analyzed" in record for key, record in self._records.items() if key.parent_id is None
        )

    def _register(self, key: ItemKey, record: dict[str, Any]) -> None:
        if key in self._records:
            raise DocumentFormatError(f"Duplicate work item in document: {key.display_name}")
        self._records[key] = record


def _record_name(record: object, *, context: str) -> str:
    if not isinstance(record, dict):
        raise DocumentFormatError(f"Every {context} record must be a JSON object.")
    name = record.get("name")
    if not isinstance(name, str) or not name.strip():
        raise DocumentFormatError(f"Every {context} record needs a non-empty 'name'.")
    return name


def _to_item(key: ItemKey, record: dict[str, Any]) -> WorkItem:
    raw_complexity = record.get("complexity")
    if raw_complexity is None:
        metrics = record.get("metrics")
        if isinstance(metrics, dict):
            raw_complexity = metrics.get("complexity")
    return WorkItem(
        id=key.id,
        parent_id=key.parent_id,
        complexity=Complexity.parse(raw_complexity),
        analyzed=record.get("analyzed") is True,
    )

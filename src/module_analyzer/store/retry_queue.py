"""Keyed retry set persisted as ``id|parentId|complexity`` lines."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from module_analyzer.store.document import Complexity, ItemKey, WorkItem
from module_analyzer.store.fs import atomic_write_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FailureRecord:
    """One outstanding failed item."""

    id: str
    parent_id: str | None
    complexity: Complexity

    @property
    def key(self) -> ItemKey:
        return ItemKey(self.id, self.parent_id)

    @classmethod
    def from_item(cls, item: WorkItem) -> FailureRecord:
        return cls(id=item.id, parent_id=item.parent_id, complexity=item.complexity)

    def to_line(self) -> str:
        return f"{self.id}|{self.parent_id or ''}|{self.complexity.value}"

    @classmethod
    def from_line(cls, line: str) -> FailureRecord | None:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return None
        parts = stripped.split("|")
        name = parts[0].strip()
        if not name:
            return None
        parent = parts[1].strip() if len(parts) > 1 else ""
        complexity = parts[2] if len(parts) > 2 else None
        return cls(id=name, parent_id=parent or None, complexity=Complexity.parse(complexity))


class RetryQueue:
    """Set of failure records keyed by item identity.

    Insertion order is kept for display; a repeated failure replaces the
    existing record instead of appending a duplicate.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def records(self) -> list[FailureRecord]:
        with self._lock:
            return list(self._read().values())

    def __len__(self) -> int:
        return len(self.records())

    def upsert(self, record: FailureRecord) -> None:
        with self._lock:
            records = self._read()
            records[record.key] = record
            self._write(records)

    def remove(self, key: ItemKey) -> bool:
        with self._lock:
            records = self._read()
            if records.pop(key, None) is None:
                return False
            self._write(records)
            return True

    def clear(self) -> None:
        with self._lock:
            self._write({})

    def drain(self) -> list[FailureRecord]:
        """Return all records and empty the set in one step."""

        with self._lock:
            records = list(self._read().values())
            self._write({})
        return records

    def _read(self) -> dict[ItemKey, FailureRecord]:
        records: dict[ItemKey, FailureRecord] = {}
        if not self.path.is_file():
            return records
        for line in self.path.read_text("utf-8").splitlines():
            record = FailureRecord.from_line(line)
            if record is None:
                continue
            records[record.key] = record
        return records

    def _write(self, records: dict[ItemKey, FailureRecord]) -> None:
        body = "".join(f"{record.to_line()}\n" for record in records.values())
        atomic_write_text(self.path, body)

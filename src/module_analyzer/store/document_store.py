"""JSON-file document store with serialized read-modify-write mutations."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from module_analyzer.errors import DocumentFormatError, MissingDocumentError
from module_analyzer.store.document import Document, ItemKey, WorkItem
from module_analyzer.store.fs import atomic_write_text

logger = logging.getLogger(__name__)


class DocumentStore:
    """Owns the completion document file.

    Every write goes through ``_lock`` and re-reads the file first, so
    concurrent completions cannot overwrite each other's flags.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._document: Document | None = None

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Document:
        """Read the document from disk and cache it for queries."""

        with self._lock:
            self._document = self._read()
            return self._document

    @property
    def document(self) -> Document:
        if self._document is None:
            return self.load()
        return self._document

    def items(self) -> tuple[WorkItem, ...]:
        return tuple(self.document)

    def query(self, predicate: Callable[[WorkItem], bool]) -> tuple[WorkItem, ...]:
        return tuple(item for item in self.document if predicate(item))

    def find(self, key: ItemKey) -> WorkItem | None:
        return self.document.get(key)

    def is_analyzed(self, key: ItemKey) -> bool:
        item = self.find(key)
        return item is not None and item.analyzed

    def mutate(self, key: ItemKey, fn: Callable[[Document, ItemKey], None]) -> None:
        """Apply ``fn`` to one item of a freshly read document and persist it."""

        with self._lock:
            document = self._read()
            if key not in document:
                raise KeyError(f"Unknown work item: {key.display_name}")
            fn(document, key)
            self._write(document)

    def mark_analyzed(self, key: ItemKey) -> None:
        self.mutate(key, lambda document, target: document.set_analyzed(target, True))
        logger.debug("Marked %s as analyzed", key.display_name)

    def reset(self) -> None:
        """Clear every ``analyzed`` flag in one write."""

        with self._lock:
            document = self._read()
            for item in document:
                document.set_analyzed(item.key, False)
            self._write(document)
        logger.info("All analysis states reset")

    def initialize(self) -> bool:
        """Seed ``analyzed: false`` everywhere if the document has no state yet."""

        with self._lock:
            document = self._read()
            if document.has_state():
                self._document = document
                return False
            for item in document:
                document.set_analyzed(item.key, False)
            self._write(document)
        logger.info("Analysis state initialized")
        return True

    def _read(self) -> Document:
        if not self.path.is_file():
            raise MissingDocumentError(f"Completion document not found at {self.path}")
        try:
            text = self.path.read_text("utf-8")
        except UnicodeDecodeError as error:
            raise DocumentFormatError(
                f"Document is not valid UTF-8: {self.path} ({error.reason} at byte {error.start})",
            ) from error
        return Document.from_json(text)

    def _write(self, document: Document) -> None:
        atomic_write_text(self.path, document.to_json())
        self._document = document

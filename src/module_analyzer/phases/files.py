"""Markdown file discovery shared by the validation and conversion phases."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup.md"


@dataclass(frozen=True, slots=True)
class MarkdownFile:
    """One generated markdown document under the docs root."""

    path: Path
    docs_root: Path

    @property
    def relative(self) -> Path:
        return self.path.relative_to(self.docs_root)

    @property
    def display_name(self) -> str:
        return self.relative.as_posix()

    @property
    def log_stem(self) -> str:
        return "_".join(self.relative.with_suffix("").parts)

    def mirrored(self, output_root: Path, suffix: str = ".docx") -> Path:
        return mirror_output_path(self.path, self.docs_root, output_root, suffix=suffix)


def discover_markdown_files(
    docs_dir: Path,
    *,
    exclude_dirs: tuple[Path, ...] = (),
) -> list[MarkdownFile]:
    """Return ``*.md`` files under ``docs_dir`` in sorted order.

    Backups (``*.backup.md``) and anything under ``exclude_dirs`` are left out.
    A missing directory yields no files.
    """

    if not docs_dir.is_dir():
        logger.warning("Documents directory not found: %s", docs_dir)
        return []

    excluded = [directory.resolve() for directory in exclude_dirs]
    files: list[MarkdownFile] = []
    for path in sorted(docs_dir.rglob("*.md")):
        if not path.is_file() or path.name.endswith(BACKUP_SUFFIX):
            continue
        resolved = path.resolve()
        if any(resolved.is_relative_to(directory) for directory in excluded):
            continue
        files.append(MarkdownFile(path=path, docs_root=docs_dir))
    logger.debug("Found %d markdown files under %s", len(files), docs_dir)
    return files


def mirror_output_path(
    source: Path,
    docs_root: Path,
    output_root: Path,
    *,
    suffix: str = ".docx",
) -> Path:
    """Map ``docs_root/a/b.md`` to ``output_root/a/b<suffix>``."""

    return (output_root / source.relative_to(docs_root)).with_suffix(suffix)

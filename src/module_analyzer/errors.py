"""Error hierarchy for run-aborting conditions."""

from __future__ import annotations


class AnalyzerError(RuntimeError):
    """Base error for failures that abort a run."""


class ConfigError(AnalyzerError):
    """Malformed CLI arguments or environment configuration."""


class MissingDocumentError(AnalyzerError):
    """Completion document does not exist."""


class DocumentFormatError(AnalyzerError):
    """Completion document exists but cannot be used."""


class PrerequisiteError(AnalyzerError):
    """A required external executable is not available."""


class DiscoveryGeneratedError(AnalyzerError):
    """Discovery fallback produced a new document that needs operator review."""

"""Runtime configuration for analysis, validation and conversion phases."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from module_analyzer.errors import ConfigError
from module_analyzer.store.document import Complexity

DEFAULT_WORKER_COMMAND = (
    "claude --dangerously-skip-permissions --print --output-format text {instruction}"
)
DEFAULT_CONVERSION_COMMAND = (
    "pandoc {source} -f markdown -t docx --wrap=auto --reference-doc={template} -o {output}"
)


@dataclass(slots=True)
class TimeoutSettings:
    """Per-complexity worker deadlines in seconds; 0 means unbounded."""

    low: int = 300
    medium: int = 600
    high: int = 900
    validation: int = 0
    conversion: int = 0

    def for_complexity(self, complexity: Complexity) -> int:
        if complexity is Complexity.LOW:
            return self.low
        if complexity is Complexity.HIGH:
            return self.high
        return self.medium


@dataclass(slots=True)
class SchedulerSettings:
    """Dispatcher limits and pacing."""

    max_parallel: int = 8
    delay_seconds: float = 5.0
    poll_interval_seconds: float = 0.2


@dataclass(slots=True)
class CommandSettings:
    """External command templates."""

    worker: str = DEFAULT_WORKER_COMMAND
    conversion: str = DEFAULT_CONVERSION_COMMAND
    discovery: str = ""
    discovery_instruction: str = "/discover-modules"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    document_path: Path = Path("module-structure.json")
    state_dir: Path = Path(".analyze-state")
    docs_dir: Path = Path("Documents")
    docx_output_dir: Path = Path("Documents/DOCX")
    reference_doc: Path = Path("custom-reference.docx")
    timeouts: TimeoutSettings = field(default_factory=TimeoutSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    commands: CommandSettings = field(default_factory=CommandSettings)

    @property
    def log_dir(self) -> Path:
        return self.state_dir / "logs"

    @property
    def main_log(self) -> Path:
        return self.state_dir / "analyze.log"

    @property
    def queue_file(self) -> Path:
        return self.state_dir / "analysis_queue.txt"

    @property
    def failed_file(self) -> Path:
        return self.state_dir / "failed_modules.txt"

    @property
    def session_file(self) -> Path:
        return self.state_dir / "session_start.txt"

    @classmethod
    def from_env(
        cls,
        document_path: Path | None = None,
        state_dir: Path | None = None,
    ) -> Settings:
        """Load settings from ``MODULE_ANALYZER_*`` environment variables."""

        docs_dir = Path(os.getenv("MODULE_ANALYZER_DOCS_DIR", "Documents"))
        return cls(
            document_path=document_path
            or Path(os.getenv("MODULE_ANALYZER_DOCUMENT_PATH", "module-structure.json")),
            state_dir=state_dir or Path(os.getenv("MODULE_ANALYZER_STATE_DIR", ".analyze-state")),
            docs_dir=docs_dir,
            docx_output_dir=Path(
                os.getenv("MODULE_ANALYZER_DOCX_OUTPUT_DIR", str(docs_dir / "DOCX")),
            ),
            reference_doc=Path(
                os.getenv("MODULE_ANALYZER_REFERENCE_DOC", "custom-reference.docx"),
            ),
            timeouts=TimeoutSettings(
                low=_env_int("MODULE_ANALYZER_TIMEOUT_LOW", 300),
                medium=_env_int("MODULE_ANALYZER_TIMEOUT_MEDIUM", 600),
                high=_env_int("MODULE_ANALYZER_TIMEOUT_HIGH", 900),
                validation=_env_int("MODULE_ANALYZER_VALIDATION_TIMEOUT", 0),
                conversion=_env_int("MODULE_ANALYZER_CONVERSION_TIMEOUT", 0),
            ),
            scheduler=SchedulerSettings(
                max_parallel=_env_int("MODULE_ANALYZER_MAX_PARALLEL", 8),
                delay_seconds=_env_float("MODULE_ANALYZER_DELAY_SECONDS", 5.0),
                poll_interval_seconds=_env_float("MODULE_ANALYZER_POLL_INTERVAL_SECONDS", 0.2),
            ),
            commands=CommandSettings(
                worker=os.getenv("MODULE_ANALYZER_WORKER_COMMAND", DEFAULT_WORKER_COMMAND),
                conversion=os.getenv(
                    "MODULE_ANALYZER_CONVERSION_COMMAND",
                    DEFAULT_CONVERSION_COMMAND,
                ),
                discovery=os.getenv("MODULE_ANALYZER_DISCOVERY_COMMAND", "").strip(),
                discovery_instruction=os.getenv(
                    "MODULE_ANALYZER_DISCOVERY_INSTRUCTION",
                    "/discover-modules",
                ),
            ),
        )

    def validate(self) -> None:
        """Raise ``ConfigError`` for values the scheduler cannot work with."""

        for name in ("low", "medium", "high", "validation", "conversion"):
            if getattr(self.timeouts, name) < 0:
                raise ConfigError(f"Timeout '{name}' must be >= 0.")
        if self.scheduler.max_parallel < 1:
            raise ConfigError("MODULE_ANALYZER_MAX_PARALLEL must be >= 1.")
        if self.scheduler.delay_seconds < 0:
            raise ConfigError("MODULE_ANALYZER_DELAY_SECONDS must be >= 0.")
        if self.scheduler.poll_interval_seconds <= 0:
            raise ConfigError("MODULE_ANALYZER_POLL_INTERVAL_SECONDS must be > 0.")
        _require_placeholders(
            "MODULE_ANALYZER_WORKER_COMMAND",
            self.commands.worker,
            ("instruction",),
        )
        _require_placeholders(
            "MODULE_ANALYZER_CONVERSION_COMMAND",
            self.commands.conversion,
            ("source", "output"),
        )
        if self.commands.discovery:
            _require_placeholders(
                "MODULE_ANALYZER_DISCOVERY_COMMAND",
                self.commands.discovery,
                ("instruction",),
            )


def _require_placeholders(name: str, template: str, placeholders: tuple[str, ...]) -> None:
    if not template.strip():
        raise ConfigError(f"{name} must not be empty.")
    for placeholder in placeholders:
        if f"{{{placeholder}}}" not in template:
            raise ConfigError(f"{name} must include {{{placeholder}}}.")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ConfigError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ConfigError(f"Invalid number for {name}: {raw!r}") from error

"""Runs the analysis, validation and conversion phases in order."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from module_analyzer.errors import ConfigError
from module_analyzer.phases.analysis import AnalysisPhase
from module_analyzer.phases.conversion import ConversionPhase
from module_analyzer.phases.validation import ValidationPhase
from module_analyzer.scheduler.dispatcher import DispatchSummary, Dispatcher
from module_analyzer.scheduler.shutdown import ShutdownController

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PhaseSelection:
    """Which phases a run executes."""

    analysis: bool = True
    validation: bool = True
    conversion: bool = True

    @classmethod
    def from_flags(
        cls,
        *,
        skip_validation: bool = False,
        skip_conversion: bool = False,
        validation_only: bool = False,
        conversion_only: bool = False,
    ) -> PhaseSelection:
        if validation_only and conversion_only:
            raise ConfigError("--validation-only and --conversion-only are mutually exclusive.")
        if validation_only:
            return cls(analysis=False, validation=True, conversion=False)
        if conversion_only:
            return cls(analysis=False, validation=False, conversion=True)
        return cls(
            analysis=True,
            validation=not skip_validation,
            conversion=not skip_conversion,
        )


@dataclass(slots=True)
class DriverReport:
    """Per-phase dispatch summaries of one run."""

    summaries: dict[str, DispatchSummary] = field(default_factory=dict)
    conversion_unavailable: bool = False
    interrupted: bool = False

    def get(self, phase: str) -> DispatchSummary | None:
        return self.summaries.get(phase)


class PhaseDriver:
    """Sequences the selected phases through one shared dispatcher."""

    def __init__(
        self,
        *,
        dispatcher: Dispatcher,
        analysis: AnalysisPhase | None = None,
        validation: ValidationPhase | None = None,
        conversion: ConversionPhase | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.analysis = analysis
        self.validation = validation
        self.conversion = conversion

    @property
    def shutdown(self) -> ShutdownController:
        return self.dispatcher.shutdown

    def run(self) -> DriverReport:
        report = DriverReport()
        with self.shutdown.signal_handlers():
            for phase in (self.analysis, self.validation, self.conversion):
                if phase is None:
                    continue
                if self.shutdown.requested:
                    logger.warning("Skipping %s phase after interruption", phase.name)
                    continue
                if isinstance(phase, ConversionPhase) and not phase.available():
                    if not self.dispatcher.dry_run:
                        logger.error("Skipping DOCX conversion: converter is not available")
                        report.conversion_unavailable = True
                        continue
                    logger.warning("Converter is not available; continuing dry run")
                logger.info("=== Starting %s phase ===", phase.name)
                report.summaries[phase.name] = self.dispatcher.run(phase)
        report.interrupted = self.shutdown.requested
        return report

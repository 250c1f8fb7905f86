"""Analysis, validation and conversion phases plus the driver that sequences them."""

from module_analyzer.phases.analysis import AnalysisPhase
from module_analyzer.phases.conversion import ConversionPhase
from module_analyzer.phases.driver import DriverReport, PhaseDriver, PhaseSelection
from module_analyzer.phases.files import MarkdownFile, discover_markdown_files
from module_analyzer.phases.validation import ValidationPhase

__all__ = [
    "AnalysisPhase",
    "ConversionPhase",
    "DriverReport",
    "MarkdownFile",
    "PhaseDriver",
    "PhaseSelection",
    "ValidationPhase",
    "discover_markdown_files",
]

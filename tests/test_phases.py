from __future__ import annotations

import threading
from pathlib import Path

import allure
import pytest
from conftest import (
    ECHO_CONVERTER_COMMAND_TEMPLATE,
    ECHO_WORKER_COMMAND_TEMPLATE,
    read_document,
)

from module_analyzer.config import TimeoutSettings
from module_analyzer.errors import ConfigError
from module_analyzer.phases import (
    AnalysisPhase,
    ConversionPhase,
    PhaseDriver,
    PhaseSelection,
    ValidationPhase,
    discover_markdown_files,
)
from module_analyzer.phases.base import resolve_timeout
from module_analyzer.phases.files import mirror_output_path
from module_analyzer.scheduler.backend import CliWorkerBackend
from module_analyzer.scheduler.dispatcher import Dispatcher
from module_analyzer.store import Complexity, DocumentStore, ItemKey, RetryQueue

pytestmark = [
    allure.epic("Phases"),
    allure.feature("Analysis, Validation, Conversion"),
]


def _write_markdown(root: Path, *relative: str) -> None:
    for name in relative:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"# {path.stem}\n", "utf-8")


def _analysis_phase(tmp_path: Path, document_path: Path, **overrides) -> AnalysisPhase:
    options = {
        "store": DocumentStore(document_path),
        "retry_queue": RetryQueue(tmp_path / "state" / "failed_modules.txt"),
        "backend": CliWorkerBackend(poll_interval_seconds=0.02),
        "command_template": ECHO_WORKER_COMMAND_TEMPLATE,
        "log_dir": tmp_path / "state" / "logs",
        "timeouts": TimeoutSettings(),
        "queue_file": tmp_path / "state" / "analysis_queue.txt",
    }
    options.update(overrides)
    return AnalysisPhase(**options)


def test_discover_markdown_files_sorted_without_backups(tmp_path: Path) -> None:
    docs = tmp_path / "Documents"
    _write_markdown(docs, "b.md", "Employee/a.md", "a.md", "a.backup.md", "DOCX/old.md")
    (docs / "notes.txt").write_text("x", "utf-8")

    files = discover_markdown_files(docs, exclude_dirs=(docs / "DOCX",))

    assert [file.display_name for file in files] == ["Employee/a.md", "a.md", "b.md"]
    assert files[0].log_stem == "Employee_a"


def test_missing_docs_dir_yields_no_files(tmp_path: Path, caplog) -> None:
    with caplog.at_level("WARNING"):
        assert discover_markdown_files(tmp_path / "absent") == []
    assert "Documents directory not found" in caplog.text


def test_mirror_output_path_keeps_relative_layout(tmp_path: Path) -> None:
    docs = tmp_path / "Documents"

    assert mirror_output_path(docs / "Employee" / "Profile.md", docs, tmp_path / "DOCX") == (
        tmp_path / "DOCX" / "Employee" / "Profile.docx"
    )


def test_resolve_timeout_precedence() -> None:
    assert resolve_timeout(600, no_timeout=False, custom_timeout=None) == 600
    assert resolve_timeout(600, no_timeout=False, custom_timeout=42) == 42
    assert resolve_timeout(600, no_timeout=True, custom_timeout=42) == 0


def test_analysis_timeout_follows_complexity(tmp_path: Path, document_path: Path) -> None:
    phase = _analysis_phase(tmp_path, document_path)
    timeouts = {item.id: phase.timeout_for(item) for item in phase.store.items()}

    assert timeouts == {"Employee": 900, "Profile": 600, "Documents": 300, "Payroll": 900}


def test_analysis_phase_marks_successes_and_records_failures(
    tmp_path: Path,
    document_path: Path,
    monkeypatch,
) -> None:
    monkeypatch.setenv("MODULE_ANALYZER_ECHO_FAIL", "Payroll")
    phase = _analysis_phase(tmp_path, document_path)

    summary = Dispatcher(limit=2, poll_interval_seconds=0.02).run(phase)

    assert summary.launch_order == ["Employee/Documents", "Employee/Profile", "Employee", "Payroll"]
    assert (phase.counters.succeeded, phase.counters.failed) == (3, 1)
    payload = read_document(document_path)
    assert payload["modules"][0]["analyzed"] is True
    assert "analyzed" not in payload["modules"][1]
    assert [record.key for record in phase.tracker.retry_queue.records()] == [ItemKey("Payroll")]
    log_dir = tmp_path / "state" / "logs"
    assert "/analyze Employee/Profile" in (log_dir / "Employee_Profile.log").read_text("utf-8")
    assert (tmp_path / "state" / "analysis_queue.txt").is_file()


def test_analysis_phase_skips_analyzed_items(tmp_path: Path, document_path: Path) -> None:
    store = DocumentStore(document_path)
    store.mark_analyzed(ItemKey("Documents", "Employee"))
    phase = _analysis_phase(tmp_path, document_path, store=store)

    summary = Dispatcher().run(phase)

    assert "Employee/Documents" not in summary.launch_order
    assert phase.counters.skipped == 1
    assert phase.counters.succeeded == 3


def test_analysis_filter_selects_one_child(tmp_path: Path, document_path: Path) -> None:
    before = read_document(document_path)
    phase = _analysis_phase(tmp_path, document_path, module_filter="Employee/Profile")

    summary = Dispatcher().run(phase)

    assert summary.launch_order == ["Employee/Profile"]
    assert phase.counters.skipped == 3
    after = read_document(document_path)
    after["modules"][0]["subModules"][0].pop("analyzed")
    assert after == before


def test_unresolved_filter_skips_everything(tmp_path: Path, document_path: Path) -> None:
    phase = _analysis_phase(tmp_path, document_path, module_filter="Ghost")

    summary = Dispatcher().run(phase)

    assert summary.launched == 0
    assert phase.counters.skipped == 4


def test_retry_run_only_processes_failed_items(
    tmp_path: Path,
    document_path: Path,
    monkeypatch,
) -> None:
    monkeypatch.setenv("MODULE_ANALYZER_ECHO_FAIL", "Payroll,Profile")
    Dispatcher().run(_analysis_phase(tmp_path, document_path))

    monkeypatch.setenv("MODULE_ANALYZER_ECHO_FAIL", "Payroll")
    retry_phase = _analysis_phase(tmp_path, document_path, retry_failed=True)
    summary = Dispatcher().run(retry_phase)

    assert summary.launch_order == ["Employee/Profile", "Payroll"]
    assert (retry_phase.counters.succeeded, retry_phase.counters.failed) == (1, 1)
    assert [record.key for record in retry_phase.tracker.retry_queue.records()] == [
        ItemKey("Payroll"),
    ]
    assert DocumentStore(document_path).is_analyzed(ItemKey("Profile", "Employee"))


def test_retry_run_with_empty_set_launches_nothing(tmp_path: Path, document_path: Path) -> None:
    phase = _analysis_phase(tmp_path, document_path, retry_failed=True)

    summary = Dispatcher().run(phase)

    assert summary.launched == 0
    assert phase.counters.total == 0


def test_dry_run_analysis_spawns_nothing(tmp_path: Path, document_path: Path) -> None:
    before = document_path.read_text("utf-8")
    phase = _analysis_phase(
        tmp_path,
        document_path,
        command_template="module-analyzer-no-such-worker {instruction}",
        dry_run=True,
    )

    summary = Dispatcher(dry_run=True).run(phase)

    assert phase.counters.succeeded == 4
    assert summary.launched == 4
    assert document_path.read_text("utf-8") == before
    assert not (tmp_path / "state" / "logs").exists()


def test_missing_worker_is_a_launch_failure(tmp_path: Path, document_path: Path) -> None:
    phase = _analysis_phase(
        tmp_path,
        document_path,
        command_template="module-analyzer-no-such-worker {instruction}",
    )

    Dispatcher().run(phase)

    assert phase.counters.failed == 4
    assert len(phase.tracker.retry_queue) == 4


def test_validation_phase_runs_worker_per_file(tmp_path: Path) -> None:
    docs = tmp_path / "Documents"
    _write_markdown(docs, "Employee.md", "Payroll.md")
    phase = ValidationPhase(
        docs_dir=docs,
        backend=CliWorkerBackend(poll_interval_seconds=0.02),
        command_template=ECHO_WORKER_COMMAND_TEMPLATE,
        log_dir=tmp_path / "logs",
    )

    Dispatcher().run(phase)

    assert phase.counters.succeeded == 2
    log_text = (tmp_path / "logs" / "validation_Employee.log").read_text("utf-8")
    assert f"/validate-markdown {docs / 'Employee.md'} --auto-fix" in log_text


def test_conversion_phase_mirrors_outputs(tmp_path: Path) -> None:
    docs = tmp_path / "Documents"
    _write_markdown(docs, "Employee/Profile.md")
    phase = ConversionPhase(
        docs_dir=docs,
        backend=CliWorkerBackend(poll_interval_seconds=0.02),
        command_template=ECHO_CONVERTER_COMMAND_TEMPLATE,
        output_root=tmp_path / "DOCX",
        reference_doc=tmp_path / "reference.docx",
        log_dir=tmp_path / "logs",
    )

    Dispatcher().run(phase)

    assert phase.counters.succeeded == 1
    assert (tmp_path / "DOCX" / "Employee" / "Profile.docx").is_file()
    assert (tmp_path / "logs" / "conversion_Employee_Profile.log").is_file()


def test_blocked_output_directory_fails_only_that_file(tmp_path: Path) -> None:
    docs = tmp_path / "Documents"
    _write_markdown(docs, "Employee/Profile.md", "Payroll.md")
    (tmp_path / "DOCX").mkdir()
    (tmp_path / "DOCX" / "Employee").write_text("not a directory", "utf-8")
    phase = ConversionPhase(
        docs_dir=docs,
        backend=CliWorkerBackend(poll_interval_seconds=0.02),
        command_template=ECHO_CONVERTER_COMMAND_TEMPLATE,
        output_root=tmp_path / "DOCX",
        reference_doc=tmp_path / "reference.docx",
        log_dir=tmp_path / "logs",
    )

    summary = Dispatcher().run(phase)

    assert summary.launch_order == ["Employee/Profile.md", "Payroll.md"]
    assert (phase.counters.succeeded, phase.counters.failed) == (1, 1)
    assert (tmp_path / "DOCX" / "Payroll.docx").is_file()


def test_unwritable_log_directory_is_a_launch_failure(tmp_path: Path) -> None:
    docs = tmp_path / "Documents"
    _write_markdown(docs, "Employee.md")
    (tmp_path / "logs").write_text("not a directory", "utf-8")
    phase = ValidationPhase(
        docs_dir=docs,
        backend=CliWorkerBackend(poll_interval_seconds=0.02),
        command_template=ECHO_WORKER_COMMAND_TEMPLATE,
        log_dir=tmp_path / "logs",
    )

    Dispatcher().run(phase)

    assert phase.counters.failed == 1


def test_conversion_unavailable_is_reported_and_skipped(tmp_path: Path) -> None:
    docs = tmp_path / "Documents"
    _write_markdown(docs, "Employee.md")
    conversion = ConversionPhase(
        docs_dir=docs,
        backend=CliWorkerBackend(),
        command_template="module-analyzer-no-such-pandoc {source} -o {output}",
        output_root=tmp_path / "DOCX",
        reference_doc=tmp_path / "reference.docx",
        log_dir=tmp_path / "logs",
    )

    report = PhaseDriver(dispatcher=Dispatcher(), conversion=conversion).run()

    assert report.conversion_unavailable
    assert report.get("conversion") is None
    assert not (tmp_path / "DOCX").exists()


def test_driver_runs_selected_phases_in_order(tmp_path: Path, document_path: Path) -> None:
    docs = tmp_path / "Documents"
    _write_markdown(docs, "Employee.md")
    driver = PhaseDriver(
        dispatcher=Dispatcher(),
        analysis=_analysis_phase(tmp_path, document_path),
        validation=ValidationPhase(
            docs_dir=docs,
            backend=CliWorkerBackend(poll_interval_seconds=0.02),
            command_template=ECHO_WORKER_COMMAND_TEMPLATE,
            log_dir=tmp_path / "logs",
        ),
    )

    report = driver.run()

    assert list(report.summaries) == ["analysis", "validation"]
    assert not report.interrupted


def test_phase_selection_flags() -> None:
    assert PhaseSelection.from_flags() == PhaseSelection(True, True, True)
    assert PhaseSelection.from_flags(skip_conversion=True) == PhaseSelection(True, True, False)
    assert PhaseSelection.from_flags(validation_only=True) == PhaseSelection(False, True, False)
    assert PhaseSelection.from_flags(conversion_only=True) == PhaseSelection(False, False, True)
    with pytest.raises(ConfigError, match="mutually exclusive"):
        PhaseSelection.from_flags(validation_only=True, conversion_only=True)


def test_complexity_parse_defaults_to_medium() -> None:
    assert Complexity.parse(" High ") is Complexity.HIGH
    assert Complexity.parse(None) is Complexity.MEDIUM


def test_interrupted_run_records_in_flight_items_for_retry(
    tmp_path: Path,
    document_path: Path,
    monkeypatch,
) -> None:
    monkeypatch.setenv("MODULE_ANALYZER_ECHO_SLEEP", "10")
    dispatcher = Dispatcher(limit=2, poll_interval_seconds=0.02)
    analysis = _analysis_phase(tmp_path, document_path)
    validation = ValidationPhase(
        docs_dir=tmp_path / "Documents",
        backend=CliWorkerBackend(poll_interval_seconds=0.02),
        command_template=ECHO_WORKER_COMMAND_TEMPLATE,
        log_dir=tmp_path / "logs",
    )
    timer = threading.Timer(1.0, dispatcher.shutdown.request, kwargs={"signal_name": "SIGTERM"})
    timer.start()
    try:
        report = PhaseDriver(dispatcher=dispatcher, analysis=analysis, validation=validation).run()
    finally:
        timer.cancel()

    assert report.interrupted
    assert list(report.summaries) == ["analysis"]
    assert analysis.counters.failed == 2
    assert analysis.counters.succeeded == 0
    assert sorted(record.id for record in analysis.tracker.retry_queue.records()) == [
        "Documents",
        "Profile",
    ]

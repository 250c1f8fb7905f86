"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import pytest

ECHO_WORKER_COMMAND_TEMPLATE = (
    f"{sys.executable} -m module_analyzer.scheduler.backend.echo_worker {{instruction}}"
)
ECHO_CONVERTER_COMMAND_TEMPLATE = (
    f"{sys.executable} -m module_analyzer.scheduler.backend.echo_worker "
    "convert {source} --output {output}"
)


def sample_payload() -> dict:
    """Employee with two sub-modules plus a top-level Payroll module."""

    return {
        "project": "hrms",
        "modules": [
            {
                "name": "Employee",
                "complexity": "high",
                "subModules": [
                    {"name": "Profile", "complexity": "medium"},
                    {"name": "Documents", "complexity": "low"},
                ],
            },
            {"name": "Payroll", "complexity": "high"},
        ],
    }


def write_document(path: Path, payload: dict | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload or sample_payload(), indent=2), "utf-8")
    return path


def read_document(path: Path) -> dict:
    return json.loads(path.read_text("utf-8"))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Drop any MODULE_ANALYZER_* settings leaking in from the developer shell."""

    for name in list(os.environ):
        if name.startswith("MODULE_ANALYZER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def document_path(tmp_path: Path) -> Path:
    return write_document(tmp_path / "module-structure.json")


@pytest.fixture()
def echo_worker(monkeypatch, tmp_path: Path):
    """Point the analysis worker and converter at the local echo worker."""

    monkeypatch.setenv("MODULE_ANALYZER_WORKER_COMMAND", ECHO_WORKER_COMMAND_TEMPLATE)
    monkeypatch.setenv("MODULE_ANALYZER_CONVERSION_COMMAND", ECHO_CONVERTER_COMMAND_TEMPLATE)
    monkeypatch.setenv("MODULE_ANALYZER_DOCS_DIR", str(tmp_path / "Documents"))
    monkeypatch.setenv("MODULE_ANALYZER_DOCX_OUTPUT_DIR", str(tmp_path / "DOCX"))
    monkeypatch.setenv("MODULE_ANALYZER_REFERENCE_DOC", str(tmp_path / "reference.docx"))
    monkeypatch.setenv("MODULE_ANALYZER_POLL_INTERVAL_SECONDS", "0.05")
    return ECHO_WORKER_COMMAND_TEMPLATE

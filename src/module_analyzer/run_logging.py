"""Run-wide logging: ``analyze.log`` in the state dir plus console output."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER = "module_analyzer"


@contextmanager
def configure_run_logging(main_log: Path, *, verbose: bool = False) -> Iterator[logging.Logger]:
    """Attach file and console handlers to the package logger for one run.

    The file always receives DEBUG records; the console shows INFO, or DEBUG
    with ``verbose``. Both handlers are removed and closed on exit.
    """

    main_log.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    file_handler = logging.FileHandler(main_log, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(formatter)

    logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = logger.level
    logger.setLevel(logging.DEBUG)
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    try:
        yield logger
    finally:
        for handler in (file_handler, console_handler):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(previous_level)

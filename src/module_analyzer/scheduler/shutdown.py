"""Cooperative shutdown flag driven by SIGINT/SIGTERM."""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class ShutdownController:
    """Shared stop flag checked by the dispatcher and by running workers.

    Signal handlers only flip the flag; all cleanup happens on the threads
    that observe it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.signal_name: str | None = None

    @property
    def requested(self) -> bool:
        return self._event.is_set()

    def __call__(self) -> bool:
        return self._event.is_set()

    def request(self, *, signal_name: str) -> None:
        if self._event.is_set():
            return
        self.signal_name = signal_name
        self._event.set()
        logger.warning("Shutdown requested (%s); terminating active workers", signal_name)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if shutdown was requested meanwhile."""

        if seconds <= 0:
            return self.requested
        deadline = time.monotonic() + seconds
        while not self.requested and time.monotonic() < deadline:
            self._event.wait(min(0.1, max(0.0, deadline - time.monotonic())))
        return self.requested

    @contextmanager
    def signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

"""Quiescence detection for the csync2 server.

csync2 has no "are you busy" API. When started with -t it prints timing
records, ending each completed operation with a TOTALTIME line. The server
is therefore considered quiet when its status log is empty (never ran since
the last reset) or when its last line is such a completion marker.

Polling is isolated here so callers only see wait_until_quiet(), which can
be bounded by a timeout.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from pathlib import Path

from csynctrigger.core.errors import QuiescenceTimeoutError
from csynctrigger.core.types import SyncRunState

logger = logging.getLogger(__name__)

COMPLETION_MARKER = "TOTALTIME"

# Bytes read from the end of the log to find its last line
TAIL_BYTES = 4096

# Log a reminder every this many polls while waiting
WAIT_LOG_EVERY = 20


def read_last_line(path: Path, tail_bytes: int = TAIL_BYTES) -> str | None:
    """Return the last non-blank line of a file.

    Args:
        path: File to inspect.
        tail_bytes: How much of the end of the file to read.

    Returns:
        The last line, "" if the file is empty or blank, None if missing.
    """
    try:
        with open(path, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            f.seek(max(0, size - tail_bytes))
            data = f.read()
    except FileNotFoundError:
        return None

    for line in reversed(data.decode("utf-8", errors="replace").splitlines()):
        if line.strip():
            return line.strip()
    return ""


class QuiescenceMonitor:
    """Watches the csync2 status log to tell when the server is idle.

    Usage:
        monitor = QuiescenceMonitor(Path("csync_server.log"), poll_interval=0.5)
        monitor.wait_until_quiet()   # blocks while csync2 is busy
    """

    def __init__(
        self,
        status_log: Path,
        poll_interval: float = 0.5,
        timeout: float = 0.0,
        marker: str = COMPLETION_MARKER,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the monitor.

        Args:
            status_log: Log file the csync2 server writes to.
            poll_interval: Seconds between polls.
            timeout: Give up after this many seconds (0 = never).
            marker: Text identifying a completion record.
            sleep: Sleep function (injectable for tests).
            clock: Monotonic clock (injectable for tests).
        """
        self._status_log = Path(status_log)
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._marker = marker
        self._sleep = sleep
        self._clock = clock

    @property
    def status_log(self) -> Path:
        """Get the status log path."""
        return self._status_log

    def state(self) -> SyncRunState:
        """Infer the server state from the last status line."""
        last = read_last_line(self._status_log)
        if not last or self._marker in last:
            return SyncRunState.QUIESCENT
        return SyncRunState.BUSY

    def is_quiet(self) -> bool:
        """Check if the server is currently quiet."""
        return self.state() == SyncRunState.QUIESCENT

    def wait_until_quiet(self) -> None:
        """Block until the server is quiet.

        Raises:
            QuiescenceTimeoutError: If a timeout is set and the server is
                still busy when it expires.
        """
        if self.is_quiet():
            return

        started = self._clock()
        polls = 0
        logger.info("Waiting for csync2 server...")

        while True:
            self._sleep(self._poll_interval)
            polls += 1

            if self.is_quiet():
                logger.debug("csync2 server quiet after %.1fs", self._clock() - started)
                return

            waited = self._clock() - started
            if self._timeout > 0 and waited >= self._timeout:
                last = read_last_line(self._status_log) or ""
                logger.error(
                    "csync2 server still busy after %.1fs, giving up (last line: %s)",
                    waited,
                    last,
                )
                raise QuiescenceTimeoutError(waited, last)

            if polls % WAIT_LOG_EVERY == 0:
                logger.info("Still waiting for csync2 server... (%.0fs elapsed)", waited)

    def clear(self) -> None:
        """Truncate the status log."""
        if self._status_log.exists():
            with open(self._status_log, "wb"):
                pass
            logger.debug("Cleared status log %s", self._status_log)

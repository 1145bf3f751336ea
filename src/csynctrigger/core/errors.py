"""Exception hierarchy for csynctrigger.

Fatal errors (ConfigError, SyncServerError) abort the controller with exit
code 1. QuiescenceTimeoutError is absorbed by the coordinator tick.
"""

from __future__ import annotations


class SyncTriggerError(Exception):
    """Base exception for csynctrigger errors."""


class ConfigError(SyncTriggerError):
    """Invalid or unusable configuration (e.g. no include locations)."""


class SyncServerError(SyncTriggerError):
    """The csync2 server could not be started."""


class QuiescenceTimeoutError(SyncTriggerError):
    """The csync2 server did not report completion within the timeout.

    Attributes:
        waited: Seconds spent waiting before giving up.
        last_line: Last status log line seen (may be empty).
    """

    def __init__(self, waited: float, last_line: str = "") -> None:
        self.waited = waited
        self.last_line = last_line
        super().__init__(
            f"csync2 server still busy after {waited:.1f}s "
            f"(last status line: {last_line!r})"
        )

"""Shared types and dataclasses for sync coordination.

This module provides:
- CommandResult: Outcome of a single csync2 invocation
- SyncKind, SyncReport: Outcome of a trigger operation
- CoordinatorState, TickOutcome, CoordinatorStats: Coordinator state
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, auto


@dataclass
class CommandResult:
    """Result of one csync2 invocation.

    Attributes:
        args: Full command line that was run.
        returncode: Process exit code, or None if it could not be spawned.
        elapsed: Wall-clock seconds spent in the command.
        error: Error message when the process could not be spawned.
    """

    args: list[str]
    returncode: int | None
    elapsed: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Check if the command exited with status 0."""
        return self.returncode == 0

    def describe(self) -> str:
        """Short human-readable description for log lines."""
        command = " ".join(self.args)
        if self.error:
            return f"{command!r} failed: {self.error}"
        return f"{command!r} exited with status {self.returncode}"


# =============================================================================
# Trigger Types
# =============================================================================


class SyncKind(IntEnum):
    """Kind of sync operation issued by the trigger."""

    FULL = auto()
    INCREMENTAL = auto()
    RESET = auto()


@dataclass
class SyncReport:
    """Outcome of a trigger operation.

    Attributes:
        kind: Which operation produced this report.
        results: Every csync2 command run, in issue order (parallel peer
            updates are listed in peer order).
        paths: Number of paths given to the check phase.
    """

    kind: SyncKind
    results: list[CommandResult] = field(default_factory=list)
    paths: int = 0

    @property
    def ok(self) -> bool:
        """Check if every command succeeded."""
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> list[CommandResult]:
        """Commands that failed."""
        return [r for r in self.results if not r.ok]

    @property
    def first_failure(self) -> CommandResult | None:
        """First failed command, if any."""
        failures = self.failures
        return failures[0] if failures else None


# =============================================================================
# Coordinator Types
# =============================================================================


class CoordinatorState(IntEnum):
    """State of the coordinator."""

    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()


class TickOutcome(IntEnum):
    """What a single coordinator tick did."""

    IDLE = auto()  # Nothing queued, no timer due
    BATCH = auto()  # Incremental sync of a batch
    LARGE_BATCH = auto()  # Batch too large, reset and full sync
    RESET = auto()  # Reset line count reached
    FULL_SYNC = auto()  # Periodic (or pending) full sync
    TIMED_OUT = auto()  # Server never went quiet
    ERROR = auto()  # Unexpected error, logged


@dataclass
class CoordinatorStats:
    """Statistics for the coordinator."""

    ticks: int = 0
    batches: int = 0
    lines_read: int = 0
    paths_checked: int = 0
    full_syncs: int = 0
    resets: int = 0
    large_batches: int = 0
    failures: int = 0
    timeouts: int = 0
    errors: int = 0

"""Event aggregation and csync2 sync triggering.

Architecture:
    FileWatcher → ExclusionFilter → EventQueue → SyncCoordinator → SyncTrigger → csync2

Components:
- **FileWatcher**: Watches include locations, appends changed paths to the queue
- **ExclusionFilter**: Drops paths under csync2 exclude locations
- **EventQueue / QueueCursor**: Append-only queue file and its read position
- **BatchAggregator**: Deduplicates queued lines, flags large batches
- **QuiescenceMonitor**: Waits for the csync2 server status log to show completion
- **SyncTrigger**: Issues full, incremental and reset syncs
- **SyncCoordinator**: Periodic tick loop deciding which sync to run

Process adapters:
- CsyncEngine: csync2 client commands (check, update, full resync)
- CsyncServer: Background csync2 server owning the status log
"""

from csynctrigger.core.errors import (
    ConfigError,
    QuiescenceTimeoutError,
    SyncServerError,
    SyncTriggerError,
)
from csynctrigger.sync.batch import (
    BatchAggregator,
    aggregate,
    collapse_nested,
    is_large_batch,
)
from csynctrigger.sync.coordinator import CoordinatorContext, SyncCoordinator
from csynctrigger.sync.csync import CsyncEngine, CsyncServer
from csynctrigger.sync.exclude import ExclusionFilter, accept
from csynctrigger.sync.queue import EventQueue, QueueCursor, QueueRead
from csynctrigger.sync.quiescence import COMPLETION_MARKER, QuiescenceMonitor
from csynctrigger.sync.trigger import SyncTrigger
from csynctrigger.sync.types import (
    CommandResult,
    CoordinatorState,
    CoordinatorStats,
    SyncKind,
    SyncReport,
    TickOutcome,
)
from csynctrigger.sync.watcher import (
    DEFAULT_EVENT_KINDS,
    ChangeKind,
    FileWatcher,
    QueueingEventHandler,
    parse_event_kinds,
)

__all__ = [
    # Errors
    "ConfigError",
    "QuiescenceTimeoutError",
    "SyncServerError",
    "SyncTriggerError",
    # Batch
    "BatchAggregator",
    "aggregate",
    "collapse_nested",
    "is_large_batch",
    # Coordinator
    "CoordinatorContext",
    "SyncCoordinator",
    # csync2
    "CsyncEngine",
    "CsyncServer",
    # Exclusion
    "ExclusionFilter",
    "accept",
    # Queue
    "EventQueue",
    "QueueCursor",
    "QueueRead",
    # Quiescence
    "COMPLETION_MARKER",
    "QuiescenceMonitor",
    # Trigger
    "SyncTrigger",
    # Types
    "CommandResult",
    "CoordinatorState",
    "CoordinatorStats",
    "SyncKind",
    "SyncReport",
    "TickOutcome",
    # Watcher
    "DEFAULT_EVENT_KINDS",
    "ChangeKind",
    "FileWatcher",
    "QueueingEventHandler",
    "parse_event_kinds",
]

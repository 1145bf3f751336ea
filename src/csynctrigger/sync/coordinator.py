"""Sync coordinator: the queue-reading tick loop.

This module provides:
- CoordinatorContext: All mutable coordinator state in one object
- SyncCoordinator: Reads the event queue periodically and dispatches syncs

Every check_interval the coordinator reads the unread queue lines and
decides what to do:

    | Read      | Condition                             | Action                |
    |-----------|---------------------------------------|-----------------------|
    | empty     | cursor >= reset_line_count            | reset and full sync   |
    | empty     | full sync pending or interval elapsed | full sync             |
    | empty     | otherwise                             | nothing               |
    | non-empty | distinct paths >= batch threshold     | reset and full sync   |
    | non-empty | otherwise                             | incremental sync      |

The cursor always advances by the number of raw lines read, duplicates
included, since they occupy queue positions too.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from csynctrigger.core.errors import QuiescenceTimeoutError
from csynctrigger.sync.queue import QueueCursor
from csynctrigger.sync.types import (
    CoordinatorState,
    CoordinatorStats,
    SyncReport,
    TickOutcome,
)

if TYPE_CHECKING:
    from csynctrigger.core.config import ThresholdConfig
    from csynctrigger.sync.batch import BatchAggregator
    from csynctrigger.sync.queue import EventQueue
    from csynctrigger.sync.trigger import SyncTrigger

logger = logging.getLogger(__name__)


@dataclass
class CoordinatorContext:
    """Mutable state of a coordinator.

    Attributes:
        cursor: Read position in the event queue (shared with the trigger,
            which resets it together with the queue).
        state: Lifecycle state.
        last_full_sync: Clock value at the end of the last full sync.
        full_sync_pending: Run a full sync on the next empty tick.
        stats: Counters.
    """

    cursor: QueueCursor = field(default_factory=QueueCursor)
    state: CoordinatorState = CoordinatorState.STOPPED
    last_full_sync: float = 0.0
    full_sync_pending: bool = False
    stats: CoordinatorStats = field(default_factory=CoordinatorStats)


class SyncCoordinator:
    """Central loop reading the event queue and triggering syncs.

    Usage:
        context = CoordinatorContext()
        trigger = SyncTrigger(engine, monitor, queue, context.cursor, peers)
        coordinator = SyncCoordinator(queue, trigger, aggregator, config, context)

        coordinator.start_up()   # reset queue, initial full sync
        coordinator.run()        # until stop() is called
    """

    def __init__(
        self,
        queue: EventQueue,
        trigger: SyncTrigger,
        aggregator: BatchAggregator,
        config: ThresholdConfig,
        context: CoordinatorContext | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the coordinator.

        Args:
            queue: Event queue to read.
            trigger: Sync trigger, built with ``context.cursor``.
            aggregator: Batch aggregator.
            config: Thresholds and intervals.
            context: Mutable state (a fresh one by default).
            clock: Monotonic clock (injectable for tests).
        """
        self._queue = queue
        self._trigger = trigger
        self._aggregator = aggregator
        self._config = config
        self._context = context or CoordinatorContext()
        self._clock = clock
        self._stop_event = threading.Event()

    @property
    def context(self) -> CoordinatorContext:
        """Get the coordinator state."""
        return self._context

    @property
    def state(self) -> CoordinatorState:
        """Get current coordinator state."""
        return self._context.state

    @property
    def stats(self) -> CoordinatorStats:
        """Get coordinator statistics."""
        return self._context.stats

    @property
    def cursor(self) -> QueueCursor:
        """Get the queue cursor."""
        return self._context.cursor

    def start_up(self) -> None:
        """Reset the queue and run the initial full sync.

        Must run after the watcher started, so no change made between
        server start and the first queue read is missed.
        """
        ctx = self._context
        ctx.state = CoordinatorState.STARTING
        self._queue.reset(ctx.cursor)

        logger.info("Initial full sync")
        try:
            self._full_sync()
        except QuiescenceTimeoutError:
            self._on_timeout()

        ctx.state = CoordinatorState.RUNNING

    def tick(self) -> TickOutcome:
        """Read the queue once and dispatch the resulting work."""
        ctx = self._context
        ctx.stats.ticks += 1

        try:
            return self._tick()
        except QuiescenceTimeoutError:
            self._on_timeout()
            return TickOutcome.TIMED_OUT
        except Exception:
            logger.exception("Error during coordinator tick")
            ctx.stats.errors += 1
            return TickOutcome.ERROR

    def _tick(self) -> TickOutcome:
        ctx = self._context
        read = self._queue.read_from(ctx.cursor)

        if read.truncated:
            logger.warning("Queue file was truncated externally, resetting read position")
            ctx.cursor.reset()
            ctx.full_sync_pending = True
            return TickOutcome.IDLE

        if not read:
            # Quiet time: check for reset, then for a regular full sync
            if self._config.reset_line_count > 0 and ctx.cursor.line >= self._config.reset_line_count:
                self._reset_and_full_sync()
                ctx.stats.resets += 1
                return TickOutcome.RESET

            if ctx.full_sync_pending or self._full_sync_due():
                self._full_sync()
                return TickOutcome.FULL_SYNC

            return TickOutcome.IDLE

        logger.info("Processing queue (line %d)", ctx.cursor.line)
        ctx.cursor.advance(len(read), read.end_offset)
        ctx.stats.lines_read += len(read)

        batch = self._aggregator.aggregate(read.lines)
        if not batch:
            return TickOutcome.IDLE

        if self._aggregator.is_large(batch):
            logger.warning("Large batch (%d files), falling back to full sync", len(batch))
            ctx.stats.large_batches += 1
            self._reset_and_full_sync()
            return TickOutcome.LARGE_BATCH

        report = self._trigger.incremental_sync(batch)
        ctx.stats.batches += 1
        ctx.stats.paths_checked += len(batch)
        self._record(report)
        return TickOutcome.BATCH

    def _full_sync_due(self) -> bool:
        interval = self._config.full_sync_interval
        return interval > 0 and (self._clock() - self._context.last_full_sync) > interval

    def _full_sync(self) -> None:
        report = self._trigger.full_sync()
        self._after_full_sync(report)

    def _reset_and_full_sync(self) -> None:
        report = self._trigger.reset_and_full_sync()
        self._after_full_sync(report)

    def _after_full_sync(self, report: SyncReport) -> None:
        ctx = self._context
        ctx.last_full_sync = self._clock()
        ctx.full_sync_pending = False
        ctx.stats.full_syncs += 1
        self._record(report)

    def _record(self, report: SyncReport) -> None:
        self._context.stats.failures += len(report.failures)

    def _on_timeout(self) -> None:
        # The server may still be applying an earlier run, reconcile later
        ctx = self._context
        ctx.stats.timeouts += 1
        ctx.full_sync_pending = True
        logger.warning("Sync skipped, full sync scheduled for the next quiet tick")

    def run(self) -> None:
        """Tick every check_interval until stop() is called."""
        ctx = self._context
        if ctx.state != CoordinatorState.STOPPING:
            ctx.state = CoordinatorState.RUNNING
        logger.debug("Coordinator loop started")

        try:
            while not self._stop_event.wait(self._config.check_interval):
                self.tick()
        finally:
            ctx.state = CoordinatorState.STOPPED
            logger.info("Coordinator stopped")

    def stop(self) -> None:
        """Ask the loop to exit after the current tick."""
        if self._context.state == CoordinatorState.RUNNING:
            self._context.state = CoordinatorState.STOPPING
            logger.info("Coordinator stopping...")
        self._stop_event.set()

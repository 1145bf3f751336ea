"""Sync trigger: issues csync2 command sequences.

Incremental and full syncs are split in two phases so outstanding dirty
files are processed regardless of when or where they were marked:

1. Check: mark changed files dirty (queued paths, or the whole tree)
2. Update: push every dirty file to the peers

With parallel updates each peer gets its own ``csync2 -ub -P <peer>``
process; the phase only returns once all of them finished.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import TYPE_CHECKING

from csynctrigger.sync.types import CommandResult, SyncKind, SyncReport

if TYPE_CHECKING:
    from csynctrigger.sync.csync import CsyncEngine
    from csynctrigger.sync.queue import EventQueue, QueueCursor
    from csynctrigger.sync.quiescence import QuiescenceMonitor

logger = logging.getLogger(__name__)

# Path checked recursively for a full sync
ROOT_PATH = "/"


def join_threads(threads: Sequence[threading.Thread]) -> None:
    """Wait for every thread, even when interrupted.

    A KeyboardInterrupt (Ctrl+C or SIGTERM) while waiting is re-raised only
    once all threads have finished, so no csync2 update outlives the
    controller.
    """
    try:
        for thread in threads:
            thread.join()
    except KeyboardInterrupt:
        logger.warning("Interrupted, waiting for running peer updates to finish")
        for thread in threads:
            thread.join()
        raise


class SyncTrigger:
    """Issues full, incremental and reset syncs against csync2.

    Every operation first waits for the csync2 server to be quiet, and a
    lock keeps operations of this trigger from overlapping each other.
    """

    def __init__(
        self,
        engine: CsyncEngine,
        monitor: QuiescenceMonitor,
        queue: EventQueue,
        cursor: QueueCursor,
        peers: Sequence[str] = (),
        parallel_updates: bool = True,
    ) -> None:
        """Initialize the trigger.

        Args:
            engine: csync2 command runner.
            monitor: Quiescence monitor for the csync2 server.
            queue: Event queue, truncated on reset.
            cursor: Coordinator cursor, reset with the queue.
            peers: Peer names, in configured order.
            parallel_updates: Update peers concurrently.
        """
        self._engine = engine
        self._monitor = monitor
        self._queue = queue
        self._cursor = cursor
        self._peers = list(peers)
        self._parallel = parallel_updates
        self._lock = threading.RLock()

    @property
    def peers(self) -> list[str]:
        """Get the peer names."""
        return list(self._peers)

    @property
    def parallel_updates(self) -> bool:
        """Check if peers are updated in parallel."""
        return self._parallel

    def full_sync(self) -> SyncReport:
        """Check the whole tree and update every peer."""
        with self._lock:
            logger.info("Full sync")
            self._monitor.wait_until_quiet()

            report = SyncReport(kind=SyncKind.FULL)
            if self._parallel and self._peers:
                logger.info("Checking all files")
                report.results.append(self._engine.check([ROOT_PATH], recursive=True))
                report.results.extend(self._update_peers_parallel())
            else:
                logger.info("Checking and updating peers sequentially")
                report.results.append(self._engine.full_resync())

            self._log_done(report)
            return report

    def incremental_sync(self, paths: Sequence[str]) -> SyncReport:
        """Check the given paths, then push all dirty files.

        The update phase always pushes the whole outstanding dirty set, not
        only files of this batch.

        Args:
            paths: Distinct paths to check.
        """
        report = SyncReport(kind=SyncKind.INCREMENTAL, paths=len(paths))
        if not paths:
            return report

        with self._lock:
            self._monitor.wait_until_quiet()

            logger.info("Checking %d files", len(paths))
            report.results.append(self._engine.check(paths, recursive=True))
            report.results.extend(self._update())

            self._log_done(report)
            return report

    def reset_and_full_sync(self) -> SyncReport:
        """Reset the queue and status log, then run a full sync.

        The queue is emptied and the cursor reset before any command is
        issued, so events arriving during the full sync are read afterwards.
        """
        with self._lock:
            logger.info("Reset queue log")
            self._queue.reset(self._cursor)

            self._monitor.wait_until_quiet()
            self._monitor.clear()

            report = self.full_sync()
            report.kind = SyncKind.RESET
            return report

    def _update(self) -> list[CommandResult]:
        """Run the update phase with the configured policy."""
        if self._parallel and self._peers:
            return self._update_peers_parallel()

        logger.info("Updating peers sequentially")
        return [self._engine.update()]

    def _update_peers_parallel(self) -> list[CommandResult]:
        """Update every peer in its own thread and wait for all of them.

        Returns:
            Results in peer order.

        Raises:
            Exception: The first exception raised by an update thread, once
                every thread has finished.
        """
        results: list[CommandResult | None] = [None] * len(self._peers)
        errors: list[BaseException | None] = [None] * len(self._peers)

        def _run(index: int, peer: str) -> None:
            try:
                results[index] = self._engine.update(peer)
            except Exception as e:
                logger.exception("Update of %s raised", peer)
                errors[index] = e

        threads = []
        for index, peer in enumerate(self._peers):
            logger.info("Updating %s", peer)
            thread = threading.Thread(
                target=_run,
                args=(index, peer),
                name=f"CsyncUpdate-{peer}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)

        join_threads(threads)

        for error in errors:
            if error is not None:
                raise error

        return [r for r in results if r is not None]

    def _log_done(self, report: SyncReport) -> None:
        failures = report.failures
        if failures:
            logger.warning(
                "%s sync finished with %d failed command(s), first: %s",
                report.kind.name.capitalize(),
                len(failures),
                failures[0].describe(),
            )
        else:
            logger.info("Done")

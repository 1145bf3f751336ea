"""Tests for the sync trigger."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from csynctrigger.core.errors import QuiescenceTimeoutError
from csynctrigger.sync.queue import EventQueue, QueueCursor
from csynctrigger.sync.trigger import SyncTrigger, join_threads
from csynctrigger.sync.types import CommandResult, SyncKind


class RecordingEngine:
    """CsyncEngine stand-in recording every call."""

    def __init__(self, failing_peers: tuple[str, ...] = (), raising_peer: str | None = None) -> None:
        self.calls: list[tuple] = []
        self.failing_peers = failing_peers
        self.raising_peer = raising_peer
        self.update_threads: set[str] = set()
        self._lock = threading.Lock()

    def _record(self, *call: object) -> None:
        with self._lock:
            self.calls.append(call)

    def check(self, paths: list[str], recursive: bool = True) -> CommandResult:
        self._record("check", tuple(paths))
        return CommandResult(["csync2", "-cr", *paths], 0)

    def update(self, peer: str | None = None) -> CommandResult:
        self._record("update", peer)
        with self._lock:
            self.update_threads.add(threading.current_thread().name)
        if peer is not None and peer == self.raising_peer:
            raise RuntimeError(f"boom {peer}")
        returncode = 1 if peer in self.failing_peers else 0
        return CommandResult(["csync2", "-ub", "-P", str(peer)], returncode)

    def full_resync(self) -> CommandResult:
        self._record("full_resync")
        return CommandResult(["csync2", "-x"], 0)


@pytest.fixture
def queue(tmp_path: Path) -> EventQueue:
    """Create an event queue."""
    return EventQueue(tmp_path / "queue.log")


def make_trigger(
    engine: RecordingEngine,
    queue: EventQueue,
    cursor: QueueCursor | None = None,
    monitor: MagicMock | None = None,
    peers: tuple[str, ...] = ("node2", "node3"),
    parallel: bool = True,
) -> SyncTrigger:
    return SyncTrigger(
        engine,  # type: ignore[arg-type]
        monitor or MagicMock(),
        queue,
        cursor or QueueCursor(),
        peers=peers,
        parallel_updates=parallel,
    )


class TestFullSync:
    """Tests for SyncTrigger.full_sync."""

    def test_parallel_checks_root_then_updates_each_peer(self, queue: EventQueue) -> None:
        """Parallel mode checks '/' and updates every peer in its own thread."""
        engine = RecordingEngine()
        monitor = MagicMock()

        report = make_trigger(engine, queue, monitor=monitor).full_sync()

        assert engine.calls[0] == ("check", ("/",))
        assert sorted(engine.calls[1:]) == [("update", "node2"), ("update", "node3")]
        assert engine.update_threads == {"CsyncUpdate-node2", "CsyncUpdate-node3"}
        assert report.kind == SyncKind.FULL
        assert report.ok
        monitor.wait_until_quiet.assert_called_once()

    def test_sequential_uses_full_resync(self, queue: EventQueue) -> None:
        """Sequential mode runs a single full resync."""
        engine = RecordingEngine()

        make_trigger(engine, queue, parallel=False).full_sync()

        assert engine.calls == [("full_resync",)]

    def test_no_peers_uses_full_resync(self, queue: EventQueue) -> None:
        """Without peers there is nothing to update in parallel."""
        engine = RecordingEngine()

        make_trigger(engine, queue, peers=()).full_sync()

        assert engine.calls == [("full_resync",)]

    def test_results_in_peer_order(self, queue: EventQueue) -> None:
        """Parallel results are reported in peer order, failures included."""
        engine = RecordingEngine(failing_peers=("node3",))

        report = make_trigger(engine, queue, peers=("node2", "node3", "node4")).full_sync()

        assert [r.args[-1] for r in report.results[1:]] == ["node2", "node3", "node4"]
        assert not report.ok
        assert report.first_failure is not None
        assert report.first_failure.args[-1] == "node3"

    def test_update_exception_raised_after_all_joined(self, queue: EventQueue) -> None:
        """A raising update does not abandon the other peers."""
        engine = RecordingEngine(raising_peer="node2")

        with pytest.raises(RuntimeError, match="boom node2"):
            make_trigger(engine, queue, peers=("node2", "node3")).full_sync()

        assert ("update", "node3") in engine.calls

    def test_timeout_propagates(self, queue: EventQueue) -> None:
        """No command is issued when the server never goes quiet."""
        engine = RecordingEngine()
        monitor = MagicMock()
        monitor.wait_until_quiet.side_effect = QuiescenceTimeoutError(10.0, "busy")

        with pytest.raises(QuiescenceTimeoutError):
            make_trigger(engine, queue, monitor=monitor).full_sync()

        assert engine.calls == []


class TestIncrementalSync:
    """Tests for SyncTrigger.incremental_sync."""

    def test_empty_batch_issues_nothing(self, queue: EventQueue) -> None:
        """An empty batch is a no-op."""
        engine = RecordingEngine()
        monitor = MagicMock()

        report = make_trigger(engine, queue, monitor=monitor).incremental_sync([])

        assert engine.calls == []
        assert report.results == []
        monitor.wait_until_quiet.assert_not_called()

    def test_check_then_parallel_update(self, queue: EventQueue) -> None:
        """The batch is checked once, then every peer is updated."""
        engine = RecordingEngine()

        report = make_trigger(engine, queue).incremental_sync(["/data/a", "/data/b"])

        assert engine.calls[0] == ("check", ("/data/a", "/data/b"))
        assert sorted(engine.calls[1:]) == [("update", "node2"), ("update", "node3")]
        assert report.kind == SyncKind.INCREMENTAL
        assert report.paths == 2

    def test_sequential_update(self, queue: EventQueue) -> None:
        """Sequential mode runs one update for all peers."""
        engine = RecordingEngine()

        make_trigger(engine, queue, parallel=False).incremental_sync(["/data/a"])

        assert engine.calls == [("check", ("/data/a",)), ("update", None)]


class TestResetAndFullSync:
    """Tests for SyncTrigger.reset_and_full_sync."""

    def test_resets_queue_before_commands(self, queue: EventQueue) -> None:
        """The queue and cursor are reset before any csync2 command."""
        queue.append("/data/a")
        cursor = QueueCursor(line=2, offset=8)
        engine = RecordingEngine()
        order: list[str] = []

        monitor = MagicMock()
        monitor.wait_until_quiet.side_effect = lambda: order.append(f"wait:{queue.line_count()}")
        monitor.clear.side_effect = lambda: order.append("clear")

        report = make_trigger(engine, queue, cursor=cursor, monitor=monitor).reset_and_full_sync()

        assert cursor == QueueCursor()
        assert queue.line_count() == 0
        assert order == ["wait:0", "clear", "wait:0"]
        assert report.kind == SyncKind.RESET
        assert engine.calls[0] == ("check", ("/",))


class FakeThread:
    """Thread stand-in whose first join can be interrupted."""

    def __init__(self, interrupt: bool = False) -> None:
        self.interrupt = interrupt
        self.joins = 0

    def join(self) -> None:
        self.joins += 1
        if self.interrupt and self.joins == 1:
            raise KeyboardInterrupt


class TestJoinThreads:
    """Tests for join_threads."""

    def test_interrupt_waits_for_all_threads(self) -> None:
        """Ctrl+C during the join is re-raised after every update finished."""
        threads = [FakeThread(), FakeThread(interrupt=True), FakeThread()]

        with pytest.raises(KeyboardInterrupt):
            join_threads(threads)  # type: ignore[arg-type]

        assert threads[1].joins == 2
        assert threads[2].joins == 1
        assert threads[0].joins == 2

    def test_real_threads(self) -> None:
        """All threads have finished when the call returns."""
        done = threading.Event()
        thread = threading.Thread(target=done.set)
        thread.start()

        join_threads([thread])

        assert done.is_set()
        assert not thread.is_alive()

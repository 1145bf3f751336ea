"""File system watcher feeding the event queue.

This module provides:
- ChangeKind: Event kinds that can be selected for queueing
- QueueingEventHandler: Filters watchdog events and appends their paths
- FileWatcher: watchdog observer over the csync2 include locations

There is no debouncing here: every accepted event is appended to the queue
straight away and the coordinator deduplicates when it reads a batch.

Directory include locations are watched recursively. File include
locations are watched through a non-recursive watch on their parent
directory, keeping only events for the file itself.

watchdog reports attribute changes of a directory (chmod, chown) with the
same DirModifiedEvent it synthesizes for every change inside it, so both
are dropped. Such metadata changes reach the peers with the next full sync.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from csynctrigger.core.errors import ConfigError
from csynctrigger.sync.exclude import ExclusionFilter

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from csynctrigger.sync.queue import EventQueue

logger = logging.getLogger(__name__)


class ChangeKind(Enum):
    """Kind of file system change."""

    CREATED = "created"
    MODIFIED = "modified"  # content or attributes
    DELETED = "deleted"
    MOVED = "moved"
    CLOSED = "closed"  # closed after writing


DEFAULT_EVENT_KINDS = frozenset(ChangeKind)

# inotifywait event names accepted as aliases
_KIND_ALIASES = {
    "create": ChangeKind.CREATED,
    "modify": ChangeKind.MODIFIED,
    "attrib": ChangeKind.MODIFIED,
    "delete": ChangeKind.DELETED,
    "move": ChangeKind.MOVED,
    "close_write": ChangeKind.CLOSED,
}

# Callback for every path seen: (path, accepted)
PathCallback = Callable[[str, bool], None]


def parse_event_kinds(value: str | Iterable[str]) -> frozenset[ChangeKind]:
    """Parse event kinds from a comma separated list.

    Accepts ChangeKind values ("created", "closed", ...) and inotifywait
    names ("create", "close_write", "attrib", ...).

    Raises:
        ValueError: On an unknown or empty list of kinds.
    """
    names = value.split(",") if isinstance(value, str) else list(value)
    kinds: set[ChangeKind] = set()
    for name in names:
        name = name.strip().lower()
        if not name:
            continue
        if name in _KIND_ALIASES:
            kinds.add(_KIND_ALIASES[name])
            continue
        try:
            kinds.add(ChangeKind(name))
        except ValueError:
            raise ValueError(f"Unknown event kind: {name}") from None
    if not kinds:
        raise ValueError("No event kinds selected")
    return frozenset(kinds)


def _decode(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="surrogateescape")
    return path


def classify(event: FileSystemEvent) -> ChangeKind | None:
    """Map a watchdog event to a ChangeKind.

    Directory modifications are synthesized by watchdog whenever an entry
    inside changes; queueing them would trigger a recursive check of the
    whole directory, so they map to None like other ignored events.
    """
    if isinstance(event, FileCreatedEvent | DirCreatedEvent):
        return ChangeKind.CREATED
    if isinstance(event, DirModifiedEvent):
        return None
    if isinstance(event, FileModifiedEvent):
        return ChangeKind.MODIFIED
    if isinstance(event, FileDeletedEvent | DirDeletedEvent):
        return ChangeKind.DELETED
    if isinstance(event, FileMovedEvent | DirMovedEvent):
        return ChangeKind.MOVED
    if isinstance(event, FileClosedEvent):
        return ChangeKind.CLOSED
    return None


class QueueingEventHandler(FileSystemEventHandler):
    """Event handler that appends accepted paths to the event queue."""

    def __init__(
        self,
        event_queue: EventQueue | None,
        exclusion: ExclusionFilter | None = None,
        kinds: Iterable[ChangeKind] = DEFAULT_EVENT_KINDS,
        on_path: PathCallback | None = None,
        only_paths: Iterable[str] | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            event_queue: Queue to append paths to (None only reports them).
            exclusion: Exclusion prefixes checked before queueing.
            kinds: Event kinds to queue.
            on_path: Optional callback for every path seen.
            only_paths: If given, ignore every other path.
        """
        super().__init__()
        self._event_queue = event_queue
        self._exclusion = exclusion or ExclusionFilter()
        self._kinds = frozenset(kinds)
        self._on_path = on_path
        self._only_paths = frozenset(only_paths) if only_paths is not None else None
        self.queued = 0
        self.excluded = 0

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle every watchdog event."""
        kind = classify(event)
        if kind is None or kind not in self._kinds:
            return

        self._handle_path(_decode(event.src_path))
        if kind == ChangeKind.MOVED:
            self._handle_path(_decode(event.dest_path))

    def _handle_path(self, path: str) -> None:
        if not path:
            return
        if self._only_paths is not None and path not in self._only_paths:
            return

        if not self._exclusion.accept(path):
            self.excluded += 1
            logger.debug("Excluded: %s", path)
            if self._on_path:
                self._on_path(path, False)
            return

        if self._event_queue is not None:
            try:
                self._event_queue.append(path)
            except ValueError as e:
                logger.warning("Not queued: %s", e)
                return
            except OSError:
                logger.exception("Failed to append to queue: %s", path)
                return

        self.queued += 1
        if self._on_path:
            self._on_path(path, True)


class FileWatcher:
    """Watches the include locations and queues changed paths.

    Usage:
        with FileWatcher(["/data", "/etc/hosts"], queue, ExclusionFilter(["/data/tmp"])):
            ...  # paths are appended to the queue as events arrive
    """

    def __init__(
        self,
        includes: Iterable[str | Path],
        event_queue: EventQueue | None,
        exclusion: ExclusionFilter | None = None,
        kinds: Iterable[ChangeKind] = DEFAULT_EVENT_KINDS,
        on_path: PathCallback | None = None,
    ) -> None:
        """Initialize the file watcher.

        Args:
            includes: Directories to watch recursively, or single files.
            event_queue: Queue to append paths to.
            exclusion: Exclusion prefixes.
            kinds: Event kinds to queue.
            on_path: Optional callback for every path seen.
        """
        self._includes = [Path(p) for p in includes]
        self._event_queue = event_queue
        self._exclusion = exclusion
        self._kinds = frozenset(kinds)
        self._on_path = on_path
        self._handler = self._make_handler()
        self._file_handlers: list[QueueingEventHandler] = []
        self._observer: BaseObserver = Observer()
        self._watched: list[Path] = []
        self._running = False

    def _make_handler(self, only_paths: Iterable[str] | None = None) -> QueueingEventHandler:
        return QueueingEventHandler(
            event_queue=self._event_queue,
            exclusion=self._exclusion,
            kinds=self._kinds,
            on_path=self._on_path,
            only_paths=only_paths,
        )

    @property
    def includes(self) -> list[Path]:
        """Get the configured include locations."""
        return list(self._includes)

    @property
    def watched(self) -> list[Path]:
        """Get the locations actually being watched."""
        return list(self._watched)

    @property
    def handler(self) -> QueueingEventHandler:
        """Get the event handler of the directory includes."""
        return self._handler

    @property
    def queued(self) -> int:
        """Number of paths queued by all handlers."""
        return self._handler.queued + sum(h.queued for h in self._file_handlers)

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    def start(self) -> None:
        """Start watching for changes.

        Missing include locations are skipped with a warning.

        Raises:
            ConfigError: If none of the include locations exist.
        """
        if self._running:
            return

        directories = [p for p in self._includes if p.is_dir()]
        files = [p for p in self._includes if p.exists() and not p.is_dir()]
        for include in self._includes:
            if not include.exists():
                logger.warning("Include location does not exist, not watched: %s", include)

        for directory in directories:
            self._observer.schedule(self._handler, str(directory), recursive=True)
            self._watched.append(directory)

        # Files are watched through their parent, one handler per parent
        by_parent: dict[Path, list[Path]] = {}
        for file in files:
            if any(d in file.parents for d in directories):
                self._watched.append(file)
                continue
            by_parent.setdefault(file.parent, []).append(file)

        for parent, members in by_parent.items():
            handler = self._make_handler(only_paths=[str(f) for f in members])
            self._observer.schedule(handler, str(parent), recursive=False)
            self._file_handlers.append(handler)
            self._watched.extend(members)

        if not self._watched:
            raise ConfigError("None of the include locations can be watched")

        self._observer.start()
        self._running = True
        logger.info("Watching %d location(s)", len(self._watched))

    def stop(self) -> None:
        """Stop watching for changes."""
        if not self._running:
            return

        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._running = False
        logger.info("File watcher stopped")

    def __enter__(self) -> FileWatcher:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()

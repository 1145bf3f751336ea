"""Durable event queue shared by the watcher and the coordinator.

This module provides:
- EventQueue: Append-only, line-oriented queue file of changed paths
- QueueCursor: Position of the first unread line
- QueueRead: Lines returned by one read

The queue file is the only state shared between the event producer and the
coordinator, which may run in separate processes:

    watcher --append()--> queue file --read_from(cursor)--> coordinator

Single writer, single reader, no locking protocol:
- The writer emits each path plus its newline in one write() on an
  O_APPEND handle, so a line is never interleaved with another.
- The reader only returns newline-terminated lines. A line caught
  mid-write stays in the file and is returned by the next read.
- Entries are never removed except by truncating the whole file, which is
  always paired with a cursor reset (see EventQueue.reset).
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)


@dataclass
class QueueCursor:
    """Read position in the queue file.

    Attributes:
        line: 1-based number of the first unread line.
        offset: Byte offset of that line, so reads skip consumed lines.
    """

    line: int = 1
    offset: int = 0

    def advance(self, count: int, end_offset: int) -> None:
        """Move past ``count`` lines ending at byte ``end_offset``.

        Every raw line counts, duplicates included.
        """
        if count < 0:
            raise ValueError(f"Cannot advance cursor by {count} lines")
        self.line += count
        self.offset = end_offset

    def reset(self) -> None:
        """Point back at the start of an empty queue."""
        self.line = 1
        self.offset = 0


@dataclass
class QueueRead:
    """Lines returned by EventQueue.read_from.

    Attributes:
        lines: Complete lines, without their newline, in queue order.
        end_offset: Byte offset just past the last returned line.
        truncated: The file is shorter than the cursor offset, i.e. it was
            truncated behind the reader's back.
    """

    lines: list[str] = field(default_factory=list)
    end_offset: int = 0
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.lines)

    def __bool__(self) -> bool:
        return bool(self.lines)


class EventQueue:
    """Append-only queue file of changed paths.

    Usage:
        queue = EventQueue(Path("/var/lib/csynctrigger/queue.log"))
        cursor = QueueCursor()
        queue.reset(cursor)

        queue.append("/data/a.txt")         # producer side

        read = queue.read_from(cursor)      # consumer side
        cursor.advance(len(read), read.end_offset)
    """

    def __init__(self, path: Path) -> None:
        """Initialize the queue.

        Args:
            path: Location of the queue file. Parent directories are
                created on first write.
        """
        self._path = Path(path)
        self._lock = threading.Lock()
        self._handle: IO[bytes] | None = None

    @property
    def path(self) -> Path:
        """Get the queue file path."""
        return self._path

    def append(self, path: str) -> None:
        """Add one path to the end of the queue.

        Args:
            path: Path to queue.

        Raises:
            ValueError: If the path is empty or contains a newline.
        """
        if not path:
            raise ValueError("Cannot queue an empty path")
        if "\n" in path:
            raise ValueError(f"Cannot queue a path containing a newline: {path!r}")

        data = (path + "\n").encode("utf-8", errors="surrogateescape")
        with self._lock:
            if self._handle is None:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                # Unbuffered so every line is a single write() call
                self._handle = open(self._path, "ab", buffering=0)  # noqa: SIM115
            self._handle.write(data)

    def read_from(self, cursor: QueueCursor) -> QueueRead:
        """Read every complete line after the cursor.

        Does not modify the queue or the cursor.

        Args:
            cursor: Current read position.

        Returns:
            The unread lines (empty if none, or if the file does not exist).
        """
        try:
            with open(self._path, "rb") as f:
                size = os.fstat(f.fileno()).st_size
                if size < cursor.offset:
                    logger.warning(
                        "Queue file %s is shorter than the read position (%d < %d)",
                        self._path,
                        size,
                        cursor.offset,
                    )
                    return QueueRead(end_offset=cursor.offset, truncated=True)
                f.seek(cursor.offset)
                data = f.read()
        except FileNotFoundError:
            return QueueRead(end_offset=cursor.offset)

        end = data.rfind(b"\n")
        if end < 0:
            # Nothing, or only a line still being written
            return QueueRead(end_offset=cursor.offset)

        text = data[: end + 1].decode("utf-8", errors="surrogateescape")
        lines = text.split("\n")[:-1]
        return QueueRead(lines=lines, end_offset=cursor.offset + end + 1)

    def truncate(self) -> None:
        """Empty the queue file, creating it if needed."""
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "wb"):
                pass
        logger.debug("Truncated queue file %s", self._path)

    def reset(self, cursor: QueueCursor) -> None:
        """Truncate the queue and reset the cursor in one step."""
        self.truncate()
        cursor.reset()
        logger.info("Queue reset: %s", self._path)

    def line_count(self) -> int:
        """Count the complete lines in the queue file."""
        try:
            with open(self._path, "rb") as f:
                return sum(chunk.count(b"\n") for chunk in iter(lambda: f.read(1 << 16), b""))
        except FileNotFoundError:
            return 0

    def close(self) -> None:
        """Close the append handle."""
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None

    def __enter__(self) -> EventQueue:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

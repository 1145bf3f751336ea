"""Batch aggregation of queued paths.

Repeated events on a path collapse into a single entry: all a batch says is
"this path needs a fresh dirty check", however many operations happened.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable


def aggregate(lines: Iterable[str]) -> list[str]:
    """Deduplicate raw queue lines into a sorted batch.

    Args:
        lines: Raw queue lines (trailing newlines are stripped, blank lines
            dropped).

    Returns:
        Distinct paths in sorted order. Empty if there was nothing pending.
    """
    paths = {line.rstrip("\r\n") for line in lines}
    paths.discard("")
    return sorted(paths)


def is_large_batch(batch: list[str], threshold: int) -> bool:
    """Check whether a batch should fall back to a full sync.

    Args:
        batch: Deduplicated paths.
        threshold: Batch size that triggers the fallback (0 disables).
    """
    return threshold > 0 and len(batch) >= threshold


def collapse_nested(paths: Iterable[str]) -> list[str]:
    """Drop paths lying below another path of the batch.

    The check phase is recursive, so a queued directory already covers
    everything under it.

    Args:
        paths: Distinct paths.

    Returns:
        Remaining paths in sorted order.
    """
    distinct = set(paths)
    return sorted(p for p in distinct if not _has_queued_ancestor(p, distinct))


def _has_queued_ancestor(path: str, queued: set[str]) -> bool:
    parent = posixpath.dirname(path.rstrip("/"))
    while parent and parent != path:
        if parent in queued:
            return True
        path, parent = parent, posixpath.dirname(parent)
    return False


class BatchAggregator:
    """Turns raw queue lines into batches and classifies their size."""

    def __init__(self, threshold: int, collapse: bool = False) -> None:
        """Initialize the aggregator.

        Args:
            threshold: Distinct paths that make a batch large (0 disables).
            collapse: Also drop paths below another queued directory.
        """
        self._threshold = threshold
        self._collapse = collapse

    @property
    def threshold(self) -> int:
        """Get the large batch threshold."""
        return self._threshold

    def aggregate(self, lines: Iterable[str]) -> list[str]:
        """Deduplicate (and optionally collapse) raw lines."""
        batch = aggregate(lines)
        if self._collapse:
            batch = collapse_nested(batch)
        return batch

    def is_large(self, batch: list[str]) -> bool:
        """Check whether a batch exceeds the threshold."""
        return is_large_batch(batch, self._threshold)

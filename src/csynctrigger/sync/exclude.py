"""Exclusion rules for queued paths.

This module provides:
- accept: Test a path against a list of exclusion prefixes
- ExclusionFilter: Holds the exclude locations of a csync2 group
"""

from __future__ import annotations

from collections.abc import Iterable


def accept(path: str, rules: Iterable[str]) -> bool:
    """Check whether a path may be queued.

    Args:
        path: Absolute path reported by the event source.
        rules: Literal path prefixes to exclude.

    Returns:
        False if any rule is a prefix of the path, True otherwise.
    """
    return not any(path.startswith(rule) for rule in rules)


class ExclusionFilter:
    """Handles exclusion matching for event paths.

    Matching is a plain string prefix test: ``/data/tmp`` also excludes
    ``/data/tmpfiles``, the same as csync2 exclude entries.
    """

    def __init__(self, rules: Iterable[str] | None = None) -> None:
        """Initialize with rules.

        Args:
            rules: Exclusion prefixes. Empty strings are ignored.
        """
        self._rules: list[str] = [r for r in (rules or []) if r]

    @property
    def rules(self) -> list[str]:
        """Get the exclusion prefixes."""
        return list(self._rules)

    def add_rule(self, rule: str) -> None:
        """Add an exclusion prefix."""
        if rule:
            self._rules.append(rule)

    def accept(self, path: str) -> bool:
        """Check whether a path may be queued."""
        return accept(path, self._rules)

    def __len__(self) -> int:
        return len(self._rules)

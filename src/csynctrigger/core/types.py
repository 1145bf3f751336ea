"""Shared types for csynctrigger.

This module defines enums used by both the sync components and the CLI.
"""

from __future__ import annotations

from enum import Enum


class SyncRunState(str, Enum):
    """Run state of the csync2 server, inferred from its status log.

    Never stored: the quiescence monitor derives it on every poll.
    """

    QUIESCENT = "quiescent"
    BUSY = "busy"

"""
Replay system.

Rebuilds state from a log, and re-derives or re-enacts the effects of a
Signal sequence in dry-run, execute, or diff (drift detection) mode.
"""

from .runner import (
    ReplayMode,
    ReplayEntry,
    ReplayReport,
    ReplayResult,
    reconstruct,
    dry_run,
    execute,
    detect_drift,
    replay,
)
from .executor import Effect, Outcome, Executor, describe, is_actionable
from .filters import select

__all__ = [
    "ReplayMode",
    "ReplayEntry",
    "ReplayReport",
    "ReplayResult",
    "reconstruct",
    "dry_run",
    "execute",
    "detect_drift",
    "replay",
    "Effect",
    "Outcome",
    "Executor",
    "describe",
    "is_actionable",
    "select",
]

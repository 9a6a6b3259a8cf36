"""
Checkpoint system for named State snapshots.

Provides:
- Checkpoint model with canonical serialization
- Deterministic state snapshots (bytes + hash)
- Checkpoint storage management
- Field-level State diff
- Reproducibility verification against the log
"""

from .model import Checkpoint, CheckpointInfo
from .snapshot import serialize_state, compute_state_hash, state_from_bytes
from .store import CheckpointStore
from .diff import Change, diff, summarize
from .verify import verify_checkpoint, VerificationResult

__all__ = [
    "Checkpoint",
    "CheckpointInfo",
    "serialize_state",
    "compute_state_hash",
    "state_from_bytes",
    "CheckpointStore",
    "Change",
    "diff",
    "summarize",
    "verify_checkpoint",
    "VerificationResult",
]

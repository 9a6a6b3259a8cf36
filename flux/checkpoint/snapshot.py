"""
Deterministic State snapshots.

Same State always produces the same bytes, so a checkpoint can be checked by
re-reducing the log and comparing hashes.
"""

import hashlib
import json
from typing import Any, Dict

from ..core.canonical import canonical_json_bytes, canonicalize
from ..core.state import State


def state_to_canonical(state: State) -> Dict[str, Any]:
    """Canonical dict form of a State (sorted keys, lists for tuples)."""
    return canonicalize(state.to_dict())


def serialize_state(state: State) -> bytes:
    """
    Serialize State to deterministic bytes.

    Returns:
        Canonical JSON bytes (sorted keys, no whitespace, UTF-8)
    """
    return canonical_json_bytes(state.to_dict())


def compute_state_hash(state: State) -> str:
    """SHA-256 hex digest of serialize_state(state)."""
    return hashlib.sha256(serialize_state(state)).hexdigest()


def state_from_bytes(data: bytes) -> State:
    return State.from_dict(json.loads(data.decode("utf-8")))

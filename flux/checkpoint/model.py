"""
Checkpoint model.

A checkpoint captures:
- A name chosen by the caller ("before-upgrade", "nightly", ...)
- The State folded up to last_id, in canonical form
- The hash of that canonical State, for reproducibility checks
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..core.state import State

FORMAT_VERSION = 1


@dataclass(frozen=True)
class Checkpoint:
    """
    Immutable checkpoint record.

    Fields:
        version: Format version (currently 1)
        name: Checkpoint name; later saves with the same name supersede it
        sequence: Store-assigned, strictly increasing save counter
        last_id: Id of the last Signal folded into state (None for an empty log)
        state_hash: SHA-256 of the canonical State bytes
        state: Canonical dict form of the State
        signal_count: Number of Signals folded
        created_at: Wall-clock time of the save (not part of the State)
        meta: Optional caller metadata (preserve-unknown)
    """
    version: int
    name: str
    sequence: int
    last_id: Optional[str]
    state_hash: str
    state: Dict[str, Any]
    signal_count: int
    created_at: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_state(self) -> State:
        return State.from_dict(self.state)

    def info(self) -> "CheckpointInfo":
        return CheckpointInfo(
            name=self.name,
            sequence=self.sequence,
            last_id=self.last_id,
            state_hash=self.state_hash,
            signal_count=self.signal_count,
            created_at=self.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "name": self.name,
            "sequence": self.sequence,
            "last_id": self.last_id,
            "state_hash": self.state_hash,
            "state": self.state,
            "signal_count": self.signal_count,
            "created_at": self.created_at,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        return cls(
            version=data["version"],
            name=data["name"],
            sequence=data["sequence"],
            last_id=data.get("last_id"),
            state_hash=data["state_hash"],
            state=data["state"],
            signal_count=data.get("signal_count", 0),
            created_at=data.get("created_at", ""),
            meta=data.get("meta", {}),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True, ensure_ascii=False)

    @classmethod
    def from_json(cls, json_str: str) -> "Checkpoint":
        return cls.from_dict(json.loads(json_str))


@dataclass(frozen=True)
class CheckpointInfo:
    """Checkpoint metadata, as returned by CheckpointStore.list()."""
    name: str
    sequence: int
    last_id: Optional[str]
    state_hash: str
    signal_count: int
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "sequence": self.sequence,
            "last_id": self.last_id,
            "state_hash": self.state_hash,
            "signal_count": self.signal_count,
            "created_at": self.created_at,
        }

"""
Signal model.

A Signal is an immutable fact: something a host tool did, captured once and
never changed. The payload shape depends on the type; types the engine does
not know are carried through verbatim (SignalKind.CUSTOM).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .canonical import canonicalize
from .errors import InvalidSignalError
from .ids import is_valid_id

INIT = "init"
SNAPSHOT = "snapshot"
EXEC_START = "exec_start"
EXEC_END = "exec_end"
ADD_START = "add_start"
ADD_END = "add_end"
ADD = "add"
REMOVE = "remove"
UNDO = "undo"
BOOTSTRAP = "bootstrap"

START_SUFFIX = "_start"
END_SUFFIX = "_end"

REF_ID = "ref_id"


class SignalKind(str, Enum):
    """Tag of the Signal union, derived from the type string."""

    INIT = "init"
    START = "start"
    END = "end"
    SNAPSHOT = "snapshot"
    CUSTOM = "custom"


def kind_of(signal_type: str) -> SignalKind:
    if signal_type == INIT:
        return SignalKind.INIT
    if signal_type == SNAPSHOT:
        return SignalKind.SNAPSHOT
    if signal_type.endswith(START_SUFFIX) and len(signal_type) > len(START_SUFFIX):
        return SignalKind.START
    if signal_type.endswith(END_SUFFIX) and len(signal_type) > len(END_SUFFIX):
        return SignalKind.END
    return SignalKind.CUSTOM


def operation_of(signal_type: str) -> Optional[str]:
    """Operation family of a start/end type: "exec_start" -> "exec"."""
    kind = kind_of(signal_type)
    if kind is SignalKind.START:
        return signal_type[: -len(START_SUFFIX)]
    if kind is SignalKind.END:
        return signal_type[: -len(END_SUFFIX)]
    return None


@dataclass(frozen=True)
class Signal:
    """
    Immutable Signal record.

    Fields:
        id: 128-bit time-ordered identifier (32 hex chars)
        type: Open type tag ("init", "exec_start", caller-defined, ...)
        payload: Structured value; schema depends on type
        timestamp: RFC 3339 wall-clock time with offset, taken at record time
    """
    id: str
    type: str
    payload: Any = field(default_factory=dict)
    timestamp: str = ""

    @property
    def kind(self) -> SignalKind:
        return kind_of(self.type)

    @property
    def operation(self) -> Optional[str]:
        return operation_of(self.type)

    @property
    def ref_id(self) -> Optional[str]:
        """Correlation reference carried in the payload, if any."""
        if isinstance(self.payload, dict):
            ref = self.payload.get(REF_ID)
            if isinstance(ref, str) and ref:
                return ref
        return None

    def get(self, key: str, default: Any = None) -> Any:
        """Payload field lookup that tolerates non-mapping payloads."""
        if isinstance(self.payload, dict):
            return self.payload.get(key, default)
        return default

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Signal":
        """
        Build a Signal from a decoded log record.

        Raises:
            InvalidSignalError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise InvalidSignalError("record is not an object")
        signal_id = data.get("id")
        signal_type = data.get("type")
        timestamp = data.get("timestamp")
        if not is_valid_id(signal_id):
            raise InvalidSignalError(f"invalid id: {signal_id!r}")
        if not isinstance(signal_type, str) or not signal_type:
            raise InvalidSignalError(f"invalid type: {signal_type!r}")
        if not isinstance(timestamp, str):
            raise InvalidSignalError(f"invalid timestamp: {timestamp!r}")
        return cls(
            id=signal_id,
            type=signal_type,
            payload=canonicalize(data.get("payload", {})),
            timestamp=timestamp,
        )

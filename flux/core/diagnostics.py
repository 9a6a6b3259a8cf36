"""
Non-fatal diagnostics.

A diagnostic records a data-integrity or policy problem that the engine
degraded around instead of failing. Diagnostics are always returned next to
the State or report they concern.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CORRUPT_RECORD = "corrupt_record"
DANGLING_REFERENCE = "dangling_reference"
ORPHAN_END = "orphan_end"
DUPLICATE_INIT = "duplicate_init"
CHECKPOINT_NOT_FOUND = "checkpoint_not_found"
CHECKPOINT_STALE = "checkpoint_stale"
EFFECT_ERROR = "effect_error"


@dataclass(frozen=True)
class Diagnostic:
    """
    One non-fatal finding.

    Fields:
        kind: One of the module-level kind constants
        message: Human readable description
        signal_id: Signal the finding is about, when there is one
        detail: Extra structured context (line number, ref_id, ...)
    """
    kind: str
    message: str
    signal_id: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "signal_id": self.signal_id,
            "detail": dict(self.detail),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Diagnostic":
        return Diagnostic(
            kind=data.get("kind", ""),
            message=data.get("message", ""),
            signal_id=data.get("signal_id"),
            detail=dict(data.get("detail") or {}),
        )


def report(sink: Optional[list], diagnostic: Diagnostic) -> Diagnostic:
    """Log a diagnostic at WARNING and append it to sink (if given)."""
    logger.warning(
        "%s: %s",
        diagnostic.kind,
        diagnostic.message,
        extra={"trace_id": diagnostic.signal_id or "N/A"},
    )
    if sink is not None:
        sink.append(diagnostic)
    return diagnostic

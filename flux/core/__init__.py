"""
Core event-sourcing primitives.

This module provides:
- Signal: Immutable event records and their kinds
- IdGenerator: Time-ordered, process-monotonic identifiers
- CorrelationIndex: start/end pairing
- State / Reducer: Deterministic state reconstruction
- Canonical: Deterministic serialization
- Clock: Wall-clock sources and timestamp helpers
"""

from .signals import Signal, SignalKind, kind_of, operation_of
from .ids import IdGenerator, default_generator, next_id, is_valid_id, id_time_ms
from .clock import SystemClock, ManualClock, format_timestamp, parse_timestamp, elapsed_ms, fmt_duration
from .canonical import canonicalize, canonical_json_bytes, canonical_json_str, canonical_hash
from .correlation import CorrelationIndex, CorrelationPair, index
from .state import State, Execution, CommandStats
from .reducer import Reducer, StateDraft, default_reducer, reduce
from .diagnostics import Diagnostic
from .errors import (
    FluxError,
    StoreError,
    IoFailure,
    InvalidSignalError,
    SignalNotFound,
    CheckpointError,
    EffectError,
)

__all__ = [
    "Signal",
    "SignalKind",
    "kind_of",
    "operation_of",
    "IdGenerator",
    "default_generator",
    "next_id",
    "is_valid_id",
    "id_time_ms",
    "SystemClock",
    "ManualClock",
    "format_timestamp",
    "parse_timestamp",
    "elapsed_ms",
    "fmt_duration",
    "canonicalize",
    "canonical_json_bytes",
    "canonical_json_str",
    "canonical_hash",
    "CorrelationIndex",
    "CorrelationPair",
    "index",
    "State",
    "Execution",
    "CommandStats",
    "Reducer",
    "StateDraft",
    "default_reducer",
    "reduce",
    "Diagnostic",
    "FluxError",
    "StoreError",
    "IoFailure",
    "InvalidSignalError",
    "SignalNotFound",
    "CheckpointError",
    "EffectError",
]

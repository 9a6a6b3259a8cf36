"""
Canonical JSON serialization.

Log lines and checkpoint snapshots are written through these helpers so the
same value always produces the same bytes, regardless of dict insertion order.
"""

import hashlib
import json
from typing import Any


def canonicalize(obj: Any) -> Any:
    """
    Convert a nested dict/list/tuple value to canonical form.

    Rules:
    - dict keys sorted (keys are coerced to str, as JSON would)
    - tuples converted to lists
    - recursive normalization
    """
    if isinstance(obj, dict):
        return {str(k): canonicalize(obj[k]) for k in sorted(obj.keys(), key=str)}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    return obj


def canonical_json_str(obj: Any) -> str:
    """
    Deterministic single-line JSON string.

    Compact separators and ensure_ascii=False keep the output stable and
    UTF-8 friendly. The result never contains a raw newline, so it is safe
    to use as one record of a line-delimited log.

    Raises:
        TypeError: If obj contains a value JSON cannot represent
        ValueError: If obj contains NaN or infinity
    """
    return json.dumps(
        canonicalize(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def canonical_json_bytes(obj: Any) -> bytes:
    """UTF-8 encoded form of canonical_json_str()."""
    return canonical_json_str(obj).encode("utf-8")


def canonical_hash(obj: Any) -> str:
    """SHA-256 hex digest of the canonical bytes of obj."""
    return hashlib.sha256(canonical_json_bytes(obj)).hexdigest()

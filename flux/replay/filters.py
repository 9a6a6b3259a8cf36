"""
Selective replay: narrow a Signal sequence before it is replayed.

Filters only ever drop Signals; relative order is preserved.
"""

from datetime import datetime
from typing import Iterable, Iterator, Optional, Sequence, Union

from ..core.clock import parse_timestamp
from ..core.signals import Signal

TimeBound = Union[str, datetime, None]


def _bound(value: TimeBound) -> Optional[datetime]:
    if value is None:
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"invalid timestamp bound: {value!r}")
    return parsed


def select(
    signals: Iterable[Signal],
    types: Optional[Sequence[str]] = None,
    since: TimeBound = None,
    until: TimeBound = None,
) -> Iterator[Signal]:
    """
    Yield the Signals matching every given criterion, in input order.

    Args:
        signals: Input sequence
        types: Keep only these Signal types (None = all)
        since: Keep Signals at or after this time (inclusive)
        until: Keep Signals at or before this time (inclusive)

    Raises:
        ValueError: If since/until cannot be parsed

    Signals whose own timestamp cannot be parsed are dropped whenever a time
    bound is given.
    """
    wanted = set(types) if types else None
    lo = _bound(since)
    hi = _bound(until)

    for signal in signals:
        if wanted is not None and signal.type not in wanted:
            continue
        if lo is not None or hi is not None:
            ts = parse_timestamp(signal.timestamp)
            if ts is None:
                continue
            if lo is not None and ts < lo:
                continue
            if hi is not None and ts > hi:
                continue
        yield signal

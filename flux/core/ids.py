"""
Time-ordered Signal identifiers.

An id is a 128-bit integer rendered as 32 lowercase hex characters:

    [ 48 bits: unix time in milliseconds ][ 80 bits: random tail ]

Fixed-width hex keeps string order equal to numeric order, so ids can be
compared and sorted as plain strings.
"""

import re
import secrets
import threading
import time
from typing import Callable, Optional

TIME_BITS = 48
TAIL_BITS = 80
ID_BITS = TIME_BITS + TAIL_BITS
ID_HEX_LEN = ID_BITS // 4

_TAIL_MASK = (1 << TAIL_BITS) - 1
_MAX_ID = (1 << ID_BITS) - 1
_ID_RE = re.compile(r"^[0-9a-f]{32}\Z")


def _wall_ms() -> int:
    return time.time_ns() // 1_000_000


class IdGenerator:
    """
    Generates ids that never go backwards within one process.

    Ordering:
    - ids from a later millisecond sort after ids from an earlier one
    - within one millisecond the random tail breaks ties
    - if the wall clock regresses (NTP step, VM resume) or a tail collides
      with a smaller value, the previous id plus one is emitted instead

    The last emitted value is held under a lock, so one generator can be
    shared across threads.
    """

    def __init__(
        self,
        now_ms: Optional[Callable[[], int]] = None,
        randbits: Optional[Callable[[int], int]] = None,
    ) -> None:
        """
        Args:
            now_ms: Millisecond clock (defaults to the system wall clock)
            randbits: Source of random bits (defaults to secrets.randbits)
        """
        self._now_ms = now_ms or _wall_ms
        self._randbits = randbits or secrets.randbits
        self._last = 0
        self._lock = threading.Lock()

    def next_int(self) -> int:
        """Return the next id as an integer."""
        with self._lock:
            ms = self._now_ms() & ((1 << TIME_BITS) - 1)
            candidate = (ms << TAIL_BITS) | (self._randbits(TAIL_BITS) & _TAIL_MASK)
            if candidate <= self._last:
                candidate = self._last + 1
            if candidate > _MAX_ID:
                raise OverflowError("identifier space exhausted")
            self._last = candidate
            return candidate

    def next_id(self) -> str:
        """Return the next id as a 32-character hex string."""
        return format_id(self.next_int())


_default = IdGenerator()


def default_generator() -> IdGenerator:
    """The process-wide generator every FluxProject uses unless given its own."""
    return _default


def next_id() -> str:
    """Next id from the process-wide generator."""
    return _default.next_id()


def format_id(value: int) -> str:
    return format(value, "0{}x".format(ID_HEX_LEN))


def parse_id(signal_id: str) -> int:
    """
    Parse a hex id back to its integer value.

    Raises:
        ValueError: If signal_id is not a well-formed id
    """
    if not is_valid_id(signal_id):
        raise ValueError(f"not a signal id: {signal_id!r}")
    return int(signal_id, 16)


def is_valid_id(signal_id) -> bool:
    """Exactly ID_HEX_LEN lowercase hex digits, nothing else."""
    return isinstance(signal_id, str) and _ID_RE.match(signal_id) is not None


def id_time_ms(signal_id: str) -> int:
    """Millisecond timestamp encoded in the high bits of an id."""
    return parse_id(signal_id) >> TAIL_BITS

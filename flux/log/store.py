"""
SignalStore abstract interface.

Defines the contract for Signal log implementations.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from ..core.diagnostics import Diagnostic
from ..core.errors import SignalNotFound
from ..core.signals import Signal


@dataclass(frozen=True)
class AppendResult:
    """
    Result of a successful append.

    Fields:
        signal: The Signal as stored
        offset: Position of the record in the log (byte offset or slot index)
    """
    signal: Signal
    offset: int


class SignalStore(ABC):
    """
    Abstract Signal log.

    All implementations must guarantee:
    - Append-only (no updates, no deletes)
    - Physical order == append order; readers see a prefix, never a gap
    - Durability: append returns only once the record is on stable storage

    Writers are expected to be serialized by the caller (one appending
    process per log). Any number of concurrent readers is safe.
    """

    @abstractmethod
    def append(self, signal: Signal) -> AppendResult:
        """
        Append a Signal durably.

        Raises:
            IoFailure: If the record did not reach stable storage; the Signal
                must be treated as not recorded
            InvalidSignalError: If the Signal cannot be serialized
        """
        ...

    @abstractmethod
    def read_all(self, diagnostics: Optional[List[Diagnostic]] = None) -> Iterator[Signal]:
        """
        Stream every Signal in append order.

        Each call returns a fresh iterator. Corrupt records are skipped and
        reported into diagnostics (when a list is given).
        """
        ...

    @abstractmethod
    def read_since(
        self, after_id: str, diagnostics: Optional[List[Diagnostic]] = None
    ) -> Iterator[Signal]:
        """
        Stream the Signals recorded after the Signal with id after_id.

        Raises:
            SignalNotFound: If after_id is not in the log
        """
        ...

    def contains(self, signal_id: str) -> bool:
        return any(s.id == signal_id for s in self.read_all())

    def last_id(self) -> Optional[str]:
        last = None
        for signal in self.read_all():
            last = signal.id
        return last


class MemorySignalStore(SignalStore):
    """
    In-memory Signal log.

    An arena of immutable records addressed by slot index. Used for imported
    sequences and tests; nothing survives the process.
    """

    def __init__(self, signals: Optional[List[Signal]] = None) -> None:
        self._records: List[Signal] = list(signals or [])
        self._positions: Dict[str, int] = {s.id: i for i, s in enumerate(self._records)}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def append(self, signal: Signal) -> AppendResult:
        with self._lock:
            offset = len(self._records)
            self._records.append(signal)
            self._positions[signal.id] = offset
        return AppendResult(signal=signal, offset=offset)

    def read_all(self, diagnostics: Optional[List[Diagnostic]] = None) -> Iterator[Signal]:
        return self._read_from(0)

    def read_since(
        self, after_id: str, diagnostics: Optional[List[Diagnostic]] = None
    ) -> Iterator[Signal]:
        pos = self._positions.get(after_id)
        if pos is None:
            raise SignalNotFound(after_id)
        return self._read_from(pos + 1)

    def _read_from(self, start: int) -> Iterator[Signal]:
        # Bound the read to the length seen now: a reader observes a prefix.
        end = len(self._records)
        return iter(self._records[start:end])

    def contains(self, signal_id: str) -> bool:
        return signal_id in self._positions

    def last_id(self) -> Optional[str]:
        return self._records[-1].id if self._records else None

"""
Correlation index: pair *_start Signals with their *_end Signals.

An end Signal names its start through payload["ref_id"]. The index is built in
one pass over a log (or any slice of one) and is used wherever the pairing of
a whole sequence matters: replay ordering, reporting incomplete operations.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Set

from .diagnostics import DANGLING_REFERENCE, ORPHAN_END, Diagnostic
from .signals import Signal, SignalKind


@dataclass(frozen=True)
class CorrelationPair:
    """A start Signal and, once it completed, its end Signal."""
    start: Signal
    end: Optional[Signal] = None

    @property
    def complete(self) -> bool:
        return self.end is not None


class CorrelationIndex:
    """
    Mapping start-id -> CorrelationPair, in start order.

    Unpaired starts stay in the index with end=None: those operations never
    completed (crash, still running, or their result was never recorded).
    """

    def __init__(self) -> None:
        self._pairs: Dict[str, CorrelationPair] = {}
        self._seen: Set[str] = set()
        self.diagnostics: List[Diagnostic] = []

    def __len__(self) -> int:
        return len(self._pairs)

    def __contains__(self, start_id: object) -> bool:
        return start_id in self._pairs

    def __iter__(self) -> Iterator[str]:
        return iter(self._pairs)

    def __getitem__(self, start_id: str) -> CorrelationPair:
        return self._pairs[start_id]

    def get(self, start_id: str) -> Optional[CorrelationPair]:
        return self._pairs.get(start_id)

    def pairs(self) -> List[CorrelationPair]:
        return list(self._pairs.values())

    def incomplete(self) -> List[CorrelationPair]:
        return [p for p in self._pairs.values() if p.end is None]

    def add(self, signal: Signal) -> None:
        """Feed the next Signal of the sequence."""
        if signal.kind is SignalKind.START and signal.id not in self._pairs:
            self._pairs[signal.id] = CorrelationPair(start=signal)

        ref = signal.ref_id
        if ref is not None:
            pair = self._pairs.get(ref)
            if pair is None:
                where = "a non-start signal" if ref in self._seen else "an unknown signal"
                self.diagnostics.append(
                    Diagnostic(
                        kind=DANGLING_REFERENCE,
                        message=f"{signal.type} references {where} {ref}",
                        signal_id=signal.id,
                        detail={"ref_id": ref},
                    )
                )
            elif pair.end is not None:
                self.diagnostics.append(
                    Diagnostic(
                        kind=ORPHAN_END,
                        message=f"{signal.type} closes {ref}, already closed by {pair.end.id}",
                        signal_id=signal.id,
                        detail={"ref_id": ref},
                    )
                )
            else:
                self._pairs[ref] = CorrelationPair(start=pair.start, end=signal)
        elif signal.kind is SignalKind.END:
            self.diagnostics.append(
                Diagnostic(
                    kind=ORPHAN_END,
                    message=f"{signal.type} has no ref_id",
                    signal_id=signal.id,
                )
            )

        self._seen.add(signal.id)


def index(signals: Iterable[Signal]) -> CorrelationIndex:
    """Build a CorrelationIndex in a single pass over signals."""
    idx = CorrelationIndex()
    for signal in signals:
        idx.add(signal)
    return idx

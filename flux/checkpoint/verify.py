"""
Checkpoint verification.

A checkpoint is reproducible: re-reducing the log prefix it was taken from
must yield byte-identical State. Verification checks, in order:
- the stored state bytes still hash to state_hash
- the watermark last_id still exists in the log
- re-reduction of the log up to last_id hashes to state_hash
"""

from dataclasses import dataclass
from itertools import takewhile
from typing import Iterator, Optional

from ..core.reducer import Reducer, default_reducer
from ..core.signals import Signal
from ..log.store import SignalStore
from .model import Checkpoint
from .snapshot import compute_state_hash


@dataclass
class VerificationResult:
    """
    Result of checkpoint verification.

    Fields:
        valid: Overall validity (all checks passed)
        state_hash_valid: Stored state matches state_hash
        watermark_found: last_id exists in the log
        replay_state_valid: Re-reduced state matches state_hash
        error: Error message if verification failed
    """
    valid: bool
    state_hash_valid: bool = False
    watermark_found: bool = False
    replay_state_valid: bool = False
    error: Optional[str] = None


def _prefix(store: SignalStore, last_id: str) -> Iterator[Signal]:
    found = False

    def before_watermark(signal: Signal) -> bool:
        nonlocal found
        if found:
            return False
        found = signal.id == last_id
        return True

    return takewhile(before_watermark, store.read_all())


def verify_checkpoint(
    checkpoint: Checkpoint,
    store: SignalStore,
    reducer: Optional[Reducer] = None,
) -> VerificationResult:
    """
    Verify a checkpoint against the log it was taken from.

    Args:
        checkpoint: Checkpoint to verify
        store: Signal log
        reducer: Reducer used for re-reduction (default rules if None)

    Returns:
        VerificationResult with every check performed up to the first failure
    """
    reducer = reducer or default_reducer()

    stored_hash = compute_state_hash(checkpoint.to_state())
    if stored_hash != checkpoint.state_hash:
        return VerificationResult(
            valid=False,
            error=f"State hash mismatch: computed {stored_hash}, expected {checkpoint.state_hash}",
        )

    if checkpoint.last_id is None:
        replayed = reducer.reduce([])
    else:
        if not store.contains(checkpoint.last_id):
            return VerificationResult(
                valid=False,
                state_hash_valid=True,
                error=f"Signal {checkpoint.last_id} not found in log",
            )
        replayed = reducer.reduce(_prefix(store, checkpoint.last_id))

    replayed_hash = compute_state_hash(replayed)
    if replayed_hash != checkpoint.state_hash:
        return VerificationResult(
            valid=False,
            state_hash_valid=True,
            watermark_found=True,
            replay_state_valid=False,
            error=f"Replayed state hash mismatch: computed {replayed_hash}, expected {checkpoint.state_hash}",
        )

    return VerificationResult(
        valid=True,
        state_hash_valid=True,
        watermark_found=True,
        replay_state_valid=True,
    )

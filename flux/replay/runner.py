"""
Replay runner.

Three modes over a Signal sequence (live log or imported):
- dry_run: describe the effect of every actionable Signal; no side effects
- execute: re-enact effects through a caller-supplied Executor, recording a
  new start/end pair per attempt
- diff: reduce the sequence to a hypothetical State and compare it with the
  live State (drift detection); nothing is mutated

reconstruct() is the plain fold from a store, used for state rebuilds.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..checkpoint.diff import Change, diff
from ..core.correlation import index as correlation_index
from ..core.diagnostics import EFFECT_ERROR, Diagnostic, report
from ..core.errors import EffectError
from ..core.reducer import Reducer, default_reducer
from ..core.signals import END_SUFFIX, REF_ID, START_SUFFIX, Signal
from ..core.state import State
from ..log.store import SignalStore
from .executor import Effect, Executor, Outcome, correlation_keys, describe, is_actionable, resource_claims
from .filters import TimeBound, select

logger = logging.getLogger(__name__)

# (type, payload) -> recorded Signal
Recorder = Callable[[str, Dict[str, Any]], Signal]

PLANNED = "planned"
SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"


class ReplayMode(str, Enum):
    DRY_RUN = "dry_run"
    EXECUTE = "execute"
    DIFF = "diff"


@dataclass(frozen=True)
class ReplayEntry:
    """
    Per-Signal line of a replay report.

    Fields:
        signal_id: Replayed Signal
        effect: Effect derived from it
        status: planned (dry run), succeeded, failed or skipped (execute)
        outcome: Executor outcome, when the effect ran
        error: Failure message, when it failed
        recorded: Ids of the start/end Signals recorded for this attempt
    """
    signal_id: str
    effect: Effect
    status: str
    outcome: Optional[Outcome] = None
    error: Optional[str] = None
    recorded: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "effect": self.effect.to_dict(),
            "status": self.status,
            "exit_code": self.outcome.exit_code if self.outcome else None,
            "error": self.error,
            "recorded": list(self.recorded),
        }


@dataclass(frozen=True)
class ReplayReport:
    """Terminal result of a replay run."""
    mode: ReplayMode
    entries: Tuple[ReplayEntry, ...] = ()
    changes: Tuple[Change, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    considered: int = 0
    aborted: bool = False

    def __len__(self) -> int:
        return len(self.entries)

    def count(self, status: str) -> int:
        return sum(1 for e in self.entries if e.status == status)

    @property
    def drifted(self) -> bool:
        return bool(self.changes)

    @property
    def ok(self) -> bool:
        return not self.aborted and self.count(FAILED) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "considered": self.considered,
            "aborted": self.aborted,
            "entries": [e.to_dict() for e in self.entries],
            "changes": [c.to_dict() for c in self.changes],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


@dataclass(frozen=True)
class ReplayResult:
    """
    Result of a state reconstruction.

    Fields:
        state: Final state after folding
        applied: Number of Signals folded
        diagnostics: CorruptRecord findings from reading the log
    """
    state: State
    applied: int
    diagnostics: Tuple[Diagnostic, ...] = ()


def reconstruct(
    store: SignalStore,
    reducer: Optional[Reducer] = None,
    seed: Optional[State] = None,
    after_id: Optional[str] = None,
) -> ReplayResult:
    """
    Rebuild State from a store.

    Args:
        store: Signal log to read
        reducer: Reducer with registered rules (default rules if None)
        seed: State to resume from
        after_id: Fold only Signals after this id (pair with seed)

    Raises:
        SignalNotFound: If after_id is given and absent from the log
    """
    reducer = reducer or default_reducer()
    sink: List[Diagnostic] = []
    signals = store.read_since(after_id, sink) if after_id else store.read_all(sink)

    applied = 0

    def counted(items: Iterable[Signal]) -> Iterable[Signal]:
        nonlocal applied
        for item in items:
            applied += 1
            yield item

    state = reducer.reduce(counted(signals), seed=seed)
    return ReplayResult(state=state, applied=applied, diagnostics=tuple(sink))


def dry_run(signals: Iterable[Signal]) -> ReplayReport:
    """Plan every actionable Signal without invoking anything."""
    signals = list(signals)
    entries = tuple(
        ReplayEntry(signal_id=s.id, effect=describe(s), status=PLANNED)
        for s in signals
        if is_actionable(s)
    )
    return ReplayReport(
        mode=ReplayMode.DRY_RUN,
        entries=entries,
        diagnostics=tuple(correlation_index(signals).diagnostics),
        considered=len(signals),
    )


def detect_drift(
    signals: Iterable[Signal],
    live_state: State,
    reducer: Optional[Reducer] = None,
) -> ReplayReport:
    """
    Compare the State implied by signals with live_state.

    Changes read as live -> implied: before is the live value, after is the
    value the sequence implies.
    """
    signals = list(signals)
    reducer = reducer or default_reducer()
    implied = reducer.reduce(signals)
    changes = diff(live_state, implied)
    if changes:
        logger.info("drift detected: %d changed paths", len(changes))
    return ReplayReport(
        mode=ReplayMode.DIFF,
        changes=tuple(changes),
        diagnostics=tuple(correlation_index(signals).diagnostics),
        considered=len(signals),
    )


def _groups(actionable: Sequence[Signal]) -> List[List[int]]:
    """
    Partition positions into chains that must run serially.

    Two Signals share a chain when they are linked by ref_id or claim a
    common resource. Chains keep original order and are themselves ordered
    by their first member.
    """
    parent = list(range(len(actionable)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    owner: Dict[str, int] = {}
    for pos, signal in enumerate(actionable):
        for key in correlation_keys(signal) | resource_claims(signal):
            if key in owner:
                a, b = find(owner[key]), find(pos)
                if a != b:
                    parent[max(a, b)] = min(a, b)
            else:
                owner[key] = pos

    chains: Dict[int, List[int]] = {}
    for pos in range(len(actionable)):
        chains.setdefault(find(pos), []).append(pos)
    return [chains[root] for root in sorted(chains)]


class _ExecuteRun:
    """State of one execute-mode run, shared by worker threads."""

    def __init__(self, executor: Executor, record: Recorder, continue_on_error: bool) -> None:
        self.executor = executor
        self.record = record
        self.continue_on_error = continue_on_error
        self.stop = threading.Event()
        self.diagnostics: List[Diagnostic] = []
        self._lock = threading.Lock()

    def attempt(self, signal: Signal) -> ReplayEntry:
        effect = describe(signal)
        operation = effect.operation
        start_payload = {k: v for k, v in effect.payload.items() if k != REF_ID}
        start_payload["replay_of"] = signal.id
        start = self.record(operation + START_SUFFIX, start_payload)

        outcome: Optional[Outcome] = None
        error: Optional[str] = None
        try:
            outcome = self.executor.invoke(effect)
        except EffectError as ex:
            error = str(ex)
            outcome = Outcome(success=False, exit_code=ex.exit_code)
        except Exception as ex:
            # Any executor crash is a failed effect; the attempt is still closed.
            logger.exception("executor failed on %s", effect.description, extra={"trace_id": signal.id})
            error = f"{type(ex).__name__}: {ex}"
            outcome = Outcome(success=False)

        if error is None and not outcome.success:
            error = f"{effect.description} exited with {outcome.exit_code}"

        end_payload: Dict[str, Any] = {
            REF_ID: start.id,
            "replay_of": signal.id,
            "success": outcome.success,
            "exit_code": outcome.exit_code,
        }
        if error is not None:
            end_payload["error"] = error
        end = self.record(operation + END_SUFFIX, end_payload)

        if error is not None:
            with self._lock:
                report(
                    self.diagnostics,
                    Diagnostic(
                        kind=EFFECT_ERROR,
                        message=error,
                        signal_id=signal.id,
                        detail={"start_id": start.id, "end_id": end.id},
                    ),
                )
            if not self.continue_on_error:
                self.stop.set()

        return ReplayEntry(
            signal_id=signal.id,
            effect=effect,
            status=SUCCEEDED if error is None else FAILED,
            outcome=outcome,
            error=error,
            recorded=(start.id, end.id),
        )

    def run_chain(self, chain: List[int], actionable: Sequence[Signal], results: Dict[int, ReplayEntry]) -> None:
        for pos in chain:
            if self.stop.is_set():
                return
            results[pos] = self.attempt(actionable[pos])


def execute(
    signals: Iterable[Signal],
    executor: Executor,
    record: Recorder,
    continue_on_error: bool = False,
    max_workers: int = 1,
) -> ReplayReport:
    """
    Re-enact every actionable Signal through executor.

    Each attempt is recorded as a new <op>_start / <op>_end pair (the end
    carries the outcome). On the first failure the rest of the run is
    skipped unless continue_on_error is set; the failed attempt is still
    recorded.

    Args:
        signals: Sequence to replay
        executor: Performs the effects
        record: Appends a new Signal (type, payload) durably and returns it
        continue_on_error: Keep going after a failed effect
        max_workers: Size of the worker pool for independent chains

    Raises:
        StoreError: If recording an attempt fails (the run stops)
    """
    signals = list(signals)
    actionable = [s for s in signals if is_actionable(s)]
    run = _ExecuteRun(executor, record, continue_on_error)
    results: Dict[int, ReplayEntry] = {}

    chains = _groups(actionable)
    if max_workers <= 1 or len(chains) <= 1:
        for pos in range(len(actionable)):
            if run.stop.is_set():
                break
            results[pos] = run.attempt(actionable[pos])
    else:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="flux-replay") as pool:
            futures = [pool.submit(run.run_chain, chain, actionable, results) for chain in chains]
            for future in futures:
                future.result()

    entries = []
    for pos, signal in enumerate(actionable):
        entry = results.get(pos)
        if entry is None:
            entry = ReplayEntry(signal_id=signal.id, effect=describe(signal), status=SKIPPED)
        entries.append(entry)

    diagnostics = list(correlation_index(signals).diagnostics) + run.diagnostics
    return ReplayReport(
        mode=ReplayMode.EXECUTE,
        entries=tuple(entries),
        diagnostics=tuple(diagnostics),
        considered=len(signals),
        aborted=run.stop.is_set(),
    )


def replay(
    signals: Iterable[Signal],
    mode: ReplayMode = ReplayMode.DRY_RUN,
    *,
    types: Optional[Sequence[str]] = None,
    since: TimeBound = None,
    until: TimeBound = None,
    executor: Optional[Executor] = None,
    record: Optional[Recorder] = None,
    live_state: Optional[State] = None,
    reducer: Optional[Reducer] = None,
    continue_on_error: bool = False,
    max_workers: int = 1,
) -> ReplayReport:
    """
    Filter signals, then run them through the requested mode.

    Raises:
        ValueError: If the mode's collaborators are missing (executor and
            record for execute, live_state for diff) or a bound is invalid
    """
    mode = ReplayMode(mode)
    selected = list(select(signals, types=types, since=since, until=until))
    logger.info("replay %s over %d signals", mode.value, len(selected))

    if mode is ReplayMode.DRY_RUN:
        return dry_run(selected)
    if mode is ReplayMode.DIFF:
        if live_state is None:
            raise ValueError("diff mode requires live_state")
        return detect_drift(selected, live_state, reducer=reducer)
    if executor is None or record is None:
        raise ValueError("execute mode requires an executor and a recorder")
    return execute(
        selected,
        executor,
        record,
        continue_on_error=continue_on_error,
        max_workers=max_workers,
    )

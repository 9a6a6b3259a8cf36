"""
Caller-facing facade over one project's Signal log and checkpoints.

Host tools (the CLI layer that runs commands, manages packages, ...) use this
class to record what they did and to read State, diffs and replay reports
back. It owns the single in-process writer of the log.
"""

import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .checkpoint.diff import Change, diff
from .checkpoint.model import Checkpoint, CheckpointInfo
from .checkpoint.store import CheckpointStore
from .checkpoint.verify import VerificationResult, verify_checkpoint
from .config import FluxConfig, find_root
from .core.canonical import canonicalize
from .core.clock import SystemClock, format_timestamp
from .core.diagnostics import CHECKPOINT_NOT_FOUND, CHECKPOINT_STALE, Diagnostic, report
from .core.errors import FluxError, InvalidSignalError, SignalNotFound
from .core.ids import IdGenerator, default_generator, is_valid_id
from .core.reducer import Reducer, default_reducer
from .core.signals import Signal
from .core.state import State
from .log.file_store import FileSignalStore
from .log.store import SignalStore
from .logging_config import get_logger
from .replay.executor import Executor
from .replay.filters import TimeBound
from .replay.runner import ReplayMode, ReplayReport, ReplayResult, reconstruct, replay

logger = logging.getLogger(__name__)

Source = Union[None, str, Path, SignalStore, Iterable[Signal]]


def _log_new_diagnostics(state: State, already: int) -> None:
    # Reducer findings are logged here, never during the fold.
    for diagnostic in state.diagnostics[already:]:
        report(None, diagnostic)


@dataclass(frozen=True)
class DiffResult:
    """
    Result of diff_since().

    Fields:
        base: What the diff is relative to (checkpoint name or Signal id)
        changes: Changes from base to the current State
        diagnostics: CheckpointNotFound and read findings
        found: False when base could not be resolved (changes is then empty)
    """
    base: str
    changes: Tuple[Change, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    found: bool = True


class FluxProject:
    """
    One project's event-sourced history.

    Usage:
        project = FluxProject.create("/path/to/app")
        start = project.record("exec_start", {"command": "bundle", "args": ["install"]})
        project.record("exec_end", {"ref_id": start.id, "exit_code": 0})
        state = project.current_state()
    """

    def __init__(
        self,
        root: Union[str, Path],
        config: Optional[FluxConfig] = None,
        clock=None,
        ids: Optional[IdGenerator] = None,
        reducer: Optional[Reducer] = None,
    ) -> None:
        """
        Args:
            root: Project root (the directory holding the state directory)
            config: Settings (FluxConfig.from_env() if None)
            clock: Wall-clock source for Signal timestamps
            ids: Identifier generator (the process-wide one if None)
            reducer: Reduction rules (default rules if None)
        """
        self.root = Path(root)
        self.config = config or FluxConfig.from_env()
        self.clock = clock or SystemClock()
        self.ids = ids or default_generator()
        self.reducer = reducer or default_reducer()
        self.state_dir = self.config.state_dir(self.root)
        self.store = FileSignalStore(str(self.config.log_path(self.root)), fsync=self.config.fsync)
        self.checkpoints = CheckpointStore(
            str(self.config.checkpoint_path(self.root)),
            fsync=self.config.fsync,
            clock=self.clock,
        )
        self._record_lock = threading.Lock()

    @classmethod
    def create(cls, root: Union[str, Path], **kwargs: Any) -> "FluxProject":
        """Create (or reopen) the state directory under root."""
        config = kwargs.get("config") or FluxConfig.from_env()
        config.state_dir(Path(root)).mkdir(parents=True, exist_ok=True)
        return cls(root, **kwargs)

    @classmethod
    def open(cls, start: Union[str, Path, None] = None, **kwargs: Any) -> "FluxProject":
        """
        Open the project whose state directory is at or above start.

        Raises:
            FluxError: If no state directory is found
        """
        config = kwargs.get("config") or FluxConfig.from_env()
        root = find_root(Path(start) if start else None, config)
        if root is None:
            raise FluxError(f"no {config.dir_name} directory found; not a Flux project")
        return cls(root, **kwargs)

    def record(self, signal_type: str, payload: Any = None) -> Signal:
        """
        Assign id and timestamp to a new Signal and append it durably.

        Id assignment and append happen under one lock, so log order matches
        id order for everything this process writes.

        Raises:
            InvalidSignalError: If the type is empty or the payload is not JSON-representable
            IoFailure: If the append did not reach stable storage
        """
        if not isinstance(signal_type, str) or not signal_type:
            raise InvalidSignalError(f"invalid signal type: {signal_type!r}")
        payload = canonicalize(payload if payload is not None else {})
        with self._record_lock:
            signal = Signal(
                id=self.ids.next_id(),
                type=signal_type,
                payload=payload,
                timestamp=format_timestamp(self.clock.now()),
            )
            self.store.append(signal)
        get_logger(__name__, trace_id=signal.id).info("recorded %s", signal.type)
        return signal

    def signals(self, diagnostics: Optional[List[Diagnostic]] = None) -> Iterable[Signal]:
        return self.store.read_all(diagnostics)

    def load_state(self, use_checkpoint: bool = True) -> ReplayResult:
        """
        Reduce the log, resuming from the latest usable checkpoint.

        A checkpoint whose watermark is missing from the log is ignored (with
        a CHECKPOINT_STALE diagnostic) and the whole log is reduced instead.

        Returns:
            ReplayResult: state, folded-signal count, read diagnostics
        """
        extra: List[Diagnostic] = []
        if use_checkpoint:
            checkpoint = self.checkpoints.latest()
            if checkpoint is not None and checkpoint.last_id is not None:
                seed = checkpoint.to_state()
                try:
                    result = reconstruct(
                        self.store,
                        self.reducer,
                        seed=seed,
                        after_id=checkpoint.last_id,
                    )
                    _log_new_diagnostics(result.state, len(seed.diagnostics))
                    return result
                except SignalNotFound:
                    report(
                        extra,
                        Diagnostic(
                            kind=CHECKPOINT_STALE,
                            message=f"checkpoint {checkpoint.name!r} watermark not in log; full reduce",
                            signal_id=checkpoint.last_id,
                            detail={"checkpoint": checkpoint.name},
                        ),
                    )
        result = reconstruct(self.store, self.reducer)
        _log_new_diagnostics(result.state, 0)
        return replace(result, diagnostics=tuple(extra) + result.diagnostics)

    def current_state(self) -> State:
        return self.load_state().state

    def checkpoint(self, name: str, meta: Optional[Dict[str, Any]] = None) -> Checkpoint:
        """Snapshot the current State under name."""
        state = self.load_state().state
        return self.checkpoints.save(name, state, state.last_id, meta=meta)

    def load_checkpoint(self, name: str) -> Optional[Checkpoint]:
        return self.checkpoints.load(name)

    def list_checkpoints(self) -> List[CheckpointInfo]:
        return self.checkpoints.list()

    def verify(self, name: str) -> Optional[VerificationResult]:
        """Re-reduce the log and check checkpoint name; None if it does not exist."""
        checkpoint = self.checkpoints.load(name)
        if checkpoint is None:
            return None
        return verify_checkpoint(checkpoint, self.store, self.reducer)

    def state_at(self, signal_id: str) -> Optional[State]:
        """State folded up to and including signal_id, or None if absent."""
        if not self.store.contains(signal_id):
            return None
        prefix: List[Signal] = []
        for signal in self.store.read_all():
            prefix.append(signal)
            if signal.id == signal_id:
                break
        return self.reducer.reduce(prefix)

    def _resolve(self, name_or_id: str) -> Optional[State]:
        checkpoint = self.checkpoints.load(name_or_id)
        if checkpoint is not None:
            return checkpoint.to_state()
        if is_valid_id(name_or_id):
            return self.state_at(name_or_id)
        return None

    def diff_since(self, name_or_id: str) -> DiffResult:
        """
        Changes from a checkpoint (by name) or a Signal (by id) to now.

        An unknown base is not an error: the result has found=False, no
        changes, and a CHECKPOINT_NOT_FOUND diagnostic.
        """
        base = self._resolve(name_or_id)
        if base is None:
            missing = report(
                None,
                Diagnostic(
                    kind=CHECKPOINT_NOT_FOUND,
                    message=f"no checkpoint or signal named {name_or_id!r}",
                    detail={"base": name_or_id},
                ),
            )
            return DiffResult(base=name_or_id, diagnostics=(missing,), found=False)
        current = self.load_state()
        return DiffResult(
            base=name_or_id,
            changes=tuple(diff(base, current.state)),
            diagnostics=current.diagnostics,
        )

    def diff_checkpoints(self, before: str, after: str) -> DiffResult:
        """Changes between two named checkpoints (or Signal ids)."""
        a = self._resolve(before)
        b = self._resolve(after)
        missing = [n for n, s in ((before, a), (after, b)) if s is None]
        if missing:
            diagnostics = tuple(
                report(
                    None,
                    Diagnostic(
                        kind=CHECKPOINT_NOT_FOUND,
                        message=f"no checkpoint or signal named {n!r}",
                        detail={"base": n},
                    ),
                )
                for n in missing
            )
            return DiffResult(base=before, diagnostics=diagnostics, found=False)
        return DiffResult(base=before, changes=tuple(diff(a, b)))

    def replay(
        self,
        source: Source = None,
        mode: Union[ReplayMode, str] = ReplayMode.DRY_RUN,
        *,
        types: Optional[Sequence[str]] = None,
        since: TimeBound = None,
        until: TimeBound = None,
        executor: Optional[Executor] = None,
        continue_on_error: Optional[bool] = None,
        max_workers: Optional[int] = None,
    ) -> ReplayReport:
        """
        Replay a Signal sequence against this project.

        Args:
            source: None for the live log, a path to another Signal log file,
                a SignalStore, or an iterable of Signals
            mode: dry_run, execute or diff
            types / since / until: Selective replay filters
            executor: Required for execute mode
            continue_on_error: Defaults to config.continue_on_error
            max_workers: Defaults to config.replay_workers

        New Signals recorded by execute mode go to this project's log.
        """
        read_diagnostics: List[Diagnostic] = []
        if source is None:
            signals = list(self.store.read_all(read_diagnostics))
        elif isinstance(source, (str, Path)):
            imported = FileSignalStore(str(source), create=False)
            signals = list(imported.read_all(read_diagnostics))
        elif isinstance(source, SignalStore):
            signals = list(source.read_all(read_diagnostics))
        else:
            signals = list(source)

        mode = ReplayMode(mode)
        live_state = self.current_state() if mode is ReplayMode.DIFF else None
        result = replay(
            signals,
            mode,
            types=types,
            since=since,
            until=until,
            executor=executor,
            record=self.record,
            live_state=live_state,
            reducer=self.reducer,
            continue_on_error=(
                self.config.continue_on_error if continue_on_error is None else continue_on_error
            ),
            max_workers=self.config.replay_workers if max_workers is None else max_workers,
        )
        if read_diagnostics:
            result = replace(result, diagnostics=tuple(read_diagnostics) + result.diagnostics)
        return result

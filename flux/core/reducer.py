"""
Reducer: fold a Signal sequence into a State.

The fold must be:
- Pure (no clock reads, no randomness, no I/O)
- Deterministic (same signals + seed -> same State)
- Total (malformed input degrades to diagnostics, never an exception)

Handlers work on a private StateDraft so a long log is folded in linear time;
the seed State is copied into the draft and never touched.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from .canonical import canonicalize
from .clock import elapsed_ms
from .diagnostics import (
    DANGLING_REFERENCE,
    DUPLICATE_INIT,
    ORPHAN_END,
    Diagnostic,
)
from .signals import (
    ADD,
    BOOTSTRAP,
    INIT,
    REMOVE,
    SNAPSHOT,
    UNDO,
    Signal,
    SignalKind,
)
from .state import FAILURE, INCOMPLETE, SUCCESS, CommandStats, Execution, State

# Handler signature: (draft, signal) -> None
Handler = Callable[["StateDraft", Signal], None]

PACKAGE_ADD = "add"
PACKAGE_REMOVE = "remove"
ANY_VERSION = "*"


class StateDraft:
    """Mutable working copy of a State, private to one reduction."""

    def __init__(self, seed: Optional[State] = None) -> None:
        seed = seed or State.initial()
        self.project: Dict[str, Any] = dict(seed.project)
        self.executions: List[Execution] = list(seed.executions)
        self.environment: Dict[str, Any] = dict(seed.environment)
        self.stats: Dict[str, CommandStats] = dict(seed.stats)
        self.extensions: List[Dict[str, Any]] = list(seed.extensions)
        self.diagnostics: List[Diagnostic] = list(seed.diagnostics)
        self.signal_count = seed.signal_count
        self.last_id = seed.last_id
        self._index: Dict[str, int] = {ex.id: i for i, ex in enumerate(self.executions)}

    def find(self, execution_id: str) -> Optional[Execution]:
        pos = self._index.get(execution_id)
        return None if pos is None else self.executions[pos]

    def open(self, execution: Execution) -> None:
        self._index[execution.id] = len(self.executions)
        self.executions.append(execution)

    def replace(self, execution: Execution) -> None:
        self.executions[self._index[execution.id]] = execution

    def diagnose(self, kind: str, message: str, signal: Signal, **detail: Any) -> None:
        self.diagnostics.append(
            Diagnostic(kind=kind, message=message, signal_id=signal.id, detail=detail)
        )

    def freeze(self) -> State:
        return State(
            project=dict(self.project),
            executions=tuple(self.executions),
            environment=dict(self.environment),
            stats=dict(self.stats),
            extensions=tuple(self.extensions),
            diagnostics=tuple(self.diagnostics),
            signal_count=self.signal_count,
            last_id=self.last_id,
        )


class Reducer:
    """
    Registry of per-type reduction rules.

    Lookup order for a Signal: exact type handler, then the handler for its
    SignalKind (start/end/...), then the custom handler. Nothing is dropped.

    Usage:
        reducer = Reducer()
        reducer.register("deploy", on_deploy)
        state = reducer.reduce(signals)
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}
        self._kind_handlers: Dict[SignalKind, Handler] = {}
        self._custom: Handler = on_custom

    def register(self, signal_type: str, handler: Handler) -> None:
        """
        Register a rule for one exact Signal type.

        Args:
            signal_type: Type string
            handler: Function (draft, signal) -> None; must be pure apart from
                mutating the draft
        """
        self._handlers[signal_type] = handler

    def register_kind(self, kind: SignalKind, handler: Handler) -> None:
        self._kind_handlers[kind] = handler

    def handler_for(self, signal: Signal) -> Handler:
        handler = self._handlers.get(signal.type)
        if handler is None:
            handler = self._kind_handlers.get(signal.kind, self._custom)
        return handler

    def apply(self, draft: StateDraft, signal: Signal) -> None:
        self.handler_for(signal)(draft, signal)
        draft.signal_count += 1
        draft.last_id = signal.id

    def reduce(self, signals: Iterable[Signal], seed: Optional[State] = None) -> State:
        """
        Left fold over signals in the given order, starting from seed.

        Args:
            signals: Signals in log order
            seed: State to resume from (empty State if None)

        Returns:
            New State; seed is left unchanged
        """
        draft = StateDraft(seed)
        for signal in signals:
            self.apply(draft, signal)
        return draft.freeze()


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [v if isinstance(v, str) else str(v) for v in value]


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _package_name(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for key in ("gem", "package", "name"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _package_version(payload: Any) -> str:
    if isinstance(payload, dict):
        version = payload.get("version")
        if isinstance(version, str) and version:
            return version
    return ANY_VERSION


def outcome_of(payload: Any) -> str:
    """success flag wins; otherwise exit_code == 0 means success."""
    if isinstance(payload, dict):
        flag = payload.get("success")
        if isinstance(flag, bool):
            return SUCCESS if flag else FAILURE
        if _int_or_none(payload.get("exit_code")) == 0:
            return SUCCESS
    return FAILURE


def on_init(draft: StateDraft, signal: Signal) -> None:
    if "initialized_at" in draft.project:
        draft.diagnose(
            DUPLICATE_INIT,
            "project already initialized; later init ignored",
            signal,
            first_init_id=draft.project.get("init_id"),
        )
        return
    project = dict(draft.project)
    if isinstance(signal.payload, dict):
        project.update(canonicalize(signal.payload))
    project["initialized_at"] = signal.timestamp
    project["init_id"] = signal.id
    draft.project = project


def on_bootstrap(draft: StateDraft, signal: Signal) -> None:
    version = signal.get("ruby_version") or signal.get("version")
    if isinstance(version, str) and version:
        draft.project["runtime_version"] = version


def on_snapshot(draft: StateDraft, signal: Signal) -> None:
    payload = signal.payload
    if isinstance(payload, dict) and isinstance(payload.get("environment"), dict):
        env = payload["environment"]
    elif isinstance(payload, dict):
        env = payload
    else:
        env = {}
    draft.environment = dict(canonicalize(env))


def on_start(draft: StateDraft, signal: Signal) -> None:
    if draft.find(signal.id) is not None:
        return
    operation = signal.operation or signal.type
    payload = signal.payload if isinstance(signal.payload, dict) else {}
    command = payload.get("command")
    if not isinstance(command, str) or not command:
        command = operation
    args = _str_list(payload.get("args"))
    if not args and "args" not in payload:
        package = _package_name(payload)
        if package:
            args = [package]
            if isinstance(payload.get("version"), str):
                args.append(payload["version"])
    cwd = payload.get("cwd")
    draft.open(
        Execution(
            id=signal.id,
            operation=operation,
            command=command,
            args=tuple(args),
            cwd=cwd if isinstance(cwd, str) else "",
            started_at=signal.timestamp,
            params=canonicalize(payload),
        )
    )


def on_end(draft: StateDraft, signal: Signal) -> None:
    ref = signal.ref_id
    if ref is None:
        draft.diagnose(ORPHAN_END, f"{signal.type} has no ref_id", signal)
        return
    pending = draft.find(ref)
    if pending is None:
        draft.diagnose(
            DANGLING_REFERENCE,
            f"{signal.type} references unknown signal {ref}",
            signal,
            ref_id=ref,
        )
        return
    if pending.status != INCOMPLETE:
        draft.diagnose(
            ORPHAN_END,
            f"{signal.type} closes {ref}, which was already closed by {pending.end_id}",
            signal,
            ref_id=ref,
        )
        return

    status = outcome_of(signal.payload)
    duration = elapsed_ms(pending.started_at, signal.timestamp)
    closed = Execution(
        id=pending.id,
        operation=pending.operation,
        command=pending.command,
        args=pending.args,
        cwd=pending.cwd,
        started_at=pending.started_at,
        status=status,
        ended_at=signal.timestamp,
        exit_code=_int_or_none(signal.get("exit_code")),
        duration_ms=duration,
        end_id=signal.id,
        params=pending.params,
    )
    draft.replace(closed)

    prev = draft.stats.get(closed.command) or CommandStats(command=closed.command)
    draft.stats[closed.command] = CommandStats(
        command=closed.command,
        runs=prev.runs + 1,
        successes=prev.successes + (1 if status == SUCCESS else 0),
        failures=prev.failures + (1 if status == FAILURE else 0),
        total_duration_ms=prev.total_duration_ms + (duration or 0),
        last_run=closed.started_at,
    )

    if status == SUCCESS:
        _apply_package_effect(draft, closed.operation, closed.params)


def _apply_package_effect(draft: StateDraft, operation: str, payload: Any) -> None:
    package = _package_name(payload)
    if package is None:
        return
    if operation == PACKAGE_ADD:
        draft.environment[package] = _package_version(payload)
    elif operation == PACKAGE_REMOVE:
        draft.environment.pop(package, None)


def on_add(draft: StateDraft, signal: Signal) -> None:
    _apply_package_effect(draft, PACKAGE_ADD, signal.payload)


def on_remove(draft: StateDraft, signal: Signal) -> None:
    _apply_package_effect(draft, PACKAGE_REMOVE, signal.payload)


def on_undo(draft: StateDraft, signal: Signal) -> None:
    target_type = signal.get("target_type")
    if not isinstance(target_type, str):
        return
    family = target_type.split("_", 1)[0]
    # Undo applies the inverse effect.
    if family == PACKAGE_ADD:
        _apply_package_effect(draft, PACKAGE_REMOVE, signal.payload)
    elif family == PACKAGE_REMOVE:
        _apply_package_effect(draft, PACKAGE_ADD, signal.payload)


def on_custom(draft: StateDraft, signal: Signal) -> None:
    draft.extensions.append(canonicalize(signal.to_dict()))


def default_reducer() -> Reducer:
    """Reducer with the built-in rules for every well-known Signal type."""
    reducer = Reducer()
    reducer.register(INIT, on_init)
    reducer.register(BOOTSTRAP, on_bootstrap)
    reducer.register(SNAPSHOT, on_snapshot)
    reducer.register(ADD, on_add)
    reducer.register(REMOVE, on_remove)
    reducer.register(UNDO, on_undo)
    reducer.register_kind(SignalKind.START, on_start)
    reducer.register_kind(SignalKind.END, on_end)
    return reducer


_DEFAULT = default_reducer()


def reduce(signals: Iterable[Signal], seed: Optional[State] = None) -> State:
    """Fold signals into a State with the default rules."""
    return _DEFAULT.reduce(signals, seed=seed)

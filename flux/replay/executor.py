"""
Effects and the Executor capability.

The engine never spawns processes or touches environment variables. In
Execute mode it hands an Effect to an Executor supplied by the caller and
records whatever the Executor reports.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Protocol, Tuple

from ..core.signals import REF_ID, Signal, SignalKind


@dataclass(frozen=True)
class Effect:
    """
    Description of the external effect implied by an actionable Signal.

    Fields:
        signal_id: Id of the Signal the effect comes from
        type: Signal type
        operation: Operation family ("exec", "add", ...)
        command: Command to run
        args: Command arguments
        cwd: Working directory recorded with the Signal
        payload: Full Signal payload
    """
    signal_id: str
    type: str
    operation: str
    command: str
    args: Tuple[str, ...] = ()
    cwd: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def description(self) -> str:
        text = " ".join([self.command] + list(self.args))
        if self.command != self.operation:
            text = f"{self.operation}: {text}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "type": self.type,
            "operation": self.operation,
            "command": self.command,
            "args": list(self.args),
            "cwd": self.cwd,
            "description": self.description,
        }


@dataclass(frozen=True)
class Outcome:
    """What an Executor reports for one effect."""
    success: bool
    exit_code: Optional[int] = None
    detail: Dict[str, Any] = field(default_factory=dict)


class Executor(Protocol):
    """
    Caller-supplied capability that performs effects.

    invoke() returns an Outcome, or raises EffectError when the effect could
    not be carried out at all. Timeouts are the Executor's business.
    """

    def invoke(self, effect: Effect) -> Outcome:
        ...


def is_actionable(signal: Signal) -> bool:
    """Start Signals describe an action that can be re-enacted."""
    return signal.kind is SignalKind.START


def describe(signal: Signal) -> Effect:
    payload = signal.payload if isinstance(signal.payload, dict) else {}
    operation = signal.operation or signal.type
    command = payload.get("command")
    if not isinstance(command, str) or not command:
        command = operation
    raw_args = payload.get("args")
    if isinstance(raw_args, (list, tuple)):
        args = tuple(str(a) for a in raw_args)
    else:
        args = tuple(
            str(payload[k]) for k in ("gem", "package", "version") if isinstance(payload.get(k), str)
        )
    cwd = payload.get("cwd")
    return Effect(
        signal_id=signal.id,
        type=signal.type,
        operation=operation,
        command=command,
        args=args,
        cwd=cwd if isinstance(cwd, str) else "",
        payload=dict(payload),
    )


def resource_claims(signal: Signal) -> FrozenSet[str]:
    """
    Resources an effect touches.

    Explicit payload["resources"] entries plus the package an add/remove
    operates on. Effects with disjoint claims may run concurrently.
    """
    claims = set()
    resources = signal.get("resources")
    if isinstance(resources, (list, tuple)):
        claims.update(f"res:{r}" for r in resources)
    for key in ("gem", "package"):
        value = signal.get(key)
        if isinstance(value, str) and value:
            claims.add(f"pkg:{value}")
    return frozenset(claims)


def correlation_keys(signal: Signal) -> FrozenSet[str]:
    keys = {f"id:{signal.id}"}
    ref = signal.get(REF_ID)
    if isinstance(ref, str) and ref:
        keys.add(f"id:{ref}")
    return frozenset(keys)

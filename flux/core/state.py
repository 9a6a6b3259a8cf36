"""
State model.

State is a value: whatever reduce() computes from a log prefix. It has no
identity of its own, is never stored as the source of truth, and is safe to
share between threads because nothing mutates it after construction.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .diagnostics import Diagnostic

INCOMPLETE = "incomplete"
SUCCESS = "success"
FAILURE = "failure"


@dataclass(frozen=True)
class Execution:
    """
    One operation, opened by a *_start Signal and closed by its *_end.

    Fields:
        id: Id of the start Signal (the correlation key)
        operation: Operation family ("exec", "add", ...)
        command: Command name, e.g. "bundle"
        args: Command arguments
        cwd: Working directory reported by the caller
        started_at: Start Signal timestamp
        status: "incomplete" until closed, then "success" or "failure"
        ended_at: End Signal timestamp
        exit_code: Exit code reported by the end Signal
        duration_ms: end.timestamp - start.timestamp
        end_id: Id of the end Signal
        params: Start payload, kept for effects that depend on it (gem name, ...)
    """
    id: str
    operation: str
    command: str
    args: Tuple[str, ...] = ()
    cwd: str = ""
    started_at: str = ""
    status: str = INCOMPLETE
    ended_at: Optional[str] = None
    exit_code: Optional[int] = None
    duration_ms: Optional[int] = None
    end_id: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == SUCCESS

    @property
    def is_complete(self) -> bool:
        return self.status != INCOMPLETE

    @property
    def display(self) -> str:
        return " ".join([self.command] + list(self.args))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "operation": self.operation,
            "command": self.command,
            "args": list(self.args),
            "cwd": self.cwd,
            "started_at": self.started_at,
            "status": self.status,
            "ended_at": self.ended_at,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "end_id": self.end_id,
            "params": dict(self.params),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Execution":
        return Execution(
            id=data["id"],
            operation=data.get("operation", ""),
            command=data.get("command", "unknown"),
            args=tuple(data.get("args") or ()),
            cwd=data.get("cwd", ""),
            started_at=data.get("started_at", ""),
            status=data.get("status", INCOMPLETE),
            ended_at=data.get("ended_at"),
            exit_code=data.get("exit_code"),
            duration_ms=data.get("duration_ms"),
            end_id=data.get("end_id"),
            params=dict(data.get("params") or {}),
        )


@dataclass(frozen=True)
class CommandStats:
    """Aggregate over closed executions of one command."""
    command: str
    runs: int = 0
    successes: int = 0
    failures: int = 0
    total_duration_ms: int = 0
    last_run: str = ""

    @property
    def avg_duration_ms(self) -> Optional[int]:
        if not self.runs:
            return None
        return self.total_duration_ms // self.runs

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "runs": self.runs,
            "successes": self.successes,
            "failures": self.failures,
            "total_duration_ms": self.total_duration_ms,
            "last_run": self.last_run,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CommandStats":
        return CommandStats(
            command=data.get("command", ""),
            runs=int(data.get("runs", 0)),
            successes=int(data.get("successes", 0)),
            failures=int(data.get("failures", 0)),
            total_duration_ms=int(data.get("total_duration_ms", 0)),
            last_run=data.get("last_run", ""),
        )


@dataclass(frozen=True)
class State:
    """
    Point-in-time environment summary.

    Fields:
        project: Project metadata from the init (and bootstrap) Signals
        executions: Operations in start order, complete or not
        environment: Environment key -> value map
        stats: Command name -> CommandStats over closed executions
        extensions: Custom Signals, stored verbatim in log order
        diagnostics: Correlation and policy findings made while reducing
        signal_count: Number of Signals folded
        last_id: Id of the last Signal folded (the checkpoint watermark)
    """
    project: Dict[str, Any] = field(default_factory=dict)
    executions: Tuple[Execution, ...] = ()
    environment: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, CommandStats] = field(default_factory=dict)
    extensions: Tuple[Dict[str, Any], ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    signal_count: int = 0
    last_id: Optional[str] = None

    @staticmethod
    def initial() -> "State":
        return State()

    @property
    def initialized(self) -> bool:
        return "initialized_at" in self.project

    def execution(self, execution_id: str) -> Optional[Execution]:
        for ex in self.executions:
            if ex.id == execution_id:
                return ex
        return None

    def last_execution(self) -> Optional[Execution]:
        return self.executions[-1] if self.executions else None

    def failed_executions(self) -> List[Execution]:
        return [ex for ex in self.executions if ex.status == FAILURE]

    def incomplete_executions(self) -> List[Execution]:
        return [ex for ex in self.executions if ex.status == INCOMPLETE]

    def command_stats(self) -> List[CommandStats]:
        """Per-command statistics, most recently run first."""
        return sorted(self.stats.values(), key=lambda s: (s.last_run, s.command), reverse=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": dict(self.project),
            "executions": [ex.to_dict() for ex in self.executions],
            "environment": dict(self.environment),
            "stats": {name: st.to_dict() for name, st in self.stats.items()},
            "extensions": [dict(x) for x in self.extensions],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "signal_count": self.signal_count,
            "last_id": self.last_id,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "State":
        data = data or {}
        return State(
            project=dict(data.get("project", {})),
            executions=tuple(Execution.from_dict(x) for x in data.get("executions", [])),
            environment=dict(data.get("environment", {})),
            stats={
                name: CommandStats.from_dict(st)
                for name, st in (data.get("stats") or {}).items()
            },
            extensions=tuple(dict(x) for x in data.get("extensions", [])),
            diagnostics=tuple(Diagnostic.from_dict(d) for d in data.get("diagnostics", [])),
            signal_count=int(data.get("signal_count", 0)),
            last_id=data.get("last_id"),
        )

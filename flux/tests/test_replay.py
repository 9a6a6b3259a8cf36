"""
Tests for replay: dry run, execute, drift detection and selective filters.
"""

import threading
import time

import pytest

from flux.core.clock import ManualClock, format_timestamp
from flux.core.diagnostics import EFFECT_ERROR
from flux.core.errors import EffectError
from flux.core.ids import IdGenerator
from flux.core.reducer import reduce
from flux.core.signals import Signal
from flux.log.store import MemorySignalStore
from flux.replay.executor import Outcome, describe
from flux.replay.filters import select
from flux.replay.runner import (
    FAILED,
    PLANNED,
    SKIPPED,
    SUCCEEDED,
    ReplayMode,
    _groups,
    replay,
)


def _factory():
    ids = IdGenerator()
    clock = ManualClock()
    lock = threading.Lock()

    def make(signal_type, payload=None, after_ms=1):
        with lock:
            clock.advance(after_ms)
            return Signal(
                id=ids.next_id(),
                type=signal_type,
                payload=payload or {},
                timestamp=format_timestamp(clock.now()),
            )

    return make


def _recorder(make):
    store = MemorySignalStore()

    def record(signal_type, payload):
        signal = make(signal_type, payload)
        store.append(signal)
        return signal

    return store, record


class ScriptedExecutor:
    """Succeeds unless the effect's command is listed in failing."""

    def __init__(self, failing=(), delay=0.0):
        self.failing = set(failing)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def invoke(self, effect):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.calls.append(effect)
        if effect.command in self.failing:
            return Outcome(success=False, exit_code=1)
        return Outcome(success=True, exit_code=0)


class ExplodingExecutor:
    def invoke(self, effect):
        raise AssertionError("dry run must not invoke effects")


def _session(make):
    s1 = make("exec_start", {"command": "bundle", "args": ["install"], "cwd": "/app"})
    e1 = make("exec_end", {"ref_id": s1.id, "exit_code": 0})
    s2 = make("add_start", {"gem": "rails", "version": "7.1.0"})
    e2 = make("add_end", {"ref_id": s2.id, "success": True})
    s3 = make("exec_start", {"command": "rake", "args": ["db:migrate"]})
    e3 = make("exec_end", {"ref_id": s3.id, "exit_code": 0})
    return [s1, e1, s2, e2, s3, e3]


def test_dry_run_never_invokes_and_matches_filter():
    make = _factory()
    signals = _session(make)

    report = replay(signals, ReplayMode.DRY_RUN, types=["exec_start"], executor=ExplodingExecutor())

    assert len(report) == 2
    assert [e.status for e in report.entries] == [PLANNED, PLANNED]
    assert [e.effect.description for e in report.entries] == ["exec: bundle install", "exec: rake db:migrate"]
    assert report.considered == 2


def test_dry_run_plans_every_start_in_order():
    make = _factory()
    signals = _session(make)

    report = replay(signals)

    assert [e.signal_id for e in report.entries] == [signals[0].id, signals[2].id, signals[4].id]
    assert report.entries[1].effect.description == "add rails 7.1.0"
    assert report.diagnostics == ()


def test_select_preserves_order_and_bounds_are_inclusive():
    make = _factory()
    signals = _session(make)

    picked = list(select(signals, since=signals[1].timestamp, until=signals[3].timestamp))

    assert picked == signals[1:4]
    assert list(select(signals, types=["exec_end", "exec_start"])) == [
        signals[0], signals[1], signals[4], signals[5]
    ]


def test_select_drops_unparseable_timestamps_only_when_bounded():
    make = _factory()
    good = make("note")
    bad = Signal(id=make("note").id, type="note", payload={}, timestamp="yesterday")

    assert list(select([good, bad])) == [good, bad]
    assert list(select([good, bad], since="2000-01-01T00:00:00Z")) == [good]


def test_select_rejects_invalid_bound():
    make = _factory()
    with pytest.raises(ValueError):
        list(select(_session(make), since="not a time"))


def test_execute_records_new_pairs():
    make = _factory()
    signals = _session(make)
    store, record = _recorder(make)
    executor = ScriptedExecutor()

    report = replay(signals, ReplayMode.EXECUTE, executor=executor, record=record)

    assert report.ok
    assert report.count(SUCCEEDED) == 3
    assert [e.command for e in executor.calls] == ["bundle", "add", "rake"]
    assert executor.calls[0].args == ("install",)
    assert executor.calls[0].cwd == "/app"

    recorded = list(store.read_all())
    assert [s.type for s in recorded] == [
        "exec_start", "exec_end", "add_start", "add_end", "exec_start", "exec_end"
    ]
    assert recorded[0].payload["replay_of"] == signals[0].id
    assert recorded[1].payload["ref_id"] == recorded[0].id
    assert report.entries[0].recorded == (recorded[0].id, recorded[1].id)

    state = reduce(recorded)
    assert [ex.status for ex in state.executions] == ["success"] * 3
    assert state.environment == {"rails": "7.1.0"}


def test_execute_aborts_on_first_failure():
    make = _factory()
    s1 = make("exec_start", {"command": "bundle"})
    s2 = make("exec_start", {"command": "rake"})
    s3 = make("exec_start", {"command": "rails"})
    store, record = _recorder(make)

    report = replay([s1, s2, s3], ReplayMode.EXECUTE, executor=ScriptedExecutor(failing=["rake"]), record=record)

    assert [e.status for e in report.entries] == [SUCCEEDED, FAILED, SKIPPED]
    assert report.aborted
    assert not report.ok
    assert len(store) == 4
    assert [d.kind for d in report.diagnostics].count(EFFECT_ERROR) == 1
    assert report.diagnostics[0].signal_id == s2.id

    failed = reduce(store.read_all()).failed_executions()
    assert [ex.command for ex in failed] == ["rake"]


def test_execute_continue_on_error():
    make = _factory()
    s1 = make("exec_start", {"command": "bundle"})
    s2 = make("exec_start", {"command": "rake"})
    s3 = make("exec_start", {"command": "rails"})
    store, record = _recorder(make)

    report = replay(
        [s1, s2, s3],
        ReplayMode.EXECUTE,
        executor=ScriptedExecutor(failing=["rake"]),
        record=record,
        continue_on_error=True,
    )

    assert [e.status for e in report.entries] == [SUCCEEDED, FAILED, SUCCEEDED]
    assert not report.aborted
    assert len(store) == 6


def test_execute_effect_error_is_recorded():
    make = _factory()
    start = make("exec_start", {"command": "missing-tool"})
    store, record = _recorder(make)

    class Broken:
        def invoke(self, effect):
            raise EffectError("command not found", exit_code=127)

    report = replay([start], ReplayMode.EXECUTE, executor=Broken(), record=record)

    entry = report.entries[0]
    assert entry.status == FAILED
    assert entry.error == "command not found"
    end = list(store.read_all())[1]
    assert end.payload["success"] is False
    assert end.payload["exit_code"] == 127
    assert end.payload["error"] == "command not found"


def test_chains_group_by_shared_resources():
    make = _factory()
    actionable = [
        make("add_start", {"gem": "rails"}),
        make("exec_start", {"command": "migrate", "resources": ["db"]}),
        make("remove_start", {"gem": "rails"}),
        make("exec_start", {"command": "seed", "resources": ["db"]}),
        make("exec_start", {"command": "lint"}),
    ]

    assert _groups(actionable) == [[0, 2], [1, 3], [4]]


def test_parallel_execute_keeps_chain_order():
    make = _factory()
    signals = [
        make("add_start", {"gem": "rails", "version": "7.0.0"}),
        make("exec_start", {"command": "migrate", "resources": ["db"]}),
        make("add_start", {"gem": "rails", "version": "7.1.0"}),
        make("exec_start", {"command": "seed", "resources": ["db"]}),
        make("exec_start", {"command": "lint"}),
    ]
    store, record = _recorder(make)
    executor = ScriptedExecutor(delay=0.01)

    report = replay(signals, ReplayMode.EXECUTE, executor=executor, record=record, max_workers=4)

    assert report.ok
    assert [e.signal_id for e in report.entries] == [s.id for s in signals]
    order = [e.signal_id for e in executor.calls]
    assert len(order) == 5
    assert order.index(signals[0].id) < order.index(signals[2].id)
    assert order.index(signals[1].id) < order.index(signals[3].id)
    assert reduce(store.read_all()).environment == {"rails": "7.1.0"}


def test_diff_mode_reports_drift():
    make = _factory()
    init = make("init", {"name": "app"})
    rails = make("add", {"gem": "rails", "version": "7.1.0"})
    live = reduce([init, rails])

    imported = [init, rails, make("add", {"gem": "pry"})]
    report = replay(imported, ReplayMode.DIFF, live_state=live)

    changes = {c.path: c for c in report.changes}
    assert report.drifted
    assert changes["environment.pry"].before is None
    assert changes["environment.pry"].after == "*"
    assert "environment.rails" not in changes


def test_diff_mode_without_drift():
    make = _factory()
    signals = _session(make)

    report = replay(signals, ReplayMode.DIFF, live_state=reduce(signals))

    assert not report.drifted
    assert report.changes == ()


def test_missing_collaborators_raise():
    make = _factory()
    signals = _session(make)

    with pytest.raises(ValueError):
        replay(signals, ReplayMode.EXECUTE)
    with pytest.raises(ValueError):
        replay(signals, ReplayMode.DIFF)


def test_describe_package_effect():
    make = _factory()
    effect = describe(make("add_start", {"gem": "rails", "version": "7.1.0"}))

    assert effect.operation == "add"
    assert effect.command == "add"
    assert effect.args == ("rails", "7.1.0")


def test_execute_records_end_when_executor_crashes():
    """An unexpected executor exception is a failed attempt, never a half-recorded one."""
    make = _factory()
    first = make("exec_start", {"command": "slow-tool"})
    second = make("exec_start", {"command": "bundle"})
    store, record = _recorder(make)

    class TimingOut:
        def __init__(self):
            self.calls = 0

        def invoke(self, effect):
            self.calls += 1
            if effect.command == "slow-tool":
                raise TimeoutError("no answer after 30s")
            return Outcome(success=True, exit_code=0)

    executor = TimingOut()
    report = replay([first, second], ReplayMode.EXECUTE, executor=executor, record=record)

    assert [e.status for e in report.entries] == [FAILED, SKIPPED]
    assert report.aborted
    assert "TimeoutError" in report.entries[0].error
    recorded = list(store.read_all())
    assert [s.type for s in recorded] == ["exec_start", "exec_end"]
    assert recorded[1].payload["ref_id"] == recorded[0].id
    assert recorded[1].payload["success"] is False
    assert [d.kind for d in report.diagnostics].count(EFFECT_ERROR) == 1
    assert reduce(recorded).failed_executions()[0].command == "slow-tool"

    store, record = _recorder(make)
    report = replay(
        [first, second],
        ReplayMode.EXECUTE,
        executor=TimingOut(),
        record=record,
        continue_on_error=True,
    )
    assert [e.status for e in report.entries] == [FAILED, SUCCEEDED]
    assert len(store) == 4

"""
End-to-end tests through FluxProject: record, state, checkpoints, diff, replay.
"""

import logging
import os
import tempfile
import threading
import time

import pytest

from flux.config import FluxConfig
from flux.core.clock import ManualClock
from flux.core.diagnostics import CHECKPOINT_NOT_FOUND, CHECKPOINT_STALE, DANGLING_REFERENCE
from flux.core.errors import FluxError, InvalidSignalError
from flux.core.ids import default_generator
from flux.project import FluxProject
from flux.replay.executor import Outcome
from flux.replay.runner import SUCCEEDED


def _project(root, clock=None):
    return FluxProject.create(root, config=FluxConfig(fsync=False), clock=clock or ManualClock())


class OkExecutor:
    def __init__(self):
        self.calls = []

    def invoke(self, effect):
        self.calls.append(effect)
        return Outcome(success=True, exit_code=0)


def test_record_and_current_state():
    """bundle install recorded 3.4s apart reads back as one 3400ms run."""
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = ManualClock()
        project = _project(tmpdir, clock)
        project.record("init", {"path": tmpdir})
        start = project.record("exec_start", {"command": "bundle", "args": ["install"]})
        clock.advance(3400)
        project.record("exec_end", {"ref_id": start.id, "exit_code": 0})

        state = project.current_state()

        assert state.initialized
        assert state.signal_count == 3
        ex = state.execution(start.id)
        assert ex.success
        assert ex.duration_ms == 3400
        assert state.stats["bundle"].avg_duration_ms == 3400
        assert os.path.exists(os.path.join(tmpdir, ".flux", "signals.jsonl"))


def test_record_rejects_bad_input():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)

        with pytest.raises(InvalidSignalError):
            project.record("")
        with pytest.raises(InvalidSignalError):
            project.record("note", {"obj": object()})
        assert list(project.signals()) == []


def test_concurrent_records_keep_log_in_id_order():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)

        def worker(n):
            for i in range(25):
                project.record("note", {"worker": n, "i": i})

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        ids = [s.id for s in project.signals()]
        assert len(ids) == 100
        assert ids == sorted(ids)


def test_open_finds_project_from_subdirectory():
    with tempfile.TemporaryDirectory() as tmpdir:
        _project(tmpdir).record("init")
        nested = os.path.join(tmpdir, "app", "models")
        os.makedirs(nested)

        opened = FluxProject.open(nested, config=FluxConfig(fsync=False))

        assert opened.current_state().initialized


def test_open_outside_project_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(FluxError):
            FluxProject.open(tmpdir, config=FluxConfig(fsync=False))


def test_before_after_checkpoint_diff():
    """Adding rails between two checkpoints shows up as exactly that."""
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)
        project.record("init", {"name": "app"})
        project.checkpoint("before")

        start = project.record("add_start", {"gem": "rails", "version": "7.1.0"})
        project.record("add_end", {"ref_id": start.id, "success": True})
        project.checkpoint("after")

        result = project.diff_checkpoints("before", "after")
        paths = {c.path: c for c in result.changes}

        assert result.found
        assert paths["environment.rails"].before is None
        assert paths["environment.rails"].after == "7.1.0"
        assert paths[f"executions.{start.id}"].after["status"] == "success"
        assert paths["signal_count"].after == 3


def test_diff_since_checkpoint_and_signal():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)
        init = project.record("init", {"name": "app"})
        project.checkpoint("before")
        project.record("add", {"gem": "pry"})

        by_name = project.diff_since("before")
        by_id = project.diff_since(init.id)

        assert by_name.found
        assert [c.path for c in by_name.changes] == ["environment.pry", "signal_count"]
        assert by_id.changes == by_name.changes


def test_diff_since_unknown_base():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)
        project.record("init")

        result = project.diff_since("never-saved")

        assert not result.found
        assert result.changes == ()
        assert [d.kind for d in result.diagnostics] == [CHECKPOINT_NOT_FOUND]


def test_load_state_resumes_from_checkpoint():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)
        project.record("init")
        for i in range(5):
            project.record("add", {"gem": f"gem{i}"})
        project.checkpoint("mid")
        project.record("remove", {"gem": "gem0"})

        resumed = project.load_state()
        full = project.load_state(use_checkpoint=False)

        assert resumed.state == full.state
        assert resumed.applied == 1
        assert full.applied == 7
        assert "gem0" not in resumed.state.environment


def test_stale_checkpoint_falls_back_to_full_reduce():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)
        project.record("init", {"name": "old"})
        project.checkpoint("old")
        os.remove(project.store.path)

        reopened = _project(tmpdir)
        reopened.record("init", {"name": "new"})
        result = reopened.load_state()

        assert [d.kind for d in result.diagnostics] == [CHECKPOINT_STALE]
        assert result.state.project["name"] == "new"
        assert result.state.signal_count == 1


def test_verify_checkpoint():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)
        project.record("init")
        project.checkpoint("v")
        project.record("add", {"gem": "pry"})

        assert project.verify("v").valid
        assert project.verify("missing") is None
        assert [i.name for i in project.list_checkpoints()] == ["v"]


def test_replay_imported_log_dry_run():
    with tempfile.TemporaryDirectory() as tmpdir:
        other = _project(os.path.join(tmpdir, "other"))
        other.record("exec_start", {"command": "rake", "args": ["test"]})
        project = _project(os.path.join(tmpdir, "mine"))

        report = project.replay(other.store.path)

        assert len(report) == 1
        assert report.entries[0].effect.description == "exec: rake test"
        assert list(project.signals()) == []


def test_replay_diff_against_imported_log():
    with tempfile.TemporaryDirectory() as tmpdir:
        other = _project(os.path.join(tmpdir, "other"))
        other.record("add", {"gem": "rails", "version": "7.1.0"})
        project = _project(os.path.join(tmpdir, "mine"))

        report = project.replay(other.store.path, "diff")

        assert report.drifted
        assert "environment.rails" in [c.path for c in report.changes]


def test_replay_execute_appends_to_live_log():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)
        start = project.record("exec_start", {"command": "bundle", "args": ["install"]})
        project.record("exec_end", {"ref_id": start.id, "exit_code": 0})
        executor = OkExecutor()

        report = project.replay(mode="execute", executor=executor)

        assert [e.status for e in report.entries] == [SUCCEEDED]
        assert len(executor.calls) == 1
        state = project.current_state()
        assert state.signal_count == 4
        assert state.stats["bundle"].runs == 2
        assert state.executions[1].params["replay_of"] == start.id


def test_projects_share_monotonic_ids(monkeypatch):
    """Two projects in one process never hand out a smaller id after a clock step back."""
    day_ns = 86_400 * 1_000_000_000
    real = time.time_ns()
    offset = {"ns": day_ns}
    monkeypatch.setattr(time, "time_ns", lambda: real + offset["ns"])

    with tempfile.TemporaryDirectory() as dir_a, tempfile.TemporaryDirectory() as dir_b:
        project_a = FluxProject.create(dir_a, config=FluxConfig(fsync=False))
        project_b = FluxProject.create(dir_b, config=FluxConfig(fsync=False))

        first = project_a.record("init")
        offset["ns"] = -day_ns
        second = project_b.record("init")

        assert project_a.ids is project_b.ids is default_generator()
        assert second.id > first.id


def test_load_state_logs_reducer_diagnostics(caplog):
    with tempfile.TemporaryDirectory() as tmpdir:
        project = _project(tmpdir)
        project.record("init")
        project.record("exec_end", {"ref_id": "f" * 32, "exit_code": 0})

        with caplog.at_level(logging.WARNING, logger="flux"):
            result = project.load_state()

        assert [d.kind for d in result.state.diagnostics] == [DANGLING_REFERENCE]
        assert [r.levelno for r in caplog.records if DANGLING_REFERENCE in r.getMessage()] == [logging.WARNING]

        project.checkpoint("after")
        project.record("add", {"gem": "rails"})
        caplog.clear()
        with caplog.at_level(logging.WARNING, logger="flux"):
            resumed = project.load_state()

        assert resumed.applied == 1
        assert DANGLING_REFERENCE not in caplog.text

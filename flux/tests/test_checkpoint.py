"""
Tests for checkpoints.

Critical: a checkpoint is reproducible, and resuming from it gives the same
State as folding the whole log.
"""

import json
import os
import tempfile

from flux.checkpoint.model import Checkpoint
from flux.checkpoint.snapshot import compute_state_hash, serialize_state, state_from_bytes
from flux.checkpoint.store import CheckpointStore
from flux.checkpoint.verify import verify_checkpoint
from flux.core.clock import ManualClock, format_timestamp
from flux.core.ids import IdGenerator
from flux.core.reducer import reduce
from flux.core.signals import Signal
from flux.log.file_store import FileSignalStore
from flux.replay.runner import reconstruct


def _factory():
    ids = IdGenerator()
    clock = ManualClock()

    def make(signal_type, payload=None, after_ms=1):
        clock.advance(after_ms)
        return Signal(
            id=ids.next_id(),
            type=signal_type,
            payload=payload or {},
            timestamp=format_timestamp(clock.now()),
        )

    return make


def _log(tmpdir, make, count=3):
    store = FileSignalStore(os.path.join(tmpdir, "signals.jsonl"), fsync=False)
    store.append(make("init", {"name": "app"}))
    for i in range(count):
        start = make("exec_start", {"command": "rake", "args": [f"task{i}"]})
        store.append(start)
        store.append(make("exec_end", {"ref_id": start.id, "exit_code": 0}, after_ms=250))
    return store


def test_snapshot_deterministic():
    """Same State always serializes to the same bytes."""
    make = _factory()
    start = make("exec_start", {"command": "bundle"})
    state = reduce([start, make("exec_end", {"ref_id": start.id, "exit_code": 0})])

    assert len({serialize_state(state) for _ in range(100)}) == 1
    assert len({compute_state_hash(state) for _ in range(100)}) == 1
    assert state_from_bytes(serialize_state(state)) == state


def test_save_and_load_latest_by_name():
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        store = CheckpointStore(os.path.join(tmpdir, "checkpoints"), fsync=False, clock=ManualClock())

        state = reconstruct(log).state
        first = store.save("nightly", state, state.last_id)

        log.append(make("add", {"gem": "pry"}))
        state = reconstruct(log).state
        second = store.save("nightly", state, state.last_id, meta={"by": "cron"})

        loaded = store.load("nightly")
        assert loaded == second
        assert loaded.sequence == first.sequence + 1
        assert loaded.meta == {"by": "cron"}
        assert loaded.to_state() == state
        assert [cp.sequence for cp in store.history("nightly")] == [first.sequence, second.sequence]


def test_load_missing_returns_none():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = CheckpointStore(tmpdir, fsync=False)
        assert store.load("nope") is None
        assert store.latest() is None
        assert store.list() == []


def test_list_and_latest():
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        store = CheckpointStore(os.path.join(tmpdir, "checkpoints"), fsync=False)
        state = reconstruct(log).state

        store.save("before", state, state.last_id)
        store.save("after", state, state.last_id)

        infos = store.list()
        assert [i.name for i in infos] == ["before", "after"]
        assert infos[0].signal_count == 7
        assert store.latest().name == "after"


def test_unreadable_checkpoint_is_skipped():
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        directory = os.path.join(tmpdir, "checkpoints")
        store = CheckpointStore(directory, fsync=False)
        state = reconstruct(log).state
        store.save("good", state, state.last_id)

        with open(os.path.join(directory, "cp_000002_broken.json"), "w") as f:
            f.write("{not json")

        assert [i.name for i in store.list()] == ["good"]
        assert store.latest().name == "good"


def test_checkpoint_file_round_trip():
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        directory = os.path.join(tmpdir, "checkpoints")
        store = CheckpointStore(directory, fsync=False)
        state = reconstruct(log).state
        saved = store.save("before-upgrade", state, state.last_id)

        files = sorted(os.listdir(directory))
        assert files == ["cp_000001_before-upgrade.json"]
        with open(os.path.join(directory, files[0]), encoding="utf-8") as f:
            assert Checkpoint.from_json(f.read()) == saved


def test_resume_from_checkpoint_equals_full_fold():
    """reduce(suffix, seed=checkpoint) == reduce(whole log)."""
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        store = CheckpointStore(os.path.join(tmpdir, "checkpoints"), fsync=False)
        state = reconstruct(log).state
        cp = store.save("mid", state, state.last_id)

        start = make("add_start", {"gem": "rails", "version": "7.1.0"})
        log.append(start)
        log.append(make("add_end", {"ref_id": start.id, "success": True}))
        log.append(make("deploy", {"sha": "abc"}))

        resumed = reconstruct(log, seed=store.load("mid").to_state(), after_id=cp.last_id)
        full = reconstruct(log)

        assert resumed.state == full.state
        assert resumed.applied == 3
        assert compute_state_hash(resumed.state) == compute_state_hash(full.state)


def test_verify_valid_checkpoint():
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        store = CheckpointStore(os.path.join(tmpdir, "checkpoints"), fsync=False)
        state = reconstruct(log).state
        cp = store.save("v", state, state.last_id)
        log.append(make("add", {"gem": "pry"}))

        result = verify_checkpoint(cp, log)

        assert result.valid
        assert result.state_hash_valid
        assert result.watermark_found
        assert result.replay_state_valid
        assert result.error is None


def test_verify_detects_tampered_state():
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        directory = os.path.join(tmpdir, "checkpoints")
        store = CheckpointStore(directory, fsync=False)
        state = reconstruct(log).state
        store.save("v", state, state.last_id)

        path = os.path.join(directory, "cp_000001_v.json")
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        data["state"]["environment"] = {"rails": "6.0"}
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)

        result = verify_checkpoint(store.load("v"), log)

        assert not result.valid
        assert not result.state_hash_valid
        assert "hash mismatch" in result.error


def test_verify_detects_missing_watermark():
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        store = CheckpointStore(os.path.join(tmpdir, "checkpoints"), fsync=False)
        state = reconstruct(log).state
        cp = store.save("v", state, state.last_id)

        other = FileSignalStore(os.path.join(tmpdir, "other.jsonl"), fsync=False)
        other.append(make("init", {"name": "elsewhere"}))

        result = verify_checkpoint(cp, other)

        assert not result.valid
        assert result.state_hash_valid
        assert not result.watermark_found


def test_verify_detects_diverged_log():
    """Same watermark, different history before it."""
    make = _factory()
    with tempfile.TemporaryDirectory() as tmpdir:
        log = _log(tmpdir, make)
        store = CheckpointStore(os.path.join(tmpdir, "checkpoints"), fsync=False)
        state = reconstruct(log).state
        cp = store.save("v", state, state.last_id)

        signals = list(log.read_all())
        rewritten = FileSignalStore(os.path.join(tmpdir, "rewritten.jsonl"), fsync=False)
        for s in signals[1:]:
            rewritten.append(s)

        result = verify_checkpoint(cp, rewritten)

        assert not result.valid
        assert result.watermark_found
        assert not result.replay_state_valid

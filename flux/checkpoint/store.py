"""
Checkpoint storage management.

Checkpoints are stored as separate JSON files, apart from the Signal log, so
losing or damaging one never affects the log.
Naming: cp_{sequence:06d}_{name_slug}.json
"""

import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.clock import SystemClock, format_timestamp
from ..core.errors import CheckpointError, IoFailure
from ..core.state import State
from .model import FORMAT_VERSION, Checkpoint, CheckpointInfo
from .snapshot import compute_state_hash, state_to_canonical

logger = logging.getLogger(__name__)

_FILE_RE = re.compile(r"^cp_(\d+)_(.*)\.json$")
_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _slug(name: str) -> str:
    return _SLUG_RE.sub("-", name).strip("-")[:64] or "unnamed"


class CheckpointStore:
    """
    Manage checkpoint files on disk.

    Every save() creates a new file; nothing is rewritten. load(name) returns
    the most recent checkpoint with that name.
    """

    def __init__(self, directory: str, fsync: bool = True, clock=None) -> None:
        """
        Args:
            directory: Directory to store checkpoints (created if missing)
            fsync: fsync file and directory on save
            clock: Source of created_at timestamps (SystemClock by default)
        """
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.fsync = fsync
        self.clock = clock or SystemClock()
        self._lock = threading.Lock()

    def _files(self) -> List[Path]:
        files = []
        for path in self.directory.glob("cp_*.json"):
            if _FILE_RE.match(path.name):
                files.append(path)
        files.sort(key=lambda p: int(_FILE_RE.match(p.name).group(1)))
        return files

    def _read(self, path: Path) -> Checkpoint:
        try:
            return Checkpoint.from_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, KeyError, TypeError) as ex:
            raise CheckpointError(f"unreadable checkpoint {path}: {ex}") from ex

    def _readable(self, paths: List[Path]) -> List[Checkpoint]:
        out = []
        for path in paths:
            try:
                out.append(self._read(path))
            except CheckpointError as ex:
                logger.warning("skipping checkpoint: %s", ex)
        return out

    def save(
        self,
        name: str,
        state: State,
        last_id: Optional[str],
        meta: Optional[Dict[str, Any]] = None,
    ) -> Checkpoint:
        """
        Persist a new checkpoint and block until it is on stable storage.

        Args:
            name: Checkpoint name
            state: State folded up to last_id
            last_id: Id of the last Signal folded into state
            meta: Optional caller metadata

        Returns:
            The stored Checkpoint
        """
        if not name:
            raise ValueError("checkpoint name must not be empty")

        with self._lock:
            files = self._files()
            sequence = int(_FILE_RE.match(files[-1].name).group(1)) + 1 if files else 1
            checkpoint = Checkpoint(
                version=FORMAT_VERSION,
                name=name,
                sequence=sequence,
                last_id=last_id,
                state_hash=compute_state_hash(state),
                state=state_to_canonical(state),
                signal_count=state.signal_count,
                created_at=format_timestamp(self.clock.now()),
                meta=dict(meta or {}),
            )
            target = self.directory / f"cp_{sequence:06d}_{_slug(name)}.json"
            try:
                self._write_atomic(target, checkpoint.to_json())
            except OSError as ex:
                raise IoFailure(f"checkpoint {name!r} not saved: {ex}") from ex

        logger.info(
            "checkpoint %r saved at %s (seq %d)",
            name,
            last_id,
            sequence,
            extra={"trace_id": name},
        )
        return checkpoint

    def _write_atomic(self, target: Path, text: str) -> None:
        fd, tmp = tempfile.mkstemp(prefix=".cp-", suffix=".tmp", dir=str(self.directory))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())
            os.replace(tmp, target)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        if self.fsync and hasattr(os, "O_DIRECTORY"):
            dir_fd = os.open(str(self.directory), os.O_RDONLY | os.O_DIRECTORY)
            try:
                os.fsync(dir_fd)
            finally:
                os.close(dir_fd)

    def load(self, name: str) -> Optional[Checkpoint]:
        """
        Most recent checkpoint named name.

        Returns:
            Checkpoint, or None if no checkpoint has that name
        """
        slug = _slug(name)
        candidates = [p for p in self._files() if _FILE_RE.match(p.name).group(2) == slug]
        for checkpoint in reversed(self._readable(candidates)):
            if checkpoint.name == name:
                return checkpoint
        return None

    def list(self) -> List[CheckpointInfo]:
        """Metadata of every readable checkpoint, oldest first."""
        return [cp.info() for cp in self._readable(self._files())]

    def history(self, name: str) -> List[Checkpoint]:
        """Every checkpoint saved under name, oldest first."""
        return [cp for cp in self._readable(self._files()) if cp.name == name]

    def latest(self) -> Optional[Checkpoint]:
        """Most recently saved readable checkpoint of any name."""
        for path in reversed(self._files()):
            try:
                return self._read(path)
            except CheckpointError as ex:
                logger.warning("skipping checkpoint: %s", ex)
        return None

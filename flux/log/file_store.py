"""
File-based Signal log using append-only JSONL.

Each line is one canonical JSON record: {"id", "payload", "timestamp", "type"}.
"""

import json
import logging
import os
import threading
from typing import Dict, Iterator, List, Optional, Tuple

from ..core.canonical import canonical_json_str
from ..core.diagnostics import CORRUPT_RECORD, Diagnostic, report
from ..core.errors import InvalidSignalError, IoFailure, SignalNotFound, StoreError
from ..core.signals import Signal
from .store import AppendResult, SignalStore

try:
    import fcntl
except ImportError:  # Windows or unsupported platform
    fcntl = None

logger = logging.getLogger(__name__)

# (start_offset, end_offset, signal or None, diagnostic or None)
_Scanned = Tuple[int, int, Optional[Signal], Optional[Diagnostic]]

# Record separator + newline: ends a torn line with bytes JSON cannot decode.
_SEAL = b"\x1e\n"


class FileSignalStore(SignalStore):
    """
    File-based append-only Signal log.

    Storage format: JSONL (newline-delimited JSON), UTF-8
    Each line: {"id": "...", "payload": {...}, "timestamp": "...", "type": "..."}

    Guarantees:
    - Append-only (lines are never rewritten)
    - One write + flush + fsync per append (durability)
    - A line is only valid once its newline is on disk; a trailing fragment
      left by a crash is skipped on read and sealed off by the next append

    An id -> byte offset index is built lazily and extended incrementally,
    so read_since() seeks instead of rescanning the file.
    """

    def __init__(self, path: str, fsync: bool = True, create: bool = True) -> None:
        """
        Initialize file Signal log.

        Args:
            path: Path to JSONL file
            fsync: fsync after each append (disable only in tests)
            create: Create the file if missing; if False a missing file is an error

        Raises:
            StoreError: If create is False and the file does not exist
            IoFailure: If the file cannot be created
        """
        self.path = path
        self.fsync = fsync
        self._write_lock = threading.Lock()
        self._index_lock = threading.Lock()
        self._offsets: Dict[str, int] = {}
        self._indexed_to = 0
        self._last_id: Optional[str] = None

        if not os.path.exists(path):
            if not create:
                raise StoreError(f"Signal log not found: {path}")
            try:
                os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
                with open(path, "ab"):
                    pass
            except OSError as ex:
                raise IoFailure(str(ex)) from ex

    def append(self, signal: Signal) -> AppendResult:
        """
        Append a Signal and block until it is on stable storage.

        Raises:
            InvalidSignalError: If the Signal cannot be serialized (nothing written)
            IoFailure: If the write, flush or fsync failed
        """
        try:
            line = (canonical_json_str(signal.to_dict()) + "\n").encode("utf-8")
        except (TypeError, ValueError) as ex:
            raise InvalidSignalError(f"payload not serializable: {ex}") from ex

        with self._write_lock:
            try:
                with open(self.path, "a+b") as f:
                    if fcntl:
                        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        f.seek(0, os.SEEK_END)
                        size = f.tell()
                        prefix = b""
                        if size > 0:
                            f.seek(size - 1)
                            if f.read(1) != b"\n":
                                # Seal a torn record so it never decodes, even if
                                # only its newline was lost.
                                logger.warning("sealing partial trailing record in %s", self.path)
                                prefix = _SEAL
                        f.write(prefix + line)
                        f.flush()
                        if self.fsync:
                            os.fsync(f.fileno())
                    finally:
                        if fcntl:
                            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            except OSError as ex:
                logger.error("append failed for %s: %s", signal.id, ex, extra={"trace_id": signal.id})
                raise IoFailure(str(ex)) from ex

        offset = size + len(prefix)
        logger.debug("appended %s (%s) at %d", signal.id, signal.type, offset, extra={"trace_id": signal.id})
        return AppendResult(signal=signal, offset=offset)

    def _scan(self, start: int) -> Iterator[_Scanned]:
        try:
            f = open(self.path, "rb")
        except OSError as ex:
            raise StoreError(str(ex)) from ex
        with f:
            f.seek(start)
            offset = start
            for raw in f:
                begin = offset
                offset += len(raw)
                if not raw.endswith(b"\n"):
                    yield begin, begin, None, Diagnostic(
                        kind=CORRUPT_RECORD,
                        message=f"partial trailing record at byte {begin} of {self.path}",
                        detail={"offset": begin, "path": self.path},
                    )
                    return
                if not raw.strip():
                    yield begin, offset, None, None
                    continue
                try:
                    signal = Signal.from_dict(json.loads(raw.decode("utf-8")))
                except (ValueError, RecursionError, InvalidSignalError) as ex:
                    yield begin, offset, None, Diagnostic(
                        kind=CORRUPT_RECORD,
                        message=f"unreadable record at byte {begin} of {self.path}: {ex}",
                        detail={"offset": begin, "path": self.path},
                    )
                    continue
                yield begin, offset, signal, None

    def _read_from(self, start: int, diagnostics: Optional[List[Diagnostic]]) -> Iterator[Signal]:
        for _, _, signal, problem in self._scan(start):
            if problem is not None:
                report(diagnostics, problem)
            if signal is not None:
                yield signal

    def read_all(self, diagnostics: Optional[List[Diagnostic]] = None) -> Iterator[Signal]:
        """
        Stream every Signal in append order.

        Args:
            diagnostics: Optional list collecting CorruptRecord diagnostics

        Yields:
            Signals in log order
        """
        return self._read_from(0, diagnostics)

    def read_since(
        self, after_id: str, diagnostics: Optional[List[Diagnostic]] = None
    ) -> Iterator[Signal]:
        """
        Stream the Signals recorded after after_id.

        Raises:
            SignalNotFound: If after_id is not in the log (checked eagerly)
        """
        offset = self.offset_after(after_id)
        if offset is None:
            raise SignalNotFound(after_id)
        return self._read_from(offset, diagnostics)

    def refresh_index(self) -> None:
        """Extend the id -> offset index over records appended since last call."""
        with self._index_lock:
            for _, end, signal, problem in self._scan(self._indexed_to):
                if problem is not None and end == self._indexed_to:
                    break
                if signal is not None:
                    self._offsets[signal.id] = end
                    self._last_id = signal.id
                self._indexed_to = end

    def offset_after(self, signal_id: str) -> Optional[int]:
        """Byte offset just past the record of signal_id, or None."""
        if signal_id not in self._offsets:
            self.refresh_index()
        return self._offsets.get(signal_id)

    def contains(self, signal_id: str) -> bool:
        return self.offset_after(signal_id) is not None

    def last_id(self) -> Optional[str]:
        self.refresh_index()
        return self._last_id

"""
Signal storage.

This module provides:
- SignalStore: Abstract interface for Signal logs
- FileSignalStore: File-based append-only storage (JSONL)
- MemorySignalStore: In-memory log for imported sequences and tests
"""

from .store import SignalStore, MemorySignalStore, AppendResult
from .file_store import FileSignalStore

__all__ = [
    "SignalStore",
    "MemorySignalStore",
    "AppendResult",
    "FileSignalStore",
]

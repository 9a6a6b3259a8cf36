"""
Exception types for the Flux engine.

Only storage durability failures are meant to reach callers as exceptions.
Everything else the engine can recover from is reported as a Diagnostic.
"""


class FluxError(Exception):
    """Base class for all engine errors."""
    pass


class StoreError(FluxError):
    """Raised when the Signal log cannot be written or read."""
    pass


class IoFailure(StoreError):
    """
    Raised when an append did not reach stable storage.

    The Signal must be treated as NOT recorded. The log stays valid up to the
    last successful append.
    """
    pass


class InvalidSignalError(FluxError):
    """Raised when a Signal cannot be built or serialized (nothing is written)."""
    pass


class SignalNotFound(FluxError):
    """Raised when a watermark id does not exist in the log."""

    def __init__(self, signal_id: str) -> None:
        super().__init__(f"Signal not found in log: {signal_id}")
        self.signal_id = signal_id


class CheckpointError(FluxError):
    """Raised when a checkpoint file is unreadable or malformed."""
    pass


class EffectError(FluxError):
    """
    Raised by an Executor when an external effect failed.

    Replay captures it per Signal; it never escapes a replay run.
    """

    def __init__(self, message: str, exit_code=None) -> None:
        super().__init__(message)
        self.exit_code = exit_code

"""
Engine configuration.

Environment Variables:
    FLUX_DIR: Project state directory name - default: .flux
    FLUX_LOG_NAME: Signal log file name inside FLUX_DIR - default: signals.jsonl
    FLUX_CHECKPOINT_DIR: Checkpoint directory name inside FLUX_DIR - default: checkpoints
    FLUX_FSYNC: fsync every append / checkpoint save (true/false) - default: true
    FLUX_REPLAY_WORKERS: Worker pool size for execute-mode replay - default: 1
    FLUX_CONTINUE_ON_ERROR: Keep replaying after a failed effect (true/false) - default: false
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env_str(key: str, default: str) -> str:
    val = os.getenv(key)
    return val.strip() if val and val.strip() else default


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    if not val:
        return default
    try:
        parsed = int(val)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _env_bool(key: str, default: bool) -> bool:
    val = (os.getenv(key) or "").strip().lower()
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    return default


@dataclass(frozen=True)
class FluxConfig:
    """Resolved engine settings."""
    dir_name: str = ".flux"
    log_name: str = "signals.jsonl"
    checkpoint_dir: str = "checkpoints"
    fsync: bool = True
    replay_workers: int = 1
    continue_on_error: bool = False

    @staticmethod
    def from_env(**overrides: Any) -> "FluxConfig":
        """Read FLUX_* variables, then apply keyword overrides."""
        config = FluxConfig(
            dir_name=_env_str("FLUX_DIR", ".flux"),
            log_name=_env_str("FLUX_LOG_NAME", "signals.jsonl"),
            checkpoint_dir=_env_str("FLUX_CHECKPOINT_DIR", "checkpoints"),
            fsync=_env_bool("FLUX_FSYNC", True),
            replay_workers=_env_int("FLUX_REPLAY_WORKERS", 1),
            continue_on_error=_env_bool("FLUX_CONTINUE_ON_ERROR", False),
        )
        return replace(config, **overrides) if overrides else config

    def state_dir(self, root: Path) -> Path:
        return Path(root) / self.dir_name

    def log_path(self, root: Path) -> Path:
        return self.state_dir(root) / self.log_name

    def checkpoint_path(self, root: Path) -> Path:
        return self.state_dir(root) / self.checkpoint_dir


def find_root(start: Optional[Path] = None, config: Optional[FluxConfig] = None) -> Optional[Path]:
    """Nearest directory at or above start that holds a state directory."""
    config = config or FluxConfig.from_env()
    here = Path(start or Path.cwd()).resolve()
    for candidate in [here] + list(here.parents):
        if (candidate / config.dir_name).is_dir():
            return candidate
    return None

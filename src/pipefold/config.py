"""
pipefold Configuration.

Configuration dataclass and environment variable support for the
pipeline runtime (parallel pool size, debug trace logging).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_PARALLEL_WORKERS = 4
DEFAULT_LOG_DIR_NAME = ".pipefold"

ENV_PARALLEL_WORKERS = "PIPEFOLD_PARALLEL_WORKERS"
ENV_DEBUG_LOG = "PIPEFOLD_DEBUG_LOG"
ENV_LOG_DIR = "PIPEFOLD_LOG_DIR"


def _env_flag(name: str) -> bool:
    value = os.getenv(name, "")
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"{name} must be >= 1, got {value}")
    return value


@dataclass(frozen=True)
class PipefoldConfig:
    """Runtime configuration.

    ::: This is-in-layer Infrastructure-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """
    parallel_workers: int = DEFAULT_PARALLEL_WORKERS
    debug_log: bool = False
    log_dir: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "PipefoldConfig":
        """Create configuration from environment variables."""
        log_dir = os.getenv(ENV_LOG_DIR)
        return cls(
            parallel_workers=_env_int(ENV_PARALLEL_WORKERS, DEFAULT_PARALLEL_WORKERS),
            debug_log=_env_flag(ENV_DEBUG_LOG),
            log_dir=Path(log_dir) if log_dir else None,
        )

    def resolved_log_dir(self) -> Path:
        """Log directory, defaulting to CWD/.pipefold."""
        if self.log_dir is not None:
            return self.log_dir
        return Path.cwd() / DEFAULT_LOG_DIR_NAME


_config: Optional[PipefoldConfig] = None


def get_config() -> PipefoldConfig:
    """Get the process-wide configuration, reading the environment once."""
    global _config
    if _config is None:
        _config = PipefoldConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached configuration so the next read re-reads the environment."""
    global _config
    _config = None

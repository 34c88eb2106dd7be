"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
DEFAULT_DB_PATH = DATA_DIR / "swarmcore.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DEFAULT_STATS_INTERVAL = 30.0


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def store_backend() -> str:
    """Event store backend selected by EVENT_STORE_BACKEND (sqlite or memory)."""
    backend = os.getenv("EVENT_STORE_BACKEND", "sqlite").lower()
    if backend not in ("sqlite", "memory"):
        raise ValueError(f"Unknown EVENT_STORE_BACKEND: {backend}")
    return backend


def stats_interval() -> float:
    """Seconds between performance_metric events (STATS_INTERVAL, 0 disables)."""
    return float(os.getenv("STATS_INTERVAL", DEFAULT_STATS_INTERVAL))


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EventBusConfig:
    """Event bus settings, fixed at bus construction.

    Delays and intervals are in seconds.
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    batch_size: int = 10
    flush_interval: float = 0.1
    persistence: bool = True
    compression: bool = False
    encryption: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.flush_interval < 0:
            raise ValueError("flush_interval must be >= 0")

    @property
    def batching(self) -> bool:
        """Whether deliveries are deferred into a flushed buffer."""
        return self.batch_size > 1 and self.flush_interval > 0

    @classmethod
    def from_env(cls) -> "EventBusConfig":
        """Build config from BUS_* environment variables."""
        defaults = cls()
        return cls(
            max_retries=int(os.getenv("BUS_MAX_RETRIES", defaults.max_retries)),
            retry_delay=float(os.getenv("BUS_RETRY_DELAY", defaults.retry_delay)),
            batch_size=int(os.getenv("BUS_BATCH_SIZE", defaults.batch_size)),
            flush_interval=float(
                os.getenv("BUS_FLUSH_INTERVAL", defaults.flush_interval)
            ),
            persistence=_env_bool("BUS_PERSISTENCE", defaults.persistence),
            compression=_env_bool("BUS_COMPRESSION", defaults.compression),
            encryption=_env_bool("BUS_ENCRYPTION", defaults.encryption),
        )

"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path

from .connectivity import DEFAULT_HEARTBEAT_URL
from .constants import STORAGE_PREFIX, STORAGE_QUOTA_BYTES


@dataclass
class Settings:
    db_path: Path = Path("data/matchng.db")
    prefix: str = STORAGE_PREFIX
    quota_bytes: int = STORAGE_QUOTA_BYTES
    debounce_ms: int = 300
    replay_delay_ms: int = 800
    max_attempts: int = 5
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 60000
    heartbeat_url: str = DEFAULT_HEARTBEAT_URL
    heartbeat_timeout: float = 3.0


def _int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def _float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def load_settings() -> Settings:
    """Build Settings from MATCHNG_* environment variables."""
    return Settings(
        db_path=Path(os.getenv("MATCHNG_DB_PATH", "data/matchng.db")),
        prefix=os.getenv("MATCHNG_PREFIX", STORAGE_PREFIX),
        quota_bytes=_int("MATCHNG_QUOTA_BYTES", STORAGE_QUOTA_BYTES),
        debounce_ms=_int("MATCHNG_DEBOUNCE_MS", 300),
        replay_delay_ms=_int("MATCHNG_REPLAY_DELAY_MS", 800),
        max_attempts=_int("MATCHNG_MAX_ATTEMPTS", 5),
        backoff_base_ms=_int("MATCHNG_BACKOFF_BASE_MS", 1000),
        backoff_max_ms=_int("MATCHNG_BACKOFF_MAX_MS", 60000),
        heartbeat_url=os.getenv("MATCHNG_HEARTBEAT_URL", DEFAULT_HEARTBEAT_URL),
        heartbeat_timeout=_float("MATCHNG_HEARTBEAT_TIMEOUT", 3.0),
    )

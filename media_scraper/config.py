"""Configuration utilities shared by the worker, the API and the CLI."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "MEDIA_SCRAPER_"

DEFAULT_DATABASE_URL = "sqlite:///media.db"
DEFAULT_QUEUE_NAME = "media-scraper"
DEFAULT_USER_AGENT = "media-scraper/1.0"
DEFAULT_CONCURRENCY = 10
DEFAULT_MAX_BATCH = 5000


@dataclass(slots=True)
class TimeoutConfig:
    fetch_timeout: float = 5.0
    dequeue_timeout: float = 1.0


@dataclass(slots=True)
class DatabasePoolConfig:
    """SQLAlchemy engine pool settings; ``pool_size`` of ``None`` follows the lane count."""

    pool_size: Optional[int] = None
    max_overflow: int = 0
    pool_recycle: int = 1800

    def engine_options(self, concurrency: int) -> dict[str, object]:
        return {
            "pool_size": self.pool_size if self.pool_size is not None else max(1, concurrency),
            "max_overflow": self.max_overflow,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": True,
        }


@dataclass(slots=True)
class ScraperConfig:
    database_url: str = DEFAULT_DATABASE_URL
    broker_url: Optional[str] = None
    queue_name: str = DEFAULT_QUEUE_NAME
    concurrency: int = DEFAULT_CONCURRENCY
    max_batch: int = DEFAULT_MAX_BATCH
    user_agent: str = DEFAULT_USER_AGENT
    init_db: bool = False
    log_level: str = "INFO"
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    db_pool: DatabasePoolConfig = field(default_factory=DatabasePoolConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ScraperConfig":
        """Build the configuration from ``MEDIA_SCRAPER_*`` environment variables."""

        env = os.environ if environ is None else environ
        defaults = cls()
        default_timeout = TimeoutConfig()
        default_pool = DatabasePoolConfig()

        pool_size_raw = _get(env, "DB_POOL_SIZE")
        pool_size: Optional[int] = None
        if pool_size_raw is not None:
            pool_size = _env_int(env, "DB_POOL_SIZE", 1, minimum=1)

        return cls(
            database_url=_get(env, "DATABASE_URL") or defaults.database_url,
            broker_url=_get(env, "BROKER_URL") or None,
            queue_name=_get(env, "QUEUE_NAME") or defaults.queue_name,
            concurrency=_env_int(env, "CONCURRENCY", defaults.concurrency, minimum=1),
            max_batch=_env_int(env, "MAX_BATCH", defaults.max_batch, minimum=1),
            user_agent=_get(env, "USER_AGENT") or defaults.user_agent,
            init_db=_env_bool(env, "INIT_DB", defaults.init_db),
            log_level=(_get(env, "LOG_LEVEL") or defaults.log_level).upper(),
            timeout=TimeoutConfig(
                fetch_timeout=_env_float(env, "FETCH_TIMEOUT", default_timeout.fetch_timeout),
                dequeue_timeout=_env_float(env, "DEQUEUE_TIMEOUT", default_timeout.dequeue_timeout),
            ),
            db_pool=DatabasePoolConfig(
                pool_size=pool_size,
                max_overflow=_env_int(env, "DB_MAX_OVERFLOW", default_pool.max_overflow),
                pool_recycle=_env_int(env, "DB_POOL_RECYCLE", default_pool.pool_recycle),
            ),
        )

    def resolved_broker_url(self) -> str:
        """Return the broker URL, deriving a SQLAlchemy transport from the database URL."""

        if self.broker_url:
            return self.broker_url
        if not self.database_url:
            return "memory://"
        if self.database_url.startswith("sqla+"):
            return self.database_url
        return f"sqla+{self.database_url}"

    def engine_options(self) -> dict[str, object]:
        if self.database_url.startswith("sqlite"):
            # SQLite uses a single-file pool; sizing options are rejected by its pool class.
            return {"pool_pre_ping": True}
        return self.db_pool.engine_options(self.concurrency)


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(f"{ENV_PREFIX}{name}")
    if value is None:
        return None
    value = value.strip()
    return value or None


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = _get(env, name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    value = _get(env, name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        LOGGER.warning("Invalid integer %r for %s%s; using %d", value, ENV_PREFIX, name, default)
        return default
    return max(minimum, parsed)


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = _get(env, name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        LOGGER.warning("Invalid number %r for %s%s; using %.1f", value, ENV_PREFIX, name, default)
        return default
    if parsed <= 0:
        LOGGER.warning("Non-positive value %r for %s%s; using %.1f", value, ENV_PREFIX, name, default)
        return default
    return parsed


__all__ = [
    "DatabasePoolConfig",
    "ScraperConfig",
    "TimeoutConfig",
]

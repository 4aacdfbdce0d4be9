from typing import FrozenSet

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from app.core.constants import BUILTIN_EVENT_TYPES


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(env_file=".env", case_sensitive=True)

    DATABASE_URL: str
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis is used for cross-process score notifications (pub/sub)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Scoring configuration
    MAX_SCORE: int = 1000
    # Comma-separated event types accepted in addition to the built-in set
    EXTRA_EVENT_TYPES: str = ""
    RECALCULATION_LOCK_TIMEOUT_SECONDS: float = 10.0

    # Queue / worker configuration
    MAX_BATCH_SIZE: int = 1000
    WORKERS_ENABLED: bool = True
    WORKER_CONCURRENCY: int = 5
    QUEUE_MAX_ATTEMPTS: int = 3
    QUEUE_BACKOFF_SECONDS: float = 2.0
    QUEUE_POLL_INTERVAL_SECONDS: float = 0.5
    JOB_TIMEOUT_SECONDS: float = 30.0
    STALLED_JOB_SECONDS: int = 300
    COMPLETED_JOB_RETENTION_HOURS: int = 24
    QUEUE_MAINTENANCE_INTERVAL_SECONDS: int = 60

    # CORS configuration — comma-separated origins
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    EVENTS_RATE_LIMIT: str = "600/minute"

    @property
    def event_types(self) -> FrozenSet[str]:
        """Built-in event types plus any configured extras."""
        extras = {t.strip() for t in self.EXTRA_EVENT_TYPES.split(",") if t.strip()}
        return BUILTIN_EVENT_TYPES | frozenset(extras)


settings = Settings()

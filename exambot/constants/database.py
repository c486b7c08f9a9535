"""Database and connection pool constants."""

from enum import Enum
from typing import Final


class Database:
    """Database configuration defaults.

    NOTE: These are compile-time defaults only. Runtime configuration
    should be obtained via BotSettings (exambot/core/config/settings.py).
    """

    DEFAULT_URL: Final[str] = "postgresql://localhost:5432/exambot"
    POOL_SIZE: Final[int] = 10
    CONNECTION_TIMEOUT: Final[float] = 30.0


class Pools:
    """Connection pool sizes."""

    HTTP_LIMIT: Final[int] = 50
    HTTP_LIMIT_PER_HOST: Final[int] = 20
    DNS_CACHE_TTL: Final[int] = 120
    KEEPALIVE_TIMEOUT: Final[int] = 30


class ScheduleStatus(str, Enum):
    """Lifecycle states of a booking schedule."""

    PENDING = "pending"
    MONITORING = "monitoring"
    RUNNING = "running"
    PAUSED = "paused"
    FAILED = "failed"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    STOPPED = "stopped"

    @classmethod
    def values(cls) -> list:
        return [status.value for status in cls]

"""Response envelopes for the admin API."""

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, Field


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SchedulerStatusResponse(BaseModel):
    """Scheduler status response model."""

    success: bool = True
    scheduler: Dict[str, Any]
    timestamp: str = Field(default_factory=_now_iso)


class ActionResponse(BaseModel):
    """Result of an admin action."""

    success: bool = True
    message: str
    timestamp: str = Field(default_factory=_now_iso)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    database: str
    scheduler_running: bool
    active_sessions: int
    timestamp: str = Field(default_factory=_now_iso)

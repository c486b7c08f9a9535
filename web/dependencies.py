"""Dependency providers for the admin API.

Services are attached to ``app.state`` by :func:`web.app.create_app`.
"""

from typing import TYPE_CHECKING, Optional

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from exambot.models.database import Database
    from exambot.services.scheduling import ExamScheduler


def get_scheduler(request: Request) -> "ExamScheduler":
    """
    Get the scheduler bound to the app.

    Raises:
        HTTPException: 503 if the app runs without a scheduler
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not available")
    return scheduler


def get_optional_scheduler(request: Request) -> Optional["ExamScheduler"]:
    return getattr(request.app.state, "scheduler", None)


def get_database(request: Request) -> Optional["Database"]:
    return getattr(request.app.state, "database", None)

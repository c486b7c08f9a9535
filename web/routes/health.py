"""Health check route."""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from exambot.models.database import Database
from exambot.services.scheduling import ExamScheduler
from web.dependencies import get_database, get_optional_scheduler
from web.models import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    database: Optional[Database] = Depends(get_database),
    scheduler: Optional[ExamScheduler] = Depends(get_optional_scheduler),
) -> JSONResponse:
    """
    Health check endpoint for monitoring and container orchestration.

    Returns:
        200 with status "healthy", or 503 with "unhealthy" when the
        database does not answer
    """
    if database is None:
        db_status = "not_configured"
    else:
        db_status = "healthy" if await database.health_check() else "unhealthy"

    healthy = db_status != "unhealthy"
    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        database=db_status,
        scheduler_running=bool(scheduler and scheduler.is_running),
        active_sessions=len(scheduler.sessions) if scheduler else 0,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())

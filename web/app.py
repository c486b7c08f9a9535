"""FastAPI admin API for ExamBot."""

from typing import TYPE_CHECKING, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from exambot.core.exceptions import ExamBotError
from web.exception_handlers import (
    exambot_error_handler,
    http_exception_handler,
    validation_exception_handler,
)
from web.routes import health_router, scheduler_router

if TYPE_CHECKING:
    from exambot.models.database import Database
    from exambot.services.scheduling import ExamScheduler


def create_app(
    scheduler: Optional["ExamScheduler"] = None, database: Optional["Database"] = None
) -> FastAPI:
    """
    Create the admin API.

    The app does not own its services; the caller starts and stops them.

    Args:
        scheduler: Scheduler exposed by the status and admin routes
        database: Database probed by the health route

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="ExamBot Admin API", docs_url=None, redoc_url=None)
    app.state.scheduler = scheduler
    app.state.database = database

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ExamBotError, exambot_error_handler)

    app.include_router(health_router)
    app.include_router(scheduler_router)
    return app

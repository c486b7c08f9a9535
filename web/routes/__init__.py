"""Routes package for the admin API."""

from .health import router as health_router
from .scheduler import router as scheduler_router

__all__ = ["health_router", "scheduler_router"]

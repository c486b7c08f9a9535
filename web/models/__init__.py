"""Pydantic models for the admin API."""

from .common import ActionResponse, HealthResponse, SchedulerStatusResponse

__all__ = ["ActionResponse", "HealthResponse", "SchedulerStatusResponse"]

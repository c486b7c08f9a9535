"""Scheduler status and admin control routes."""

from fastapi import APIRouter, Depends
from loguru import logger

from exambot.services.scheduling import ExamScheduler
from web.dependencies import get_scheduler
from web.models import ActionResponse, SchedulerStatusResponse

router = APIRouter(tags=["scheduler"])


@router.get("/status/scheduler", response_model=SchedulerStatusResponse)
async def scheduler_status(
    scheduler: ExamScheduler = Depends(get_scheduler),
) -> SchedulerStatusResponse:
    """
    Get scheduler state and active monitoring sessions.

    Returns:
        Scheduler status envelope
    """
    return SchedulerStatusResponse(scheduler=scheduler.get_status())


@router.post("/admin/scheduler/stop", response_model=ActionResponse)
async def stop_all_monitoring(
    scheduler: ExamScheduler = Depends(get_scheduler),
) -> ActionResponse:
    """Stop every monitoring session and close all browsers."""
    await scheduler.stop_all_monitoring()
    logger.warning("All monitoring stopped via admin API")
    return ActionResponse(message="All monitoring stopped")


@router.post("/admin/scheduler/trigger/{schedule_id}", response_model=ActionResponse)
async def trigger_schedule(
    schedule_id: int,
    scheduler: ExamScheduler = Depends(get_scheduler),
) -> ActionResponse:
    """
    Start monitoring for a schedule immediately.

    Args:
        schedule_id: Schedule to trigger

    Raises:
        RecordNotFoundError: Unknown schedule (404)
        ScheduleStateError: Schedule already completed (409)
    """
    await scheduler.trigger_schedule(schedule_id)
    logger.info(f"Schedule {schedule_id} triggered via admin API")
    return ActionResponse(message=f"Schedule {schedule_id} triggered")

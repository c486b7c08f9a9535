"""Tests for the schedule watcher and its monitoring sessions."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from exambot.constants import ScheduleStatus
from exambot.core.exceptions import RecordNotFoundError, ScheduleStateError
from exambot.repositories import Schedule
from exambot.services.scheduling.exam_scheduler import (
    SESSION_EXPIRED_ERROR,
    STOPPED_BY_USER,
    TIMEOUT_ERROR,
    ExamScheduler,
    MonitoringSession,
    SessionStatus,
)

NOW = datetime(2030, 1, 1, 8, 59, tzinfo=timezone.utc)


def make_monitor():
    monitor = MagicMock()
    monitor.start_polling = AsyncMock(return_value=True)
    monitor.stop_polling = AsyncMock()
    monitor.close = AsyncMock()
    monitor.destroy = AsyncMock()
    return monitor


@pytest.fixture
def schedules(schedule):
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=schedule)
    repo.update_fields = AsyncMock(return_value=True)
    repo.find_due_for_monitoring = AsyncMock(return_value=[])
    repo.find_ready_for_retry = AsyncMock(return_value=[])
    repo.increment_retry = AsyncMock(return_value=1)
    return repo


@pytest.fixture
def users(user):
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=user)
    return repo


@pytest.fixture
def pool():
    pool = MagicMock()
    pool.warmup = AsyncMock(return_value=3)
    pool.close_all_browsers = AsyncMock()
    return pool


@pytest.fixture
def launcher():
    launcher = MagicMock()
    launcher.run_all_accounts = AsyncMock()
    return launcher


@pytest.fixture
def monitor():
    return make_monitor()


@pytest.fixture
def scheduler(schedules, users, pool, launcher, mock_telegram, app_config, monitor):
    return ExamScheduler(
        schedules,
        users,
        pool,
        launcher,
        mock_telegram,
        config=app_config,
        monitor_factory=lambda: monitor,
    )


def session_for(schedule, monitor=None, **overrides) -> MonitoringSession:
    session = MonitoringSession(
        schedule_id=schedule.id,
        name=schedule.name,
        target_time=schedule.run_at,
        user_id=1,
        chat_id=1001,
        monitor=monitor,
        **overrides,
    )
    return session


def sent(mock_telegram) -> list:
    return [c.args[1] for c in mock_telegram.send_message.await_args_list]


class TestMonitoringSession:
    @pytest.mark.asyncio
    async def test_start_warms_pool_and_polls(
        self, scheduler, schedule, schedules, pool, monitor, mock_telegram
    ):
        session = await scheduler.start_monitoring_session(schedule)
        await session.task

        assert scheduler.sessions[schedule.id] is session
        schedules.update_fields.assert_awaited_once_with(
            schedule.id, status=ScheduleStatus.MONITORING, monitoring_started=True
        )
        pool.warmup.assert_awaited_once_with(scheduler.config.browser_pool.size)
        assert session.browsers_prewarmed
        assert session.status is SessionStatus.MONITORING
        kwargs = monitor.start_polling.await_args.kwargs
        assert kwargs["interval"] == 0.01
        assert kwargs["max_duration"] == 60
        texts = sent(mock_telegram)
        assert "Monitoring Started" in texts[0]
        assert "3 Browsers Ready" in texts[1]

    @pytest.mark.asyncio
    async def test_missing_owner(self, scheduler, schedule, users):
        users.get_by_id.return_value = None
        with pytest.raises(RecordNotFoundError):
            await scheduler.start_monitoring_session(schedule)
        assert not scheduler.sessions

    @pytest.mark.asyncio
    async def test_session_error_leaves_schedule_retryable(
        self, scheduler, schedule, schedules, pool, mock_telegram
    ):
        pool.warmup.side_effect = RuntimeError("no displays")

        session = await scheduler.start_monitoring_session(schedule)
        await session.task

        update = schedules.update_fields.await_args.kwargs
        assert update["status"] == ScheduleStatus.FAILED
        assert update["completed"] is False
        assert update["last_error"] == "no displays"
        pool.close_all_browsers.assert_awaited_once()
        assert schedule.id not in scheduler.sessions
        assert "Monitoring Failed" in sent(mock_telegram)[-1]

    @pytest.mark.asyncio
    async def test_session_error_without_retries_completes(
        self, scheduler, schedule, schedules, pool
    ):
        schedule.retry_count = schedule.max_retries
        pool.warmup.side_effect = RuntimeError("boom")

        session = await scheduler.start_monitoring_session(schedule)
        await session.task

        assert schedules.update_fields.await_args.kwargs["completed"] is True

    @pytest.mark.asyncio
    async def test_oid_found_runs_launcher(self, scheduler, schedule, launcher, monitor, mock_telegram):
        session = session_for(schedule, monitor)
        scheduler.sessions[schedule.id] = session

        await scheduler._on_oid_found(session, "OID7", {"locationName": "Berlin"})

        launcher.run_all_accounts.assert_awaited_once_with("OID7", schedule.id)
        assert session.status is SessionStatus.COMPLETED
        assert schedule.id not in scheduler.sessions
        monitor.stop_polling.assert_awaited_once()
        texts = sent(mock_telegram)
        assert "EXAM FOUND" in texts[0]
        assert "Launching Browsers" in texts[1]

    @pytest.mark.asyncio
    async def test_launcher_error_fails_session(self, scheduler, schedule, launcher):
        launcher.run_all_accounts.side_effect = RuntimeError("crash")
        session = session_for(schedule)
        scheduler.sessions[schedule.id] = session

        await scheduler._on_oid_found(session, "OID7", {})

        assert session.status is SessionStatus.FAILED
        assert not scheduler.sessions

    @pytest.mark.asyncio
    async def test_timeout_is_terminal(self, scheduler, schedule, schedules, pool, monitor):
        session = session_for(schedule, monitor)
        scheduler.sessions[schedule.id] = session

        await scheduler._on_timeout(session)

        update = schedules.update_fields.await_args.kwargs
        assert update["completed"] is True
        assert update["last_error"] == TIMEOUT_ERROR
        pool.close_all_browsers.assert_awaited_once()
        monitor.close.assert_awaited_once()
        assert not scheduler.sessions


class TestTick:
    @pytest.mark.asyncio
    async def test_start_failure_recorded(self, scheduler, schedule, schedules, users):
        schedules.find_due_for_monitoring.return_value = [schedule]
        users.get_by_id.return_value = None

        await scheduler.check_future_schedules(NOW)

        window = schedules.find_due_for_monitoring.await_args.args
        assert window == (NOW, timedelta(seconds=120))
        update = schedules.update_fields.await_args.kwargs
        assert update["monitoring_started"] is False
        assert update["last_error"].startswith("Failed to start monitoring:")
        assert "completed" not in update

    @pytest.mark.asyncio
    async def test_retry_restarts_failed_schedule(
        self, scheduler, schedule, schedules, mock_telegram
    ):
        schedules.find_ready_for_retry.return_value = [schedule]

        assert await scheduler.retry_failed_schedules(NOW) == 1

        schedules.find_ready_for_retry.assert_awaited_once_with(2, NOW)
        schedules.update_fields.assert_any_await(
            schedule.id, status=ScheduleStatus.PENDING, monitoring_started=False
        )
        assert "Attempt 1/5" in sent(mock_telegram)[0]
        assert schedule.id in scheduler.sessions
        await scheduler.sessions[schedule.id].task

    @pytest.mark.asyncio
    async def test_retry_skips_active_and_exhausted(self, scheduler, schedule, schedules):
        other = Schedule(id=6, name="Evening", run_at=schedule.run_at, created_by=1)
        schedules.find_ready_for_retry.return_value = [schedule, other]
        schedules.increment_retry.return_value = None
        scheduler.sessions[schedule.id] = session_for(schedule)

        assert await scheduler.retry_failed_schedules(NOW) == 0
        schedules.increment_retry.assert_awaited_once_with(6)

    @pytest.mark.asyncio
    async def test_expired_sessions_fail(self, scheduler, schedule, schedules, monitor, mock_telegram):
        scheduler.sessions[schedule.id] = session_for(schedule, monitor)
        later = schedule.run_at + timedelta(minutes=31)

        assert await scheduler.cleanup_completed_sessions(later) == 1

        update = schedules.update_fields.await_args.kwargs
        assert update["completed"] is True
        assert update["last_error"] == SESSION_EXPIRED_ERROR
        assert "Schedule Failed" in sent(mock_telegram)[-1]
        assert not scheduler.sessions

    @pytest.mark.asyncio
    async def test_processing_sessions_do_not_expire(self, scheduler, schedule):
        scheduler.sessions[schedule.id] = session_for(schedule, status=SessionStatus.PROCESSING)
        later = schedule.run_at + timedelta(hours=1)
        assert await scheduler.cleanup_completed_sessions(later) == 0


class TestScheduleControl:
    @pytest.mark.asyncio
    async def test_pause_keeps_browsers(self, scheduler, schedule, schedules, pool, monitor):
        session = session_for(schedule, monitor)
        scheduler.sessions[schedule.id] = session

        await scheduler.pause_schedule(schedule.id)

        assert session.status is SessionStatus.PAUSED
        monitor.stop_polling.assert_awaited_once()
        schedules.update_fields.assert_awaited_once_with(schedule.id, status=ScheduleStatus.PAUSED)
        pool.close_all_browsers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pause_unknown_schedule(self, scheduler, schedules):
        schedules.get_by_id.return_value = None
        with pytest.raises(RecordNotFoundError):
            await scheduler.pause_schedule(99)

    @pytest.mark.asyncio
    async def test_resume_requires_paused(self, scheduler, schedule):
        with pytest.raises(ScheduleStateError):
            await scheduler.resume_schedule(schedule.id)

    @pytest.mark.asyncio
    async def test_resume_restarts_session(self, scheduler, schedule):
        schedule.status = ScheduleStatus.PAUSED.value
        session = await scheduler.resume_schedule(schedule.id)
        await session.task
        assert scheduler.sessions[schedule.id] is session

    @pytest.mark.asyncio
    async def test_trigger_completed_schedule(self, scheduler, schedule):
        schedule.completed = True
        with pytest.raises(ScheduleStateError):
            await scheduler.trigger_schedule(schedule.id)

    @pytest.mark.asyncio
    async def test_trigger_clears_last_error(self, scheduler, schedule, schedules):
        session = await scheduler.trigger_schedule(schedule.id)
        await session.task
        schedules.update_fields.assert_any_await(
            schedule.id, status=ScheduleStatus.PENDING, monitoring_started=False, last_error=None
        )

    @pytest.mark.asyncio
    async def test_stop_schedule(self, scheduler, schedule, schedules, pool):
        await scheduler.stop_schedule(schedule.id)
        update = schedules.update_fields.await_args.kwargs
        assert update["status"] == ScheduleStatus.STOPPED
        assert update["last_error"] == STOPPED_BY_USER
        pool.close_all_browsers.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_all_monitoring(self, scheduler, schedule, pool, monitor):
        scheduler.sessions[schedule.id] = session_for(schedule, monitor)

        await scheduler.stop_all_monitoring()

        assert not scheduler.sessions
        monitor.destroy.assert_awaited_once()
        pool.close_all_browsers.assert_awaited_once()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop_loop(self, scheduler, schedules):
        scheduler.start()
        await asyncio.sleep(0.01)
        assert scheduler.is_running
        schedules.find_due_for_monitoring.assert_awaited()

        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_status(self, scheduler, schedule):
        scheduler.sessions[schedule.id] = session_for(schedule)
        status = scheduler.get_status(NOW)
        assert status["active_sessions"] == 1
        assert status["sessions"][0]["schedule_id"] == schedule.id
        assert status["sessions"][0]["status"] == "warming"

    @pytest.mark.asyncio
    async def test_schedule_info(self, scheduler, schedule):
        info = await scheduler.get_schedule_info(schedule.id)
        assert info["is_monitoring"] is False
        assert info["schedule"]["name"] == "Morning"

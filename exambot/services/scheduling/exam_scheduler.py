"""Schedule watcher that runs monitoring sessions ahead of exam releases."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Set

from loguru import logger

from exambot.constants import ScheduleStatus
from exambot.core.config.config_models import AppConfig
from exambot.core.exceptions import RecordNotFoundError, ScheduleStateError
from exambot.services.exam_finder.api_monitor import ExamApiMonitor
from exambot.services.notification import messages

if TYPE_CHECKING:
    from exambot.repositories import ScheduleRepository, UserRepository
    from exambot.repositories.schedule_repository import Schedule
    from exambot.services.booking.launcher import BookingLauncher
    from exambot.services.browser.prewarmed_pool import PrewarmedBrowserPool
    from exambot.services.notification.telegram_client import ChatId, TelegramClient

TIMEOUT_ERROR = "No OID found within monitoring period"
SESSION_EXPIRED_ERROR = "Session expired"
STOPPED_BY_USER = "Stopped by user"


class SessionStatus(str, Enum):
    """Lifecycle of an in-memory monitoring session."""

    WARMING = "warming"
    MONITORING = "monitoring"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MonitoringSession:
    """A schedule that is currently being watched."""

    schedule_id: int
    name: str
    target_time: datetime
    user_id: int
    chat_id: Optional["ChatId"] = None
    status: SessionStatus = SessionStatus.WARMING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    browsers_prewarmed: bool = False
    monitor: Optional[ExamApiMonitor] = None
    task: Optional[asyncio.Task] = None

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        return {
            "schedule_id": self.schedule_id,
            "name": self.name,
            "target_time": self.target_time.isoformat(),
            "started_at": self.started_at.isoformat(),
            "running_for": f"{round((now - self.started_at).total_seconds())}s",
            "status": self.status.value,
            "browsers_prewarmed": self.browsers_prewarmed,
        }


def _error_text(error: Any) -> str:
    return str(error) or type(error).__name__ or "Unknown error"


class ExamScheduler:
    """
    Periodically starts monitoring sessions for schedules about to run.

    Every tick looks for schedules whose run time falls within the lead
    window, restarts failed schedules that still have retries left and
    expires sessions whose target time is long past. A session warms up the
    browser pool, polls the exam API and hands a found exam to the launcher,
    which records the final schedule status.
    """

    def __init__(
        self,
        schedules: "ScheduleRepository",
        users: "UserRepository",
        browser_pool: "PrewarmedBrowserPool",
        launcher: "BookingLauncher",
        telegram: "TelegramClient",
        config: Optional[AppConfig] = None,
        monitor_factory: Optional[Callable[[], ExamApiMonitor]] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            schedules: Schedule repository
            users: User repository
            browser_pool: Shared prewarmed browser pool
            launcher: Booking launcher run when an exam is found
            telegram: Client for user notifications
            config: Application configuration
            monitor_factory: Builds one exam API monitor per session
        """
        self.schedules = schedules
        self.users = users
        self.browser_pool = browser_pool
        self.launcher = launcher
        self.telegram = telegram
        self.config = config or AppConfig()
        self.monitor_factory = monitor_factory or (lambda: ExamApiMonitor(self.config.exam_api))

        self.sessions: Dict[int, MonitoringSession] = {}
        self.is_running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    # Lifecycle

    def start(self) -> None:
        """Start the periodic schedule check."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return
        logger.info(
            f"🚀 Starting schedule monitor ({self.config.scheduler.lead_window}s lead window)"
        )
        self.is_running = True
        self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        """Stop the periodic check; running sessions are left alone."""
        if not self.is_running:
            logger.warning("Scheduler not running")
            return
        logger.info("🛑 Stopping scheduler...")
        self.is_running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("Scheduler stopped")

    async def _run_loop(self) -> None:
        while self.is_running:
            try:
                await self.check_future_schedules()
            except Exception as e:
                logger.error(f"❌ Scheduler error: {e}")
            await asyncio.sleep(self.config.scheduler.check_interval)

    # Tick

    async def check_future_schedules(self, now: Optional[datetime] = None) -> None:
        """Run one scheduler tick."""
        now = now or datetime.now(timezone.utc)
        window = timedelta(seconds=self.config.scheduler.lead_window)

        due = await self.schedules.find_due_for_monitoring(now, window)
        if due:
            logger.info(f"🔍 Found {len(due)} schedule(s) ready for monitoring")
        for schedule in due:
            minutes_until = (schedule.run_at - now).total_seconds() / 60
            logger.info(
                f"⏰ Schedule '{schedule.name}' at {schedule.run_at.isoformat()} "
                f"({minutes_until:.1f} min away)"
            )
            await self._start_or_record_error(schedule)

        await self.retry_failed_schedules(now)
        await self.cleanup_completed_sessions(now)

    async def _start_or_record_error(self, schedule: "Schedule") -> None:
        try:
            await self.start_monitoring_session(schedule)
        except Exception as e:
            logger.error(f"❌ Failed to start monitoring for {schedule.name}: {e}")
            await self.update_schedule_with_error(schedule.id, e, "Failed to start monitoring")

    async def retry_failed_schedules(self, now: Optional[datetime] = None) -> int:
        """
        Restart failed schedules whose retry cool-off has passed.

        Returns:
            Number of schedules restarted
        """
        ready = await self.schedules.find_ready_for_retry(
            self.config.scheduler.retry_cooldown_minutes, now
        )
        restarted = 0
        for schedule in ready:
            if schedule.id in self.sessions:
                continue
            attempt = await self.schedules.increment_retry(schedule.id)
            if attempt is None:
                continue
            logger.info(f"🔄 Retrying schedule {schedule.id} ({attempt}/{schedule.max_retries})")
            await self.schedules.update_fields(
                schedule.id, status=ScheduleStatus.PENDING, monitoring_started=False
            )
            user = await self.users.get_by_id(schedule.created_by)
            if user:
                await self.send_log_to_user(
                    user.telegram_id,
                    messages.schedule_retrying(schedule.name, attempt, schedule.max_retries),
                )
            await self._start_or_record_error(schedule)
            restarted += 1
        return restarted

    # Sessions

    async def start_monitoring_session(self, schedule: "Schedule") -> MonitoringSession:
        """
        Register a session for the schedule and start it in the background.

        Raises:
            RecordNotFoundError: If the schedule owner no longer exists
        """
        user = await self.users.get_by_id(schedule.created_by)
        if user is None:
            raise RecordNotFoundError("user", schedule.created_by)

        logger.info(f"🎯 Starting monitoring session for: {schedule.name}")
        session = MonitoringSession(
            schedule_id=schedule.id,
            name=schedule.name,
            target_time=schedule.run_at,
            user_id=user.id,
            chat_id=user.telegram_id,
        )
        self.sessions[schedule.id] = session

        await self.schedules.update_fields(
            schedule.id, status=ScheduleStatus.MONITORING, monitoring_started=True
        )
        await self.send_log_to_user(
            session.chat_id,
            messages.monitoring_started(schedule.name, schedule.run_at, self.config.browser_pool.size),
        )

        session.task = asyncio.create_task(self._run_session(session))
        self._background.add(session.task)
        session.task.add_done_callback(self._background.discard)
        return session

    async def _run_session(self, session: MonitoringSession) -> None:
        try:
            logger.info(f"🔥 Warming up browsers for {session.name}...")
            ready = await self.browser_pool.warmup(self.config.browser_pool.size)
            session.browsers_prewarmed = True
            session.status = SessionStatus.MONITORING
            await self.send_log_to_user(session.chat_id, messages.browsers_ready(session.name, ready))

            session.monitor = self.monitor_factory()

            async def on_oid_found(oid: str, exam: Dict[str, Any]) -> None:
                await self._on_oid_found(session, oid, exam)

            async def on_timeout() -> None:
                await self._on_timeout(session)

            logger.info(f"🔍 Starting OID polling for {session.name}...")
            await session.monitor.start_polling(
                on_oid_found=on_oid_found,
                on_timeout=on_timeout,
                interval=self.config.monitoring.poll_interval,
                max_duration=self.config.monitoring.max_duration,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"❌ Error in monitoring session for {session.name}: {e}")
            await self._mark_failed(session.schedule_id, _error_text(e))
            await self.send_log_to_user(
                session.chat_id, messages.monitoring_failed(session.name, _error_text(e))
            )
            await self.browser_pool.close_all_browsers()
            session.status = SessionStatus.FAILED
            await self._discard_session(session.schedule_id)

    async def _on_oid_found(self, session: MonitoringSession, oid: str, exam: Dict[str, Any]) -> None:
        session.status = SessionStatus.PROCESSING
        await self.send_log_to_user(session.chat_id, messages.exam_found(oid, exam))
        await self.send_log_to_user(session.chat_id, messages.launching_browsers(oid))
        try:
            await self.launcher.run_all_accounts(oid, session.schedule_id)
            session.status = SessionStatus.COMPLETED
        except Exception as e:
            logger.error(f"❌ Error launching prewarmed browsers for {session.name}: {e}")
            session.status = SessionStatus.FAILED
        finally:
            await self._discard_session(session.schedule_id)

    async def _on_timeout(self, session: MonitoringSession) -> None:
        logger.info(f"⏰ Monitoring timeout for {session.name}")
        await self.schedules.update_fields(
            session.schedule_id,
            completed=True,
            status=ScheduleStatus.FAILED,
            last_run=datetime.now(timezone.utc),
            last_error=TIMEOUT_ERROR,
        )
        await self.send_log_to_user(
            session.chat_id,
            messages.monitoring_timeout(session.name, self.config.monitoring.max_duration),
        )
        await self.browser_pool.close_all_browsers()
        session.status = SessionStatus.FAILED
        await self._discard_session(session.schedule_id)

    async def _discard_session(self, schedule_id: int) -> Optional[MonitoringSession]:
        session = self.sessions.pop(schedule_id, None)
        if session is None:
            return None
        if session.task is not None and session.task is not asyncio.current_task():
            if not session.task.done():
                session.task.cancel()
        if session.monitor is not None:
            await session.monitor.stop_polling()
            await session.monitor.close()
        return session

    async def _mark_failed(self, schedule_id: int, error: str) -> None:
        """Mark a schedule failed, leaving it open for retry when retries remain."""
        schedule = await self.schedules.get_by_id(schedule_id)
        retryable = schedule is not None and schedule.can_retry
        await self.schedules.update_fields(
            schedule_id,
            completed=not retryable,
            status=ScheduleStatus.FAILED,
            last_run=datetime.now(timezone.utc),
            last_error=error,
        )

    # Failure handling

    async def update_schedule_with_error(self, schedule_id: int, error: Any, context: str) -> None:
        """Record a failure to start monitoring; the schedule stays eligible for retry."""
        await self.schedules.update_fields(
            schedule_id,
            monitoring_started=False,
            status=ScheduleStatus.FAILED,
            last_error=f"{context}: {_error_text(error)}",
            last_run=datetime.now(timezone.utc),
        )
        self.sessions.pop(schedule_id, None)

    async def handle_schedule_failure(
        self, schedule_id: int, error: Any, chat_id: Optional["ChatId"] = None
    ) -> None:
        """
        Mark a schedule failed for good and tell its owner.

        Args:
            schedule_id: Schedule ID
            error: Failure reason
            chat_id: Owner's chat ID (looked up when None)
        """
        schedule = await self.schedules.get_by_id(schedule_id)
        if schedule is None:
            return

        error_message = _error_text(error)
        await self.schedules.update_fields(
            schedule_id,
            completed=True,
            status=ScheduleStatus.FAILED,
            last_error=error_message,
            last_run=datetime.now(timezone.utc),
        )

        if chat_id is None:
            user = await self.users.get_by_id(schedule.created_by)
            chat_id = user.telegram_id if user else None
        await self.send_log_to_user(chat_id, messages.schedule_failed(schedule.name, error_message))
        await self._discard_session(schedule_id)

    async def send_log_to_user(self, chat_id: Optional["ChatId"], message: str) -> bool:
        if not chat_id:
            return False
        return await self.telegram.send_message(chat_id, message)

    async def cleanup_completed_sessions(self, now: Optional[datetime] = None) -> int:
        """
        Fail sessions whose target time passed the expiry without a launch.

        Returns:
            Number of sessions expired
        """
        now = now or datetime.now(timezone.utc)
        expiry = timedelta(seconds=self.config.scheduler.session_expiry)
        expired = [
            session
            for session in self.sessions.values()
            if now > session.target_time + expiry and session.status != SessionStatus.PROCESSING
        ]
        for session in expired:
            logger.info(f"🧹 Cleaning up expired session: {session.schedule_id}")
            await self._discard_session(session.schedule_id)
            await self.handle_schedule_failure(
                session.schedule_id, SESSION_EXPIRED_ERROR, session.chat_id
            )
        return len(expired)

    # Schedule control

    async def _require_schedule(self, schedule_id: int) -> "Schedule":
        schedule = await self.schedules.get_by_id(schedule_id)
        if schedule is None:
            raise RecordNotFoundError("schedule", schedule_id)
        return schedule

    async def pause_schedule(self, schedule_id: int) -> None:
        """Stop polling for a schedule and mark it paused; browsers stay warm."""
        schedule = await self._require_schedule(schedule_id)
        session = self.sessions.get(schedule_id)
        if session is not None:
            session.status = SessionStatus.PAUSED
            if session.monitor is not None:
                await session.monitor.stop_polling()

        await self.schedules.update_fields(schedule_id, status=ScheduleStatus.PAUSED)
        user = await self.users.get_by_id(schedule.created_by)
        if user:
            await self.send_log_to_user(user.telegram_id, messages.schedule_paused(schedule.name))

    async def resume_schedule(self, schedule_id: int) -> MonitoringSession:
        """
        Restart monitoring for a paused schedule.

        Raises:
            RecordNotFoundError: If the schedule does not exist
            ScheduleStateError: If the schedule is not paused
        """
        schedule = await self._require_schedule(schedule_id)
        if schedule.status != ScheduleStatus.PAUSED.value:
            raise ScheduleStateError(schedule_id, schedule.status, "resume")

        await self._discard_session(schedule_id)
        await self.schedules.update_fields(
            schedule_id, status=ScheduleStatus.PENDING, monitoring_started=False
        )
        return await self.start_monitoring_session(schedule)

    async def stop_schedule(self, schedule_id: int) -> None:
        """Stop monitoring, close browsers and mark the schedule stopped."""
        await self._discard_session(schedule_id)
        await self.browser_pool.close_all_browsers()
        await self.schedules.update_fields(
            schedule_id,
            completed=True,
            status=ScheduleStatus.STOPPED,
            last_error=STOPPED_BY_USER,
            last_run=datetime.now(timezone.utc),
        )

    async def trigger_schedule(self, schedule_id: int) -> MonitoringSession:
        """
        Start monitoring for a schedule right away.

        Raises:
            RecordNotFoundError: If the schedule does not exist
            ScheduleStateError: If the schedule already completed
        """
        schedule = await self._require_schedule(schedule_id)
        if schedule.completed:
            raise ScheduleStateError(schedule_id, schedule.status, "trigger")

        await self._discard_session(schedule_id)
        await self.schedules.update_fields(
            schedule_id,
            status=ScheduleStatus.PENDING,
            monitoring_started=False,
            last_error=None,
        )
        return await self.start_monitoring_session(schedule)

    async def stop_all_monitoring(self) -> None:
        """Stop every session and close all browsers."""
        logger.info(f"🛑 Stopping {len(self.sessions)} active sessions")
        for schedule_id in list(self.sessions):
            session = self.sessions.pop(schedule_id)
            if session.task is not None and not session.task.done():
                session.task.cancel()
            if session.monitor is not None:
                await session.monitor.destroy()
        await self.browser_pool.close_all_browsers()

    # Introspection

    def get_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        return {
            "is_running": self.is_running,
            "active_sessions": len(self.sessions),
            "current_time_utc": now.isoformat(),
            "sessions": [session.to_dict(now) for session in self.sessions.values()],
        }

    async def get_schedule_info(self, schedule_id: int) -> Dict[str, Any]:
        schedule = await self.schedules.get_by_id(schedule_id)
        session = self.sessions.get(schedule_id)
        return {
            "schedule": schedule.to_dict() if schedule else None,
            "is_monitoring": session is not None,
            "session": session.to_dict() if session else None,
        }

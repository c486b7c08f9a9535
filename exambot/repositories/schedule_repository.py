"""Booking schedule repository implementation."""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from loguru import logger

from exambot.constants import ScheduleStatus
from exambot.core.exceptions import ValidationError
from exambot.repositories.base import BaseRepository

if TYPE_CHECKING:
    from exambot.models.database import Database

DEFAULT_MAX_RETRIES = 5
MAX_RETRIES_LIMIT = 20

# Statuses that keep a schedule out of the due-for-monitoring query
_NOT_DUE_STATUSES = [
    ScheduleStatus.RUNNING.value,
    ScheduleStatus.PAUSED.value,
    ScheduleStatus.SUCCESS.value,
]

# Allowed fields for schedules table update (SQL injection prevention)
ALLOWED_SCHEDULE_UPDATE_FIELDS = frozenset(
    {
        "name",
        "run_at",
        "completed",
        "status",
        "last_run",
        "last_error",
        "monitoring_started",
        "retry_count",
        "max_retries",
        "last_attempt_time",
    }
)


class Schedule:
    """Booking schedule entity model."""

    def __init__(
        self,
        id: int,
        name: str,
        run_at: datetime,
        created_by: int,
        completed: bool = False,
        status: str = ScheduleStatus.PENDING.value,
        last_run: Optional[datetime] = None,
        last_error: Optional[str] = None,
        monitoring_started: bool = False,
        retry_count: int = 0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        last_attempt_time: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.name = name
        self.run_at = run_at
        self.created_by = created_by
        self.completed = completed
        self.status = status
        self.last_run = last_run
        self.last_error = last_error
        self.monitoring_started = monitoring_started
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.last_attempt_time = last_attempt_time
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries and not self.completed

    def to_dict(self) -> Dict[str, Any]:
        """Convert schedule to dictionary."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "name": self.name,
            "run_at": _iso(self.run_at),
            "created_by": self.created_by,
            "completed": self.completed,
            "status": self.status,
            "last_run": _iso(self.last_run),
            "last_error": self.last_error,
            "monitoring_started": self.monitoring_started,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "can_retry": self.can_retry,
            "last_attempt_time": _iso(self.last_attempt_time),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ScheduleRepository(BaseRepository[Schedule]):
    """Repository for booking schedules and their retry bookkeeping."""

    def _row_to_schedule(self, row: Any) -> Schedule:
        return Schedule(**{key: row[key] for key in row.keys()})

    async def get_by_id(self, id: int) -> Optional[Schedule]:
        async with self.db.get_connection() as conn:
            row = await conn.fetchrow("SELECT * FROM schedules WHERE id = $1", id)
            return self._row_to_schedule(row) if row else None

    async def get_all(self, limit: int = 100) -> List[Schedule]:
        async with self.db.get_connection() as conn:
            rows = await conn.fetch("SELECT * FROM schedules ORDER BY run_at LIMIT $1", limit)
            return [self._row_to_schedule(row) for row in rows]

    async def get_pending_for_user(self, user_id: int) -> List[Schedule]:
        """
        Get a user's schedules that have not completed.

        Args:
            user_id: Owner user ID

        Returns:
            Schedules sorted by run time
        """
        async with self.db.get_connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM schedules
                WHERE created_by = $1 AND completed = FALSE
                ORDER BY run_at ASC
                """,
                user_id,
            )
            return [self._row_to_schedule(row) for row in rows]

    async def create(self, data: Dict[str, Any]) -> int:
        """
        Create new schedule.

        Args:
            data: ``name``, ``run_at`` (aware datetime), ``created_by`` and
                optional ``max_retries``

        Returns:
            Created schedule ID

        Raises:
            ValidationError: If ``max_retries`` is out of range
        """
        max_retries = data.get("max_retries", DEFAULT_MAX_RETRIES)
        if not 0 <= max_retries <= MAX_RETRIES_LIMIT:
            raise ValidationError(
                f"max_retries must be between 0 and {MAX_RETRIES_LIMIT}", field="max_retries"
            )

        async with self.db.get_connection() as conn:
            schedule_id = await conn.fetchval(
                """
                INSERT INTO schedules (name, run_at, created_by, max_retries)
                VALUES ($1, $2, $3, $4)
                RETURNING id
                """,
                data["name"],
                data["run_at"],
                data["created_by"],
                max_retries,
            )
        if schedule_id is None:
            raise RuntimeError("Failed to get inserted schedule ID")
        logger.info(f"Schedule {schedule_id} '{data['name']}' created for {data['run_at']}")
        return schedule_id

    async def update(self, id: int, data: Dict[str, Any]) -> bool:
        data = dict(data)
        if isinstance(data.get("status"), ScheduleStatus):
            data["status"] = data["status"].value
        clause, values = self._build_set_clause(data, ALLOWED_SCHEDULE_UPDATE_FIELDS)
        async with self.db.get_connection() as conn:
            result = await conn.execute(
                f"UPDATE schedules SET {clause} WHERE id = ${len(values) + 1}", *values, id
            )
        return self._parse_command_tag(result) > 0

    async def update_fields(self, id: int, **fields: Any) -> bool:
        """Keyword shorthand for :meth:`update`."""
        return await self.update(id, fields)

    async def delete(self, id: int) -> bool:
        async with self.db.get_connection() as conn:
            result = await conn.execute("DELETE FROM schedules WHERE id = $1", id)
        return self._parse_command_tag(result) > 0

    async def delete_for_user(self, id: int, user_id: int) -> Optional[str]:
        """
        Delete a schedule if it belongs to the user.

        Returns:
            Name of the deleted schedule, or None if not found for this user
        """
        async with self.db.get_connection() as conn:
            return await conn.fetchval(
                "DELETE FROM schedules WHERE id = $1 AND created_by = $2 RETURNING name",
                id,
                user_id,
            )

    async def find_due_for_monitoring(
        self, now: datetime, window: timedelta
    ) -> List[Schedule]:
        """
        Schedules whose run time falls within the lead window.

        A schedule is due when ``now < run_at <= now + window``, it has not
        completed, it is not running, paused or successful, and no monitoring
        session has started for it.

        Args:
            now: Current time (aware)
            window: Lead time before run_at at which monitoring starts

        Returns:
            Due schedules sorted by run time
        """
        async with self.db.get_connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM schedules
                WHERE run_at > $1 AND run_at <= $2
                  AND completed = FALSE
                  AND status <> ALL($3::text[])
                  AND monitoring_started IS NOT TRUE
                ORDER BY run_at ASC
                """,
                now,
                now + window,
                _NOT_DUE_STATUSES,
            )
            return [self._row_to_schedule(row) for row in rows]

    async def find_ready_for_retry(
        self, min_minutes_since_last_attempt: int = 2, now: Optional[datetime] = None
    ) -> List[Schedule]:
        """
        Failed schedules with retries left whose cool-off has passed.

        Args:
            min_minutes_since_last_attempt: Cool-off after the previous attempt
            now: Current time (defaults to UTC now)

        Returns:
            Schedules eligible for another attempt
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=min_minutes_since_last_attempt)
        async with self.db.get_connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM schedules
                WHERE completed = FALSE
                  AND status = $1
                  AND retry_count < max_retries
                  AND (last_attempt_time IS NULL OR last_attempt_time < $2)
                ORDER BY run_at ASC
                """,
                ScheduleStatus.FAILED.value,
                cutoff,
            )
            return [self._row_to_schedule(row) for row in rows]

    async def increment_retry(self, id: int) -> Optional[int]:
        """
        Count another attempt and stamp its time.

        Returns:
            New retry count, or None if the schedule does not exist
        """
        async with self.db.get_connection() as conn:
            return await conn.fetchval(
                """
                UPDATE schedules
                SET retry_count = retry_count + 1, last_attempt_time = NOW()
                WHERE id = $1
                RETURNING retry_count
                """,
                id,
            )

    async def reset_retries(self, id: int) -> bool:
        """Clear retry count, last attempt time and last error."""
        async with self.db.get_connection() as conn:
            result = await conn.execute(
                """
                UPDATE schedules
                SET retry_count = 0, last_attempt_time = NULL, last_error = NULL
                WHERE id = $1
                """,
                id,
            )
        return self._parse_command_tag(result) > 0

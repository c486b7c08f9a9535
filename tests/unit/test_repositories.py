"""Tests for user, account and schedule repositories against a mocked connection."""

from datetime import datetime, timedelta, timezone

import pytest
from cryptography.fernet import Fernet

from exambot.constants import ScheduleStatus
from exambot.core.exceptions import ValidationError
from exambot.repositories import (
    AccountRepository,
    ExamModules,
    PersonalDetails,
    ScheduleRepository,
    UserRepository,
)
from exambot.utils.encryption import PasswordEncryption

NOW = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def encryption():
    return PasswordEncryption(Fernet.generate_key().decode())


def account_row(encryption, **overrides):
    row = {
        "id": 10,
        "user_id": 1,
        "email": "jane@example.com",
        "password": encryption.encrypt("secret"),
        "first_name": "Jane",
        "last_name": "Doe",
        "status": True,
        "module_read": True,
        "module_hear": False,
        "module_write": False,
        "module_speak": True,
        "dob_day": 15,
        "dob_month": 3,
        "dob_year": 1990,
        "street": "Main Street",
        "city": "New York",
        "postal_code": "10001",
        "house_no": "123A",
        "phone_country_code": "+1",
        "phone_number": "5551234567",
        "created_at": NOW,
    }
    row.update(overrides)
    return row


class TestUserRepository:
    @pytest.mark.asyncio
    async def test_get_or_create_defaults_username(self, mock_db, mock_conn):
        mock_conn.fetchrow.return_value = {
            "id": 1,
            "telegram_id": 42,
            "username": "user_42",
            "created_at": NOW,
            "updated_at": NOW,
        }

        user = await UserRepository(mock_db).get_or_create(42)

        assert user.username == "user_42"
        args = mock_conn.fetchrow.call_args.args
        assert "ON CONFLICT (telegram_id)" in args[0]
        assert args[1:] == (42, "user_42")

    @pytest.mark.asyncio
    async def test_get_by_telegram_id_missing(self, mock_db, mock_conn):
        assert await UserRepository(mock_db).get_by_telegram_id(7) is None

    @pytest.mark.asyncio
    async def test_update_ignores_unknown_fields(self, mock_db, mock_conn):
        assert await UserRepository(mock_db).update(1, {"telegram_id": 5}) is False
        mock_conn.execute.assert_not_called()


class TestAccountRepository:
    @pytest.mark.asyncio
    async def test_row_decrypts_password_and_builds_details(self, mock_db, mock_conn, encryption):
        mock_conn.fetchrow.return_value = account_row(encryption)

        account = await AccountRepository(mock_db, encryption).get_by_id(10)

        assert account.password == "secret"
        assert account.modules.selected() == ["read", "speak"]
        assert account.details.city == "New York"
        assert "password" not in account.to_dict()

    @pytest.mark.asyncio
    async def test_row_without_details(self, mock_db, mock_conn, encryption):
        mock_conn.fetch.return_value = [account_row(encryption, dob_year=None)]

        accounts = await AccountRepository(mock_db, encryption).get_active(user_id=1)

        assert accounts[0].details is None
        query, user_id = mock_conn.fetch.call_args.args
        assert "status = TRUE AND user_id = $1" in query
        assert user_id == 1

    @pytest.mark.asyncio
    async def test_create_encrypts_and_lowercases(self, mock_db, mock_conn, encryption):
        mock_conn.fetchval.side_effect = [False, 11]
        details = PersonalDetails(15, 3, 1990, "Main", "NYC", "10001", "1", "+1", "555")

        account_id = await AccountRepository(mock_db, encryption).create(
            {
                "user_id": 1,
                "email": " Jane@Example.com ",
                "password": "secret",
                "first_name": "Jane",
                "last_name": "Doe",
                "modules": ExamModules(hear=True),
                "details": details,
            }
        )

        assert account_id == 11
        args = mock_conn.fetchval.call_args.args
        assert args[2] == "jane@example.com"
        assert args[3] != "secret"
        assert encryption.decrypt(args[3]) == "secret"
        assert args[7:11] == (False, True, False, False)
        assert args[-1] == "555"

    @pytest.mark.asyncio
    async def test_create_rejects_duplicate_email(self, mock_db, mock_conn, encryption):
        mock_conn.fetchval.return_value = True
        with pytest.raises(ValidationError, match="already exists"):
            await AccountRepository(mock_db, encryption).create(
                {
                    "user_id": 1,
                    "email": "jane@example.com",
                    "password": "x",
                    "first_name": "J",
                    "last_name": "D",
                }
            )

    @pytest.mark.asyncio
    async def test_toggle_status_checks_owner(self, mock_db, mock_conn, encryption):
        mock_conn.fetchval.return_value = None

        result = await AccountRepository(mock_db, encryption).toggle_status(10, 2)

        assert result is None
        query, account_id, user_id = mock_conn.fetchval.call_args.args
        assert "AND user_id = $2" in query
        assert (account_id, user_id) == (10, 2)

    @pytest.mark.asyncio
    async def test_delete_for_user_returns_email(self, mock_db, mock_conn, encryption):
        mock_conn.fetchval.return_value = "jane@example.com"
        assert await AccountRepository(mock_db, encryption).delete_for_user(10, 1) == (
            "jane@example.com"
        )

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_column(self, mock_db, encryption):
        with pytest.raises(ValidationError, match="Unknown fields"):
            await AccountRepository(mock_db, encryption).update(1, {"user_id": 2})

    @pytest.mark.asyncio
    async def test_set_status(self, mock_db, mock_conn, encryption):
        assert await AccountRepository(mock_db, encryption).set_status(1, False) is True
        query, status, account_id = mock_conn.execute.call_args.args
        assert query == "UPDATE accounts SET status = $1 WHERE id = $2"
        assert (status, account_id) == (False, 1)


class TestExamModules:
    def test_toggle(self):
        modules = ExamModules()
        modules.toggle("write")
        assert modules.selected() == ["write"]
        modules.toggle("write")
        assert not modules.any_selected()

    def test_toggle_unknown(self):
        with pytest.raises(ValidationError):
            ExamModules().toggle("draw")


class TestScheduleRepository:
    def test_can_retry(self, schedule):
        assert schedule.can_retry
        schedule.retry_count = schedule.max_retries
        assert not schedule.can_retry
        schedule.retry_count = 0
        schedule.completed = True
        assert not schedule.can_retry

    @pytest.mark.asyncio
    async def test_create_validates_max_retries(self, mock_db):
        with pytest.raises(ValidationError):
            await ScheduleRepository(mock_db).create(
                {"name": "x", "run_at": NOW, "created_by": 1, "max_retries": 21}
            )

    @pytest.mark.asyncio
    async def test_create_defaults_max_retries(self, mock_db, mock_conn):
        mock_conn.fetchval.return_value = 3
        schedule_id = await ScheduleRepository(mock_db).create(
            {"name": "x", "run_at": NOW, "created_by": 1}
        )
        assert schedule_id == 3
        assert mock_conn.fetchval.call_args.args[-1] == 5

    @pytest.mark.asyncio
    async def test_update_fields_converts_status_enum(self, mock_db, mock_conn):
        await ScheduleRepository(mock_db).update_fields(
            5, status=ScheduleStatus.FAILED, last_error="boom"
        )
        args = mock_conn.execute.call_args.args
        assert args[0] == "UPDATE schedules SET status = $1, last_error = $2 WHERE id = $3"
        assert args[1:] == ("failed", "boom", 5)

    @pytest.mark.asyncio
    async def test_find_due_for_monitoring_window(self, mock_db, mock_conn):
        mock_conn.fetch.return_value = []

        await ScheduleRepository(mock_db).find_due_for_monitoring(NOW, timedelta(minutes=2))

        query, start, end, excluded = mock_conn.fetch.call_args.args
        assert "run_at > $1 AND run_at <= $2" in query
        assert (start, end) == (NOW, NOW + timedelta(minutes=2))
        assert set(excluded) == {"running", "paused", "success"}

    @pytest.mark.asyncio
    async def test_find_ready_for_retry_cutoff(self, mock_db, mock_conn):
        mock_conn.fetch.return_value = [
            {
                "id": 5,
                "name": "Morning",
                "run_at": NOW,
                "created_by": 1,
                "status": "failed",
                "retry_count": 1,
            }
        ]

        schedules = await ScheduleRepository(mock_db).find_ready_for_retry(2, now=NOW)

        assert schedules[0].retry_count == 1
        _, status, cutoff = mock_conn.fetch.call_args.args
        assert status == "failed"
        assert cutoff == NOW - timedelta(minutes=2)

    @pytest.mark.asyncio
    async def test_increment_retry(self, mock_db, mock_conn):
        mock_conn.fetchval.return_value = 2
        assert await ScheduleRepository(mock_db).increment_retry(5) == 2
        assert "last_attempt_time = NOW()" in mock_conn.fetchval.call_args.args[0]

"""Pytest configuration and common fixtures."""

import os
import sys
import warnings
from pathlib import Path

# CRITICAL: Set environment variables BEFORE any exambot imports
# Settings are read at import time by some modules.
os.environ.setdefault("ENV", "testing")

from cryptography.fernet import Fernet

if not os.getenv("ENCRYPTION_KEY"):
    os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

# NOW it's safe to import from exambot
import pytest

from exambot.core.config import AppConfig
from exambot.repositories import Account, ExamModules, PersonalDetails, Schedule, User


def pytest_configure(config):
    """Configure pytest environment before tests run."""
    warnings.filterwarnings("ignore", message="coroutine.*was never awaited")


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Automatically set up test environment for all tests."""
    monkeypatch.setenv("ENCRYPTION_KEY", Fernet.generate_key().decode())
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost:5432/exambot_test")
    monkeypatch.delenv("ENCRYPTION_KEY_OLD", raising=False)

    from exambot.core.config.settings import reset_settings

    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration with short timings for tests."""
    return AppConfig.model_validate(
        {
            "monitoring": {"poll_interval": 0.01, "max_duration": 60},
            "booking": {"manual_intervention_wait": 0, "browser_cleanup_delay": 0},
            "scheduler": {"check_interval": 1},
        }
    )


@pytest.fixture
def mock_conn():
    """Mock asyncpg connection."""
    conn = AsyncMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value="UPDATE 1")
    return conn


@pytest.fixture
def mock_db(mock_conn):
    """Mock Database whose get_connection() yields ``mock_conn``."""
    db = MagicMock()

    @asynccontextmanager
    async def get_connection(timeout=None):
        yield mock_conn

    db.get_connection = get_connection
    db.health_check = AsyncMock(return_value=True)
    return db


@pytest.fixture
def mock_page():
    """Mock Playwright page object."""
    page = AsyncMock()
    page.goto = AsyncMock()
    page.click = AsyncMock()
    page.fill = AsyncMock()
    page.title = AsyncMock(return_value="Booking")
    page.wait_for_selector = AsyncMock()
    page.locator = MagicMock()
    page.url = "https://exam.example.com/booking"
    page.close = AsyncMock()
    return page


@pytest.fixture
def mock_telegram():
    """Mock TelegramClient."""
    telegram = MagicMock()
    telegram.send_message = AsyncMock(return_value=True)
    telegram.send_in_background = MagicMock()
    return telegram


@pytest.fixture
def user() -> User:
    return User(id=1, telegram_id=1001, username="alice")


@pytest.fixture
def account() -> Account:
    return Account(
        id=10,
        user_id=1,
        email="jane.doe@example.com",
        password="secret",
        first_name="Jane",
        last_name="Doe",
        modules=ExamModules(read=True, speak=True),
        details=PersonalDetails(
            dob_day=15,
            dob_month=3,
            dob_year=1990,
            street="Main Street",
            city="New York",
            postal_code="10001",
            house_no="123A",
            phone_country_code="+1",
            phone_number="5551234567",
        ),
    )


@pytest.fixture
def schedule() -> Schedule:
    return Schedule(
        id=5,
        name="Morning",
        run_at=datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc),
        created_by=1,
    )

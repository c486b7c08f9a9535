"""PostgreSQL schema shared by runtime bootstrap and the Alembic baseline."""

from typing import Final, Tuple

from exambot.constants import ScheduleStatus

_STATUS_VALUES = ", ".join(f"'{status}'" for status in ScheduleStatus.values())

TABLE_STATEMENTS: Final[Tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id BIGSERIAL PRIMARY KEY,
        telegram_id BIGINT UNIQUE NOT NULL,
        username TEXT NOT NULL,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id BIGSERIAL PRIMARY KEY,
        user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        email TEXT UNIQUE NOT NULL,
        password TEXT NOT NULL,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        status BOOLEAN NOT NULL DEFAULT TRUE,
        module_read BOOLEAN NOT NULL DEFAULT FALSE,
        module_hear BOOLEAN NOT NULL DEFAULT FALSE,
        module_write BOOLEAN NOT NULL DEFAULT FALSE,
        module_speak BOOLEAN NOT NULL DEFAULT FALSE,
        dob_day SMALLINT,
        dob_month SMALLINT,
        dob_year SMALLINT,
        street TEXT,
        city TEXT,
        postal_code TEXT,
        house_no TEXT,
        phone_country_code TEXT,
        phone_number TEXT,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS schedules (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        run_at TIMESTAMPTZ NOT NULL,
        created_by BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        completed BOOLEAN NOT NULL DEFAULT FALSE,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ({_STATUS_VALUES})),
        last_run TIMESTAMPTZ,
        last_error TEXT,
        monitoring_started BOOLEAN NOT NULL DEFAULT FALSE,
        retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
        max_retries INTEGER NOT NULL DEFAULT 5 CHECK (max_retries BETWEEN 0 AND 20),
        last_attempt_time TIMESTAMPTZ,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
    """,
)

INDEX_STATEMENTS: Final[Tuple[str, ...]] = (
    "CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_schedules_created_by ON schedules(created_by)",
    "CREATE INDEX IF NOT EXISTS idx_schedules_due ON schedules(run_at) WHERE completed = FALSE",
)

UPDATED_AT_FUNCTION: Final[str] = """
    CREATE OR REPLACE FUNCTION update_updated_at_column()
    RETURNS TRIGGER AS $$
    BEGIN
        NEW.updated_at = NOW();
        RETURN NEW;
    END;
    $$ language 'plpgsql';
"""

TABLES_WITH_UPDATED_AT: Final[Tuple[str, ...]] = ("users", "accounts", "schedules")


def updated_at_trigger(table: str) -> str:
    """DDL attaching the updated_at trigger to a whitelisted table."""
    if table not in TABLES_WITH_UPDATED_AT:
        raise ValueError(f"Unknown table: {table}")
    return f"""
        DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table};
        CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
    """

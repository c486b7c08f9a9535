"""Baseline migration - users, accounts and schedules

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates the same schema that Database._create_tables() bootstraps at runtime.
"""
from typing import Sequence, Union

from alembic import op

from exambot.models.schema import (
    INDEX_STATEMENTS,
    TABLE_STATEMENTS,
    TABLES_WITH_UPDATED_AT,
    UPDATED_AT_FUNCTION,
    updated_at_trigger,
)

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tables, indexes and updated_at triggers."""
    for statement in TABLE_STATEMENTS:
        op.execute(statement)

    for statement in INDEX_STATEMENTS:
        op.execute(statement)

    op.execute(UPDATED_AT_FUNCTION)
    for table in TABLES_WITH_UPDATED_AT:
        op.execute(updated_at_trigger(table))


def downgrade() -> None:
    """Drop all tables and the trigger function."""
    op.execute("DROP TABLE IF EXISTS schedules CASCADE")
    op.execute("DROP TABLE IF EXISTS accounts CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column() CASCADE")

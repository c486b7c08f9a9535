"""Telegram user repository implementation."""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from loguru import logger

from exambot.repositories.base import BaseRepository

if TYPE_CHECKING:
    from exambot.models.database import Database


class User:
    """Telegram user entity model."""

    def __init__(
        self,
        id: int,
        telegram_id: int,
        username: str,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.telegram_id = telegram_id
        self.username = username
        self.created_at = created_at
        self.updated_at = updated_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert user to dictionary."""
        return {
            "id": self.id,
            "telegram_id": self.telegram_id,
            "username": self.username,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class UserRepository(BaseRepository[User]):
    """Repository for Telegram user CRUD operations."""

    def _row_to_user(self, row: Any) -> User:
        return User(
            id=row["id"],
            telegram_id=row["telegram_id"],
            username=row["username"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def get_by_id(self, id: int) -> Optional[User]:
        async with self.db.get_connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", id)
            return self._row_to_user(row) if row else None

    async def get_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        """
        Get user by Telegram chat identifier.

        Args:
            telegram_id: Telegram user ID

        Returns:
            User entity or None if not registered
        """
        async with self.db.get_connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE telegram_id = $1", telegram_id)
            return self._row_to_user(row) if row else None

    async def get_all(self, limit: int = 100) -> List[User]:
        async with self.db.get_connection() as conn:
            rows = await conn.fetch("SELECT * FROM users ORDER BY id LIMIT $1", limit)
            return [self._row_to_user(row) for row in rows]

    async def create(self, data: Dict[str, Any]) -> int:
        """
        Create new user.

        Args:
            data: Must contain ``telegram_id``; ``username`` defaults to ``user_{id}``

        Returns:
            Created user ID
        """
        telegram_id = int(data["telegram_id"])
        username = data.get("username") or f"user_{telegram_id}"
        async with self.db.get_connection() as conn:
            user_id = await conn.fetchval(
                "INSERT INTO users (telegram_id, username) VALUES ($1, $2) RETURNING id",
                telegram_id,
                username,
            )
        if user_id is None:
            raise RuntimeError("Failed to get inserted user ID")
        logger.info(f"Registered Telegram user {telegram_id} as user {user_id}")
        return user_id

    async def get_or_create(self, telegram_id: int, username: Optional[str] = None) -> User:
        """
        Fetch the user for a chat, registering it on first contact.

        Args:
            telegram_id: Telegram user ID
            username: Telegram username, if the user has one

        Returns:
            Existing or newly created user
        """
        async with self.db.get_connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO users (telegram_id, username) VALUES ($1, $2)
                ON CONFLICT (telegram_id) DO UPDATE SET telegram_id = EXCLUDED.telegram_id
                RETURNING *
                """,
                telegram_id,
                username or f"user_{telegram_id}",
            )
        return self._row_to_user(row)

    async def update(self, id: int, data: Dict[str, Any]) -> bool:
        if "username" not in data:
            return False
        async with self.db.get_connection() as conn:
            result = await conn.execute(
                "UPDATE users SET username = $1 WHERE id = $2", data["username"], id
            )
        return self._parse_command_tag(result) > 0

    async def delete(self, id: int) -> bool:
        async with self.db.get_connection() as conn:
            result = await conn.execute("DELETE FROM users WHERE id = $1", id)
        return self._parse_command_tag(result) > 0

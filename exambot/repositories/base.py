"""Base repository class."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Generic, List, Optional, Tuple, TypeVar

from exambot.core.exceptions import ValidationError

if TYPE_CHECKING:
    from exambot.models.database import Database

T = TypeVar("T")


class BaseRepository(ABC, Generic[T]):
    """Base repository with common CRUD operations."""

    def __init__(self, database: "Database"):
        """
        Initialize repository with database connection.

        Args:
            database: Database instance
        """
        self.db = database

    @abstractmethod
    async def get_by_id(self, id: int) -> Optional[T]:
        """
        Get entity by ID.

        Args:
            id: Entity ID

        Returns:
            Entity or None if not found
        """

    @abstractmethod
    async def get_all(self, limit: int = 100) -> List[T]:
        """
        Get all entities.

        Args:
            limit: Maximum number of entities to return

        Returns:
            List of entities
        """

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> int:
        """
        Create new entity.

        Args:
            data: Entity data

        Returns:
            Created entity ID
        """

    @abstractmethod
    async def update(self, id: int, data: Dict[str, Any]) -> bool:
        """
        Update entity.

        Args:
            id: Entity ID
            data: Update data

        Returns:
            True if updated, False otherwise
        """

    @abstractmethod
    async def delete(self, id: int) -> bool:
        """
        Delete entity.

        Args:
            id: Entity ID

        Returns:
            True if deleted, False otherwise
        """

    @staticmethod
    def _build_set_clause(
        data: Dict[str, Any], allowed: FrozenSet[str], start: int = 1
    ) -> Tuple[str, List[Any]]:
        """
        Build a parameterized ``SET`` clause from whitelisted columns.

        Args:
            data: Column -> value mapping
            allowed: Columns that may be updated (SQL injection prevention)
            start: First positional parameter number

        Returns:
            Tuple of clause text and parameter values

        Raises:
            ValidationError: If a column is not whitelisted or data is empty
        """
        unknown = set(data) - allowed
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        if not data:
            raise ValidationError("No fields to update")

        columns = list(data)
        clause = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=start))
        return clause, [data[col] for col in columns]

    @staticmethod
    def _parse_command_tag(command_tag: str) -> int:
        """
        Extract affected row count from a PostgreSQL command tag.

        Examples: 'UPDATE 5', 'DELETE 3', 'INSERT 0 1'
        """
        try:
            return int(command_tag.split()[-1])
        except (ValueError, IndexError):
            return 0

"""Exam site account repository implementation."""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from loguru import logger

from exambot.constants import MODULE_KEYS
from exambot.core.exceptions import ValidationError
from exambot.repositories.base import BaseRepository
from exambot.utils.masking import mask_email

if TYPE_CHECKING:
    from exambot.models.database import Database
    from exambot.utils.encryption import PasswordEncryption


@dataclass
class ExamModules:
    """Exam modules an account wants to book."""

    read: bool = False
    hear: bool = False
    write: bool = False
    speak: bool = False

    def toggle(self, module: str) -> None:
        if module not in MODULE_KEYS:
            raise ValidationError(f"Unknown module: {module}", field="modules")
        setattr(self, module, not getattr(self, module))

    def selected(self) -> List[str]:
        return [key for key in MODULE_KEYS if getattr(self, key)]

    def any_selected(self) -> bool:
        return bool(self.selected())

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


@dataclass
class PersonalDetails:
    """Date of birth, address and phone entered for the booking form."""

    dob_day: int
    dob_month: int
    dob_year: int
    street: str
    city: str
    postal_code: str
    house_no: str
    phone_country_code: str
    phone_number: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dob": {"day": self.dob_day, "month": self.dob_month, "year": self.dob_year},
            "address": {
                "street": self.street,
                "city": self.city,
                "postal_code": self.postal_code,
                "house_no": self.house_no,
            },
            "phone": {"country_code": self.phone_country_code, "number": self.phone_number},
        }


class Account:
    """Exam site account entity model."""

    def __init__(
        self,
        id: int,
        user_id: int,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        status: bool = True,
        modules: Optional[ExamModules] = None,
        details: Optional[PersonalDetails] = None,
        created_at: Optional[datetime] = None,
    ):
        self.id = id
        self.user_id = user_id
        self.email = email
        self.password = password
        self.first_name = first_name
        self.last_name = last_name
        self.status = status
        self.modules = modules or ExamModules()
        self.details = details
        self.created_at = created_at

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert account to dictionary (password excluded)."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "status": self.status,
            "modules": self.modules.to_dict(),
            "details": self.details.to_dict() if self.details else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


_DETAIL_COLUMNS = (
    "dob_day",
    "dob_month",
    "dob_year",
    "street",
    "city",
    "postal_code",
    "house_no",
    "phone_country_code",
    "phone_number",
)

# Allowed fields for accounts table update (SQL injection prevention)
ALLOWED_ACCOUNT_UPDATE_FIELDS = frozenset(
    {"first_name", "last_name", "password", "status"}
    | {f"module_{key}" for key in MODULE_KEYS}
    | set(_DETAIL_COLUMNS)
)


class AccountRepository(BaseRepository[Account]):
    """Repository for exam site accounts, storing passwords encrypted."""

    def __init__(self, database: "Database", encryption: "PasswordEncryption"):
        """
        Initialize account repository.

        Args:
            database: Database instance
            encryption: Cipher for stored passwords
        """
        super().__init__(database)
        self.encryption = encryption

    def _row_to_account(self, row: Any) -> Account:
        details = None
        if row["dob_year"] is not None:
            details = PersonalDetails(**{col: row[col] for col in _DETAIL_COLUMNS})
        return Account(
            id=row["id"],
            user_id=row["user_id"],
            email=row["email"],
            password=self.encryption.decrypt(row["password"]),
            first_name=row["first_name"],
            last_name=row["last_name"],
            status=row["status"],
            modules=ExamModules(**{key: row[f"module_{key}"] for key in MODULE_KEYS}),
            details=details,
            created_at=row["created_at"],
        )

    async def get_by_id(self, id: int) -> Optional[Account]:
        async with self.db.get_connection() as conn:
            row = await conn.fetchrow("SELECT * FROM accounts WHERE id = $1", id)
            return self._row_to_account(row) if row else None

    async def get_all(self, limit: int = 100) -> List[Account]:
        async with self.db.get_connection() as conn:
            rows = await conn.fetch("SELECT * FROM accounts ORDER BY id LIMIT $1", limit)
            return [self._row_to_account(row) for row in rows]

    async def get_by_user(self, user_id: int) -> List[Account]:
        """
        Get every account registered by a user.

        Args:
            user_id: Owner user ID

        Returns:
            Accounts ordered by creation
        """
        async with self.db.get_connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM accounts WHERE user_id = $1 ORDER BY id", user_id
            )
            return [self._row_to_account(row) for row in rows]

    async def get_active(self, user_id: Optional[int] = None) -> List[Account]:
        """
        Get enabled accounts, optionally limited to one owner.

        Args:
            user_id: Owner user ID, or None for all users

        Returns:
            Accounts with ``status`` true
        """
        async with self.db.get_connection() as conn:
            if user_id is None:
                rows = await conn.fetch(
                    "SELECT * FROM accounts WHERE status = TRUE ORDER BY id"
                )
            else:
                rows = await conn.fetch(
                    "SELECT * FROM accounts WHERE status = TRUE AND user_id = $1 ORDER BY id",
                    user_id,
                )
            return [self._row_to_account(row) for row in rows]

    async def email_exists(self, email: str) -> bool:
        async with self.db.get_connection() as conn:
            return bool(
                await conn.fetchval(
                    "SELECT EXISTS(SELECT 1 FROM accounts WHERE email = $1)",
                    email.strip().lower(),
                )
            )

    async def create(self, data: Dict[str, Any]) -> int:
        """
        Create new account.

        Args:
            data: ``user_id``, ``email``, ``password``, ``first_name``,
                ``last_name``, ``modules`` (ExamModules) and optional
                ``details`` (PersonalDetails)

        Returns:
            Created account ID

        Raises:
            ValidationError: If the email is already registered
        """
        email = data["email"].strip().lower()
        if await self.email_exists(email):
            raise ValidationError("An account with this email already exists", field="email")

        modules: ExamModules = data.get("modules") or ExamModules()
        details: Optional[PersonalDetails] = data.get("details")
        detail_values = [getattr(details, col) if details else None for col in _DETAIL_COLUMNS]

        async with self.db.get_connection() as conn:
            account_id = await conn.fetchval(
                """
                INSERT INTO accounts
                (user_id, email, password, first_name, last_name, status,
                 module_read, module_hear, module_write, module_speak,
                 dob_day, dob_month, dob_year, street, city, postal_code, house_no,
                 phone_country_code, phone_number)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                        $11, $12, $13, $14, $15, $16, $17, $18, $19)
                RETURNING id
                """,
                data["user_id"],
                email,
                self.encryption.encrypt(data["password"]),
                data["first_name"],
                data["last_name"],
                data.get("status", True),
                modules.read,
                modules.hear,
                modules.write,
                modules.speak,
                *detail_values,
            )
        if account_id is None:
            raise RuntimeError("Failed to get inserted account ID")
        logger.info(f"Account {account_id} created for {mask_email(email)}")
        return account_id

    async def update(self, id: int, data: Dict[str, Any]) -> bool:
        data = dict(data)
        if "password" in data:
            data["password"] = self.encryption.encrypt(data["password"])
        clause, values = self._build_set_clause(data, ALLOWED_ACCOUNT_UPDATE_FIELDS)
        async with self.db.get_connection() as conn:
            result = await conn.execute(
                f"UPDATE accounts SET {clause} WHERE id = ${len(values) + 1}", *values, id
            )
        return self._parse_command_tag(result) > 0

    async def set_status(self, id: int, status: bool) -> bool:
        """Enable or disable an account."""
        return await self.update(id, {"status": status})

    async def toggle_status(self, id: int, user_id: int) -> Optional[bool]:
        """
        Flip an account's status if it belongs to the user.

        Args:
            id: Account ID
            user_id: Requesting user ID

        Returns:
            New status, or None if the account was not found for this user
        """
        async with self.db.get_connection() as conn:
            return await conn.fetchval(
                """
                UPDATE accounts SET status = NOT status
                WHERE id = $1 AND user_id = $2
                RETURNING status
                """,
                id,
                user_id,
            )

    async def delete(self, id: int) -> bool:
        async with self.db.get_connection() as conn:
            result = await conn.execute("DELETE FROM accounts WHERE id = $1", id)
        return self._parse_command_tag(result) > 0

    async def delete_for_user(self, id: int, user_id: int) -> Optional[str]:
        """
        Delete an account if it belongs to the user.

        Returns:
            Email of the deleted account, or None if not found for this user
        """
        async with self.db.get_connection() as conn:
            return await conn.fetchval(
                "DELETE FROM accounts WHERE id = $1 AND user_id = $2 RETURNING email",
                id,
                user_id,
            )

"""Repository pattern implementations for data access."""

from .account_repository import Account, AccountRepository, ExamModules, PersonalDetails
from .base import BaseRepository
from .schedule_repository import Schedule, ScheduleRepository
from .user_repository import User, UserRepository

__all__ = [
    "Account",
    "AccountRepository",
    "BaseRepository",
    "ExamModules",
    "PersonalDetails",
    "Schedule",
    "ScheduleRepository",
    "User",
    "UserRepository",
]

"""Per-user conversation state for the chat bot."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from exambot.repositories.account_repository import ExamModules, PersonalDetails
from exambot.services.telegram_bot.parsers import AccountEntry


class UserState(str, Enum):
    IDLE = "idle"
    ADDING_ACCOUNT = "adding_account"
    ADDING_PERSONAL_DETAILS = "adding_personal_details"
    SELECTING_MODULES = "selecting_modules"
    REMOVING_ACCOUNT = "removing_account"
    TOGGLING_ACCOUNT = "toggling_account"
    SETTING_SCHEDULE = "setting_schedule"
    REMOVING_SCHEDULE = "removing_schedule"


@dataclass
class Conversation:
    """What a user is doing and the data collected so far."""

    state: UserState = UserState.IDLE
    account: Optional[AccountEntry] = None
    details: Optional[PersonalDetails] = None
    modules: ExamModules = field(default_factory=ExamModules)

    def to_dict(self) -> Dict[str, Any]:
        """State summary for ``/state`` (password excluded)."""
        data: Dict[str, Any] = {"state": self.state.value}
        if self.account:
            data["account"] = {
                "first_name": self.account.first_name,
                "last_name": self.account.last_name,
                "email": self.account.email,
            }
        if self.details:
            data["details"] = self.details.to_dict()
        if self.state == UserState.SELECTING_MODULES:
            data["modules"] = asdict(self.modules)
        return data


class ConversationStore:
    """In-memory conversations keyed by Telegram user ID."""

    def __init__(self) -> None:
        self._conversations: Dict[int, Conversation] = {}

    def get(self, user_id: int) -> Conversation:
        return self._conversations.get(user_id) or Conversation()

    def set_state(self, user_id: int, state: UserState, **data: Any) -> Conversation:
        """Move a user to ``state``, keeping previously collected data."""
        conversation = self._conversations.get(user_id) or Conversation()
        conversation.state = state
        for key, value in data.items():
            setattr(conversation, key, value)
        self._conversations[user_id] = conversation
        return conversation

    def clear(self, user_id: int) -> None:
        self._conversations.pop(user_id, None)

"""Tests for the chat bot handlers."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import BadRequest

from exambot.core.exceptions import ValidationError
from exambot.repositories import ExamModules
from exambot.services.telegram_bot import BotHandlers, ConversationStore, UserState
from exambot.services.telegram_bot.handlers import (
    GENERIC_ERROR,
    PERSONAL_DETAILS_PROMPT,
    USER_NOT_FOUND,
    format_account,
)
from exambot.services.telegram_bot.parsers import parse_account_entry, parse_personal_details

TG_ID = 1001


@pytest.fixture
def repos(user, account, schedule):
    users = MagicMock()
    users.get_by_telegram_id = AsyncMock(return_value=user)
    users.get_or_create = AsyncMock(return_value=user)
    accounts = MagicMock()
    accounts.email_exists = AsyncMock(return_value=False)
    accounts.create = AsyncMock(return_value=11)
    accounts.get_by_user = AsyncMock(return_value=[account])
    accounts.get_by_id = AsyncMock(return_value=account)
    accounts.toggle_status = AsyncMock(return_value=False)
    accounts.delete_for_user = AsyncMock(return_value=account.email)
    schedules = MagicMock()
    schedules.create = AsyncMock(return_value=7)
    schedules.delete_for_user = AsyncMock(return_value=schedule.name)
    schedules.get_pending_for_user = AsyncMock(return_value=[schedule])
    return users, accounts, schedules


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def handlers(repos, store):
    users, accounts, schedules = repos
    return BotHandlers(users, accounts, schedules, store)


@pytest.fixture
def context():
    context = MagicMock()
    context.bot.send_message = AsyncMock()
    return context


def message_update(text: str) -> MagicMock:
    update = MagicMock()
    update.effective_user.id = TG_ID
    update.effective_user.username = "alice"
    update.effective_chat.id = TG_ID
    update.message.text = text
    return update


def callback_update(data: str) -> MagicMock:
    update = MagicMock()
    query = update.callback_query
    query.answer = AsyncMock()
    query.edit_message_reply_markup = AsyncMock()
    query.data = data
    query.message.chat.id = TG_ID
    query.from_user.id = TG_ID
    query.from_user.username = "alice"
    return update


def texts(context) -> list:
    return [c.kwargs["text"] for c in context.bot.send_message.await_args_list]


class TestCommands:
    @pytest.mark.asyncio
    async def test_start_registers_new_user(self, handlers, repos, context):
        users, _, _ = repos
        users.get_by_telegram_id.return_value = None

        await handlers.start(message_update("/start"), context)

        users.get_or_create.assert_awaited_once_with(TG_ID, "alice")
        assert texts(context)[0].startswith("Welcome alice! Your account has been created.")

    @pytest.mark.asyncio
    async def test_start_existing_user(self, handlers, repos, context, store):
        users, _, _ = repos
        store.set_state(TG_ID, UserState.ADDING_ACCOUNT)

        await handlers.start(message_update("/start"), context)

        users.get_or_create.assert_not_awaited()
        assert texts(context)[0].startswith("Welcome back, alice!")
        assert store.get(TG_ID).state is UserState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_clears_state(self, handlers, context, store):
        store.set_state(TG_ID, UserState.SETTING_SCHEDULE)
        await handlers.cancel(message_update("/cancel"), context)
        assert store.get(TG_ID).state is UserState.IDLE
        assert texts(context)[0].startswith("Operation cancelled.")

    @pytest.mark.asyncio
    async def test_state_shows_conversation(self, handlers, context, store):
        store.set_state(TG_ID, UserState.REMOVING_ACCOUNT)
        await handlers.state(message_update("/state"), context)
        assert '"state": "removing_account"' in texts(context)[0]

    @pytest.mark.asyncio
    async def test_delete_schedule_command(self, handlers, repos, context, user):
        _, _, schedules = repos
        await handlers.delete_schedule_command(message_update("/delete_5"), context)
        schedules.delete_for_user.assert_awaited_once_with(5, user.id)
        assert texts(context)[0] == "✅ Schedule deleted successfully."

    @pytest.mark.asyncio
    async def test_delete_schedule_command_not_found(self, handlers, repos, context):
        _, _, schedules = repos
        schedules.delete_for_user.return_value = None
        await handlers.delete_schedule_command(message_update("/delete_5@exam_bot"), context)
        assert texts(context)[0] == "❌ Schedule not found or already completed."


class TestAddAccountFlow:
    @pytest.mark.asyncio
    async def test_account_entry_moves_to_details(self, handlers, context, store):
        store.set_state(TG_ID, UserState.ADDING_ACCOUNT)

        await handlers.on_message(message_update("John:Doe:john@example.com:pw"), context)

        conversation = store.get(TG_ID)
        assert conversation.state is UserState.ADDING_PERSONAL_DETAILS
        assert conversation.account.email == "john@example.com"
        assert texts(context) == [PERSONAL_DETAILS_PROMPT]

    @pytest.mark.asyncio
    async def test_invalid_entry_keeps_state(self, handlers, context, store):
        store.set_state(TG_ID, UserState.ADDING_ACCOUNT)
        await handlers.on_message(message_update("garbage"), context)
        assert store.get(TG_ID).state is UserState.ADDING_ACCOUNT
        assert texts(context)[0].startswith("Invalid format.")

    @pytest.mark.asyncio
    async def test_duplicate_email(self, handlers, repos, context, store):
        _, accounts, _ = repos
        accounts.email_exists.return_value = True
        store.set_state(TG_ID, UserState.ADDING_ACCOUNT)

        await handlers.on_message(message_update("John:Doe:john@example.com:pw"), context)

        assert "already exists" in texts(context)[0]
        assert store.get(TG_ID).state is UserState.ADDING_ACCOUNT

    @pytest.mark.asyncio
    async def test_details_move_to_module_selection(self, handlers, context, store):
        store.set_state(TG_ID, UserState.ADDING_PERSONAL_DETAILS)

        await handlers.on_message(
            message_update("15:03:1990:Main Street:New York:10001:123A:+1:5551234567"), context
        )

        conversation = store.get(TG_ID)
        assert conversation.state is UserState.SELECTING_MODULES
        assert not conversation.modules.any_selected()
        assert "No modules selected yet" in texts(context)[0]

    @pytest.mark.asyncio
    async def test_text_while_selecting_modules(self, handlers, context, store):
        store.set_state(TG_ID, UserState.SELECTING_MODULES)
        await handlers.on_message(message_update("read"), context)
        assert texts(context)[0].startswith("Please use the buttons above")

    @pytest.mark.asyncio
    async def test_toggle_and_confirm_creates_account(
        self, handlers, repos, context, store, user
    ):
        _, accounts, _ = repos
        store.set_state(
            TG_ID,
            UserState.SELECTING_MODULES,
            account=parse_account_entry("John:Doe:john@example.com:pw"),
            details=parse_personal_details("15:03:1990:Main:NYC:10001:1:+1:555"),
            modules=ExamModules(),
        )

        await handlers.on_callback(callback_update("toggle_read"), context)
        await handlers.on_callback(callback_update("toggle_write"), context)
        await handlers.on_callback(callback_update("confirm_modules"), context)

        data = accounts.create.await_args.args[0]
        assert data["user_id"] == user.id
        assert data["modules"].selected() == ["read", "write"]
        assert data["details"].city == "NYC"
        assert store.get(TG_ID).state is UserState.IDLE
        assert any("Enabled Modules: read, write" in t for t in texts(context))

    @pytest.mark.asyncio
    async def test_create_rejected(self, handlers, repos, context, store):
        _, accounts, _ = repos
        accounts.create.side_effect = ValidationError("Account with email already exists")
        store.set_state(
            TG_ID,
            UserState.SELECTING_MODULES,
            account=parse_account_entry("John:Doe:john@example.com:pw"),
            details=parse_personal_details("15:03:1990:Main:NYC:10001:1:+1:555"),
        )

        await handlers.on_callback(callback_update("confirm_modules"), context)

        assert texts(context)[0] == "❌ Account with email already exists"
        assert store.get(TG_ID).state is UserState.IDLE


class TestAccountManagement:
    @pytest.mark.asyncio
    async def test_remove_account(self, handlers, repos, context, store, user, account):
        _, accounts, _ = repos
        store.set_state(TG_ID, UserState.REMOVING_ACCOUNT)

        await handlers.on_message(message_update("10"), context)

        accounts.delete_for_user.assert_awaited_once_with(10, user.id)
        assert texts(context)[0] == f"✅ Successfully removed account: {account.email}"
        assert store.get(TG_ID).state is UserState.IDLE

    @pytest.mark.asyncio
    async def test_remove_foreign_account(self, handlers, repos, context, store):
        _, accounts, _ = repos
        accounts.delete_for_user.return_value = None
        store.set_state(TG_ID, UserState.REMOVING_ACCOUNT)

        await handlers.on_message(message_update("99"), context)

        assert "doesn't belong to you" in texts(context)[0]
        assert store.get(TG_ID).state is UserState.REMOVING_ACCOUNT

    @pytest.mark.asyncio
    async def test_toggle_account(self, handlers, context, store, account):
        store.set_state(TG_ID, UserState.TOGGLING_ACCOUNT)
        await handlers.on_message(message_update("10"), context)
        assert texts(context)[0] == f"✅ Successfully 🔴 disabled the account: {account.email}"

    @pytest.mark.asyncio
    async def test_unknown_user(self, handlers, repos, context, store):
        users, _, _ = repos
        users.get_by_telegram_id.return_value = None
        store.set_state(TG_ID, UserState.TOGGLING_ACCOUNT)

        await handlers.on_message(message_update("10"), context)

        assert texts(context)[0] == USER_NOT_FOUND
        assert store.get(TG_ID).state is UserState.IDLE

    @pytest.mark.asyncio
    async def test_view_accounts(self, handlers, context):
        await handlers.on_callback(callback_update("view_accounts"), context)
        listing = texts(context)[1]
        assert listing.startswith("📋 *Your Accounts:*")
        assert "read, speak" in listing

    def test_format_account_escapes_markdown(self, account):
        account.email = "jane_doe@example.com"
        assert "jane\\_doe@example.com" in format_account(1, account)


class TestSchedules:
    @pytest.mark.asyncio
    async def test_create_schedule(self, handlers, repos, context, store, user):
        _, _, schedules = repos
        store.set_state(TG_ID, UserState.SETTING_SCHEDULE)

        await handlers.on_message(message_update("2099-12-25 09:30 Christmas Booking"), context)

        data = schedules.create.await_args.args[0]
        assert data["name"] == "Christmas Booking"
        assert data["created_by"] == user.id
        assert "🆔 ID: 7" in texts(context)[0]

    @pytest.mark.asyncio
    async def test_past_schedule_rejected(self, handlers, repos, context, store):
        _, _, schedules = repos
        store.set_state(TG_ID, UserState.SETTING_SCHEDULE)

        await handlers.on_message(message_update("2000-01-01 09:30 Old"), context)

        schedules.create.assert_not_awaited()
        assert "must be in the future" in texts(context)[0]

    @pytest.mark.asyncio
    async def test_start_remove_schedule_lists_pending(self, handlers, context, store):
        await handlers.on_callback(callback_update("remove_schedule"), context)
        assert store.get(TG_ID).state is UserState.REMOVING_SCHEDULE
        assert "Morning (2030-01-01 09:00 UTC) - ID: 5" in texts(context)[0]

    @pytest.mark.asyncio
    async def test_remove_schedule(self, handlers, context, store):
        store.set_state(TG_ID, UserState.REMOVING_SCHEDULE)
        await handlers.on_message(message_update("5"), context)
        assert texts(context)[0] == '✅ Successfully removed schedule: "Morning"'

    @pytest.mark.asyncio
    async def test_view_schedules_empty(self, handlers, repos, context):
        _, _, schedules = repos
        schedules.get_pending_for_user.return_value = []
        await handlers.on_callback(callback_update("view_schedules"), context)
        assert "📅 You have no active schedules." in texts(context)


class TestRouting:
    @pytest.mark.asyncio
    async def test_idle_text_shows_menu(self, handlers, context):
        await handlers.on_message(message_update("hello"), context)
        assert texts(context) == ["Please use the menu buttons to navigate:"]

    @pytest.mark.asyncio
    async def test_menu_button_outside_idle(self, handlers, context, store):
        store.set_state(TG_ID, UserState.ADDING_ACCOUNT)
        await handlers.on_callback(callback_update("view_accounts"), context)
        assert texts(context) == ["Please use the menu to navigate:"]

    @pytest.mark.asyncio
    async def test_cancel_button_from_any_state(self, handlers, context, store):
        store.set_state(TG_ID, UserState.SELECTING_MODULES)
        await handlers.on_callback(callback_update("cancel"), context)
        assert store.get(TG_ID).state is UserState.IDLE

    @pytest.mark.asyncio
    async def test_stale_markup_is_ignored(self, handlers, context, store):
        update = callback_update("add_account")
        update.callback_query.edit_message_reply_markup.side_effect = BadRequest("not modified")

        await handlers.on_callback(update, context)

        assert store.get(TG_ID).state is UserState.ADDING_ACCOUNT

    @pytest.mark.asyncio
    async def test_unexpected_error_resets_conversation(self, handlers, repos, context, store):
        _, _, schedules = repos
        schedules.delete_for_user.side_effect = RuntimeError("db down")
        store.set_state(TG_ID, UserState.REMOVING_SCHEDULE)

        await handlers.on_message(message_update("5"), context)

        assert texts(context)[0] == GENERIC_ERROR
        assert store.get(TG_ID).state is UserState.IDLE

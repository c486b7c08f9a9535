"""Command, message and callback handlers of the chat bot."""

import json
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger
from telegram import InlineKeyboardMarkup, Update
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from exambot.constants import MODULE_KEYS
from exambot.core.exceptions import ValidationError
from exambot.repositories.account_repository import ExamModules
from exambot.services.notification.telegram_client import TelegramClient
from exambot.services.telegram_bot import keyboards
from exambot.services.telegram_bot.parsers import (
    parse_account_entry,
    parse_personal_details,
    parse_record_id,
    parse_schedule_entry,
)
from exambot.services.telegram_bot.states import ConversationStore, UserState
from exambot.utils.masking import mask_email

if TYPE_CHECKING:
    from exambot.repositories import AccountRepository, ScheduleRepository, UserRepository
    from exambot.repositories.account_repository import Account
    from exambot.repositories.schedule_repository import Schedule
    from exambot.repositories.user_repository import User

_esc = TelegramClient.escape_markdown

GENERIC_ERROR = "Sorry, there was an error. Please try again."
USER_NOT_FOUND = "❌ User not found. Please start with /start command."
NEXT_PROMPT = "What would you like to do next?"
CHOOSE_PROMPT = "Choose an option:"

ADD_ACCOUNT_PROMPT = (
    "Please provide your account details in the following format:\n\n"
    "first_name:last_name:email:password\n\n"
    "Example:\nJohn:Doe:john.doe@example.com:welcome123\n\n"
    "Or click Cancel to return to the main menu."
)
PERSONAL_DETAILS_PROMPT = (
    "Great! Now please provide your personal details in the following format:\n\n"
    "day:month:year:street:city:postalCode:houseNo:countryCode:phoneNumber\n\n"
    "Example:\n15:03:1990:Main Street:New York:10001:123A:+1:5551234567\n\n"
    "Or click Cancel to return to the main menu."
)
SCHEDULE_PROMPT = (
    "⏰ Please enter the schedule details in *UTC time* using this format:\n\n"
    "YYYY-MM-DD HH:MM ScheduleName\n\n"
    "Example:\n"
    "2024-12-25 09:30 Christmas Booking\n"
    "2025-01-15 14:00 January Session\n\n"
    "Or click Cancel to return to the main menu."
)
NOT_YOURS = "❌ {kind} not found or it doesn't belong to you. Please check the ID and try again."


def _modules_text(selected: list) -> str:
    return ", ".join(selected) or "None"


def format_account(index: int, account: "Account") -> str:
    details = account.details
    if details:
        dob = f"{details.dob_day}/{details.dob_month}/{details.dob_year}"
        address = f"{details.house_no} {details.street}, {details.city}"
        phone = f"{details.phone_country_code} {details.phone_number}"
    else:
        dob, address, phone = "?/?/?", "", ""
    status = "🟢 enabled" if account.status else "🔴 disabled"
    return (
        f"{index}. *ID:* `{account.id}` ({status})\n"
        f"   👤 *Name:* {_esc(account.full_name)}\n"
        f"   📧 *Email:* {_esc(account.email)}\n"
        f"   🎂 *DOB:* {dob}\n"
        f"   🏠 *Address:* {_esc(address)}\n"
        f"   📞 *Phone:* {_esc(phone)}\n"
        f"   🔧 *Modules:* {_modules_text(account.modules.selected())}\n"
    )


def format_schedule(index: int, schedule: "Schedule") -> str:
    last_run = f"{schedule.last_run:%Y-%m-%d %H:%M} UTC" if schedule.last_run else "Never"
    return (
        f"{index}. *{_esc(schedule.name)}*\n"
        f"   ⏰ *Runs at:* {schedule.run_at:%Y-%m-%d %H:%M} UTC\n"
        f"   🆔 *ID:* `{schedule.id}`\n"
        f"   📝 *Status:* {_esc(schedule.status)}\n"
        f"   🔄 *Last Run:* {last_run}\n"
        f"   ⚠️ *Last Error:* {_esc(schedule.last_error or 'None')}\n"
        f"   📡 *Monitoring:* {'Yes' if schedule.monitoring_started else 'No'}"
    )


class BotHandlers:
    """
    Chat bot front end for managing accounts and schedules.

    Conversation state lives in memory per Telegram user; every operation on
    an existing account or schedule is limited to records the user owns.
    """

    def __init__(
        self,
        users: "UserRepository",
        accounts: "AccountRepository",
        schedules: "ScheduleRepository",
        store: Optional[ConversationStore] = None,
    ):
        self.users = users
        self.accounts = accounts
        self.schedules = schedules
        self.store = store or ConversationStore()

    # Helpers

    @staticmethod
    async def _send(
        context: ContextTypes.DEFAULT_TYPE,
        chat_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
        parse_mode: Optional[str] = None,
    ) -> None:
        await context.bot.send_message(
            chat_id=chat_id, text=text, reply_markup=reply_markup, parse_mode=parse_mode
        )

    async def show_main_menu(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, text: str = CHOOSE_PROMPT
    ) -> None:
        await self._send(context, chat_id, text, reply_markup=keyboards.main_menu())

    async def _fail(self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int) -> None:
        self.store.clear(user_id)
        await self._send(context, chat_id, GENERIC_ERROR)
        await self.show_main_menu(context, chat_id)

    async def _owner(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int
    ) -> Optional["User"]:
        user = await self.users.get_by_telegram_id(user_id)
        if user is None:
            self.store.clear(user_id)
            await self._send(context, chat_id, USER_NOT_FOUND)
            await self.show_main_menu(context, chat_id)
        return user

    # Commands

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /start: register the user and show the menu."""
        tg_user = update.effective_user
        chat_id = update.effective_chat.id
        if tg_user is None:
            return
        self.store.clear(tg_user.id)

        existing = await self.users.get_by_telegram_id(tg_user.id)
        name = tg_user.username or "User"
        if existing is None:
            await self.users.get_or_create(tg_user.id, tg_user.username)
            logger.info(f"New chat user registered: {tg_user.id}")
            text = f"Welcome {name}! Your account has been created.\n\n{CHOOSE_PROMPT}"
        else:
            text = f"Welcome back, {name}!\n\n{CHOOSE_PROMPT}"
        await self.show_main_menu(context, chat_id, text)

    async def cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        self.store.clear(update.effective_user.id)
        await self.show_main_menu(
            context, update.effective_chat.id, f"Operation cancelled. {CHOOSE_PROMPT}"
        )

    async def state(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        conversation = self.store.get(update.effective_user.id)
        await self._send(
            context,
            update.effective_chat.id,
            f"Current state:\n{json.dumps(conversation.to_dict(), indent=2)}",
        )

    async def delete_schedule_command(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle ``/delete_<id>``."""
        chat_id = update.effective_chat.id
        user_id = update.effective_user.id
        command = (update.message.text or "").split()[0]
        raw_id = command.split("_", 1)[1].split("@")[0] if "_" in command else ""
        try:
            schedule_id = parse_record_id(raw_id, "schedule")
        except ValidationError as e:
            await self._send(context, chat_id, e.message)
            return

        user = await self._owner(context, chat_id, user_id)
        if user is None:
            return
        deleted = await self.schedules.delete_for_user(schedule_id, user.id)
        if deleted is not None:
            await self._send(context, chat_id, "✅ Schedule deleted successfully.")
        else:
            await self._send(context, chat_id, "❌ Schedule not found or already completed.")
        await self.show_main_menu(context, chat_id)

    # Text messages

    async def on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Route free text to the step the user is in."""
        if update.message is None or update.effective_user is None:
            return
        chat_id = update.effective_chat.id
        user_id = update.effective_user.id
        text = update.message.text or ""
        conversation = self.store.get(user_id)

        routes = {
            UserState.ADDING_ACCOUNT: self.handle_add_account,
            UserState.ADDING_PERSONAL_DETAILS: self.handle_personal_details,
            UserState.REMOVING_ACCOUNT: self.handle_remove_account,
            UserState.TOGGLING_ACCOUNT: self.handle_toggle_account,
            UserState.SETTING_SCHEDULE: self.handle_schedule_creation,
            UserState.REMOVING_SCHEDULE: self.handle_remove_schedule,
        }
        try:
            if conversation.state == UserState.SELECTING_MODULES:
                await self._send(
                    context,
                    chat_id,
                    "Please use the buttons above to select modules, "
                    "or click Cancel to return to the main menu.",
                )
                return
            handler = routes.get(conversation.state)
            if handler is None:
                await self.show_main_menu(context, chat_id, "Please use the menu buttons to navigate:")
                return
            await handler(context, chat_id, user_id, text)
        except Exception as e:
            logger.exception(f"Error handling message from {user_id}: {e}")
            await self._fail(context, chat_id, user_id)

    async def handle_add_account(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, text: str
    ) -> None:
        try:
            entry = parse_account_entry(text)
        except ValidationError as e:
            await self._send(context, chat_id, e.message)
            return

        if await self.accounts.email_exists(entry.email):
            await self._send(
                context,
                chat_id,
                "An account with this email already exists. Please use a different email.",
            )
            return

        self.store.set_state(user_id, UserState.ADDING_PERSONAL_DETAILS, account=entry)
        await self._send(
            context, chat_id, PERSONAL_DETAILS_PROMPT, reply_markup=keyboards.cancel_only()
        )

    async def handle_personal_details(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, text: str
    ) -> None:
        try:
            details = parse_personal_details(text)
        except ValidationError as e:
            await self._send(context, chat_id, e.message)
            return

        self.store.set_state(
            user_id, UserState.SELECTING_MODULES, details=details, modules=ExamModules()
        )
        await self.show_module_selection(context, chat_id, user_id)

    async def show_module_selection(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int
    ) -> None:
        modules = self.store.get(user_id).modules
        count = len(modules.selected())
        status = (
            f"\n\n🎯 Selected modules: {count}/{len(MODULE_KEYS)}"
            if count
            else "\n\n⚠️ No modules selected yet"
        )
        await self._send(
            context,
            chat_id,
            "🔧 *Module Selection*\n\n"
            f"Please select the modules you want to book for this account:{status}\n\n"
            "📖 *Read* - Reading module\n"
            "👂 *Hear* - Listening module\n"
            "✏️ *Write* - Writing module\n"
            "🗣️ *Speak* - Speaking module\n\n"
            'Click the modules to toggle them on/off, then click "Confirm Selection" when ready.',
            reply_markup=keyboards.module_selection(modules),
            parse_mode="Markdown",
        )

    async def create_account_with_modules(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, username: Optional[str]
    ) -> None:
        conversation = self.store.get(user_id)
        entry, details, modules = conversation.account, conversation.details, conversation.modules
        if entry is None or details is None:
            await self._fail(context, chat_id, user_id)
            return

        user = await self.users.get_or_create(user_id, username)
        try:
            await self.accounts.create(
                {
                    "user_id": user.id,
                    "email": entry.email,
                    "password": entry.password,
                    "first_name": entry.first_name,
                    "last_name": entry.last_name,
                    "modules": modules,
                    "details": details,
                }
            )
        except ValidationError as e:
            self.store.clear(user_id)
            await self._send(context, chat_id, f"❌ {e.message}")
            await self.show_main_menu(context, chat_id)
            return

        self.store.clear(user_id)
        logger.info(f"Account {mask_email(entry.email)} added by chat user {user_id}")
        await self._send(
            context,
            chat_id,
            f"✅ Successfully created account for {entry.first_name} {entry.last_name}!\n\n"
            f"📧 Email: {entry.email}\n"
            f"🎂 DOB: {details.dob_day}/{details.dob_month}/{details.dob_year}\n"
            f"🏠 Address: {details.house_no} {details.street}, {details.city}, {details.postal_code}\n"
            f"📞 Phone: {details.phone_country_code} {details.phone_number}\n"
            f"🔧 Enabled Modules: {_modules_text(modules.selected())}",
        )
        await self.show_main_menu(context, chat_id, NEXT_PROMPT)

    async def handle_remove_account(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, text: str
    ) -> None:
        try:
            account_id = parse_record_id(text, "account")
        except ValidationError as e:
            await self._send(context, chat_id, e.message)
            return
        user = await self._owner(context, chat_id, user_id)
        if user is None:
            return

        email = await self.accounts.delete_for_user(account_id, user.id)
        if email is None:
            await self._send(context, chat_id, NOT_YOURS.format(kind="Account"))
            return
        self.store.clear(user_id)
        await self._send(context, chat_id, f"✅ Successfully removed account: {email}")
        await self.show_main_menu(context, chat_id, NEXT_PROMPT)

    async def handle_toggle_account(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, text: str
    ) -> None:
        try:
            account_id = parse_record_id(text, "account")
        except ValidationError as e:
            await self._send(context, chat_id, e.message)
            return
        user = await self._owner(context, chat_id, user_id)
        if user is None:
            return

        new_status = await self.accounts.toggle_status(account_id, user.id)
        if new_status is None:
            await self._send(context, chat_id, NOT_YOURS.format(kind="Account"))
            return
        account = await self.accounts.get_by_id(account_id)
        status_text = "🟢 enabled" if new_status else "🔴 disabled"
        self.store.clear(user_id)
        await self._send(
            context,
            chat_id,
            f"✅ Successfully {status_text} the account: {account.email if account else account_id}",
        )
        await self.show_main_menu(context, chat_id, NEXT_PROMPT)

    async def handle_schedule_creation(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, text: str
    ) -> None:
        try:
            entry = parse_schedule_entry(text)
        except ValidationError as e:
            await self._send(context, chat_id, e.message)
            return
        user = await self._owner(context, chat_id, user_id)
        if user is None:
            return

        schedule_id = await self.schedules.create(
            {"name": entry.name, "run_at": entry.run_at, "created_by": user.id}
        )
        self.store.clear(user_id)
        await self._send(
            context,
            chat_id,
            "✅ Schedule created successfully!\n\n"
            f"📝 Name: {entry.name}\n"
            f"⏰ Scheduled for: {entry.run_at:%Y-%m-%d %H:%M} UTC\n"
            f"🆔 ID: {schedule_id}\n\n"
            "All active accounts will run automatically at this time.",
        )
        await self.show_main_menu(context, chat_id, NEXT_PROMPT)

    async def handle_remove_schedule(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, text: str
    ) -> None:
        try:
            schedule_id = parse_record_id(text, "schedule")
        except ValidationError as e:
            await self._send(context, chat_id, e.message)
            return
        user = await self._owner(context, chat_id, user_id)
        if user is None:
            return

        name = await self.schedules.delete_for_user(schedule_id, user.id)
        if name is None:
            await self._send(context, chat_id, NOT_YOURS.format(kind="Schedule"))
            return
        self.store.clear(user_id)
        await self._send(context, chat_id, f'✅ Successfully removed schedule: "{name}"')
        await self.show_main_menu(context, chat_id, NEXT_PROMPT)

    # Callbacks

    async def on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Route inline keyboard presses."""
        query = update.callback_query
        if query is None or query.message is None:
            return
        await query.answer()

        chat_id = query.message.chat.id
        user_id = query.from_user.id
        data = query.data or ""
        try:
            if data == keyboards.CANCEL:
                self.store.clear(user_id)
                await self.show_main_menu(context, chat_id, f"Operation cancelled. {CHOOSE_PROMPT}")
                return

            conversation = self.store.get(user_id)
            if conversation.state == UserState.IDLE:
                await self._clear_markup(query)
                await self.handle_main_menu(context, chat_id, user_id, data)
            elif conversation.state == UserState.SELECTING_MODULES:
                await self.handle_module_callback(
                    context, chat_id, user_id, data, query.from_user.username
                )
            else:
                await self.show_main_menu(context, chat_id, "Please use the menu to navigate:")
        except Exception as e:
            logger.exception(f"Error handling callback '{data}' from {user_id}: {e}")
            await self._fail(context, chat_id, user_id)

    @staticmethod
    async def _clear_markup(query: Any) -> None:
        try:
            await query.edit_message_reply_markup(reply_markup=None)
        except BadRequest as e:
            logger.debug(f"Could not clear menu markup: {e}")

    async def handle_main_menu(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int, data: str
    ) -> None:
        if data == "add_account":
            self.store.set_state(user_id, UserState.ADDING_ACCOUNT)
            await self._send(context, chat_id, ADD_ACCOUNT_PROMPT, reply_markup=keyboards.cancel_only())
        elif data == "view_accounts":
            await self.view_accounts(context, chat_id, user_id)
        elif data == "remove_account":
            self.store.set_state(user_id, UserState.REMOVING_ACCOUNT)
            await self._send(
                context,
                chat_id,
                "🗑️ Please provide the ID of the account you wish to remove:\n\n"
                "Or click Cancel to return to the main menu.",
                reply_markup=keyboards.cancel_only(),
            )
        elif data == "toggle_account":
            self.store.set_state(user_id, UserState.TOGGLING_ACCOUNT)
            await self._send(
                context,
                chat_id,
                "⚡ Please provide the ID of the account you wish to toggle (enable/disable):\n\n"
                "Or click Cancel to return to the main menu.",
                reply_markup=keyboards.cancel_only(),
            )
        elif data == "schedule_scraping":
            self.store.set_state(user_id, UserState.SETTING_SCHEDULE)
            await self._send(
                context,
                chat_id,
                SCHEDULE_PROMPT,
                reply_markup=keyboards.cancel_only(),
                parse_mode="Markdown",
            )
        elif data == "view_schedules":
            await self.view_schedules(context, chat_id, user_id)
        elif data == "remove_schedule":
            await self.start_remove_schedule(context, chat_id, user_id)
        else:
            await self.show_main_menu(context, chat_id)

    async def handle_module_callback(
        self,
        context: ContextTypes.DEFAULT_TYPE,
        chat_id: int,
        user_id: int,
        data: str,
        username: Optional[str] = None,
    ) -> None:
        if data == keyboards.CONFIRM_MODULES:
            await self.create_account_with_modules(context, chat_id, user_id, username)
            return
        if not data.startswith(keyboards.TOGGLE_PREFIX):
            return
        module = data[len(keyboards.TOGGLE_PREFIX) :]
        if module not in MODULE_KEYS:
            return
        self.store.get(user_id).modules.toggle(module)
        await self.show_module_selection(context, chat_id, user_id)

    async def view_accounts(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int
    ) -> None:
        await self._send(context, chat_id, "🔍 Getting your accounts from the database, please wait...")
        user = await self._owner(context, chat_id, user_id)
        if user is None:
            return

        accounts = await self.accounts.get_by_user(user.id)
        if accounts:
            listing = "\n".join(format_account(i, a) for i, a in enumerate(accounts, 1))
            for chunk in TelegramClient.split_message(f"📋 *Your Accounts:*\n\n{listing}"):
                await self._send(context, chat_id, chunk, parse_mode="Markdown")
        else:
            await self._send(context, chat_id, "❌ You have no added accounts.")
        await self.show_main_menu(context, chat_id, NEXT_PROMPT)

    async def view_schedules(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int
    ) -> None:
        await self._send(context, chat_id, "🔍 Fetching your schedules...")
        user = await self._owner(context, chat_id, user_id)
        if user is None:
            return

        schedules = await self.schedules.get_pending_for_user(user.id)
        if not schedules:
            await self._send(context, chat_id, "📅 You have no active schedules.")
        else:
            listing = "\n\n".join(format_schedule(i, s) for i, s in enumerate(schedules, 1))
            text = (
                f"📅 *Your Active Schedules:*\n\n{listing}\n\n"
                'Use "Remove schedule" from the menu to delete a schedule.'
            )
            for chunk in TelegramClient.split_message(text):
                await self._send(context, chat_id, chunk, parse_mode="Markdown")
        await self.show_main_menu(context, chat_id, NEXT_PROMPT)

    async def start_remove_schedule(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int
    ) -> None:
        user = await self._owner(context, chat_id, user_id)
        if user is None:
            return

        schedules = await self.schedules.get_pending_for_user(user.id)
        if not schedules:
            await self._send(context, chat_id, "📅 You have no active schedules to remove.")
            await self.show_main_menu(context, chat_id, NEXT_PROMPT)
            return

        self.store.set_state(user_id, UserState.REMOVING_SCHEDULE)
        listing = "\n".join(
            f"{i}. {s.name} ({s.run_at:%Y-%m-%d %H:%M} UTC) - ID: {s.id}"
            for i, s in enumerate(schedules, 1)
        )
        await self._send(
            context,
            chat_id,
            f"🗑️ Select a schedule to remove:\n\n{listing}\n\n"
            "Please enter the ID of the schedule you want to remove:",
            reply_markup=keyboards.cancel_only(),
        )

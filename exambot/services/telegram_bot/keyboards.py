"""Inline keyboards for the chat bot."""

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from exambot.repositories.account_repository import ExamModules

CANCEL = "cancel"
CONFIRM_MODULES = "confirm_modules"
TOGGLE_PREFIX = "toggle_"

_MODULE_LABELS = {
    "read": "📖 Read",
    "hear": "👂 Hear",
    "write": "✏️ Write",
    "speak": "🗣️ Speak",
}


def main_menu() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("Add an account", callback_data="add_account"),
                InlineKeyboardButton("View added accounts", callback_data="view_accounts"),
            ],
            [
                InlineKeyboardButton("Remove an account", callback_data="remove_account"),
                InlineKeyboardButton("Toggle account status", callback_data="toggle_account"),
            ],
            [
                InlineKeyboardButton("⏰ Schedule scraping", callback_data="schedule_scraping"),
                InlineKeyboardButton("📅 View schedules", callback_data="view_schedules"),
            ],
            [InlineKeyboardButton("🗑️ Remove schedule", callback_data="remove_schedule")],
            [InlineKeyboardButton("Cancel", callback_data=CANCEL)],
        ]
    )


def cancel_only() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("Cancel", callback_data=CANCEL)]])


def module_selection(modules: ExamModules) -> InlineKeyboardMarkup:
    def button(key: str) -> InlineKeyboardButton:
        mark = "✅" if getattr(modules, key) else "❌"
        return InlineKeyboardButton(
            f"{_MODULE_LABELS[key]} {mark}", callback_data=f"{TOGGLE_PREFIX}{key}"
        )

    return InlineKeyboardMarkup(
        [
            [button("read"), button("hear")],
            [button("write"), button("speak")],
            [
                InlineKeyboardButton("✅ Confirm Selection", callback_data=CONFIRM_MODULES),
                InlineKeyboardButton("Cancel", callback_data=CANCEL),
            ],
        ]
    )

"""Tests for chat input parsing, conversation state and keyboards."""

from datetime import datetime, timezone

import pytest

from exambot.core.exceptions import ValidationError
from exambot.repositories import ExamModules
from exambot.services.telegram_bot import keyboards
from exambot.services.telegram_bot.parsers import (
    is_valid_email,
    parse_account_entry,
    parse_personal_details,
    parse_record_id,
    parse_schedule_entry,
)
from exambot.services.telegram_bot.states import ConversationStore, UserState

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestAccountEntry:
    def test_valid(self):
        entry = parse_account_entry(" John : Doe : john.doe@example.com : welcome123 ")
        assert (entry.first_name, entry.last_name) == ("John", "Doe")
        assert entry.email == "john.doe@example.com"
        assert entry.password == "welcome123"

    def test_wrong_field_count(self):
        with pytest.raises(ValidationError, match="Invalid format"):
            parse_account_entry("John:Doe:john@example.com")

    def test_empty_field(self):
        with pytest.raises(ValidationError, match="All fields are required"):
            parse_account_entry("John::john@example.com:pw")

    def test_bad_email(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_account_entry("John:Doe:not-an-email:pw")
        assert exc_info.value.details == {"field": "email"}

    @pytest.mark.parametrize(
        "email,valid",
        [("a@b.co", True), ("a b@c.de", False), ("a@b", False), ("@b.com", False)],
    )
    def test_email_pattern(self, email, valid):
        assert is_valid_email(email) is valid


class TestPersonalDetails:
    def test_valid(self):
        details = parse_personal_details(
            "15:03:1990:Main Street:New York:10001:123A:+1:5551234567"
        )
        assert (details.dob_day, details.dob_month, details.dob_year) == (15, 3, 1990)
        assert details.house_no == "123A"
        assert details.phone_country_code == "+1"

    @pytest.mark.parametrize(
        "text",
        [
            "32:01:1990:S:C:1:1:+1:5",
            "01:13:1990:S:C:1:1:+1:5",
            "01:01:1899:S:C:1:1:+1:5",
            "01:01:2021:S:C:1:1:+1:5",
            "xx:01:1990:S:C:1:1:+1:5",
        ],
    )
    def test_invalid_date(self, text):
        with pytest.raises(ValidationError, match="Invalid date"):
            parse_personal_details(text)

    def test_missing_field(self):
        with pytest.raises(ValidationError, match="All fields are required"):
            parse_personal_details("01:01:1990:Street::1:1:+1:5")

    def test_wrong_field_count(self):
        with pytest.raises(ValidationError, match="Invalid format"):
            parse_personal_details("01:01:1990")


class TestScheduleEntry:
    def test_valid_multi_word_name(self):
        entry = parse_schedule_entry("2024-12-25 09:30 Christmas Booking", now=NOW)
        assert entry.run_at == datetime(2024, 12, 25, 9, 30, tzinfo=timezone.utc)
        assert entry.name == "Christmas Booking"

    @pytest.mark.parametrize(
        "text,message",
        [
            ("2024-12-25 09:30", "Invalid format"),
            ("25-12-2024 09:30 X", "Invalid date format"),
            ("2024-12-25 24:00 X", "Invalid time format"),
            ("2024-02-30 10:00 X", "Invalid date/time"),
            ("2024-06-01 12:00 X", "must be in the future"),
        ],
    )
    def test_invalid(self, text, message):
        with pytest.raises(ValidationError, match=message):
            parse_schedule_entry(text, now=NOW)


class TestRecordId:
    def test_valid(self):
        assert parse_record_id(" 42 ") == 42

    @pytest.mark.parametrize("text", ["", "abc", "0", "-3", "1.5"])
    def test_invalid(self, text):
        with pytest.raises(ValidationError, match="valid schedule ID"):
            parse_record_id(text, "schedule")


class TestConversationStore:
    def test_defaults_to_idle(self):
        assert ConversationStore().get(1).state is UserState.IDLE

    def test_set_state_keeps_collected_data(self):
        store = ConversationStore()
        entry = parse_account_entry("John:Doe:john@example.com:pw")
        store.set_state(1, UserState.ADDING_PERSONAL_DETAILS, account=entry)
        store.set_state(1, UserState.SELECTING_MODULES, modules=ExamModules(read=True))

        conversation = store.get(1)
        assert conversation.account is entry
        data = conversation.to_dict()
        assert data["state"] == "selecting_modules"
        assert "password" not in data["account"]
        assert data["modules"]["read"] is True

    def test_clear(self):
        store = ConversationStore()
        store.set_state(1, UserState.ADDING_ACCOUNT)
        store.clear(1)
        store.clear(1)
        assert store.get(1).state is UserState.IDLE


class TestKeyboards:
    def test_module_selection_marks(self):
        markup = keyboards.module_selection(ExamModules(hear=True))
        first_row = markup.inline_keyboard[0]
        assert first_row[0].text.endswith("❌")
        assert first_row[1].text.endswith("✅")
        assert first_row[1].callback_data == "toggle_hear"
        assert markup.inline_keyboard[-1][0].callback_data == keyboards.CONFIRM_MODULES

    def test_main_menu_has_cancel(self):
        buttons = [b.callback_data for row in keyboards.main_menu().inline_keyboard for b in row]
        assert keyboards.CANCEL in buttons
        assert "schedule_scraping" in buttons

"""Parsing of the colon- and space-separated entries users type into the chat."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from exambot.core.exceptions import ValidationError
from exambot.repositories.account_repository import PersonalDetails

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

MIN_BIRTH_YEAR = 1900
MAX_BIRTH_YEAR = 2020


@dataclass
class AccountEntry:
    first_name: str
    last_name: str
    email: str
    password: str


@dataclass
class ScheduleEntry:
    run_at: datetime
    name: str


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def parse_account_entry(text: str) -> AccountEntry:
    """
    Parse ``first_name:last_name:email:password``.

    Raises:
        ValidationError: With a message suitable for the user
    """
    fields = text.strip().split(":")
    if len(fields) != 4:
        raise ValidationError(
            "Invalid format. Please ensure your entry follows the specified format:\n"
            "first_name:last_name:email:password"
        )

    first_name, last_name, email, password = (f.strip() for f in fields)
    if not first_name or not last_name or not password:
        raise ValidationError(
            "All fields are required. Please provide: first_name:last_name:email:password"
        )
    if not is_valid_email(email):
        raise ValidationError(
            "Invalid email format. Please provide a valid email address.", field="email"
        )
    return AccountEntry(first_name, last_name, email, password)


def _to_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def parse_personal_details(text: str) -> PersonalDetails:
    """
    Parse ``day:month:year:street:city:postalCode:houseNo:countryCode:phoneNumber``.

    Raises:
        ValidationError: With a message suitable for the user
    """
    fields = [f.strip() for f in text.strip().split(":")]
    if len(fields) != 9:
        raise ValidationError(
            "Invalid format. Please ensure your entry follows the specified format:\n"
            "day:month:year:street:city:postalCode:houseNo:countryCode:phoneNumber"
        )

    day, month, year = (_to_int(v) for v in fields[:3])
    if (
        day is None
        or month is None
        or year is None
        or not 1 <= day <= 31
        or not 1 <= month <= 12
        or not MIN_BIRTH_YEAR <= year <= MAX_BIRTH_YEAR
    ):
        raise ValidationError(
            "Invalid date. Please provide valid day (1-31), month (1-12), "
            f"and year ({MIN_BIRTH_YEAR}-{MAX_BIRTH_YEAR}).",
            field="dob",
        )

    street, city, postal_code, house_no, country_code, phone = fields[3:]
    if not all((street, city, postal_code, house_no, country_code, phone)):
        raise ValidationError("All fields are required. Please provide all personal details.")

    return PersonalDetails(
        dob_day=day,
        dob_month=month,
        dob_year=year,
        street=street,
        city=city,
        postal_code=postal_code,
        house_no=house_no,
        phone_country_code=country_code,
        phone_number=phone,
    )


def parse_schedule_entry(text: str, now: Optional[datetime] = None) -> ScheduleEntry:
    """
    Parse ``YYYY-MM-DD HH:MM Name`` as a UTC time in the future.

    Args:
        text: User input
        now: Current time (defaults to UTC now)

    Raises:
        ValidationError: With a message suitable for the user
    """
    parts = text.strip().split()
    if len(parts) < 3:
        raise ValidationError("❌ Invalid format. Please use: YYYY-MM-DD HH:MM ScheduleName")

    date_part, time_part, name = parts[0], parts[1], " ".join(parts[2:])
    if not DATE_PATTERN.match(date_part):
        raise ValidationError("❌ Invalid date format. Please use YYYY-MM-DD (e.g., 2024-12-25)")
    if not TIME_PATTERN.match(time_part):
        raise ValidationError("❌ Invalid time format. Please use HH:MM (e.g., 14:30)")

    try:
        run_at = datetime.strptime(f"{date_part} {time_part}", "%Y-%m-%d %H:%M").replace(
            tzinfo=timezone.utc
        )
    except ValueError as e:
        raise ValidationError(f"❌ Invalid date/time: {e}") from e

    now = now or datetime.now(timezone.utc)
    if run_at <= now:
        raise ValidationError(
            "❌ Schedule time must be in the future. Please choose a later date/time."
        )
    return ScheduleEntry(run_at=run_at, name=name)


def parse_record_id(text: str, kind: str = "account") -> int:
    """
    Parse a numeric record ID.

    Raises:
        ValidationError: If the text is not a positive integer
    """
    value = text.strip()
    if not value.isdigit() or int(value) <= 0:
        raise ValidationError(f"❌ Invalid input. Please provide a valid {kind} ID.")
    return int(value)

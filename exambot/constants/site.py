"""Booking site URLs, DOM selectors and page fixtures."""

import json
from typing import Dict, Final, Tuple


class Urls:
    """Booking site endpoints."""

    HOME: Final[str] = "https://www.goethe.de/"
    EXAM_FINDER_PAGE: Final[str] = "https://www.goethe.de/ins/in/en/spr/prf/gzb2.cfm"
    EXAM_API_KEYWORD: Final[str] = "examfinder"
    EXAM_API_DEFAULT: Final[str] = (
        "https://www.goethe.de/rest/examfinder/exams/institute/O%2010000366"
        "?category=E006&type=ER&countryIsoCode=pk&locationName=&count=10&start=1"
        "&langId=1&timezone=47&isODP=0&sortField=startDate&sortOrder=ASC"
        "&dataMode=0&langIsoCodes=en"
    )
    BOOKING_TEMPLATE: Final[str] = "https://www.goethe.de/coe?lang=en&oid={oid}"


class Selectors:
    """CSS selectors for the booking flow."""

    MODULE_CHECKBOX: Final[str] = "input.cs-checkbox__input"
    NEXT_BUTTON: Final[str] = "button.cs-button--arrow_next"
    LAYER_BUTTON_HIGH: Final[str] = "button.cs-layer__button--high"
    USERNAME: Final[str] = "#username"
    PASSWORD: Final[str] = "#password"
    LOGIN_SUBMIT: Final[str] = 'input[type="submit"][name="submit"]'
    CONFLICT_LAYER: Final[str] = "div.cs-layer"
    CONFLICT_CONFIRM: Final[str] = "div.cs-layer button.cs-layer__button--high"


# Checkbox id on the site -> module flag on an account
MODULE_CHECKBOX_MAP: Final[Dict[str, str]] = {
    "reading": "read",
    "listening": "hear",
    "writing": "write",
    "speaking": "speak",
}

MODULE_KEYS: Final[Tuple[str, ...]] = ("read", "hear", "write", "speak")

# Page titles that mean the booking page did not load
ERROR_TITLE_MARKERS: Final[Tuple[str, ...]] = ("error", "unterbrechung", "http")

# Phrases shown when the account already holds a booking for the exam
CONFLICT_MARKERS: Final[Tuple[str, ...]] = (
    "already booked",
    "existing booking",
    "bereits gebucht",
    "bereits angemeldet",
)

# Pre-accepted cookie consent so the banner never covers the form
CONSENT_LOCAL_STORAGE: Final[Dict[str, str]] = {
    "uc_gcm": json.dumps(
        {
            "adsDataRedaction": True,
            "adPersonalization": "denied",
            "adStorage": "denied",
            "adUserData": "denied",
            "analyticsStorage": "denied",
        }
    ),
    "uc_ui_version": "3.73.0",
    "uc_user_interaction": "true",
    "uc_settings": json.dumps(
        {
            "controllerId": "42e213448633d19d017343f77368ef4ab462b0ca1fb10607c313393260b08f21",
            "id": "rTbKQ4Qc-",
            "services": [],
        }
    ),
}

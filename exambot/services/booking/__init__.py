"""Booking flow and multi-account launcher."""

from .booking_flow import BookingFlow, BookingOutcome
from .conflict_handler import handle_booking_conflict
from .launcher import BookingLauncher, LaunchSummary
from .module_selector import ModuleSelectionResult, select_available_modules

__all__ = [
    "BookingFlow",
    "BookingLauncher",
    "BookingOutcome",
    "LaunchSummary",
    "ModuleSelectionResult",
    "handle_booking_conflict",
    "select_available_modules",
]

"""Telegram message texts sent during monitoring and booking.

All texts use legacy Markdown; user-supplied values are escaped.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from exambot.services.notification.telegram_client import TelegramClient

if TYPE_CHECKING:
    from exambot.services.browser.display import DisplayInfo

_esc = TelegramClient.escape_markdown


def _minutes(seconds: float) -> str:
    return f"{seconds / 60:g}"


def _display_block(display: "DisplayInfo") -> str:
    return (
        f"🔗 *noVNC URL:* {display.novnc_url}\n"
        f"🖥️ *Display:* {display.display}\n"
        f"🔌 *VNC Port:* {display.vnc_port}\n"
    )


def account_log(email: str, message: str) -> str:
    """Prefix a booking message with the account it concerns."""
    return f"[{_esc(email)}] {message}"


# Monitoring session


def monitoring_started(name: str, run_at: datetime, pool_size: int) -> str:
    return (
        "🚀 *Monitoring Started*\n\n"
        f"📋 Name: {_esc(name)}\n"
        f"⏰ Scheduled: {run_at:%Y-%m-%d %H:%M} UTC\n"
        f"🔥 Warming up {pool_size} browsers...\n"
        "🔍 Will start polling for exam OID...\n\n"
        "You'll be notified when an OID is found!"
    )


def browsers_ready(name: str, ready: int) -> str:
    return (
        f"✅ *{ready} Browsers Ready*\n\n"
        f"📋 {_esc(name)}\n"
        "🔥 All browsers prewarmed and ready\n"
        "🔍 Now polling for exam OID..."
    )


def exam_found(oid: str, exam: Dict[str, Any]) -> str:
    return (
        "🎯 *EXAM FOUND!*\n\n"
        f"🆔 OID: {_esc(oid)}\n"
        f"📍 Location: {_esc(str(exam.get('locationName') or 'Unknown'))}\n"
        f"📅 Event: {_esc(str(exam.get('eventName') or 'Unknown'))}\n\n"
        "⚡ Redirecting prewarmed browsers NOW!"
    )


def monitoring_timeout(name: str, max_duration: float) -> str:
    return (
        "⏰ *Monitoring Timeout*\n\n"
        f"📋 Schedule: {_esc(name)}\n"
        f"❌ No exam OID found within {_minutes(max_duration)} minutes\n\n"
        "The schedule has been marked as failed."
    )


def monitoring_failed(name: str, error: str) -> str:
    return f"❌ *Monitoring Failed*\n\n📋 {_esc(name)}\nError: {_esc(error)}"


def launching_browsers(oid: str) -> str:
    return (
        "⚡ *Launching Browsers*\n\n"
        "🌐 Redirecting all prewarmed browsers to booking page in parallel...\n"
        f"🆔 OID: {_esc(oid)}"
    )


def schedule_failed(name: str, error: str) -> str:
    return f"❌ *Schedule Failed*\n\n📋 {_esc(name)}\n🚨 Error: {_esc(error)}"


def schedule_paused(name: str) -> str:
    return f"⏸️ *Schedule Paused*\n📋 {_esc(name)}"


def schedule_retrying(name: str, attempt: int, max_retries: int) -> str:
    return f"🔄 *Retrying Schedule*\n📋 {_esc(name)}\nAttempt {attempt}/{max_retries}"


# Launcher


def no_browsers_ready(name: str) -> str:
    return (
        "❌ *Critical Error*\n"
        f"📋 Schedule: {_esc(name)}\n"
        "🚨 No pre-warmed browsers ready!\n"
        "💡 Browsers should have been pre-warmed during monitoring."
    )


def no_active_accounts(name: str) -> str:
    return (
        "❌ *Booking Not Started*\n"
        f"📋 Schedule: {_esc(name)}\n"
        "🚨 No active accounts to book with!\n"
        "💡 Add or enable an account before the next release."
    )


def multi_launch(name: str, oid: str, ready: int, accounts: int) -> str:
    return (
        "⚡⚡⚡ *INSTANT MULTI-LAUNCH*\n"
        f"📋 Schedule: {_esc(name)}\n"
        f"🆔 OID: {_esc(oid)}\n"
        f"🔥 Browsers: {ready} ready, {accounts} accounts\n"
        "⚡ ALL BROWSERS LAUNCHING NOW!"
    )


def launch_summary(
    name: str, elapsed_ms: int, total: int, succeeded: int, failed: int, cleanup_delay: float
) -> str:
    icon, title = ("✅", "All Browsers Launched!") if failed == 0 else ("⚠️", "Launched with Some Errors")
    return (
        f"{icon} *{title}*\n"
        f"📋 {_esc(name)}\n"
        f"⚡ Launch time: {elapsed_ms}ms\n"
        f"💥 Total: {total}\n"
        f"✅ Success: {succeeded}\n"
        f"❌ Errors: {failed}\n"
        f"🖥️ Browsers will stay open for {_minutes(cleanup_delay)} minutes"
    )


def launch_error(name: str, error: str) -> str:
    return f"❌ *Critical Error*\n📋 {_esc(name)}\n🚨 Error: {_esc(error)}"


# Booking flow


def instant_launch(oid: str) -> str:
    return f"⚡ INSTANT LAUNCH - Opening booking page with OID: {_esc(oid)}"


def browser_location(display: "DisplayInfo") -> str:
    return (
        f"🖥️ Browser running on display {display.display}\n"
        f"🔗 noVNC Access: {display.novnc_url}\n"
        f"🔌 VNC Port: {display.vnc_port}"
    )


def manual_access(error: str, display: Optional["DisplayInfo"], wait_seconds: float) -> str:
    message = f"❌ {_esc(error)}\n\n"
    if display:
        message += (
            "🖥️ *Manual Access Available:*\n"
            + _display_block(display)
            + "\n💡 You can manually complete the booking process.\n"
            f"⏳ Browser will stay open for {_minutes(wait_seconds)} minutes."
        )
    else:
        message += "🖥️ Please access the RDP to complete the booking manually."
    return message


def payment_reached(display: Optional["DisplayInfo"], wait_seconds: float) -> str:
    minutes = _minutes(wait_seconds)
    message = (
        "✅ *Reached Payment Page!*\n\n"
        "💳 Please review all details and complete the payment manually.\n"
        f"⏳ You have approximately *{minutes} minutes* to finish before the session expires.\n\n"
    )
    if display:
        message += (
            "🖥️ *Browser Access:*\n"
            + _display_block(display)
            + "\n💡 *Next Steps:*\n"
            "1. Click the noVNC URL to access the browser\n"
            "2. Complete the payment process\n"
            f"3. Browser will remain open for {minutes} minutes\n"
            "4. Account will be auto-disabled after timeout"
        )
    else:
        message += "🖥️ Please log in to the RDP to access the browser and complete payment."
    return message


SESSION_TIMEOUT = (
    "⏰ *Session Timeout*\n\n"
    "Account has been automatically disabled.\n"
    "✅ If payment was completed, the booking should be confirmed.\n"
    "❌ If payment was not completed, you may need to try again."
)

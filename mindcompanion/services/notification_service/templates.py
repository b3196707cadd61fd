"""Title and message phrasing per notification type and channel.

SMS copy is short and ends with an opt-out hint. Email and in-app copy may
be longer and include next steps.
"""
from datetime import datetime
from typing import Any, Dict, Tuple

from mindcompanion.shared.models import CrisisLevel, NotificationChannel, NotificationType

SMS_OPT_OUT = "Reply STOP to opt out."
CRISIS_HOTLINE = "KIRAN 1800-599-0019 (FREE 24/7)"
TEXT_LINE = "iCALL 9152987821"

_CRISIS_COPY = {
    CrisisLevel.HIGH: (
        "Immediate Support Available",
        "We noticed you might be going through a difficult time. Immediate "
        f"professional help is available. Crisis Hotline: {CRISIS_HOTLINE}",
    ),
    CrisisLevel.MEDIUM: (
        "Support Resources Available",
        "It sounds like you're struggling. You're not alone - support is "
        "available 24/7. Would you like to connect with crisis resources?",
    ),
    CrisisLevel.LOW: (
        "Wellness Check",
        "Remember that it's okay to not be okay. Our community and resources "
        "are here whenever you need support.",
    ),
}

_CRISIS_SMS = {
    CrisisLevel.HIGH: f"Help is available now. Call {CRISIS_HOTLINE}.",
    CrisisLevel.MEDIUM: f"You're not alone. Support is available 24/7: {TEXT_LINE}.",
    CrisisLevel.LOW: "Checking in. Support is here whenever you need it.",
}

_CRISIS_NEXT_STEPS = (
    "\n\nNext steps: open MindCompanion to talk with a counselor, or text "
    f"{TEXT_LINE}. If you are in immediate danger, call {CRISIS_HOTLINE}."
)

COUNSELOR_AUDIENCE = "counselor"


def _counselor_crisis_alert(channel: NotificationChannel, level: CrisisLevel) -> Tuple[str, str]:
    title = "Critical Crisis Alert"
    if channel == NotificationChannel.SMS:
        return title, (
            f"{title}: a student needs immediate attention. "
            f"Open MindCompanion now. {SMS_OPT_OUT}"
        )
    return title, (
        f"A student has triggered a {level.value}-severity crisis alert. Immediate "
        "intervention may be required. Open the crisis dashboard to acknowledge it."
    )


def format_appointment_date(value: Any) -> str:
    """Format like "Mar 5, 2025, 3:30 PM"."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        return str(value)
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value:%b} {value.day}, {value.year}, {hour}:{value.minute:02d} {meridiem}"


def _crisis_alert(channel: NotificationChannel, context: Dict[str, Any]) -> Tuple[str, str]:
    level = context.get("level")
    if not isinstance(level, CrisisLevel):
        level = CrisisLevel.parse(level) if level else CrisisLevel.HIGH

    if context.get("audience") == COUNSELOR_AUDIENCE:
        return _counselor_crisis_alert(channel, level)

    title, message = _CRISIS_COPY[level]
    if channel == NotificationChannel.SMS:
        return title, f"{_CRISIS_SMS[level]} {SMS_OPT_OUT}"
    return title, message + _CRISIS_NEXT_STEPS


def _appointment_reminder(channel: NotificationChannel, context: Dict[str, Any]) -> Tuple[str, str]:
    formatted_date = format_appointment_date(context.get("appointment_date"))
    counselor_name = context.get("counselor_name") or "your counselor"
    session_type = context.get("appointment_type") or "counseling"

    base_message = (
        f"Hi there! This is a reminder about your {session_type} session with "
        f"{counselor_name} scheduled for {formatted_date}."
    )

    if channel == NotificationChannel.SMS:
        return (
            f"Reminder: Counseling session on {formatted_date}",
            f"{base_message} {SMS_OPT_OUT}",
        )
    return (
        f"Upcoming appointment with {counselor_name}",
        f"{base_message}\n\nIf you need to reschedule or cancel, please visit "
        "the appointments section in MindCompanion.",
    )


def _generic(channel: NotificationChannel, context: Dict[str, Any]) -> Tuple[str, str]:
    title = context.get("title") or "MindCompanion update"
    message = context.get("message") or "You have a new update in MindCompanion."
    if channel == NotificationChannel.SMS:
        return title, f"{message} {SMS_OPT_OUT}"
    return title, message


_RENDERERS = {
    NotificationType.CRISIS_ALERT: _crisis_alert,
    NotificationType.APPOINTMENT_REMINDER: _appointment_reminder,
}


def render(
    notification_type: NotificationType,
    channel: NotificationChannel,
    context: Dict[str, Any],
) -> Tuple[str, str]:
    """Return (title, message) for one channel record."""
    renderer = _RENDERERS.get(notification_type, _generic)
    return renderer(channel, context)

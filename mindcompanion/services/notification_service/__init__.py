"""Notification Service: multi-channel notification delivery.

Flow:
1. NotificationEnqueuer turns an event into one pending record per channel
   (in_app always, plus email or sms by preference)
2. NotificationDispatcher sends pending email/sms records in batches
3. AppointmentReminderScheduler enqueues reminders for upcoming sessions

Endpoints:
- POST /enqueue-notification
- POST /dispatch-pending
- POST /appointment-reminders

CLI:
    mindcompanion-dispatch dispatch|reminders
"""

from .contact_resolver import ContactResolver
from .dispatcher import NotificationDispatcher
from .enqueuer import NotificationEnqueuer, select_channels
from .reminders import AppointmentReminderScheduler
from .config import NotificationConfig

__all__ = [
    "ContactResolver",
    "NotificationDispatcher",
    "NotificationEnqueuer",
    "select_channels",
    "AppointmentReminderScheduler",
    "NotificationConfig",
]

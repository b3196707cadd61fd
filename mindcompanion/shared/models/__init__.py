"""Shared domain models for the crisis core."""
from .crisis import (
    ACTIVE_ALERT_STATUSES,
    AlertStatus,
    CrisisAlert,
    CrisisEvent,
    CrisisLevel,
    utc_now,
)
from .notification import (
    ChannelResult,
    ChannelStatus,
    ContactProfile,
    DispatchOutcome,
    DispatchReport,
    DispatchStatus,
    EnqueueResult,
    NotificationChannel,
    NotificationRecord,
    NotificationType,
    PreferredChannel,
    SourceEntity,
)

__all__ = [
    "ACTIVE_ALERT_STATUSES",
    "AlertStatus",
    "CrisisAlert",
    "CrisisEvent",
    "CrisisLevel",
    "utc_now",
    "ChannelResult",
    "ChannelStatus",
    "ContactProfile",
    "DispatchOutcome",
    "DispatchReport",
    "DispatchStatus",
    "EnqueueResult",
    "NotificationChannel",
    "NotificationRecord",
    "NotificationType",
    "PreferredChannel",
    "SourceEntity",
]

"""Notification, contact and dispatch domain models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .crisis import utc_now


class NotificationChannel(Enum):
    """Delivery medium for a notification."""
    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"


class NotificationType(Enum):
    """Kinds of notification the enqueuer accepts."""
    CRISIS_ALERT = "crisis_alert"
    APPOINTMENT_REMINDER = "appointment_reminder"
    APPOINTMENT_UPDATE = "appointment_update"
    COMMUNITY_REPLY = "community_reply"
    MODERATION_ACTION = "moderation_action"
    SYSTEM = "system"


class PreferredChannel(Enum):
    """User's stored contact preference."""
    EMAIL = "email"
    PHONE = "phone"
    ANONYMOUS = "anonymous"
    UNSET = "unset"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PreferredChannel":
        """Map a stored preference string, treating unknown values as unset."""
        if not value:
            return cls.UNSET
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNSET


@dataclass(frozen=True)
class ContactProfile:
    """Reachable addresses and channel preference for one user.

    A profile with neither email nor phone is still a valid profile.
    """
    user_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    preferred_channel: PreferredChannel = PreferredChannel.UNSET


@dataclass(frozen=True)
class SourceEntity:
    """Domain object that triggered a notification; the dedup key.

    Examples: an appointment ("appointment", "apt_123") or a crisis alert
    ("crisis_alert", "alert_abc").
    """
    kind: str
    entity_id: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Structured payload stored on each notification record."""
        payload = dict(self.attributes)
        payload["source_entity_kind"] = self.kind
        payload["source_entity_id"] = self.entity_id
        payload[f"{self.kind}_id"] = self.entity_id
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceEntity":
        attributes = data.get("attributes") or {}
        if not isinstance(attributes, dict):
            attributes = {}
        return cls(
            kind=str(data.get("kind") or "").strip(),
            entity_id=str(data.get("id") or "").strip(),
            attributes=attributes,
        )


@dataclass
class NotificationRecord:
    """One notification for one user on one channel.

    Pending while sent_at is None. Only the dispatcher sets sent_at.
    """
    id: str
    user_id: str
    type: str
    channel: NotificationChannel
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    sent_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.sent_at is None

    @property
    def source_key(self) -> tuple:
        return (
            self.user_id,
            self.type,
            self.channel.value,
            self.data.get("source_entity_kind"),
            self.data.get("source_entity_id"),
        )


class ChannelStatus(Enum):
    """Per-channel outcome of an enqueue call."""
    CREATED = "created"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    DRY_RUN = "dry-run"


@dataclass(frozen=True)
class ChannelResult:
    channel: NotificationChannel
    status: ChannelStatus
    notification_id: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "channel": self.channel.value,
            "status": self.status.value,
        }
        if self.notification_id:
            result["notificationId"] = self.notification_id
        if self.reason:
            result["reason"] = self.reason
        return result


@dataclass
class EnqueueResult:
    """Aggregate outcome of one enqueue call."""
    channel_results: List[ChannelResult] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    contact_resolved: bool = True

    @property
    def channels_created(self) -> int:
        return sum(1 for r in self.channel_results if r.status == ChannelStatus.CREATED)

    @property
    def failed_channels(self) -> List[NotificationChannel]:
        return [r.channel for r in self.channel_results if r.status == ChannelStatus.FAILED]

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "channelsCreated": self.channels_created,
            "perChannelResult": [r.to_dict() for r in self.channel_results],
            "contactResolved": self.contact_resolved,
        }
        if self.skipped_reason:
            result["skippedReason"] = self.skipped_reason
        return result


class DispatchStatus(Enum):
    """Per-record outcome of a dispatch batch."""
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    DRY_RUN = "dry-run"


@dataclass(frozen=True)
class DispatchOutcome:
    id: str
    channel: NotificationChannel
    status: DispatchStatus
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "channel": self.channel.value,
            "status": self.status.value,
        }
        if self.reason:
            result["reason"] = self.reason
        return result


@dataclass
class DispatchReport:
    """Outcomes of one dispatch batch, in fetch order."""
    results: List[DispatchOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def processed_count(self) -> int:
        return len(self.results)

    def count(self, status: DispatchStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processedCount": self.processed_count,
            "dryRun": self.dry_run,
            "results": [r.to_dict() for r in self.results],
        }

"""Notification enqueuer.

Turns one triggering event (crisis alert, appointment reminder, ...) into
one pending NotificationRecord per eligible channel.

Channel policy (in_app is always included first):
- preference "email": email, if an address is on file
- preference "phone": sms, if a number is on file
- preference "anonymous": nothing extra
- unset/unknown: email if on file, else sms if on file

Idempotency: if any notification of the same type already references the
same source entity for the user, nothing is created. The storage layer's
unique index covers the race between the check and the insert.

Failures are reported per channel; one failed insert does not stop the
remaining channels.
"""
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from mindcompanion.shared.database import DuplicateError
from mindcompanion.shared.errors import ValidationError
from mindcompanion.shared.models import (
    ChannelResult,
    ChannelStatus,
    ContactProfile,
    CrisisLevel,
    EnqueueResult,
    NotificationChannel,
    NotificationRecord,
    NotificationType,
    PreferredChannel,
    SourceEntity,
    utc_now,
)
from mindcompanion.shared.utils import hash_pii
from . import templates
from .contact_resolver import ContactResolver
from .notification_repository import NotificationRepository
from .realtime_publisher import NotificationPublisher

logger = logging.getLogger(__name__)


def select_channels(profile: Optional[ContactProfile]) -> List[NotificationChannel]:
    """Channels to notify on for a contact profile.

    An unresolved profile (None) gets in-app only.
    """
    channels = [NotificationChannel.IN_APP]
    if profile is None:
        return channels

    preference = profile.preferred_channel
    if preference == PreferredChannel.EMAIL:
        if profile.email:
            channels.append(NotificationChannel.EMAIL)
    elif preference == PreferredChannel.PHONE:
        if profile.phone:
            channels.append(NotificationChannel.SMS)
    elif preference == PreferredChannel.ANONYMOUS:
        pass
    elif profile.email:
        channels.append(NotificationChannel.EMAIL)
    elif profile.phone:
        channels.append(NotificationChannel.SMS)

    return channels


def parse_notification_type(value: Any) -> NotificationType:
    """Parse a notification type name.

    Raises:
        ValidationError: If the type is missing or unknown
    """
    if isinstance(value, NotificationType):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Missing notification type")
    try:
        return NotificationType(value.strip())
    except ValueError:
        raise ValidationError(f"Unknown notification type: {value}") from None


def _validate_crisis_level(source_entity: SourceEntity, context: Optional[Dict[str, Any]]) -> None:
    """Reject a crisis_alert whose level is not a known CrisisLevel.

    A missing level is allowed; the crisis template treats it as high.
    """
    level = (context or {}).get("level", source_entity.attributes.get("level"))
    if level is None or isinstance(level, CrisisLevel):
        return
    if not isinstance(level, str):
        raise ValidationError("crisis_alert level must be a string")
    try:
        CrisisLevel.parse(level)
    except ValueError:
        raise ValidationError(f"Unknown crisis level: {level}") from None


class NotificationEnqueuer:
    """Creates pending notification records for a triggering event."""

    def __init__(
        self,
        repository: NotificationRepository,
        resolver_factory: Callable[[], ContactResolver],
        publisher: Optional[NotificationPublisher] = None,
    ):
        """Initialize enqueuer with dependencies.

        Args:
            repository: Notification record store
            resolver_factory: Builds a fresh ContactResolver for one call
            publisher: Optional realtime publisher for created records
        """
        self.repository = repository
        self.resolver_factory = resolver_factory
        self.publisher = publisher

    def enqueue(
        self,
        user_id: str,
        notification_type: Any,
        source_entity: SourceEntity,
        resolver: Optional[ContactResolver] = None,
        context: Optional[Dict[str, Any]] = None,
        dry_run: bool = False,
    ) -> EnqueueResult:
        """Enqueue notifications for one event.

        Args:
            user_id: Recipient user id
            notification_type: NotificationType or its string value
            source_entity: Triggering entity, used as the dedup key
            resolver: Batch-scoped resolver; a fresh one is built if omitted
            context: Extra template variables (source attributes are included)
            dry_run: Report the selected channels without writing

        Returns:
            EnqueueResult with one ChannelResult per selected channel

        Raises:
            ValidationError: If any argument is malformed (nothing is written)

        Logs:
            - NOTIFICATION_ENQUEUE_SKIPPED: Duplicate found or check failed
            - NOTIFICATION_CHANNEL_FAILED: One channel's insert failed (warning)
            - NOTIFICATION_ENQUEUED: After all channels were attempted
        """
        notification_type = parse_notification_type(notification_type)
        self._validate(user_id, source_entity)
        if notification_type == NotificationType.CRISIS_ALERT:
            _validate_crisis_level(source_entity, context)
        user_id_hash = hash_pii(user_id)

        try:
            already_notified = self.repository.exists_for_source(
                user_id,
                notification_type.value,
                source_entity.kind,
                source_entity.entity_id,
            )
        except Exception as e:
            logger.error(
                "NOTIFICATION_DUPLICATE_CHECK_FAILED",
                extra={
                    "user_id_hash": user_id_hash,
                    "type": notification_type.value,
                    "source_kind": source_entity.kind,
                    "error": str(e),
                }
            )
            return EnqueueResult(skipped_reason="duplicate-check-failed")

        if already_notified:
            logger.info(
                "NOTIFICATION_ENQUEUE_SKIPPED",
                extra={
                    "user_id_hash": user_id_hash,
                    "type": notification_type.value,
                    "source_kind": source_entity.kind,
                    "source_id": source_entity.entity_id,
                    "reason": "already-notified",
                }
            )
            return EnqueueResult(skipped_reason="already-notified")

        owns_resolver = resolver is None
        resolver = resolver or self.resolver_factory()
        try:
            profile = resolver.resolve(user_id)
        finally:
            if owns_resolver:
                resolver.close()

        channels = select_channels(profile)
        result = EnqueueResult(contact_resolved=profile is not None)

        if dry_run:
            result.channel_results = [
                ChannelResult(channel=c, status=ChannelStatus.DRY_RUN) for c in channels
            ]
            return result

        template_context = dict(source_entity.attributes)
        template_context.update(context or {})
        payload = source_entity.to_payload()

        for channel in channels:
            result.channel_results.append(
                self._create_record(
                    user_id, user_id_hash, notification_type, channel, payload, template_context
                )
            )

        logger.info(
            "NOTIFICATION_ENQUEUED",
            extra={
                "user_id_hash": user_id_hash,
                "type": notification_type.value,
                "source_kind": source_entity.kind,
                "source_id": source_entity.entity_id,
                "channels_created": result.channels_created,
                "channels_failed": len(result.failed_channels),
                "contact_resolved": result.contact_resolved,
            }
        )
        return result

    def _validate(self, user_id: Any, source_entity: Any) -> None:
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("Missing userId")
        if not isinstance(source_entity, SourceEntity):
            raise ValidationError("sourceEntity must be an object with kind and id")
        if not source_entity.kind or not source_entity.entity_id:
            raise ValidationError("sourceEntity requires kind and id")

    def _create_record(
        self,
        user_id: str,
        user_id_hash: str,
        notification_type: NotificationType,
        channel: NotificationChannel,
        payload: Dict[str, Any],
        template_context: Dict[str, Any],
    ) -> ChannelResult:
        try:
            title, message = templates.render(notification_type, channel, template_context)
            record = NotificationRecord(
                id=f"ntf_{uuid.uuid4().hex[:16]}",
                user_id=user_id,
                type=notification_type.value,
                channel=channel,
                title=title,
                message=message,
                data=dict(payload),
                created_at=utc_now(),
            )
            self.repository.insert(record)
        except DuplicateError:
            return ChannelResult(
                channel=channel,
                status=ChannelStatus.DUPLICATE,
                reason="already-notified",
            )
        except Exception as e:
            logger.warning(
                "NOTIFICATION_CHANNEL_FAILED",
                extra={
                    "user_id_hash": user_id_hash,
                    "type": notification_type.value,
                    "channel": channel.value,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return ChannelResult(channel=channel, status=ChannelStatus.FAILED, reason=str(e))

        if self.publisher is not None:
            self.publisher.publish_created(record)

        return ChannelResult(
            channel=channel,
            status=ChannelStatus.CREATED,
            notification_id=record.id,
        )

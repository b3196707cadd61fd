"""Notification dispatcher.

Sends pending notification records in bounded, oldest-first batches.

Per-record state: pending (sent_at is None) -> sent (sent_at set).
- in_app records are marked sent without any external call.
- email/sms records are marked sent only after the provider accepts them.
  On any failure the record stays pending and is picked up again by a
  later batch. There is no retry counter and no backoff.

Records whose user has no address for the channel fail with
"missing contact" on every batch; operators should watch for them.

Records are processed sequentially; outcomes are reported in fetch order.
Stopping mid-batch leaves sent records marked and the rest untouched.
"""
import logging
from typing import Callable, Optional

from mindcompanion.shared.database import RepositoryError
from mindcompanion.shared.errors import (
    ConfigurationError,
    ContactResolutionError,
    DeliveryError,
)
from mindcompanion.shared.models import (
    DispatchOutcome,
    DispatchReport,
    DispatchStatus,
    NotificationChannel,
    NotificationRecord,
    utc_now,
)
from mindcompanion.shared.utils import hash_pii
from .contact_resolver import ContactResolver
from .notification_repository import NotificationRepository
from .providers import DeliveryProvider

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25
MAX_BATCH_SIZE = 100


def clamp_batch_size(value: Optional[int], default: int = DEFAULT_BATCH_SIZE,
                     maximum: int = MAX_BATCH_SIZE) -> int:
    if value is None:
        return default
    return min(max(int(value), 1), maximum)


class NotificationDispatcher:
    """Delivers pending notification records through provider adapters."""

    def __init__(
        self,
        repository: NotificationRepository,
        resolver_factory: Callable[[], ContactResolver],
        email_provider: DeliveryProvider,
        sms_provider: DeliveryProvider,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        max_batch_size: int = MAX_BATCH_SIZE,
    ):
        """Initialize dispatcher with dependencies.

        Args:
            repository: Notification record store
            resolver_factory: Builds a fresh ContactResolver per batch
            email_provider: Adapter for the email channel
            sms_provider: Adapter for the sms channel
            default_batch_size: Batch size when the caller gives none
            max_batch_size: Upper bound on any batch
        """
        self.repository = repository
        self.resolver_factory = resolver_factory
        self.providers = {
            NotificationChannel.EMAIL: email_provider,
            NotificationChannel.SMS: sms_provider,
        }
        self.default_batch_size = default_batch_size
        self.max_batch_size = max_batch_size

        for channel, provider in self.providers.items():
            if not provider.configured:
                logger.critical(
                    "DISPATCH_CHANNEL_DISABLED",
                    extra={
                        "channel": channel.value,
                        "provider": provider.name,
                        "reason": provider.configuration_error,
                    }
                )

    def dispatch_pending(
        self,
        batch_size: Optional[int] = None,
        dry_run: bool = False,
    ) -> DispatchReport:
        """Process one batch of pending notifications.

        Args:
            batch_size: Records to fetch, clamped to [1, max_batch_size]
            dry_run: Report what would be processed without sending or writing

        Returns:
            DispatchReport with one outcome per fetched record, in fetch order

        Raises:
            RepositoryError: If the pending records cannot be fetched

        Logs:
            - DISPATCH_BATCH_STARTED / DISPATCH_BATCH_COMPLETED
            - NOTIFICATION_DELIVERY_FAILED: Per failed record (warning)
        """
        limit = clamp_batch_size(batch_size, self.default_batch_size, self.max_batch_size)
        records = self.repository.fetch_pending(limit)
        report = DispatchReport(dry_run=dry_run)

        logger.info(
            "DISPATCH_BATCH_STARTED",
            extra={"limit": limit, "fetched": len(records), "dry_run": dry_run}
        )

        if dry_run:
            report.results = [
                DispatchOutcome(id=r.id, channel=r.channel, status=DispatchStatus.DRY_RUN)
                for r in records
            ]
            return report

        with self.resolver_factory() as resolver:
            for record in records:
                outcome = self._process_safely(record, resolver)
                report.results.append(outcome)

        logger.info(
            "DISPATCH_BATCH_COMPLETED",
            extra={
                "processed": report.processed_count,
                "sent": report.count(DispatchStatus.SENT),
                "failed": report.count(DispatchStatus.FAILED),
                "skipped": report.count(DispatchStatus.SKIPPED),
            }
        )
        return report

    def _process_safely(self, record: NotificationRecord, resolver: ContactResolver) -> DispatchOutcome:
        try:
            outcome = self.process(record, resolver)
        except Exception as e:
            outcome = DispatchOutcome(
                id=record.id,
                channel=record.channel,
                status=DispatchStatus.FAILED,
                reason=str(e) or type(e).__name__,
            )

        if outcome.status == DispatchStatus.FAILED:
            logger.warning(
                "NOTIFICATION_DELIVERY_FAILED",
                extra={
                    "notification_id": record.id,
                    "user_id_hash": hash_pii(record.user_id),
                    "channel": record.channel.value,
                    "reason": outcome.reason,
                }
            )
        return outcome

    def process(self, record: NotificationRecord, resolver: ContactResolver) -> DispatchOutcome:
        """Deliver one record and report the outcome.

        Per-record errors are returned as failed outcomes, not raised.
        """
        if record.channel == NotificationChannel.IN_APP:
            self.repository.mark_sent(record.id, utc_now())
            return DispatchOutcome(
                id=record.id,
                channel=record.channel,
                status=DispatchStatus.SKIPPED,
                reason="in-app notification",
            )

        provider = self.providers.get(record.channel)
        if provider is None:
            return self._failed(record, "Unsupported channel")

        try:
            contact = resolver.require(record.user_id)
        except ContactResolutionError as e:
            return self._failed(record, str(e))

        if record.channel == NotificationChannel.EMAIL:
            recipient = contact.email
        else:
            recipient = contact.phone
        if not recipient:
            return self._failed(record, "missing contact")

        try:
            provider.send(recipient, record.title, record.message)
        except ConfigurationError as e:
            return self._failed(record, f"configuration error: {e}")
        except DeliveryError as e:
            return self._failed(record, str(e))

        try:
            marked = self.repository.mark_sent(record.id, utc_now())
        except RepositoryError:
            marked = False

        if not marked:
            # Delivered, but the record may be picked up and sent again
            logger.critical(
                "NOTIFICATION_MARK_SENT_FAILED",
                extra={"notification_id": record.id, "channel": record.channel.value}
            )
            return DispatchOutcome(
                id=record.id,
                channel=record.channel,
                status=DispatchStatus.SENT,
                reason="delivered but sent_at was not recorded",
            )

        return DispatchOutcome(id=record.id, channel=record.channel, status=DispatchStatus.SENT)

    @staticmethod
    def _failed(record: NotificationRecord, reason: str) -> DispatchOutcome:
        return DispatchOutcome(
            id=record.id,
            channel=record.channel,
            status=DispatchStatus.FAILED,
            reason=reason,
        )

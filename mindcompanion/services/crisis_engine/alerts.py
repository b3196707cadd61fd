"""Crisis alert service - persists alerts and drives their lifecycle.

A detected crisis at an alerting level becomes a pending CrisisAlert and a
crisis_alert notification for the user. HIGH alerts also notify every
active counselor, with the alert as source entity so each recipient is
notified at most once. Counselors then move the alert through
acknowledged, contacted and resolved, or close it as a false positive.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from mindcompanion.shared.database import NotFoundError
from mindcompanion.shared.errors import InvalidTransitionError, ValidationError
from mindcompanion.shared.models import (
    AlertStatus,
    CrisisAlert,
    CrisisEvent,
    CrisisLevel,
    EnqueueResult,
    NotificationType,
    SourceEntity,
    utc_now,
)
from mindcompanion.shared.utils import hash_pii
from mindcompanion.services.crisis_service.config import get_crisis_resources
from .alert_repository import AlertRepository

logger = logging.getLogger(__name__)


@dataclass
class RaisedAlert:
    """A newly persisted alert and the notifications it produced."""
    alert: CrisisAlert
    enqueue_result: Optional[EnqueueResult] = None
    counselor_results: Dict[str, EnqueueResult] = field(default_factory=dict)

    @property
    def counselors_notified(self) -> int:
        return sum(1 for r in self.counselor_results.values() if r.channels_created)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"alert": self.alert.to_dict()}
        if self.enqueue_result is not None:
            result["notification"] = self.enqueue_result.to_dict()
        if self.counselor_results:
            result["counselorsNotified"] = self.counselors_notified
        return result


class CrisisAlertService:
    """Creates crisis alerts and applies counselor status changes."""

    def __init__(
        self,
        alert_repository: AlertRepository,
        enqueuer=None,
        alert_levels: FrozenSet[CrisisLevel] = frozenset({CrisisLevel.HIGH}),
        max_excerpt_length: int = 500,
        counselor_store=None,
    ):
        """Initialize service with dependencies.

        Args:
            alert_repository: Alert store
            enqueuer: NotificationEnqueuer for crisis_alert notifications;
                alerts are stored without notifying when omitted
            alert_levels: Crisis levels that raise an alert
            max_excerpt_length: Stored excerpt length limit
            counselor_store: CounselorStore listing counselors to notify of
                HIGH alerts; counselors are not notified when omitted
        """
        self.alert_repository = alert_repository
        self.enqueuer = enqueuer
        self.counselor_store = counselor_store
        self.alert_levels = alert_levels
        self.max_excerpt_length = max_excerpt_length

        logger.info(
            "CRISIS_ALERT_SERVICE_INITIALIZED",
            extra={"alert_levels": sorted(level.value for level in alert_levels)}
        )

    def should_alert(self, event: CrisisEvent) -> bool:
        return event.detected and event.level in self.alert_levels

    def raise_alert(
        self,
        user_id: str,
        event: CrisisEvent,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
        content: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[RaisedAlert]:
        """Persist an alert for a detected crisis and notify the user and counselors.

        Args:
            user_id: User whose content triggered detection
            event: Classifier result
            source_type: Kind of content classified (e.g. "chat_message")
            source_id: Identifier of that content
            content: Classified text; only a truncated excerpt is stored
            metadata: Extra attributes stored with the alert

        Returns:
            RaisedAlert, or None if the event is below the alerting levels

        Raises:
            ValidationError: If user_id is missing

        Logs:
            - CRISIS_ALERT_RAISED: After the alert is stored (critical)
            - CRISIS_NOTIFICATION_ENQUEUE_FAILED: Notification failed (error)
            - CRISIS_COUNSELORS_NOTIFIED: HIGH alerts, after the counselor fan-out
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("Missing userId")
        if not self.should_alert(event):
            return None

        now = utc_now()
        alert = CrisisAlert(
            alert_id=f"alert_{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            level=event.level,
            status=AlertStatus.PENDING,
            detected_at=now,
            updated_at=now,
            triggers=tuple(event.triggers),
            confidence=event.confidence,
            source_type=source_type,
            source_id=source_id,
            content_excerpt=(content or "")[:self.max_excerpt_length],
            metadata=dict(metadata or {}),
        )
        self.alert_repository.insert(alert)

        user_id_hash = hash_pii(user_id)
        logger.critical(
            "CRISIS_ALERT_RAISED",
            extra={
                "alert_id": alert.alert_id,
                "user_id_hash": user_id_hash,
                "level": alert.level.value,
                "trigger_count": len(alert.triggers),
                "confidence": alert.confidence,
                "source_type": source_type,
            }
        )

        raised = RaisedAlert(alert=alert)
        if self.enqueuer is None:
            return raised

        try:
            raised.enqueue_result = self.enqueuer.enqueue(
                user_id,
                NotificationType.CRISIS_ALERT,
                SourceEntity(
                    "crisis_alert",
                    alert.alert_id,
                    {
                        "level": alert.level.value,
                        "resources": get_crisis_resources(alert.level),
                    },
                ),
            )
        except Exception as e:
            # The alert stays pending and visible to counselors
            logger.error(
                "CRISIS_NOTIFICATION_ENQUEUE_FAILED",
                extra={
                    "alert_id": alert.alert_id,
                    "user_id_hash": user_id_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

        if alert.level == CrisisLevel.HIGH and self.counselor_store is not None:
            raised.counselor_results = self._notify_counselors(alert)
        return raised

    def _notify_counselors(self, alert: CrisisAlert) -> Dict[str, EnqueueResult]:
        """Enqueue a crisis_alert for every active counselor.

        Failures are logged per counselor and never fail the alert.

        Logs:
            - CRISIS_COUNSELOR_LOOKUP_FAILED: Counselor list unavailable (error)
            - CRISIS_COUNSELOR_NOTIFY_FAILED: One counselor's enqueue failed (error)
            - CRISIS_COUNSELORS_NOTIFIED: After the fan-out
        """
        try:
            counselor_ids = [
                c for c in self.counselor_store.list_active_user_ids() if c != alert.user_id
            ]
        except Exception as e:
            logger.error(
                "CRISIS_COUNSELOR_LOOKUP_FAILED",
                extra={"alert_id": alert.alert_id, "error": str(e)}
            )
            return {}

        source = SourceEntity(
            "crisis_alert",
            alert.alert_id,
            {
                "level": alert.level.value,
                "audience": "counselor",
                "alert_user_id": alert.user_id,
                "severity": alert.level.value,
                "trigger_source": alert.source_type,
                "requires_immediate_action": True,
            },
        )

        results: Dict[str, EnqueueResult] = {}
        with self.enqueuer.resolver_factory() as resolver:
            for counselor_id in counselor_ids:
                try:
                    results[counselor_id] = self.enqueuer.enqueue(
                        counselor_id,
                        NotificationType.CRISIS_ALERT,
                        source,
                        resolver=resolver,
                    )
                except Exception as e:
                    logger.error(
                        "CRISIS_COUNSELOR_NOTIFY_FAILED",
                        extra={
                            "alert_id": alert.alert_id,
                            "counselor_id_hash": hash_pii(counselor_id),
                            "error": str(e),
                            "error_type": type(e).__name__,
                        }
                    )

        logger.info(
            "CRISIS_COUNSELORS_NOTIFIED",
            extra={
                "alert_id": alert.alert_id,
                "counselors": len(counselor_ids),
                "notified": sum(1 for r in results.values() if r.channels_created),
            }
        )
        return results

    def get(self, alert_id: str) -> CrisisAlert:
        alert = self.alert_repository.get(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        return alert

    def acknowledge(self, alert_id: str, actor_id: Optional[str] = None) -> CrisisAlert:
        """Counselor has seen the alert."""
        return self._transition(alert_id, AlertStatus.ACKNOWLEDGED, actor_id)

    def mark_contacted(self, alert_id: str, actor_id: Optional[str] = None) -> CrisisAlert:
        return self._transition(alert_id, AlertStatus.CONTACTED, actor_id)

    def resolve(self, alert_id: str, actor_id: Optional[str] = None) -> CrisisAlert:
        return self._transition(alert_id, AlertStatus.RESOLVED, actor_id)

    def mark_false_positive(self, alert_id: str, actor_id: Optional[str] = None) -> CrisisAlert:
        return self._transition(alert_id, AlertStatus.FALSE_POSITIVE, actor_id)

    def list_active(self, limit: int = 100) -> List[CrisisAlert]:
        """Active alerts, oldest first."""
        return self.alert_repository.list_active(limit)

    def _transition(
        self,
        alert_id: str,
        target: AlertStatus,
        actor_id: Optional[str],
    ) -> CrisisAlert:
        """Apply one lifecycle move.

        Raises:
            NotFoundError: If the alert does not exist
            InvalidTransitionError: If the move is not allowed, or another
                change landed first
        """
        alert = self.get(alert_id)
        if not alert.status.can_transition_to(target):
            raise InvalidTransitionError(alert.status.value, target.value)

        updated = self.alert_repository.update_status(
            alert_id, alert.status, target, utc_now()
        )
        if updated is None:
            current = self.get(alert_id)
            raise InvalidTransitionError(current.status.value, target.value)

        logger.info(
            "CRISIS_ALERT_STATUS_CHANGED",
            extra={
                "alert_id": alert_id,
                "from_status": alert.status.value,
                "to_status": target.value,
                "actor_id_hash": hash_pii(actor_id) if actor_id else None,
                "seconds_since_detection": (
                    updated.updated_at - updated.detected_at
                ).total_seconds(),
            }
        )
        return updated

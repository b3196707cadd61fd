"""Crisis classification and crisis alert domain models.

CrisisEvent is the ephemeral output of the classifier. CrisisAlert is the
persisted record owned by the crisis engine and read by the metrics
aggregator.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CrisisLevel(Enum):
    """Severity tier of matched crisis language.

    Higher tiers suppress scanning of lower tiers.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: str) -> "CrisisLevel":
        """Parse a level name, case-insensitive.

        Raises:
            ValueError: If the name is not a known level
        """
        return cls(value.strip().lower())


@dataclass(frozen=True)
class CrisisEvent:
    """Result of classifying one piece of text.

    Immutable. Not persisted by the classifier; callers that want a record
    create a CrisisAlert from it.
    """
    detected: bool
    level: Optional[CrisisLevel] = None
    triggers: Tuple[str, ...] = ()
    confidence: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the classify response shape (level omitted when absent)."""
        result: Dict[str, Any] = {
            "detected": self.detected,
            "triggers": list(self.triggers),
            "confidence": self.confidence,
        }
        if self.level is not None:
            result["level"] = self.level.value
        return result


class AlertStatus(Enum):
    """Crisis alert lifecycle.

    pending -> acknowledged -> contacted -> resolved, or false_positive from
    any non-terminal state. resolved and false_positive are terminal.
    """
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    CONTACTED = "contacted"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"

    @property
    def is_terminal(self) -> bool:
        return self in (AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE)

    def can_transition_to(self, target: "AlertStatus") -> bool:
        """Forward moves along the main path may skip intermediate states."""
        if self.is_terminal or target == self:
            return False
        if target == AlertStatus.FALSE_POSITIVE:
            return True
        return _STATUS_ORDER[target] > _STATUS_ORDER[self]


_STATUS_ORDER = {
    AlertStatus.PENDING: 0,
    AlertStatus.ACKNOWLEDGED: 1,
    AlertStatus.CONTACTED: 2,
    AlertStatus.RESOLVED: 3,
}

ACTIVE_ALERT_STATUSES = (
    AlertStatus.PENDING,
    AlertStatus.ACKNOWLEDGED,
    AlertStatus.CONTACTED,
)


@dataclass
class CrisisAlert:
    """Persisted crisis alert.

    detected_at never changes; updated_at advances on every status change.
    """
    alert_id: str
    user_id: str
    level: CrisisLevel
    status: AlertStatus
    detected_at: datetime
    updated_at: datetime
    triggers: Tuple[str, ...] = ()
    confidence: float = 0.0
    source_type: Optional[str] = None
    source_id: Optional[str] = None
    content_excerpt: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ALERT_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses.

        The raw user id and content excerpt are left out.
        """
        return {
            "alert_id": self.alert_id,
            "level": self.level.value,
            "status": self.status.value,
            "triggers": list(self.triggers),
            "confidence": self.confidence,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "detected_at": self.detected_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

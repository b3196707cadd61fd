"""Crisis service configuration and crisis support resources."""
import os
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from mindcompanion.shared.models import CrisisLevel
from .lexicon import LEXICON_VERSION


@dataclass(frozen=True)
class ConfidenceWeights:
    """Weights of the keyword confidence heuristic.

    The result is a ranking heuristic, not a probability.
    """
    per_trigger: float = 0.3
    high_severity_boost: float = 0.2
    long_text_boost: float = 0.1
    long_text_min_length: int = 100


@dataclass(frozen=True)
class ClassifierConfig:
    """Crisis classification and alerting behavior."""

    lexicon_version: str = LEXICON_VERSION

    # Levels that create a CrisisAlert and a crisis_alert notification
    alert_levels: FrozenSet[CrisisLevel] = frozenset({CrisisLevel.HIGH})

    # Stored alert excerpts are truncated to this many characters
    max_excerpt_length: int = 500

    @classmethod
    def from_env(cls) -> "ClassifierConfig":
        """Create config from environment variables.

        Environment variables:
            CRISIS_ALERT_LEVELS: Comma-separated levels (default "high")
        """
        raw = os.getenv("CRISIS_ALERT_LEVELS", "high")
        levels = frozenset(
            CrisisLevel.parse(part) for part in raw.split(",") if part.strip()
        )
        return cls(alert_levels=levels)


HOTLINE = "KIRAN Mental Health Helpline: 1800-599-0019 (FREE 24/7)"
TEXT_LINE = "iCALL Crisis Support: 9152987821 (FREE)"
EMERGENCY = "Call KIRAN 1800-599-0019 for immediate danger"

_LEVEL_MESSAGES = {
    CrisisLevel.HIGH: (
        "You mentioned some concerning thoughts. Please reach out for immediate support:"
    ),
    CrisisLevel.MEDIUM: (
        "It sounds like you're going through a difficult time. Help is available:"
    ),
    CrisisLevel.LOW: (
        "If you need additional support, these resources are always available:"
    ),
}


def get_crisis_resources(level: Optional[CrisisLevel]) -> Dict[str, Any]:
    """Support resources shown alongside a classification.

    Only HIGH is marked urgent.
    """
    resources: Dict[str, Any] = {
        "hotline": HOTLINE,
        "textLine": TEXT_LINE,
        "emergency": EMERGENCY,
    }
    if level is None:
        return resources

    resources["message"] = _LEVEL_MESSAGES[level]
    resources["urgent"] = level == CrisisLevel.HIGH
    return resources

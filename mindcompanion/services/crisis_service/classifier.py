"""Keyword-tier crisis classifier.

Scans free text for self-harm and suicide risk phrases and returns a
severity level, the matched phrases and a heuristic confidence score.

Matching rules:
- Text is lowercased and stripped.
- Tiers are scanned HIGH, then MEDIUM, then LOW; once a tier matches,
  lower tiers are not scanned.
- A phrase matches when it is a substring of the text. There are no word
  boundaries, so "sad" matches inside "crusade".

The classifier is a pure function of its input: no I/O, no shared mutable
state, safe to call concurrently.
"""
import math
from typing import FrozenSet, List, Optional, Sequence, Tuple

from mindcompanion.shared.errors import ValidationError
from mindcompanion.shared.models import CrisisEvent, CrisisLevel
from .config import ConfidenceWeights
from .lexicon import LEXICON_TIERS


def _round_half_up(value: float, places: int = 2) -> float:
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


class CrisisClassifier:
    """Classifies text into a crisis tier.

    Confidence heuristic (not a probability):
        base = min(0.3 * triggers, 1.0)
        + 0.2 per HIGH-tier trigger, capped at 1.0
        + 0.1 if text is longer than 100 chars and has 2+ triggers, capped
        rounded to 2 decimal places
    """

    def __init__(
        self,
        tiers: Sequence[Tuple[CrisisLevel, Sequence[str]]] = LEXICON_TIERS,
        weights: Optional[ConfidenceWeights] = None,
    ):
        """Initialize classifier.

        Args:
            tiers: (level, phrases) pairs in scan order, highest first
            weights: Confidence heuristic weights
        """
        self.tiers = tuple((level, tuple(p.lower() for p in phrases)) for level, phrases in tiers)
        self.weights = weights or ConfidenceWeights()
        self._high_phrases: FrozenSet[str] = frozenset(
            phrase
            for level, phrases in self.tiers
            if level == CrisisLevel.HIGH
            for phrase in phrases
        )

    def classify(self, text: str) -> CrisisEvent:
        """Classify one piece of text.

        Args:
            text: Free text from the user

        Returns:
            CrisisEvent; not detected with confidence 0 for empty text

        Raises:
            ValidationError: If text is not a string
        """
        if not isinstance(text, str):
            raise ValidationError(
                f"text must be a string, got {type(text).__name__}"
            )

        normalized = text.lower().strip()
        if not normalized:
            return CrisisEvent(detected=False)

        level, triggers = self._match(normalized)
        if not triggers:
            return CrisisEvent(detected=False)

        return CrisisEvent(
            detected=True,
            level=level,
            triggers=tuple(triggers),
            confidence=self.confidence(triggers, normalized),
        )

    def _match(self, normalized: str) -> Tuple[Optional[CrisisLevel], List[str]]:
        for level, phrases in self.tiers:
            found = [phrase for phrase in phrases if phrase in normalized]
            if found:
                return level, found
        return None, []

    def confidence(self, triggers: Sequence[str], normalized: str) -> float:
        """Heuristic confidence for a set of triggers found in normalized text."""
        if not triggers:
            return 0.0

        w = self.weights
        score = min(len(triggers) * w.per_trigger, 1.0)

        high_count = sum(1 for t in triggers if t.lower() in self._high_phrases)
        if high_count > 0:
            score = min(score + high_count * w.high_severity_boost, 1.0)

        if len(normalized) > w.long_text_min_length and len(triggers) > 1:
            score = min(score + w.long_text_boost, 1.0)

        return _round_half_up(score)


_default_classifier = CrisisClassifier()


def classify(text: str) -> CrisisEvent:
    """Classify text with the default lexicon."""
    return _default_classifier.classify(text)

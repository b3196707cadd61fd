"""Crisis Service: keyword-tier crisis classification.

Components:
- lexicon.py: versioned HIGH/MEDIUM/LOW phrase lists
- classifier.py: CrisisClassifier (pure, no I/O)
- config.py: alerting levels, confidence weights and support resources
- handler.py: Flask endpoints (/health, /ready, /classify, /crisis/analyze)

Usage:
    from mindcompanion.services.crisis_service import classify
    event = classify("I feel hopeless")
"""

from .classifier import CrisisClassifier, classify
from .config import ClassifierConfig, ConfidenceWeights, get_crisis_resources
from .lexicon import HIGH_SEVERITY, MEDIUM_SEVERITY, LOW_SEVERITY, LEXICON_VERSION

__all__ = [
    "CrisisClassifier",
    "classify",
    "ClassifierConfig",
    "ConfidenceWeights",
    "get_crisis_resources",
    "HIGH_SEVERITY",
    "MEDIUM_SEVERITY",
    "LOW_SEVERITY",
    "LEXICON_VERSION",
]

"""Error taxonomy for the crisis core.

Classifier raises only ValidationError. The enqueuer and dispatcher catch
the per-item errors below and report them in their results instead of
propagating them to the caller.
"""
from typing import Optional


class CrisisCoreError(Exception):
    """Base exception for crisis core errors."""
    pass


class ValidationError(CrisisCoreError):
    """Malformed input. Raised before any side effect."""
    pass


class InvalidTransitionError(ValidationError):
    """Crisis alert status change not allowed by the lifecycle."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move alert from {current} to {target}")


class ContactResolutionError(CrisisCoreError):
    """Identity or profile lookup failed for a user."""

    def __init__(self, message: str, user_id_hash: Optional[str] = None):
        self.user_id_hash = user_id_hash
        super().__init__(message)


class DeliveryError(CrisisCoreError):
    """Provider rejected the message, timed out, or the network failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(CrisisCoreError):
    """Provider credentials or settings are missing."""
    pass

"""PII handling for logs.

User identifiers are hashed before they reach any log line. Email
addresses and phone numbers are never logged at all.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# Loaded from PII_HASH_SALT at service startup
_PII_SALT: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Set the salt used by hash_pii().

    Call once during startup, before any request is served.

    Args:
        salt: Secret salt, at least 32 characters

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < 32:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "salt_too_short_or_empty", "min_length": 32}
        )
        raise ValueError("PII salt must be at least 32 characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def hash_pii(value: str) -> str:
    """Return a salted SHA-256 digest of a user identifier.

    The same input always maps to the same digest, so log lines for one
    user can still be correlated.

    Raises:
        RuntimeError: If configure_pii_salt() has not been called
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "salt_not_configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_text_for_audit(text: str) -> str:
    """Fingerprint free text so it can be referenced without being logged."""
    return hashlib.sha256(text.encode()).hexdigest()

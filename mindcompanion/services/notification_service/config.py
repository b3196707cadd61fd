"""Notification service configuration."""
import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class NotificationConfig:
    """Provider credentials, timeouts and batch limits."""

    sendgrid_api_key: Optional[str] = None
    sendgrid_from_email: str = "no-reply@mindcompanion.app"
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None

    # Every external call is bounded
    provider_timeout_seconds: float = 10.0
    contact_lookup_timeout_seconds: float = 5.0

    default_batch_size: int = 25
    max_batch_size: int = 100

    # Appointment reminder window, minutes
    default_look_ahead_minutes: int = 60 * 24
    min_look_ahead_minutes: int = 5
    max_look_ahead_minutes: int = 60 * 24 * 7

    realtime_publishing_enabled: bool = False
    kinesis_stream_name: str = "mindcompanion-notifications"

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        """Create config from environment variables.

        Environment variables:
            SENDGRID_API_KEY, SENDGRID_FROM_EMAIL
            TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER
            PROVIDER_TIMEOUT_SECONDS (default 10)
            CONTACT_LOOKUP_TIMEOUT_SECONDS (default 5)
            DISPATCH_DEFAULT_BATCH_SIZE (default 25)
            REALTIME_PUBLISHING_ENABLED (default false)
            KINESIS_STREAM_NAME (default mindcompanion-notifications)
        """
        return cls(
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY") or None,
            sendgrid_from_email=os.getenv("SENDGRID_FROM_EMAIL", "no-reply@mindcompanion.app"),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID") or None,
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN") or None,
            twilio_from_number=os.getenv("TWILIO_FROM_NUMBER") or None,
            provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
            contact_lookup_timeout_seconds=float(os.getenv("CONTACT_LOOKUP_TIMEOUT_SECONDS", "5")),
            default_batch_size=int(os.getenv("DISPATCH_DEFAULT_BATCH_SIZE", "25")),
            realtime_publishing_enabled=_env_bool("REALTIME_PUBLISHING_ENABLED", "false"),
            kinesis_stream_name=os.getenv("KINESIS_STREAM_NAME", "mindcompanion-notifications"),
        )

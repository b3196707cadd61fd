"""Outbound delivery provider adapters.

Each adapter exposes a single send(recipient, subject, body) and raises:
- DeliveryError when the provider rejects the request, times out, or the
  network fails
- ConfigurationError when credentials are missing; this is detected at
  construction and repeated on every send for the life of the process
"""
import html
import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from mindcompanion.shared.errors import ConfigurationError, DeliveryError

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


class DeliveryProvider(ABC):
    """One outbound channel."""

    name = "provider"
    configuration_error: Optional[str] = None

    @property
    def configured(self) -> bool:
        return self.configuration_error is None

    def _check_configured(self) -> None:
        if self.configuration_error is not None:
            logger.critical(
                "PROVIDER_NOT_CONFIGURED",
                extra={"provider": self.name, "reason": self.configuration_error}
            )
            raise ConfigurationError(self.configuration_error)

    @abstractmethod
    def send(self, recipient: str, subject: str, body: str) -> None:
        pass


def _post(provider: str, url: str, timeout: float, **kwargs) -> requests.Response:
    try:
        response = requests.post(url, timeout=timeout, **kwargs)
    except requests.Timeout as e:
        raise DeliveryError(f"{provider} timeout after {timeout}s") from e
    except requests.RequestException as e:
        raise DeliveryError(f"{provider} request failed: {e}") from e

    if not response.ok:
        raise DeliveryError(
            f"{provider} error: {response.status_code} {response.reason} - {response.text}",
            status_code=response.status_code,
        )
    return response


class SendGridEmailProvider(DeliveryProvider):
    """Email through the SendGrid v3 mail API."""

    name = "sendgrid"

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str = "no-reply@mindcompanion.app",
        timeout_seconds: float = 10.0,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout_seconds = timeout_seconds
        if not api_key:
            self.configuration_error = "Missing SENDGRID_API_KEY environment variable"
            logger.critical(
                "EMAIL_PROVIDER_NOT_CONFIGURED",
                extra={"provider": self.name, "reason": self.configuration_error}
            )

    def send(self, recipient: str, subject: str, body: str) -> None:
        self._check_configured()

        html_body = f"<p>{html.escape(body).replace(chr(10), '<br/>')}</p>"
        _post(
            "SendGrid",
            SENDGRID_URL,
            self.timeout_seconds,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "personalizations": [{"to": [{"email": recipient}], "subject": subject}],
                "from": {"email": self.from_email},
                "content": [
                    {"type": "text/plain", "value": body},
                    {"type": "text/html", "value": html_body},
                ],
            },
        )


class TwilioSmsProvider(DeliveryProvider):
    """SMS through the Twilio Messages API.

    The subject is sent as the first line of the message body.
    """

    name = "twilio"

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        timeout_seconds: float = 10.0,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout_seconds = timeout_seconds
        if not (account_sid and auth_token and from_number):
            self.configuration_error = "Missing Twilio environment variables"
            logger.critical(
                "SMS_PROVIDER_NOT_CONFIGURED",
                extra={"provider": self.name, "reason": self.configuration_error}
            )

    def send(self, recipient: str, subject: str, body: str) -> None:
        self._check_configured()

        _post(
            "Twilio",
            TWILIO_URL.format(account_sid=self.account_sid),
            self.timeout_seconds,
            auth=(self.account_sid, self.auth_token),
            data={
                "From": self.from_number,
                "To": recipient,
                "Body": f"{subject}\n{body}",
            },
        )

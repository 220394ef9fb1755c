"""
Outbound email transport.

The Resend HTTP API is the production transport. Transports return the
provider message id on success and raise ``TransientFailure`` or
``PermanentFailure`` otherwise; they never write audit records themselves.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from ..errors import PermanentFailure, TransientFailure

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """Email message to be sent."""
    to: List[str]
    subject: str
    html: str
    from_email: Optional[str] = None
    idempotency_key: Optional[str] = None

    def validate(self) -> None:
        if not self.to or not all(r and "@" in r for r in self.to):
            raise PermanentFailure(f"Malformed recipient: {self.to!r}")
        if not self.subject:
            raise PermanentFailure("Subject is required")
        if not self.html:
            raise PermanentFailure("HTML body is required")


class EmailTransport:
    """Interface for email delivery providers."""

    @property
    def provider_name(self) -> str:
        raise NotImplementedError

    def send(self, message: EmailMessage) -> str:
        """Deliver ``message`` and return the provider message id."""
        raise NotImplementedError


class ResendTransport(EmailTransport):
    """
    Resend email API transport.

    Configuration is explicit: the API key, base URL, default sender and the
    per-request timeout are passed in by the application wiring.
    """

    def __init__(
        self,
        api_key: Optional[str],
        sender: str,
        api_url: str = "https://api.resend.com",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def provider_name(self) -> str:
        return "resend"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send(self, message: EmailMessage) -> str:
        if not self.is_configured():
            raise PermanentFailure("Email service not configured")

        message.validate()

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if message.idempotency_key:
            headers["Idempotency-Key"] = message.idempotency_key

        try:
            response = self._session.post(
                f"{self.api_url}/emails",
                json={
                    "from": message.from_email or self.sender,
                    "to": message.to,
                    "subject": message.subject,
                    "html": message.html,
                },
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout:
            raise TransientFailure(f"Request timed out after {self.timeout}s")
        except requests.RequestException as e:
            raise TransientFailure(f"Request error: {e}")

        if 200 <= response.status_code < 300:
            try:
                data = response.json()
            except ValueError:
                data = None
            message_id = data.get("id") if isinstance(data, dict) else None
            logger.info("Resend accepted email to %s, id=%s", message.to, message_id)
            return message_id or ""

        detail = f"HTTP {response.status_code}: {response.text[:500]}"
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientFailure(detail, status_code=response.status_code)
        raise PermanentFailure(detail, status_code=response.status_code)

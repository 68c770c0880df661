"""
auth/email.py -- Email delivery clients for 2FA codes.

Two implementations of the EmailClient protocol:

  PostmarkEmailClient -- sends through Postmark's HTTP API with a shared
      requests.Session. The call is blocking, so it runs on a worker thread.
      Any transport or HTTP error becomes EmailDeliveryError; the login flow
      turns that into a 500 without exposing the cause.

  MockEmailClient -- records every message in memory and logs the recipient
      (redacted) and subject. Used in tests and in development
      (EMAIL_BACKEND=mock). Message content is only logged when the client is
      built with log_content=True, which the app does in DEBUG mode.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import requests

from auth.errors import EmailDeliveryError
from auth.models import Email

logger = logging.getLogger("authservice.email")


@dataclass(frozen=True)
class SentEmail:
    recipient: Email
    subject: str
    content: str = field(repr=False)


class MockEmailClient:
    """In-memory stand-in for a real transport.

    Set fail_with to an exception instance to make every send raise
    EmailDeliveryError, which lets tests drive the dispatch-failure branch.
    """

    def __init__(self, log_content: bool = False) -> None:
        self.sent: list[SentEmail] = []
        self.fail_with: Exception | None = None
        self._log_content = log_content

    async def send_email(self, recipient: Email, subject: str, content: str) -> None:
        if self.fail_with is not None:
            raise EmailDeliveryError("mock email transport failure") from self.fail_with
        self.sent.append(SentEmail(recipient, subject, content))
        if self._log_content:
            logger.info("Mock email to %s: %s -- %s", recipient.redacted(), subject, content)
        else:
            logger.info("Mock email to %s: %s", recipient.redacted(), subject)


class PostmarkEmailClient:
    """Deliver email through the Postmark REST API.

    Usage:
        client = PostmarkEmailClient(server_token="...", sender="auth@example.com")
        await client.send_email(Email.parse("user@example.com"), "2FA Code", "Your code is 123456")
    """

    def __init__(
        self,
        server_token: str,
        sender: str,
        base_url: str = "https://api.postmarkapp.com",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._server_token = server_token
        self._sender = sender
        self._url = f"{base_url.rstrip('/')}/email"
        self._timeout = timeout
        # Postmark never redirects; 3 hops is generous and keeps a misconfigured
        # base URL from bouncing the token around.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    async def send_email(self, recipient: Email, subject: str, content: str) -> None:
        await asyncio.to_thread(self._post, recipient, subject, content)

    def _post(self, recipient: Email, subject: str, content: str) -> None:
        payload = {
            "From": self._sender,
            "To": recipient.value,
            "Subject": subject,
            "HtmlBody": content,
            "TextBody": content,
            "MessageStream": "outbound",
        }
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self._server_token,
        }
        try:
            resp = self._session.post(self._url, json=payload, headers=headers, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Postmark delivery to %s failed: %s", recipient.redacted(), type(exc).__name__)
            raise EmailDeliveryError("email delivery failed") from exc
        logger.info("Email sent to %s: %s", recipient.redacted(), subject)

    def close(self) -> None:
        self._session.close()

"""
Mail transports used by the email queue delivery callbacks.

Resend (HTTPS API) is preferred when an API key is configured, SMTP
otherwise. Both enforce a bounded timeout and perform exactly one send
attempt per call.
"""

import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib
import httpx

from api.config.logging import mask_email
from api.config.settings import Settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_DEFAULT_FROM = "Portfolio <onboarding@resend.dev>"


class MailDeliveryError(Exception):
    """Raised when a provider rejects or fails to accept a message."""


@dataclass
class MailMessage:
    """A fully rendered message ready for a transport."""

    to: str
    subject: str
    html: str
    sender: str | None = None
    idempotency_key: str | None = None


class MailTransport(Protocol):
    """Protocol for a single-attempt mail transport."""

    async def send(self, message: MailMessage) -> None:
        """Send one message or raise MailDeliveryError."""
        ...

    async def aclose(self) -> None:
        ...


class ResendTransport:
    """Send through the Resend HTTP API (POST /emails, Bearer auth)."""

    def __init__(
        self,
        api_key: str,
        from_email: str = "",
        timeout_s: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.from_email = from_email.strip() or RESEND_DEFAULT_FROM
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=5.0)
        )
        self._headers = {
            "Authorization": f"Bearer {api_key.strip()}",
            "Content-Type": "application/json",
        }

    async def send(self, message: MailMessage) -> None:
        headers = dict(self._headers)
        if message.idempotency_key:
            # Resend dedupes requests with the same key for ~24h
            headers["Idempotency-Key"] = message.idempotency_key

        body = {
            "from": message.sender or self.from_email,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }

        try:
            response = await self.client.post(RESEND_API_URL, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise MailDeliveryError(f"Resend request timed out: {e}") from e
        except httpx.TransportError as e:
            raise MailDeliveryError(f"Resend transport error: {e}") from e

        if response.status_code >= 400:
            raise MailDeliveryError(
                f"Resend responded {response.status_code}: {response.text[:200]}"
            )

        logger.info(
            "Resend accepted message",
            extra={"to": mask_email(message.to), "status_code": response.status_code},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class SmtpTransport:
    """Send through an SMTP relay with aiosmtplib."""

    def __init__(
        self,
        hostname: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        from_email: str = "",
        use_tls: bool = True,
        timeout_s: float = 15.0,
    ):
        self.hostname = hostname
        self.port = port
        self.username = username or None
        self.password = password or None
        self.from_email = from_email
        self.use_tls = use_tls
        self.timeout_s = timeout_s

    async def send(self, message: MailMessage) -> None:
        email = EmailMessage()
        sender = message.sender or self.from_email
        if sender:
            email["From"] = sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content("This message requires an HTML capable mail client.")
        email.add_alternative(message.html, subtype="html")

        try:
            await aiosmtplib.send(
                email,
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
                timeout=self.timeout_s,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(f"SMTP send failed: {e}") from e

        logger.info("SMTP accepted message", extra={"to": mask_email(message.to)})

    async def aclose(self) -> None:
        return None


def build_transport(settings: Settings) -> MailTransport | None:
    """Pick the configured transport: Resend, then SMTP, else None."""
    if settings.resend_api_key.strip():
        return ResendTransport(
            api_key=settings.resend_api_key,
            from_email=settings.resend_from_email,
            timeout_s=settings.mail_timeout_s,
        )
    if settings.smtp_host.strip():
        return SmtpTransport(
            hostname=settings.smtp_host.strip(),
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            use_tls=settings.smtp_use_tls,
            timeout_s=settings.mail_timeout_s,
        )
    logger.warning("No mail transport configured: email jobs will not be delivered")
    return None

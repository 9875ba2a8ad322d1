"""
Delivery callbacks for the email queue.

Each callback implements the DeliveryCallback protocol: given the resolved
contact it performs one send through the configured mail transport and
reports success. Retries belong to the queue, not to the callbacks.
"""

import logging

from api.config.logging import mask_email
from api.config.settings import Settings
from api.v1.contacts.models import Contact
from api.v1.infra.mail.templates import (
    SUBJECT_OWNER_NOTIFICATION,
    SUBJECT_SENDER_REPLY,
    render_owner_notification,
    render_sender_reply,
)
from api.v1.infra.mail.transports import MailMessage, MailTransport

logger = logging.getLogger(__name__)


class NotifyOwnerCallback:
    """
    Notify the site owner about a new contact message.

    A no-op success when no notification address is configured, so jobs
    enqueued before the address was removed do not pile up as failures.
    """

    def __init__(self, settings: Settings, transport: MailTransport | None):
        self.settings = settings
        self.transport = transport

    async def send(self, contact: Contact) -> bool:
        recipient = self.settings.contact_notification_email
        if not recipient:
            logger.debug("Owner notification disabled: no notification email set")
            return True

        if self.transport is None:
            logger.warning("Owner notification not sent: no mail transport configured")
            return False

        message = MailMessage(
            to=recipient,
            subject=SUBJECT_OWNER_NOTIFICATION,
            html=render_owner_notification(contact.name, contact.email, contact.message),
            idempotency_key=f"contact-notify/{contact.id}",
        )
        await self.transport.send(message)
        return True


class ReplySenderCallback:
    """Send the automatic acknowledgement to the contact form sender."""

    def __init__(self, settings: Settings, transport: MailTransport | None):
        self.settings = settings
        self.transport = transport

    async def send(self, contact: Contact) -> bool:
        recipient = (contact.email or "").strip()
        if not recipient:
            logger.debug("Sender reply skipped: contact has no email")
            return True

        if self.transport is None:
            logger.warning("Sender reply not sent: no mail transport configured")
            return False

        message = MailMessage(
            to=recipient,
            subject=SUBJECT_SENDER_REPLY,
            html=render_sender_reply(contact.name),
            idempotency_key=f"contact-reply/{contact.id}",
        )
        await self.transport.send(message)
        logger.info("Sender reply sent", extra={"to": mask_email(recipient)})
        return True

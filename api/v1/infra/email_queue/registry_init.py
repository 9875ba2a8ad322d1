"""
Delivery callback registration for the email queue.

Maps every EmailJobType to its callback in the global delivery registry.
"""

import logging

from api.config.settings import Settings
from api.v1.core.registries import DeliveryCallbackRegistry, delivery_registry
from api.v1.infra.email_queue.handlers import NotifyOwnerCallback, ReplySenderCallback
from api.v1.infra.email_queue.models import EmailJobType
from api.v1.infra.mail.transports import MailTransport

logger = logging.getLogger(__name__)


def register_delivery_callbacks(
    settings: Settings,
    transport: MailTransport | None,
    registry: DeliveryCallbackRegistry = delivery_registry,
) -> DeliveryCallbackRegistry:
    """Register the callback for each email job type."""

    logger.info("Registering email delivery callbacks")

    registry.register(
        EmailJobType.CONTACT_NOTIFY_OWNER.value,
        NotifyOwnerCallback(settings, transport),
    )
    registry.register(
        EmailJobType.CONTACT_REPLY_SENDER.value,
        ReplySenderCallback(settings, transport),
    )

    logger.info(
        "Email delivery callbacks registered",
        extra={"registered_callbacks": registry.list()},
    )
    return registry

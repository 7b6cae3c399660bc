"""Outbound email: Jinja2 templates, MIME construction and SMTP transport."""

from .models import (
    Attachment,
    NotificationError,
    NotificationTemplateError,
    OutboundEmail,
    RenderedEmail,
    SMTPDeliveryError,
)
from .smtp_client import (
    SMTPClient,
    build_message,
    build_sender_address,
    normalize_recipients,
)
from .templates import BULK_FORWARD, SINGLE_FORWARD, TemplateRenderer
from .transport import SmtpMailTransport

__all__ = [
    # Models
    "Attachment",
    "OutboundEmail",
    "RenderedEmail",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "SMTPDeliveryError",
    # Components
    "SMTPClient",
    "SmtpMailTransport",
    "TemplateRenderer",
    "SINGLE_FORWARD",
    "BULK_FORWARD",
    # Utilities
    "build_message",
    "build_sender_address",
    "normalize_recipients",
]

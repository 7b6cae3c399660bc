"""Data models and exceptions for outbound email."""

from dataclasses import dataclass, field
from typing import List, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""


class SMTPDeliveryError(NotificationError):
    """Raised when the SMTP server rejects or cannot accept a message."""


@dataclass
class Attachment:
    """A file attached to an outbound email."""

    file_name: str
    content: bytes
    mime_type: str = "application/octet-stream"

    @property
    def maintype(self) -> str:
        return self._split()[0]

    @property
    def subtype(self) -> str:
        return self._split()[1]

    def _split(self):
        if self.mime_type and "/" in self.mime_type:
            main, sub = self.mime_type.split("/", 1)
            return main, sub.split(";", 1)[0].strip()
        return "application", "octet-stream"


@dataclass
class RenderedEmail:
    """Subject and bodies produced by TemplateRenderer."""

    subject: str
    html: str
    text: str


@dataclass
class OutboundEmail:
    """Everything needed to send one message.

    Attributes:
        to: Primary recipients
        cc: Carbon-copy recipients
        bcc: Blind carbon-copy recipients (never written to headers)
        subject: Single-line subject
        html: HTML body
        text: Plain-text alternative
        attachments: Files attached in order
    """

    to: List[str]
    subject: str
    html: str
    text: str = ""
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    reply_to: Optional[str] = None

    @property
    def all_recipients(self) -> List[str]:
        return [*self.to, *self.cc, *self.bcc]

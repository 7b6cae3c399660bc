"""Builds and sends delivery emails."""

from typing import Optional, Sequence

from forwarder.config.models import EmailConfig
from forwarder.logging import get_logger
from forwarder.notifications.models import Attachment, OutboundEmail
from forwarder.notifications.templates import BULK_FORWARD, SINGLE_FORWARD, TemplateRenderer

from .interfaces import MailTransport
from .models import ProcessedCandidate

logger = get_logger(__name__, component="composer")


class DeliveryComposer:
    """Renders the forwarding templates and hands each email to the transport.

    One call to a ``send_*`` method is one logical delivery and exactly one
    ``transport.send``. Nothing is retried here.
    """

    def __init__(
        self,
        transport: MailTransport,
        renderer: Optional[TemplateRenderer] = None,
        email_config: Optional[EmailConfig] = None,
    ):
        self.transport = transport
        self.renderer = renderer or TemplateRenderer()
        self.email_config = email_config or EmailConfig()

    def compose_single(
        self,
        to: str,
        candidate_name: str,
        role_label: str,
        project_title: str,
        attachments: Sequence[Attachment],
        cc: Sequence[str] = (),
        bcc: Sequence[str] = (),
        notes: Optional[str] = None,
    ) -> OutboundEmail:
        rendered = self.renderer.render(
            SINGLE_FORWARD,
            {
                "candidate_name": candidate_name,
                "role_label": role_label,
                "project_title": project_title,
                "notes": notes,
                "signature": self.email_config.signature,
            },
        )
        return OutboundEmail(
            to=[to],
            cc=list(cc),
            bcc=list(bcc),
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            attachments=list(attachments),
        )

    def compose_bulk(
        self,
        to: str,
        project_title: str,
        candidates: Sequence[ProcessedCandidate],
        attachments: Sequence[Attachment],
        cc: Sequence[str] = (),
        bcc: Sequence[str] = (),
        notes: Optional[str] = None,
        folder_link: Optional[str] = None,
        documents_sent_separately: bool = False,
    ) -> OutboundEmail:
        rendered = self.renderer.render(
            BULK_FORWARD,
            {
                "project_title": project_title,
                "candidates": [{"name": c.name, "role": c.role} for c in candidates],
                "folder_link": folder_link,
                "documents_sent_separately": documents_sent_separately,
                "notes": notes,
                "signature": self.email_config.signature,
            },
        )
        return OutboundEmail(
            to=[to],
            cc=list(cc),
            bcc=list(bcc),
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            attachments=list(attachments),
        )

    def send(self, email: OutboundEmail) -> str:
        """Send ``email`` once and return its Message-ID.

        Raises:
            SMTPDeliveryError: If the transport rejects the message
        """
        return self.transport.send(email)

    def send_single(self, **kwargs) -> str:
        """Compose and send a single-candidate forward."""
        return self.send(self.compose_single(**kwargs))

    def send_bulk(self, **kwargs) -> str:
        """Compose and send a bulk summary."""
        return self.send(self.compose_bulk(**kwargs))

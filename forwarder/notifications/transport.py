"""SMTP-backed mail transport used by the delivery composer."""

from dataclasses import replace
from typing import Optional

from forwarder.config.environment import EnvironmentConfig
from forwarder.config.models import EmailConfig
from forwarder.logging import get_logger

from .models import OutboundEmail, SMTPDeliveryError
from .smtp_client import SMTPClient, build_message, build_sender_address, normalize_recipients

logger = get_logger(__name__, component="mail_transport")


class SmtpMailTransport:
    """Sends OutboundEmail objects over SMTP, one connection per message.

    No retries happen here; a failed send surfaces as SMTPDeliveryError and
    the job queue decides whether to try again.
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        email_config: Optional[EmailConfig] = None,
        smtp_client: Optional[SMTPClient] = None,
    ):
        self.env_config = env_config
        self.email_config = email_config or EmailConfig()
        self.smtp_client = smtp_client or SMTPClient()

    def send(self, email: OutboundEmail) -> str:
        """Send ``email`` and return its Message-ID.

        Raises:
            SMTPDeliveryError: On invalid recipients or SMTP failure
        """
        try:
            to = normalize_recipients(email.to)
            cc = normalize_recipients(email.cc)
            bcc = normalize_recipients(email.bcc)
        except ValueError as e:
            raise SMTPDeliveryError(str(e)) from e

        if not to:
            raise SMTPDeliveryError("Email has no primary recipient")

        email = replace(email, to=to, cc=cc, bcc=bcc)
        message = build_message(email, build_sender_address(self.env_config))

        self.smtp_client.send(
            message,
            self.env_config,
            recipients=email.all_recipients,
            use_tls=self.email_config.use_tls,
        )

        message_id = message["Message-ID"]
        logger.info(
            "Email sent",
            extra={
                "event": "notification.email.sent",
                "message_id": message_id,
                "recipient_count": len(email.all_recipients),
                "attachment_count": len(email.attachments),
            },
        )
        return message_id

"""SMTP client wrapper for email delivery.

A thin wrapper around smtplib with TLS/SSL support, authentication and
connection cleanup, plus helpers that turn an OutboundEmail into a MIME
message.
"""

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Callable, Iterable, List, Optional

from email_validator import EmailNotValidError, validate_email

from forwarder.config.environment import EnvironmentConfig
from forwarder.logging import get_logger

from .models import OutboundEmail, SMTPDeliveryError

logger = get_logger(__name__, component="smtp")


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Factories are injectable so tests never open a socket.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        recipients: Iterable[str],
        use_tls: bool = True,
    ) -> None:
        """Send a message to an explicit envelope recipient list.

        Bcc recipients must be in ``recipients`` but not in the headers.

        Raises:
            SMTPDeliveryError: If message delivery fails
        """
        smtp = None
        try:
            if env_config.smtp_port == 465:
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host,
                    env_config.smtp_port,
                    context=ssl.create_default_context(),
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(env_config.smtp_host, env_config.smtp_port)

                if use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message, to_addrs=list(recipients))
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPException as e:
            error_msg = f"SMTP error during message delivery: {e}"
            logger.error(error_msg, extra={"event": "smtp.send.error"})
            raise SMTPDeliveryError(error_msg) from e
        except OSError as e:
            error_msg = f"Network error during SMTP connection: {e}"
            logger.error(error_msg, extra={"event": "smtp.send.error"})
            raise SMTPDeliveryError(error_msg) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def normalize_recipients(addresses: Iterable[str]) -> List[str]:
    """Validate addresses with email-validator, dropping blanks and duplicates.

    Raises:
        ValueError: If any address is invalid
    """
    normalized: List[str] = []
    for raw in addresses:
        address = (raw or "").strip()
        if not address:
            continue
        try:
            validated = validate_email(address, check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email address '{address}': {e}") from e
        if validated not in normalized:
            normalized.append(validated)
    return normalized


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the From header: SMTP_SENDER_NAME with SMTP_FROM or SMTP_USER.

    Falls back to noreply at the SMTP host when neither address is set.
    """
    sender_email = env_config.smtp_from or f"noreply@{env_config.smtp_host}"
    return formataddr((env_config.smtp_sender_name, sender_email))


def build_message(email: OutboundEmail, sender: str) -> EmailMessage:
    """Render an OutboundEmail as a multipart MIME message with a fresh Message-ID."""
    message = EmailMessage()
    message["Subject"] = email.subject
    message["From"] = sender
    message["To"] = ", ".join(email.to)
    if email.cc:
        message["Cc"] = ", ".join(email.cc)
    if email.reply_to:
        message["Reply-To"] = email.reply_to

    domain = sender.rsplit("@", 1)[-1].rstrip(">") if "@" in sender else None
    message["Message-ID"] = make_msgid(domain=domain)

    message.set_content(email.text or "")
    message.add_alternative(email.html, subtype="html")

    for attachment in email.attachments:
        message.add_attachment(
            attachment.content,
            maintype=attachment.maintype,
            subtype=attachment.subtype,
            filename=attachment.file_name,
        )

    return message

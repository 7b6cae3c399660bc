"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/doc_forwarder.db"

_DRIVE_CREDENTIAL_VARS = (
    "GOOGLE_DRIVE_CLIENT_ID",
    "GOOGLE_DRIVE_CLIENT_SECRET",
    "GOOGLE_DRIVE_REFRESH_TOKEN",
)


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: Optional[str],
        smtp_pass: Optional[str],
        smtp_from: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
        drive_client_id: Optional[str] = None,
        drive_client_secret: Optional[str] = None,
        drive_refresh_token: Optional[str] = None,
        drive_parent_folder_id: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        # Fall back to the SMTP login when no explicit sender is configured
        self.smtp_from = smtp_from or smtp_user
        self.smtp_sender_name = smtp_sender_name or "Recruitment Team"
        self.log_level = log_level
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.drive_client_id = drive_client_id
        self.drive_client_secret = drive_client_secret
        self.drive_refresh_token = drive_refresh_token
        self.drive_parent_folder_id = drive_parent_folder_id

    @property
    def drive_configured(self) -> bool:
        """True when all three Google Drive OAuth credentials are present."""
        return bool(self.drive_client_id and self.drive_client_secret and self.drive_refresh_token)


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - SMTP_HOST: SMTP server hostname
    - SMTP_PORT: SMTP server port (1-65535)

    Optional environment variables:
    - SMTP_USER / SMTP_PASS: SMTP credentials (both or neither)
    - SMTP_FROM: Sender address (defaults to SMTP_USER)
    - SMTP_SENDER_NAME: Display name for the sender
    - LOG_LEVEL: Override log level
    - DATABASE_URL: SQLAlchemy database URL
    - GOOGLE_DRIVE_CLIENT_ID / GOOGLE_DRIVE_CLIENT_SECRET /
      GOOGLE_DRIVE_REFRESH_TOKEN: Drive OAuth credentials (all or none)
    - GOOGLE_DRIVE_PARENT_FOLDER_ID: Default parent for created folders

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_from = os.getenv("SMTP_FROM")
    log_level = os.getenv("LOG_LEVEL")

    if not smtp_host:
        errors.append("Missing required environment variable: SMTP_HOST")

    if not smtp_port_str:
        errors.append("Missing required environment variable: SMTP_PORT")

    smtp_port = None
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(
                    f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535."
                )
        except ValueError:
            errors.append(
                f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer."
            )

    if smtp_from and not _is_valid_email(smtp_from):
        errors.append(f"Invalid email address format in SMTP_FROM: '{smtp_from}'")

    if log_level:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )

    if smtp_user and not smtp_pass:
        errors.append(
            "SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication."
        )
    elif smtp_pass and not smtp_user:
        errors.append(
            "SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication."
        )

    drive_values = {name: os.getenv(name) for name in _DRIVE_CREDENTIAL_VARS}
    present = [name for name, value in drive_values.items() if value]
    if present and len(present) != len(_DRIVE_CREDENTIAL_VARS):
        missing = [name for name in _DRIVE_CREDENTIAL_VARS if name not in present]
        errors.append(
            "Google Drive credentials are partially configured; missing: "
            + ", ".join(missing)
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Set all three GOOGLE_DRIVE_* credentials or none of them",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_from=smtp_from,
        smtp_sender_name=os.getenv("SMTP_SENDER_NAME"),
        log_level=log_level,
        database_url=os.getenv("DATABASE_URL"),
        drive_client_id=drive_values["GOOGLE_DRIVE_CLIENT_ID"],
        drive_client_secret=drive_values["GOOGLE_DRIVE_CLIENT_SECRET"],
        drive_refresh_token=drive_values["GOOGLE_DRIVE_REFRESH_TOKEN"],
        drive_parent_folder_id=os.getenv("GOOGLE_DRIVE_PARENT_FOLDER_ID"),
    )


def _is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True

"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class WorkerConfig(BaseModel):
    """Queue worker settings.

    Retry defaults follow the queue options the enqueuing side has always used:
    three attempts with a 5 second exponential backoff.
    """

    poll_interval: str = Field("30s", description="How often the worker polls the job queue")
    batch_size: int = Field(10, ge=1, le=500, description="Jobs claimed per poll")
    max_attempts: int = Field(3, ge=1, le=20, description="Attempts before a job is dead")
    backoff_seconds: float = Field(
        5.0, ge=0.0, le=3600.0, description="Base delay for exponential retry backoff"
    )
    accept_legacy_jobs: bool = Field(
        True,
        description="Treat unknown job kinds carrying a historyId as single forwards",
    )
    lease_seconds: float = Field(
        900.0,
        ge=1.0,
        le=86400.0,
        description="How long a claimed job may run before another poll may claim it again",
    )

    # Computed from poll_interval
    poll_interval_seconds: Optional[int] = None

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: str) -> str:
        """Validate that the poll interval parses and is within range."""
        try:
            validate_duration_range(parse_duration(v))
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_poll_seconds(self):
        self.poll_interval_seconds = parse_duration(self.poll_interval)
        return self


class DeliveryConfig(BaseModel):
    """Delivery orchestration settings."""

    candidate_concurrency: int = Field(
        1,
        ge=1,
        le=16,
        description="Parallel candidates per bulk job (1 = sequential)",
    )
    default_role_label: str = Field(
        "Candidate", min_length=1, description="Role label used when none can be resolved"
    )
    csv_default_name: str = Field(
        "candidates.csv", min_length=1, description="Attachment name for the CSV summary"
    )

    @field_validator("default_role_label", "csv_default_name")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from string fields."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped


class EmailConfig(BaseModel):
    """Outbound email settings."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    signature: str = Field("Recruitment Team", description="Sign-off name in email bodies")


class DriveConfig(BaseModel):
    """Google Drive mirroring settings (credentials come from the environment)."""

    share_with_recipient: bool = Field(
        True,
        description="Share batch folders with the recipient; otherwise anyone-with-link",
    )
    parent_folder_id: Optional[str] = Field(
        None,
        description="Parent for batch folders; overrides GOOGLE_DRIVE_PARENT_FOLDER_ID",
    )
    date_format: str = Field("%Y-%m-%d", description="strftime format for batch folder dates")


class HttpConfig(BaseModel):
    """HTTP client settings for document downloads and Drive calls."""

    request_timeout: int = Field(
        60, ge=5, le=600, description="Request timeout in seconds"
    )
    user_agent: str = Field(
        "DocForwarder/1.0",
        min_length=1,
        description="User-Agent string for HTTP requests",
    )

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        """Strip whitespace from user agent."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the document forwarder."""

    worker: WorkerConfig = Field(default_factory=WorkerConfig, description="Queue worker")
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig, description="Delivery")
    email: EmailConfig = Field(default_factory=EmailConfig, description="Email settings")
    drive: DriveConfig = Field(default_factory=DriveConfig, description="Google Drive")
    http: HttpConfig = Field(default_factory=HttpConfig, description="HTTP clients")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

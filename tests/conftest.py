"""Shared pytest fixtures."""

import pytest

from forwarder.logging.context import clear_log_context
from forwarder.persistence import close_database, init_database

ENV_VARS = {
    "SMTP_HOST": "smtp.example.com",
    "SMTP_PORT": "587",
    "SMTP_USER": "recruiter@example.com",
    "SMTP_PASS": "secret",
}

DRIVE_VARS = {
    "GOOGLE_DRIVE_CLIENT_ID": "client-id",
    "GOOGLE_DRIVE_CLIENT_SECRET": "client-secret",
    "GOOGLE_DRIVE_REFRESH_TOKEN": "refresh-token",
}


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Minimal valid environment with no Drive credentials."""
    for name in (
        "SMTP_FROM",
        "SMTP_SENDER_NAME",
        "LOG_LEVEL",
        "DATABASE_URL",
        "GOOGLE_DRIVE_PARENT_FOLDER_ID",
        *DRIVE_VARS,
    ):
        monkeypatch.delenv(name, raising=False)
    for name, value in ENV_VARS.items():
        monkeypatch.setenv(name, value)
    return ENV_VARS


@pytest.fixture
def database():
    """Fresh in-memory SQLite database with the schema created."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()

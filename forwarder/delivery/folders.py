"""Google Drive folder naming and the folder builder used for batch mirroring."""

import re
from datetime import date, datetime
from typing import Optional, Union

from forwarder.config.models import DriveConfig
from forwarder.domain.models import Candidate, DocumentDescriptor
from forwarder.utils.timestamps import format_day

from .interfaces import CloudFolderService

_FORBIDDEN = re.compile(r"[/\\]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_folder_name(name: str) -> str:
    """Drop path separators and collapse whitespace runs."""
    return _WHITESPACE.sub(" ", _FORBIDDEN.sub(" ", name)).strip()


def batch_folder_name(
    project_title: str,
    day: Union[date, datetime, None] = None,
    date_format: str = "%Y-%m-%d",
) -> str:
    """Name of the batch folder, e.g. ``"Site Survey - 2024-05-01"``."""
    return sanitize_folder_name(f"{project_title} - {format_day(day, date_format)}")


def candidate_folder_name(first_name: str, last_name: str, role_label: str) -> str:
    """Name of a candidate sub-folder, e.g. ``"Jane Doe - Welder"``."""
    full_name = f"{first_name} {last_name}".strip()
    return sanitize_folder_name(f"{full_name} - {role_label}")


def share_target(recipient_email: Optional[str], share_with_recipient: bool = True) -> Optional[str]:
    """Email to share with, or None for anyone-with-the-link access."""
    if share_with_recipient and recipient_email:
        return recipient_email
    return None


class CloudFolderBuilder:
    """Creates the batch folder tree and shares it.

    Every method may raise a storage error; callers decide whether the
    failure is fatal.
    """

    def __init__(self, cloud: CloudFolderService, drive_config: Optional[DriveConfig] = None):
        self.cloud = cloud
        self.config = drive_config or DriveConfig()

    def is_configured(self) -> bool:
        return self.cloud.is_configured()

    def create_batch_folder(self, project_title: str, day: Union[date, datetime, None] = None) -> str:
        name = batch_folder_name(project_title, day, self.config.date_format)
        return self.cloud.create_folder(name)

    def create_candidate_folder(self, batch_folder_id: str, candidate: Candidate, role_label: str) -> str:
        name = candidate_folder_name(candidate.first_name, candidate.last_name, role_label)
        return self.cloud.create_folder(name, parent_id=batch_folder_id)

    def upload_document(self, folder_id: str, document: DocumentDescriptor, content: bytes) -> str:
        return self.cloud.upload_file(folder_id, document.file_name, document.mime_type, content)

    def upload_attachment(self, folder_id: str, file_name: str, mime_type: str, content: bytes) -> str:
        return self.cloud.upload_file(folder_id, file_name, mime_type, content)

    def share_batch_folder(self, folder_id: str, recipient_email: Optional[str]) -> str:
        target = share_target(recipient_email, self.config.share_with_recipient)
        return self.cloud.share_folder(folder_id, target)

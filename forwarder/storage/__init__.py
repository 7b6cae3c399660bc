"""Storage clients: HTTP blob downloads and Google Drive."""

from .blob import HttpBlobStorage
from .drive import GoogleDriveClient
from .exceptions import (
    BlobFetchError,
    DriveAuthError,
    DriveError,
    DriveNotConfiguredError,
    StorageError,
)

__all__ = [
    "HttpBlobStorage",
    "GoogleDriveClient",
    "StorageError",
    "BlobFetchError",
    "DriveError",
    "DriveAuthError",
    "DriveNotConfiguredError",
]

"""Exceptions raised by the storage clients."""

from typing import Optional


class StorageError(Exception):
    """Base class for blob and Drive failures.

    These are transient from the delivery core's point of view: a failure is
    isolated to one document or one upload unless the caller decides otherwise.
    """


class BlobFetchError(StorageError):
    """Downloading a document or CSV failed."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DriveError(StorageError):
    """A Google Drive API call failed."""

    def __init__(
        self,
        message: str,
        operation: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class DriveAuthError(DriveError):
    """The OAuth refresh-token exchange failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message, operation="token_refresh", status_code=status_code)


class DriveNotConfiguredError(DriveError):
    """A Drive call was attempted without credentials."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            "Google Drive credentials are not configured", operation=operation
        )

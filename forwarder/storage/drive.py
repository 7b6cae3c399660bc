"""Google Drive v3 client over plain HTTP.

Authenticates with an OAuth client id/secret and a long-lived refresh token,
exchanging it for short-lived access tokens on demand. Only the handful of
calls the forwarder needs are implemented: create a folder, upload a file,
share a folder and read back its link.
"""

import json
import threading
import time
import uuid
from typing import Any, Dict, Optional

import requests

from forwarder.logging import get_logger

from .exceptions import DriveAuthError, DriveError, DriveNotConfiguredError

logger = get_logger(__name__, component="drive")

TOKEN_URI = "https://oauth2.googleapis.com/token"
FILES_URL = "https://www.googleapis.com/drive/v3/files"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Refresh this many seconds before the token actually expires
_EXPIRY_SKEW = 60


class GoogleDriveClient:
    """Drive client configured with explicit credentials.

    An instance without credentials is valid; ``is_configured()`` reports
    False and every API call raises DriveNotConfiguredError.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        parent_folder_id: Optional[str] = None,
        timeout: int = 60,
        user_agent: str = "DocForwarder/1.0",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.parent_folder_id = parent_folder_id
        self.timeout = timeout

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent})
        self._access_token: Optional[str] = None
        self._expires_at = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_config(cls, env_config, drive_config, http_config) -> "GoogleDriveClient":
        """Build a client from the environment credentials and YAML settings."""
        return cls(
            client_id=env_config.drive_client_id,
            client_secret=env_config.drive_client_secret,
            refresh_token=env_config.drive_refresh_token,
            parent_folder_id=drive_config.parent_folder_id or env_config.drive_parent_folder_id,
            timeout=http_config.request_timeout,
            user_agent=http_config.user_agent,
        )

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        """Create a folder and return its id.

        Without ``parent_id`` the folder goes under the configured parent
        folder, or the Drive root when none is configured.
        """
        metadata: Dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        parent = parent_id or self.parent_folder_id
        if parent:
            metadata["parents"] = [parent]

        created = self._request(
            "create_folder",
            "POST",
            FILES_URL,
            params={"supportsAllDrives": "true", "fields": "id,name"},
            json=metadata,
        )
        folder_id = created.get("id")
        if not folder_id:
            raise DriveError("Folder creation response missing id", operation="create_folder")

        logger.info(
            "Drive folder created",
            extra={"event": "drive.folder.created", "folder_id": folder_id, "parent_id": parent},
        )
        return folder_id

    def upload_file(self, folder_id: str, file_name: str, mime_type: str, content: bytes) -> str:
        """Upload ``content`` into ``folder_id`` and return the file's view URL."""
        boundary = f"docforwarder-{uuid.uuid4().hex}"
        metadata = {"name": file_name, "parents": [folder_id]}
        body = b"".join(
            [
                f"--{boundary}\r\n".encode("utf-8"),
                b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
                json.dumps(metadata).encode("utf-8"),
                b"\r\n",
                f"--{boundary}\r\n".encode("utf-8"),
                f"Content-Type: {mime_type or 'application/octet-stream'}\r\n\r\n".encode("utf-8"),
                content,
                b"\r\n",
                f"--{boundary}--\r\n".encode("utf-8"),
            ]
        )

        uploaded = self._request(
            "upload_file",
            "POST",
            UPLOAD_URL,
            params={
                "uploadType": "multipart",
                "supportsAllDrives": "true",
                "fields": "id,webViewLink",
            },
            data=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )

        logger.debug(
            "Drive file uploaded",
            extra={
                "event": "drive.file.uploaded",
                "folder_id": folder_id,
                "file_id": uploaded.get("id"),
                "bytes": len(content),
            },
        )
        return uploaded.get("webViewLink") or ""

    def share_folder(self, folder_id: str, recipient_email: Optional[str] = None) -> str:
        """Grant read access and return the folder's shareable link.

        With a recipient, a user permission is created for that address;
        otherwise anyone with the link can view.
        """
        if recipient_email:
            permission = {"type": "user", "role": "reader", "emailAddress": recipient_email}
        else:
            permission = {"type": "anyone", "role": "reader"}

        self._request(
            "share_folder",
            "POST",
            f"{FILES_URL}/{folder_id}/permissions",
            params={"supportsAllDrives": "true"},
            json=permission,
        )

        info = self._request(
            "share_folder",
            "GET",
            f"{FILES_URL}/{folder_id}",
            params={"supportsAllDrives": "true", "fields": "webViewLink"},
        )

        logger.info(
            "Drive folder shared",
            extra={
                "event": "drive.folder.shared",
                "folder_id": folder_id,
                "share_type": permission["type"],
            },
        )
        return info.get("webViewLink") or ""

    def _request(self, operation: str, method: str, url: str, **kwargs) -> Dict[str, Any]:
        if not self.is_configured():
            raise DriveNotConfiguredError(operation)

        headers = {
            "Authorization": f"Bearer {self._get_access_token()}",
            "Accept": "application/json",
        }
        headers.update(kwargs.pop("headers", {}))

        try:
            response = self._session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            logger.warning(
                f"Drive {operation} request failed: {e}",
                extra={
                    "event": "drive.request.error",
                    "operation": operation,
                    "error_type": type(e).__name__,
                },
            )
            raise DriveError(f"Drive {operation} failed: {e}", operation=operation) from e

        if response.status_code >= 400:
            logger.warning(
                f"Drive {operation} returned HTTP {response.status_code}",
                extra={
                    "event": "drive.request.http_error",
                    "operation": operation,
                    "status_code": response.status_code,
                },
            )
            raise DriveError(
                f"Drive {operation} failed: HTTP {response.status_code} {_error_message(response)}",
                operation=operation,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DriveError(
                f"Drive {operation} returned invalid JSON", operation=operation
            ) from e

        if not isinstance(payload, dict):
            raise DriveError(f"Drive {operation} response must be a JSON object", operation=operation)
        return payload

    def _get_access_token(self) -> str:
        with self._token_lock:
            if self._access_token and self._expires_at > time.time() + _EXPIRY_SKEW:
                return self._access_token

            form = {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            }
            try:
                response = self._session.post(TOKEN_URI, data=form, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                raise DriveAuthError(f"OAuth token request failed: {e}") from e

            if response.status_code >= 400:
                message = _error_message(response)
                if "invalid_grant" in message:
                    message = "Refresh token is invalid or expired; re-authentication is required"
                raise DriveAuthError(
                    f"OAuth token request failed with HTTP {response.status_code}: {message}",
                    status_code=response.status_code,
                )

            try:
                payload = response.json()
            except ValueError as e:
                raise DriveAuthError("OAuth token response was not JSON") from e

            access_token = payload.get("access_token")
            if not access_token:
                raise DriveAuthError("OAuth token response missing access_token")

            self._access_token = access_token
            self._expires_at = time.time() + int(payload.get("expires_in", 3600))
            logger.debug("Drive access token refreshed", extra={"event": "drive.token.refreshed"})
            return access_token


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.reason or ""

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or "")
    if isinstance(error, str):
        return " ".join(part for part in (error, payload.get("error_description")) if part)
    return response.reason or ""

"""Tests for the Google Drive client with a mocked HTTP session."""

import json
from unittest.mock import Mock

import pytest
import requests

from forwarder.storage.drive import FILES_URL, FOLDER_MIME_TYPE, TOKEN_URI, UPLOAD_URL, GoogleDriveClient
from forwarder.storage.exceptions import DriveAuthError, DriveError, DriveNotConfiguredError


def response(status_code=200, payload=None, reason="OK"):
    resp = Mock()
    resp.status_code = status_code
    resp.reason = reason
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    session = Mock()
    session.headers = {}
    session.post.return_value = response(payload={"access_token": "tok-1", "expires_in": 3600})
    return session


@pytest.fixture
def client(session):
    return GoogleDriveClient(
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        session=session,
    )


class TestConfiguration:
    def test_unconfigured_client(self, session):
        client = GoogleDriveClient(session=session)

        assert not client.is_configured()
        with pytest.raises(DriveNotConfiguredError):
            client.create_folder("Batch")
        session.request.assert_not_called()

    def test_user_agent_header(self, session):
        GoogleDriveClient(session=session, user_agent="DocForwarder/2.0")

        assert session.headers["User-Agent"] == "DocForwarder/2.0"


class TestAccessToken:
    def test_token_is_refreshed_once_and_reused(self, client, session):
        session.request.return_value = response(payload={"id": "f-1"})

        client.create_folder("A")
        client.create_folder("B")

        session.post.assert_called_once()
        assert session.post.call_args.args == (TOKEN_URI,)
        assert session.post.call_args.kwargs["data"]["grant_type"] == "refresh_token"
        headers = session.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tok-1"

    def test_expired_token_is_refreshed(self, client, session):
        session.post.return_value = response(payload={"access_token": "short", "expires_in": 30})
        session.request.return_value = response(payload={"id": "f-1"})

        client.create_folder("A")
        client.create_folder("B")

        assert session.post.call_count == 2

    def test_invalid_grant(self, client, session):
        session.post.return_value = response(
            400, {"error": "invalid_grant", "error_description": "Token has been revoked."}, "Bad Request"
        )

        with pytest.raises(DriveAuthError, match="re-authentication is required") as exc_info:
            client.create_folder("A")

        assert exc_info.value.status_code == 400
        assert exc_info.value.operation == "token_refresh"

    def test_missing_access_token(self, client, session):
        session.post.return_value = response(payload={"expires_in": 3600})

        with pytest.raises(DriveAuthError, match="missing access_token"):
            client.create_folder("A")

    def test_token_network_error(self, client, session):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(DriveAuthError, match="OAuth token request failed"):
            client.create_folder("A")


class TestCreateFolder:
    def test_folder_under_parent(self, client, session):
        session.request.return_value = response(payload={"id": "f-2", "name": "Jane Doe - Welder"})

        folder_id = client.create_folder("Jane Doe - Welder", parent_id="batch-1")

        assert folder_id == "f-2"
        method, url = session.request.call_args.args
        assert (method, url) == ("POST", FILES_URL)
        assert session.request.call_args.kwargs["json"] == {
            "name": "Jane Doe - Welder",
            "mimeType": FOLDER_MIME_TYPE,
            "parents": ["batch-1"],
        }

    def test_configured_parent_is_default(self, session):
        client = GoogleDriveClient("id", "secret", "refresh", parent_folder_id="root-folder", session=session)
        session.request.return_value = response(payload={"id": "f-3"})

        client.create_folder("Batch")

        assert session.request.call_args.kwargs["json"]["parents"] == ["root-folder"]

    def test_drive_root_without_parent(self, client, session):
        session.request.return_value = response(payload={"id": "f-3"})

        client.create_folder("Batch")

        assert "parents" not in session.request.call_args.kwargs["json"]

    def test_missing_id(self, client, session):
        session.request.return_value = response(payload={"name": "Batch"})

        with pytest.raises(DriveError, match="missing id"):
            client.create_folder("Batch")

    def test_http_error(self, client, session):
        session.request.return_value = response(
            403, {"error": {"message": "The user does not have sufficient permissions"}}, "Forbidden"
        )

        with pytest.raises(DriveError, match="HTTP 403 The user does not have sufficient permissions") as exc_info:
            client.create_folder("Batch")

        assert exc_info.value.status_code == 403
        assert exc_info.value.operation == "create_folder"

    def test_network_error(self, client, session):
        session.request.side_effect = requests.exceptions.Timeout("read timed out")

        with pytest.raises(DriveError, match="Drive create_folder failed"):
            client.create_folder("Batch")

    def test_invalid_json(self, client, session):
        session.request.return_value = response(payload=None)

        with pytest.raises(DriveError, match="invalid JSON"):
            client.create_folder("Batch")


class TestUploadFile:
    def test_multipart_upload(self, client, session):
        session.request.return_value = response(
            payload={"id": "file-1", "webViewLink": "https://drive.google.com/file/d/file-1/view"}
        )

        link = client.upload_file("folder-1", "cv.pdf", "application/pdf", b"%PDF-1.4")

        assert link == "https://drive.google.com/file/d/file-1/view"
        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("POST", UPLOAD_URL)
        assert kwargs["params"]["uploadType"] == "multipart"

        content_type = kwargs["headers"]["Content-Type"]
        assert content_type.startswith("multipart/related; boundary=")
        boundary = content_type.split("boundary=", 1)[1]

        body = kwargs["data"]
        parts = body.split(f"--{boundary}".encode())
        assert len(parts) == 4
        metadata = json.loads(parts[1].split(b"\r\n\r\n", 1)[1].strip())
        assert metadata == {"name": "cv.pdf", "parents": ["folder-1"]}
        assert b"Content-Type: application/pdf\r\n\r\n%PDF-1.4\r\n" in parts[2]
        assert kwargs["headers"]["Authorization"] == "Bearer tok-1"

    def test_upload_without_link(self, client, session):
        session.request.return_value = response(payload={"id": "file-1"})

        assert client.upload_file("folder-1", "a.bin", "", b"x") == ""


class TestShareFolder:
    def test_share_with_user(self, client, session):
        session.request.side_effect = [
            response(payload={"id": "perm-1"}),
            response(payload={"webViewLink": "https://drive.google.com/drive/folders/f-1"}),
        ]

        link = client.share_folder("f-1", "client@example.com")

        assert link == "https://drive.google.com/drive/folders/f-1"
        first, second = session.request.call_args_list
        assert first.args == ("POST", f"{FILES_URL}/f-1/permissions")
        assert first.kwargs["json"] == {
            "type": "user",
            "role": "reader",
            "emailAddress": "client@example.com",
        }
        assert second.args == ("GET", f"{FILES_URL}/f-1")

    def test_share_with_anyone(self, client, session):
        session.request.side_effect = [
            response(payload={"id": "perm-1"}),
            response(payload={"webViewLink": "https://drive.google.com/drive/folders/f-1"}),
        ]

        client.share_folder("f-1")

        assert session.request.call_args_list[0].kwargs["json"] == {"type": "anyone", "role": "reader"}

    def test_permission_failure(self, client, session):
        session.request.return_value = response(404, {"error": {"message": "File not found: f-1"}}, "Not Found")

        with pytest.raises(DriveError, match="File not found"):
            client.share_folder("f-1", "client@example.com")

        session.request.assert_called_once()

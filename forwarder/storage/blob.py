"""HTTP blob storage: downloads document and CSV bytes by URL."""

import requests

from forwarder.logging import get_logger

from .exceptions import BlobFetchError

logger = get_logger(__name__, component="blob_storage")


class HttpBlobStorage:
    """Fetch file content over HTTP(S) with a shared session.

    Attributes:
        timeout: Request timeout in seconds
        user_agent: User-Agent header sent with every request
    """

    def __init__(self, timeout: int = 60, user_agent: str = "DocForwarder/1.0") -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": user_agent})

    @classmethod
    def from_config(cls, http_config) -> "HttpBlobStorage":
        return cls(timeout=http_config.request_timeout, user_agent=http_config.user_agent)

    def fetch(self, url: str) -> bytes:
        """Download ``url`` and return the body.

        Raises:
            BlobFetchError: On timeout, connection failure or HTTP 4xx/5xx
        """
        if not url:
            raise BlobFetchError("Empty document URL", url=url)

        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Download timed out after {self.timeout} seconds",
                extra={"event": "storage.blob.timeout", "url": url},
            )
            raise BlobFetchError(
                f"Download of {url} timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.warning(
                f"Download failed: {e}",
                extra={
                    "event": "storage.blob.error",
                    "error_type": type(e).__name__,
                    "url": url,
                },
            )
            raise BlobFetchError(f"Download of {url} failed: {e}", url=url) from e

        if response.status_code >= 400:
            logger.warning(
                f"HTTP {response.status_code} downloading document",
                extra={
                    "event": "storage.blob.http_error",
                    "status_code": response.status_code,
                    "url": url,
                },
            )
            raise BlobFetchError(
                f"HTTP {response.status_code}: {response.reason}",
                url=url,
                status_code=response.status_code,
            )

        logger.debug(
            "Document downloaded",
            extra={"event": "storage.blob.fetched", "url": url, "bytes": len(response.content)},
        )
        return response.content

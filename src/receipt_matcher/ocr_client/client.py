"""
Document/OCR text service client (Paperless-ngx compatible API).

The service does the OCR or PDF text-layer extraction; this client only
fetches the resulting text from a document's `content` field.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from receipt_matcher.schemas import SourceKind

logger = logging.getLogger(__name__)

IMAGE_MIME_PREFIX = "image/"


class OCRError(Exception):
    """Base exception for OCR client errors."""

    pass


class OCRAPIError(OCRError):
    """API returned an error response."""

    def __init__(self, status_code: int, message: str, response_body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"OCR API error {status_code}: {message}")


class OCRConnectionError(OCRError):
    """Failed to connect to the OCR service."""

    pass


@dataclass
class OCRDocument:
    """Text the service extracted for one document."""

    id: int
    title: str
    content: str  # OCR text
    original_file_name: Optional[str] = None
    mime_type: Optional[str] = None

    @property
    def source_kind(self) -> SourceKind:
        if self.mime_type and self.mime_type.startswith(IMAGE_MIME_PREFIX):
            return SourceKind.IMAGE
        return SourceKind.DOCUMENT

    @classmethod
    def from_api_response(cls, data: dict) -> "OCRDocument":
        """Create from API response."""
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            content=data.get("content") or "",
            original_file_name=data.get("original_file_name"),
            mime_type=data.get("mime_type"),
        )


class OCRClient:
    """
    Client for a Paperless-ngx style document API.

    Features:
    - Fetch a document's extracted text
    - Automatic retry with backoff
    """

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize OCR client.

        Args:
            base_url: Service URL (e.g., "http://192.168.1.138:8000")
            token: API token for authentication
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for transient failures
            backoff_factor: Backoff factor for retries
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Token {token}",
                "Accept": "application/json",
            }
        )

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _request(self, method: str, endpoint: str, params: Optional[dict] = None) -> requests.Response:
        """Make an API request with error handling."""
        url = f"{self.base_url}{endpoint}"

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            raise OCRConnectionError(f"Failed to connect to OCR service at {self.base_url}: {e}")
        except requests.exceptions.Timeout as e:
            raise OCRConnectionError(f"Request to OCR service timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise OCRError(f"Request failed: {e}")

        if not response.ok:
            raise OCRAPIError(
                status_code=response.status_code,
                message=response.reason,
                response_body=response.text,
            )

        return response

    def test_connection(self) -> bool:
        """Test connection to the OCR service API."""
        try:
            self._request("GET", "/api/")
            return True
        except OCRError as e:
            logger.warning("OCR service connection test failed: %s", e)
            return False

    def get_document(self, document_id: int) -> OCRDocument:
        """
        Get a document's extracted text by ID.

        Args:
            document_id: Document ID on the service

        Raises:
            OCRError: if the document could not be fetched
        """
        response = self._request("GET", f"/api/documents/{document_id}/")
        try:
            data = response.json()
        except ValueError as e:
            raise OCRError(f"Invalid JSON for document {document_id}: {e}")
        return OCRDocument.from_api_response(data)

    def get_document_text(self, document_id: int) -> str:
        """Get only the extracted text of a document."""
        return self.get_document(document_id).content


def read_text_file(path: Path | str) -> str:
    """
    Read already-extracted text from a local file.

    Raises:
        OSError: if the file cannot be read
    """
    return Path(path).read_text(encoding="utf-8", errors="replace")

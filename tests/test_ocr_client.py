"""
Tests for the OCR service client.

These tests use responses library to mock HTTP requests,
validating client behavior without making real API calls.
"""

import pytest
import responses

from receipt_matcher.ocr_client import (
    OCRAPIError,
    OCRClient,
    OCRConnectionError,
    OCRDocument,
    read_text_file,
)
from receipt_matcher.schemas import SourceKind


class TestOCRClient:
    """Test OCR service API client."""

    BASE_URL = "http://ocr.test:8000"
    TOKEN = "test-token-12345"

    @responses.activate
    def test_test_connection_success(self):
        """Test connection check succeeds with valid response."""
        responses.add(responses.GET, f"{self.BASE_URL}/api/", json={"status": "ok"}, status=200)

        client = OCRClient(self.BASE_URL, self.TOKEN)
        assert client.test_connection() is True

    @responses.activate
    def test_test_connection_failure(self):
        """Test connection check fails with client error."""
        responses.add(responses.GET, f"{self.BASE_URL}/api/", json={"detail": "nope"}, status=403)

        client = OCRClient(self.BASE_URL, self.TOKEN)
        assert client.test_connection() is False

    @responses.activate
    def test_get_document(self, sample_ocr_document):
        """Document text comes from the content field."""
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/documents/321/",
            json=sample_ocr_document,
            status=200,
        )

        client = OCRClient(self.BASE_URL, self.TOKEN)
        doc = client.get_document(321)

        assert doc.id == 321
        assert "Fresh Market" in doc.content
        assert doc.source_kind == SourceKind.IMAGE
        assert responses.calls[0].request.headers["Authorization"] == f"Token {self.TOKEN}"

    @responses.activate
    def test_get_document_text(self, sample_ocr_document):
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/documents/321/",
            json=sample_ocr_document,
            status=200,
        )

        client = OCRClient(self.BASE_URL + "/", self.TOKEN)
        assert client.get_document_text(321) == sample_ocr_document["content"]

    @responses.activate
    def test_not_found(self):
        """HTTP errors surface as OCRAPIError with the status code."""
        responses.add(
            responses.GET,
            f"{self.BASE_URL}/api/documents/9/",
            json={"detail": "Not found."},
            status=404,
        )

        client = OCRClient(self.BASE_URL, self.TOKEN)
        with pytest.raises(OCRAPIError) as exc_info:
            client.get_document(9)

        assert exc_info.value.status_code == 404
        assert "Not found" in exc_info.value.response_body

    @responses.activate
    def test_connection_error(self):
        """Unreachable service surfaces as OCRConnectionError."""
        client = OCRClient(self.BASE_URL, self.TOKEN, max_retries=0)
        with pytest.raises(OCRConnectionError):
            client.get_document(1)


class TestOCRDocument:
    """Tests for document parsing."""

    def test_pdf_is_document(self):
        doc = OCRDocument.from_api_response({"id": 1, "content": None, "mime_type": "application/pdf"})
        assert doc.content == ""
        assert doc.source_kind == SourceKind.DOCUMENT


class TestReadTextFile:
    """Tests for the local text source."""

    def test_reads_text(self, tmp_path):
        path = tmp_path / "r.txt"
        path.write_text("Total: 5.00\n")
        assert read_text_file(path) == "Total: 5.00\n"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            read_text_file(tmp_path / "nope.txt")

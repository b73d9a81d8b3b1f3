"""
Document/OCR text service client.

Provides:
- Get a document's extracted text (Paperless-ngx `content` field)
- Read already-extracted text from a local file
- Retry/backoff for transient network failures
"""

from .client import (
    OCRAPIError,
    OCRClient,
    OCRConnectionError,
    OCRDocument,
    OCRError,
    read_text_file,
)

__all__ = [
    "OCRAPIError",
    "OCRClient",
    "OCRConnectionError",
    "OCRDocument",
    "OCRError",
    "read_text_file",
]

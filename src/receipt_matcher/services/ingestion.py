"""Receipt ingestion: fetch text, extract fields, store them, try an auto-match."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from receipt_matcher.config import Config
from receipt_matcher.extractors import ExtractionResult, ReceiptExtractor
from receipt_matcher.ocr_client import OCRError, read_text_file
from receipt_matcher.schemas import ProcessingStatus, SourceKind
from receipt_matcher.services.auto_match import AutoMatchDecision, AutoMatchService

if TYPE_CHECKING:
    from receipt_matcher.ocr_client import OCRClient
    from receipt_matcher.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Result of ingesting one receipt."""

    receipt_id: int
    status: ProcessingStatus
    extraction: ExtractionResult | None = None
    auto_match: AutoMatchDecision | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == ProcessingStatus.COMPLETED


class ReceiptIngestionService:
    """Turns an uploaded receipt into a stored receipt with extracted fields.

    A text source that cannot be read leaves the receipt failed with no
    fields. Text without any recognizable field is not a failure: the
    receipt completes with every field null.
    """

    def __init__(
        self,
        state_store: StateStore,
        config: Config | None = None,
        extractor: ReceiptExtractor | None = None,
        auto_matcher: AutoMatchService | None = None,
    ) -> None:
        self.store = state_store
        self.config = config or Config()
        self.extractor = extractor or ReceiptExtractor(self.config.extraction)
        self.auto_matcher = auto_matcher or AutoMatchService(state_store, self.config.matching)

    def ingest(
        self,
        filename: str,
        text_source: Callable[[], str],
        source_kind: SourceKind = SourceKind.DOCUMENT,
    ) -> IngestionResult:
        """Ingest a receipt whose text is produced by text_source.

        Args:
            filename: Name recorded on the receipt.
            text_source: Returns the OCR/PDF text; raises OCRError or OSError
                when the input is unreadable.
            source_kind: Whether the text came from a PDF text layer or OCR.
        """
        receipt_id = self.store.create_receipt(filename, source_kind)
        logger.info("Processing receipt %d (%s)", receipt_id, filename)

        try:
            text = text_source()
        except (OCRError, OSError) as e:
            logger.error("Could not read text for receipt %d: %s", receipt_id, e)
            self.store.mark_receipt_failed(receipt_id)
            return IngestionResult(receipt_id, ProcessingStatus.FAILED, error=str(e))

        extraction = self.extractor.extract(text, source_kind)
        self.store.update_receipt_fields(
            receipt_id,
            amount=extraction.amount,
            receipt_date=extraction.date,
            merchant=extraction.merchant,
            status=ProcessingStatus.COMPLETED,
            ocr_text=text,
        )
        result = IngestionResult(receipt_id, ProcessingStatus.COMPLETED, extraction=extraction)

        if extraction.amount is not None:
            result.auto_match = self.auto_matcher.match_receipt(receipt_id)
        else:
            logger.info("Receipt %d has no amount; skipping auto-match", receipt_id)

        return result

    def ingest_file(self, path: Path | str, source_kind: SourceKind = SourceKind.DOCUMENT) -> IngestionResult:
        """Ingest a local file holding already-extracted text."""
        path = Path(path)
        return self.ingest(path.name, lambda: read_text_file(path), source_kind)

    def ingest_document(
        self,
        client: OCRClient,
        document_id: int,
        source_kind: SourceKind | None = None,
    ) -> IngestionResult:
        """Ingest a document from the OCR service.

        The source kind follows the document's MIME type unless given.
        """
        filename = f"document-{document_id}"
        try:
            document = client.get_document(document_id)
        except OCRError as e:
            receipt_id = self.store.create_receipt(filename, source_kind or SourceKind.DOCUMENT)
            logger.error("Could not fetch document %d: %s", document_id, e)
            self.store.mark_receipt_failed(receipt_id)
            return IngestionResult(receipt_id, ProcessingStatus.FAILED, error=str(e))

        return self.ingest(
            document.original_file_name or filename,
            lambda: document.content,
            source_kind or document.source_kind,
        )

"""
Field-extraction pipeline: raw receipt text -> amount, date, merchant.
"""

import logging
from decimal import Decimal
from typing import Optional

from ..config import ExtractionConfig
from ..schemas import SourceKind
from .amounts import AmountLimits, extract_amounts
from .base import ExtractionResult
from .dates import extract_date
from .merchants import extract_merchant

logger = logging.getLogger(__name__)

NO_TEXT_NOTE = "no extractable text"


class ReceiptExtractor:
    """
    Extract amount, date and merchant from OCR/PDF text.

    Never raises on malformed input: each strategy that fails is skipped and
    the field simply stays None.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        """Initialize with extraction limits (defaults when config is None)."""
        self.config = config or ExtractionConfig()
        self.limits = AmountLimits(
            max_amount=Decimal(str(self.config.max_amount)),
            max_tax_amount=Decimal(str(self.config.max_tax_amount)),
        )

    def has_text(self, text: str, source_kind: SourceKind = SourceKind.DOCUMENT) -> bool:
        """
        Check whether there is anything to extract from.

        A PDF whose text layer is (almost) empty is a scanned document
        without OCR; OCR output from an image is usable as long as it is
        not blank.
        """
        stripped = (text or "").strip()
        if source_kind == SourceKind.DOCUMENT:
            return len(stripped) >= self.config.min_text_length
        return bool(stripped)

    def extract(self, text: str, source_kind: SourceKind = SourceKind.DOCUMENT) -> ExtractionResult:
        """Extract receipt fields from text."""
        result = ExtractionResult(source_kind=source_kind)

        if not self.has_text(text, source_kind):
            result.has_text = False
            result.provenance["text"] = NO_TEXT_NOTE
            logger.info("No extractable text (%s, %d chars)", source_kind.value, len(text or ""))
            return result

        breakdown, amount_notes = extract_amounts(text, self.limits)
        result.breakdown = breakdown
        result.amount = breakdown.final_amount
        result.provenance.update({f"amount.{k}": v for k, v in amount_notes.items()})
        if result.amount is not None:
            result.provenance["amount"] = breakdown.final_source

        result.date, date_note = extract_date(text)
        if date_note:
            result.provenance["date"] = date_note

        result.merchant, merchant_note = extract_merchant(
            text,
            max_lines=self.config.merchant_header_lines,
            account_holder_names=tuple(self.config.account_holder_names),
        )
        if merchant_note:
            result.provenance["merchant"] = merchant_note

        logger.debug(
            "Extracted amount=%s (%s) date=%s merchant=%s",
            result.amount,
            result.provenance.get("amount", "not found"),
            result.date,
            result.merchant,
        )
        return result

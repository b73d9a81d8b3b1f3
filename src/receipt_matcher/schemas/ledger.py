"""
Domain records shared by the extractor, the matching engine and the store.

Amounts are Decimal with two decimal places. Transaction amounts are signed
(charges are usually negative); receipt amounts are always positive.
"""

import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class ProcessingStatus(str, Enum):
    """Receipt text-extraction lifecycle."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MatchStatus(str, Enum):
    """Status of a persisted receipt/transaction link."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    AUTO_MATCHED = "auto_matched"


class SourceKind(str, Enum):
    """Where the receipt text came from."""

    DOCUMENT = "document"  # PDF with a text layer
    IMAGE = "image"  # Rasterized image run through OCR


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


@dataclass
class Transaction:
    """Imported ledger line."""

    id: int
    date: date
    amount: Decimal  # Signed
    description: str
    category: Optional[str] = None
    external_reference: Optional[str] = None
    sales_tax: Optional[Decimal] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Transaction":
        """Create from database row."""
        return cls(
            id=row["id"],
            date=datetime.strptime(row["transaction_date"], "%Y-%m-%d").date(),
            amount=Decimal(row["amount"]),
            description=row["description"] or "",
            category=row["category"],
            external_reference=row["external_reference"],
            sales_tax=_to_decimal(row["sales_tax"]),
        )


@dataclass
class Receipt:
    """Uploaded document plus its extracted fields."""

    id: int
    filename: str
    source_kind: SourceKind = SourceKind.DOCUMENT
    ocr_text: str = ""
    extracted_amount: Optional[Decimal] = None
    extracted_date: Optional[str] = None  # MM/DD/YYYY
    extracted_merchant: Optional[str] = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Receipt":
        """Create from database row."""
        return cls(
            id=row["id"],
            filename=row["filename"],
            source_kind=SourceKind(row["source_kind"]),
            ocr_text=row["ocr_text"] or "",
            extracted_amount=_to_decimal(row["extracted_amount"]),
            extracted_date=row["extracted_date"],
            extracted_merchant=row["extracted_merchant"],
            processing_status=ProcessingStatus(row["processing_status"]),
        )


@dataclass
class Match:
    """Persisted decision linking one receipt to one transaction."""

    id: int
    transaction_id: int
    receipt_id: int
    confidence: int
    status: MatchStatus
    user_confirmed: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Match":
        """Create from database row."""
        return cls(
            id=row["id"],
            transaction_id=row["transaction_id"],
            receipt_id=row["receipt_id"],
            confidence=row["match_confidence"],
            status=MatchStatus(row["match_status"]),
            user_confirmed=bool(row["user_confirmed"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

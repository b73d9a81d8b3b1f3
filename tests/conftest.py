"""Test fixtures and utilities."""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from receipt_matcher.schemas import Receipt, Transaction

# Invoice whose real total sits on its own line below a bare "Total" label,
# with a misleading flat label further down
SAMPLE_MULTILINE_TOTAL = """ACME Construction LLC
123 Main St
Springfield

Invoice Date: April 10, 2025

Concrete pour and finishing
Total
$4,763.00

TOTAL: 12.50
"""

# Vendor invoice printed on the customer's letterhead
SAMPLE_BIRDSEYE = """Chasco Constructors
Bill To
Site 14 Camera Install
Birdseye Surveillance LLC
Invoice #1234
Date paidJuly 22, 2025
Amount paid $1,250.00
"""

SAMPLE_STARLINK = """Chasco Constructors LLC
Starlink subscription
SpaceX
Payment USD 120.00
"""

SAMPLE_GROCERY = """Fresh Market
42 Elm Street
Date: 7/4/25

Bananas 1.29
Coffee 8.99
Subtotal: 10.28
Tax: 0.82
Grand Total: $11.10
"""


@pytest.fixture
def sample_multiline_total() -> str:
    """Invoice where layout evidence beats a later flat label."""
    return SAMPLE_MULTILINE_TOTAL


@pytest.fixture
def sample_birdseye() -> str:
    """Birdseye invoice on the customer's letterhead."""
    return SAMPLE_BIRDSEYE


@pytest.fixture
def sample_starlink() -> str:
    """Starlink bill with the account holder in the header."""
    return SAMPLE_STARLINK


@pytest.fixture
def sample_grocery() -> str:
    """Grocery receipt with subtotal, tax and grand total."""
    return SAMPLE_GROCERY


@pytest.fixture
def sample_ocr_document() -> dict:
    """Sample OCR service document API response."""
    return {
        "id": 321,
        "title": "Fresh Market receipt",
        "content": SAMPLE_GROCERY,
        "original_file_name": "fresh_market.jpg",
        "mime_type": "image/jpeg",
    }


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


def make_transaction(
    tx_id: int = 1,
    amount: str = "-100.00",
    description: str = "OPENAI CHATGPT SUBSCRIPTION",
    tx_date: date = date(2025, 7, 22),
) -> Transaction:
    """Build an in-memory transaction."""
    return Transaction(id=tx_id, date=tx_date, amount=Decimal(amount), description=description)


def make_receipt(
    receipt_id: int = 1,
    amount: str | None = "100.00",
    receipt_date: str | None = "07/22/2025",
    merchant: str | None = "OpenAI LLC",
) -> Receipt:
    """Build an in-memory receipt with extracted fields."""
    return Receipt(
        id=receipt_id,
        filename=f"receipt-{receipt_id}.pdf",
        extracted_amount=Decimal(amount) if amount is not None else None,
        extracted_date=receipt_date,
        extracted_merchant=merchant,
    )

"""
Receipt field extractors.

Provides:
- ReceiptExtractor: text -> amount/date/merchant
- Amount, date and merchant strategy tables, each testable in isolation
- Known-vendor override table
"""

from .amounts import AMOUNT_STRATEGIES, AmountLimits, extract_amounts, parse_amount
from .base import AmountBreakdown, ExtractionResult
from .dates import DATE_STRATEGIES, extract_date
from .merchants import VENDOR_OVERRIDES, OverrideMode, VendorOverride, extract_merchant
from .pipeline import ReceiptExtractor

__all__ = [
    "AMOUNT_STRATEGIES",
    "DATE_STRATEGIES",
    "VENDOR_OVERRIDES",
    "AmountBreakdown",
    "AmountLimits",
    "ExtractionResult",
    "OverrideMode",
    "ReceiptExtractor",
    "VendorOverride",
    "extract_amounts",
    "extract_date",
    "extract_merchant",
    "parse_amount",
]

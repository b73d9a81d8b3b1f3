"""Services layer for receipt ingestion and auto-matching."""

from .auto_match import AutoMatchDecision, AutoMatchResult, AutoMatchService
from .ingestion import IngestionResult, ReceiptIngestionService

__all__ = [
    "AutoMatchDecision",
    "AutoMatchResult",
    "AutoMatchService",
    "IngestionResult",
    "ReceiptIngestionService",
]

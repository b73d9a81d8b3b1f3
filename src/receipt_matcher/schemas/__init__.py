"""
Shared domain records.

These are the only models passed between extraction, matching and storage.
"""

from .ledger import (
    Match,
    MatchStatus,
    ProcessingStatus,
    Receipt,
    SourceKind,
    Transaction,
)

__all__ = [
    "Match",
    "MatchStatus",
    "ProcessingStatus",
    "Receipt",
    "SourceKind",
    "Transaction",
]

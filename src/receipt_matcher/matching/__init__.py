"""Match-scoring engine for pairing receipts with ledger transactions."""

from receipt_matcher.matching.engine import (
    MatchCandidate,
    MatchingEngine,
    clamp_confidence,
    parse_receipt_date,
)

__all__ = ["MatchCandidate", "MatchingEngine", "clamp_confidence", "parse_receipt_date"]

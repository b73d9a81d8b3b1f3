"""Match-scoring engine for pairing receipts with ledger transactions.

Scores every transaction in a pool against one receipt's extracted fields
using three signals:
- Amount: distance between the receipt total and |transaction amount|
- Date: calendar days between receipt date and transaction date
- Merchant: receipt merchant keywords found in the transaction description

Scoring is a pure function of its inputs; nothing is read from or written
to the state store here.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Union

from receipt_matcher.schemas import Receipt, Transaction

if TYPE_CHECKING:
    from receipt_matcher.config import MatchingConfig

logger = logging.getLogger(__name__)

# Amount signal: exact match, then (max difference, points, reason) tiers
AMOUNT_EXACT_POINTS = 60
AMOUNT_TIERS: tuple[tuple[Decimal, int, str], ...] = (
    (Decimal("1"), 40, "Very close amount match"),
    (Decimal("5"), 20, "Close amount match"),
    (Decimal("10"), 10, "Approximate amount match"),
)

# Date signal: (max days apart, points, reason)
DATE_TIERS: tuple[tuple[int, int, str], ...] = (
    (0, 25, "Same date"),
    (1, 15, "Within 1 day"),
    (3, 5, "Within 3 days"),
)

# Merchant signal
MERCHANT_BASE_POINTS = 15
SIGNIFICANT_WORD_BONUS = 5
SIGNIFICANT_WORD_LENGTH = 5
MERCHANT_CAP = 20
MIN_MERCHANT_WORD_LENGTH = 3
MERCHANT_STOPWORDS = frozenset({"llc", "inc", "corp", "ltd", "company", "co"})

MIN_CANDIDATE_CONFIDENCE = 10
MAX_CONFIDENCE = 100

RECEIPT_DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y")


@dataclass
class MatchCandidate:
    """A scored receipt/transaction pairing. Never persisted."""

    transaction: Transaction
    confidence: int
    reasons: list[str] = field(default_factory=list)
    amount_diff: Decimal = Decimal("0")
    # Unclamped score; amount + date + merchant caps add up to 105
    raw_confidence: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        tx = self.transaction
        return {
            "transaction_id": tx.id,
            "transaction_date": tx.date.isoformat(),
            "description": tx.description,
            "amount": str(tx.amount),
            "confidence": self.confidence,
            "raw_confidence": self.raw_confidence,
            "reasons": list(self.reasons),
            "amount_diff": str(self.amount_diff),
        }


def clamp_confidence(value: Union[int, float]) -> int:
    """Bound a score to [0, 100]."""
    return int(max(0, min(MAX_CONFIDENCE, value)))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive scores."""
    return int(math.floor(value + 0.5))


def parse_receipt_date(value: Optional[str]) -> Optional[date]:
    """Parse an extracted MM/DD/YYYY (or M/D/YY) date; None when unparseable."""
    if not value:
        return None
    normalized = value.strip().replace("-", "/")
    for fmt in RECEIPT_DATE_FORMATS:
        try:
            return datetime.strptime(normalized, fmt).date()
        except ValueError:
            continue
    return None


def score_amount(receipt_amount: Decimal, transaction_amount: Decimal) -> tuple[int, Optional[str], Decimal]:
    """Score the amount signal.

    Transaction amounts are signed, so the absolute value is compared.

    Returns:
        (points, reason or None, absolute difference)
    """
    diff = abs(abs(transaction_amount) - receipt_amount)
    if diff == 0:
        return AMOUNT_EXACT_POINTS, "Exact amount match", diff
    for max_diff, points, reason in AMOUNT_TIERS:
        if diff <= max_diff:
            return points, reason, diff
    return 0, None, diff


def score_date(receipt_date: Optional[date], transaction_date: Optional[date]) -> tuple[int, Optional[str]]:
    """Score the date signal; skipped (0) when either date is missing."""
    if receipt_date is None or transaction_date is None:
        return 0, None
    days_diff = abs((receipt_date - transaction_date).days)
    for max_days, points, reason in DATE_TIERS:
        if days_diff <= max_days:
            return points, reason
    return 0, None


def merchant_keywords(merchant: str) -> list[str]:
    """Lowercased merchant words that carry meaning (no short words or legal suffixes)."""
    return [
        word
        for word in merchant.lower().split()
        if len(word) >= MIN_MERCHANT_WORD_LENGTH and word not in MERCHANT_STOPWORDS
    ]


def score_merchant(merchant: Optional[str], description: Optional[str]) -> tuple[float, Optional[str]]:
    """Score the merchant signal.

    Each keyword found in the description counts as a match, and keywords of
    five or more letters also earn a bonus ("openai" says more than "gas").
    """
    if not merchant or not description:
        return 0.0, None

    keywords = merchant_keywords(merchant)
    description_lower = description.lower()

    word_matches = 0
    significant_matches = 0
    for word in keywords:
        if word in description_lower:
            word_matches += 1
            if len(word) >= SIGNIFICANT_WORD_LENGTH:
                significant_matches += 1

    if word_matches == 0:
        return 0.0, None

    base = word_matches / len(keywords) * MERCHANT_BASE_POINTS
    bonus = significant_matches * SIGNIFICANT_WORD_BONUS
    points = min(base + bonus, MERCHANT_CAP)
    reason = f"Merchant keywords match ({word_matches} words, {significant_matches} significant)"
    return points, reason


class MatchingEngine:
    """Rank ledger transactions as candidates for one receipt.

    Candidates need a combined confidence of at least 10 and come back
    sorted by confidence, highest first; equal scores keep the order of the
    input pool.
    """

    def __init__(self, config: Optional[MatchingConfig] = None) -> None:
        """Initialize the matching engine.

        Args:
            config: Matching settings; defaults when None.
        """
        self.min_confidence = (
            config.min_candidate_confidence if config else MIN_CANDIDATE_CONFIDENCE
        )
        self.clamp = config.clamp_confidence if config else True

    def find_candidates(
        self,
        receipt: Receipt,
        transactions: Iterable[Transaction],
    ) -> list[MatchCandidate]:
        """Score transactions against a receipt.

        Args:
            receipt: Receipt with extracted fields.
            transactions: Candidate pool (already scoped and unmatched).

        Returns:
            Candidates sorted by confidence descending. Empty when the
            receipt has no extracted amount or the pool is empty.
        """
        pool: Sequence[Transaction] = list(transactions)
        if receipt.extracted_amount is None or not pool:
            return []

        receipt_date = parse_receipt_date(receipt.extracted_date)
        candidates: list[MatchCandidate] = []

        for tx in pool:
            candidate = self._score(receipt, receipt_date, tx)
            if candidate is not None:
                candidates.append(candidate)

        # sorted() is stable: ties keep pool order
        candidates = sorted(candidates, key=lambda c: c.raw_confidence, reverse=True)
        logger.debug(
            "Receipt %s: %d of %d transactions scored as candidates",
            receipt.id,
            len(candidates),
            len(pool),
        )
        return candidates

    def score_candidate(self, receipt: Receipt, transaction: Transaction) -> Optional[MatchCandidate]:
        """Score a single pairing; None when below the candidate minimum."""
        if receipt.extracted_amount is None:
            return None
        return self._score(receipt, parse_receipt_date(receipt.extracted_date), transaction)

    def _score(
        self,
        receipt: Receipt,
        receipt_date: Optional[date],
        tx: Transaction,
    ) -> Optional[MatchCandidate]:
        confidence = 0.0
        reasons: list[str] = []

        amount_points, amount_reason, amount_diff = score_amount(receipt.extracted_amount, tx.amount)
        confidence += amount_points
        if amount_reason:
            reasons.append(amount_reason)

        date_points, date_reason = score_date(receipt_date, tx.date)
        confidence += date_points
        if date_reason:
            reasons.append(date_reason)

        merchant_points, merchant_reason = score_merchant(receipt.extracted_merchant, tx.description)
        confidence += merchant_points
        if merchant_reason:
            reasons.append(merchant_reason)

        if confidence < self.min_confidence:
            return None

        raw = round_half_up(confidence)
        return MatchCandidate(
            transaction=tx,
            confidence=clamp_confidence(raw) if self.clamp else raw,
            reasons=reasons,
            amount_diff=amount_diff,
            raw_confidence=raw,
        )

"""Auto-match policy: link receipts to their best transaction when confident enough.

Two entry points share the decision rule:
- match_receipt: one freshly processed receipt against the most recent
  transactions (pool bounded by matching.single_receipt_pool_limit)
- run_bulk: every unmatched receipt against every unmatched transaction

A receipt is linked only when its top candidate reaches the threshold. The
link is an unconfirmed auto_matched row keyed on the (transaction, receipt)
pair, so re-running over an unchanged pool rewrites the same rows.

Concurrency is best-effort. Two overlapping runs may link one transaction to
two receipts; the store only guarantees a single *confirmed* match per
transaction and per receipt.
"""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from receipt_matcher.config import MatchingConfig
from receipt_matcher.matching import MatchCandidate, MatchingEngine
from receipt_matcher.schemas import MatchStatus, Receipt, Transaction
from receipt_matcher.state_store import NotFoundError, StateStoreError

if TYPE_CHECKING:
    from receipt_matcher.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class AutoMatchDecision:
    """Outcome for one receipt."""

    receipt_id: int
    matched: bool = False
    transaction_id: int | None = None
    confidence: int | None = None
    reasons: list[str] = field(default_factory=list)
    match_id: int | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "receipt_id": self.receipt_id,
            "matched": self.matched,
            "transaction_id": self.transaction_id,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
            "match_id": self.match_id,
        }


@dataclass
class AutoMatchResult:
    """Result of a bulk auto-match run."""

    matched: int = 0
    total_receipts: int = 0
    threshold: int = 0
    decisions: list[AutoMatchDecision] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Return True if every chosen link was stored."""
        return not self.errors


class AutoMatchService:
    """Applies the auto-match threshold to engine results and stores the links.

    Usage:
        service = AutoMatchService(state_store, config.matching)
        result = service.run_bulk()
    """

    def __init__(
        self,
        state_store: StateStore,
        config: MatchingConfig | None = None,
        engine: MatchingEngine | None = None,
    ) -> None:
        """Initialize the auto-match service.

        Args:
            state_store: State store for pools and match rows.
            config: Matching settings; defaults when None.
            engine: Scoring engine; built from config when None.
        """
        self.store = state_store
        self.config = config or MatchingConfig()
        self.engine = engine or MatchingEngine(self.config)

    def find_matches_for_receipt(self, receipt_id: int, limit: int | None = None) -> list[MatchCandidate]:
        """Ranked candidates for one receipt, truncated for display.

        Raises:
            NotFoundError: if the receipt does not exist.
        """
        receipt = self._load_receipt(receipt_id)
        pool = self.store.get_unmatched_transactions(limit=self.config.single_receipt_pool_limit)
        candidates = self.engine.find_candidates(receipt, pool)
        return candidates[: limit if limit is not None else self.config.presentation_limit]

    def match_receipt(self, receipt: Receipt | int, threshold: int | None = None) -> AutoMatchDecision:
        """Auto-match a single receipt against the most recent transactions.

        The upsert runs inline; store errors propagate to the caller.
        """
        if not isinstance(receipt, Receipt):
            receipt = self._load_receipt(receipt)
        threshold = self._threshold(threshold)

        pool = self.store.get_unmatched_transactions(limit=self.config.single_receipt_pool_limit)
        decision = self._decide(receipt, pool, threshold)
        if decision.matched:
            decision.match_id = self._store_match(decision)
            logger.info(
                "Auto-matched receipt %d to transaction %d (%d%%)",
                receipt.id,
                decision.transaction_id,
                decision.confidence,
            )
        return decision

    def run_bulk(self, threshold: int | None = None) -> AutoMatchResult:
        """Auto-match every unmatched receipt against all unmatched transactions.

        Every upsert is a unit of work on a single-writer executor. The
        matched count is taken only after all of them have finished.
        """
        threshold = self._threshold(threshold)
        receipts = self.store.get_unmatched_receipts()
        pool = self.store.get_unmatched_transactions()
        result = AutoMatchResult(total_receipts=len(receipts), threshold=threshold)

        logger.info(
            "Bulk auto-match: %d receipts against %d transactions (threshold %d)",
            len(receipts),
            len(pool),
            threshold,
        )

        pending: list[tuple[AutoMatchDecision, Future[int]]] = []
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="auto-match") as executor:
            for receipt in receipts:
                decision = self._decide(receipt, pool, threshold)
                result.decisions.append(decision)
                if decision.matched:
                    pending.append((decision, executor.submit(self._store_match, decision)))

            # Join: every upsert finishes before the summary is computed
            for decision, future in pending:
                try:
                    decision.match_id = future.result()
                    result.matched += 1
                except (StateStoreError, sqlite3.Error) as e:
                    decision.matched = False
                    message = f"Receipt {decision.receipt_id}: {e}"
                    result.errors.append(message)
                    logger.error("Failed to store auto-match: %s", message)

        logger.info(
            "Bulk auto-match complete: %d of %d receipts matched",
            result.matched,
            result.total_receipts,
        )
        return result

    def _decide(
        self,
        receipt: Receipt,
        pool: list[Transaction],
        threshold: int,
    ) -> AutoMatchDecision:
        decision = AutoMatchDecision(receipt_id=receipt.id)
        candidates = self.engine.find_candidates(receipt, pool)
        if not candidates:
            logger.debug("Receipt %d: no candidates", receipt.id)
            return decision

        best = candidates[0]
        decision.transaction_id = best.transaction.id
        decision.confidence = best.confidence
        decision.reasons = list(best.reasons)

        if best.confidence >= threshold:
            decision.matched = True
        else:
            logger.debug(
                "Receipt %d: best candidate transaction %d at %d%% is below threshold %d (%s)",
                receipt.id,
                best.transaction.id,
                best.confidence,
                threshold,
                ", ".join(best.reasons),
            )
        return decision

    def _store_match(self, decision: AutoMatchDecision) -> int:
        return self.store.upsert_match(
            transaction_id=decision.transaction_id,
            receipt_id=decision.receipt_id,
            confidence=decision.confidence,
            status=MatchStatus.AUTO_MATCHED,
            user_confirmed=False,
        )

    def _threshold(self, threshold: int | None) -> int:
        return self.config.auto_match_threshold if threshold is None else threshold

    def _load_receipt(self, receipt_id: int) -> Receipt:
        receipt = self.store.get_receipt(receipt_id)
        if receipt is None:
            raise NotFoundError(f"Receipt {receipt_id} not found")
        return receipt

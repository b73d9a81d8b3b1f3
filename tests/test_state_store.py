"""Tests for state store."""

from datetime import date
from decimal import Decimal

import pytest

from receipt_matcher.schemas import MatchStatus, ProcessingStatus, SourceKind
from receipt_matcher.state_store import (
    ConfirmedMatchConflictError,
    NotFoundError,
    ReferentialIntegrityError,
    StateStore,
    make_dedupe_key,
)


@pytest.fixture
def store(temp_db):
    """Create a fresh state store."""
    return StateStore(temp_db)


def _completed_receipt(store, amount="100.00", receipt_date="07/22/2025", merchant="OpenAI"):
    receipt_id = store.create_receipt("receipt.pdf")
    store.update_receipt_fields(
        receipt_id,
        amount=Decimal(amount) if amount is not None else None,
        receipt_date=receipt_date,
        merchant=merchant,
        status=ProcessingStatus.COMPLETED,
    )
    return receipt_id


class TestStateStore:
    """Tests for SQLite state store."""

    def test_init_creates_db(self, temp_db):
        """Initializing creates database file."""
        StateStore(temp_db)
        assert temp_db.exists()

    def test_init_creates_tables(self, store):
        """All required tables are created."""
        conn = store._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = [t[0] for t in tables]

            assert "transactions" in table_names
            assert "receipts" in table_names
            assert "matches" in table_names
        finally:
            conn.close()

    def test_reopen_existing_db(self, temp_db):
        """Schema creation is idempotent."""
        StateStore(temp_db).add_transaction(date(2025, 1, 2), Decimal("-5.00"), "COFFEE")
        assert len(StateStore(temp_db).get_unmatched_transactions()) == 1


class TestTransactionOperations:
    """Tests for transaction import and edits."""

    def test_add_and_get(self, store):
        tx_id = store.add_transaction(
            date(2025, 7, 22),
            Decimal("-100"),
            "OPENAI CHATGPT",
            category="Software",
            external_reference="CHASE-1",
            sales_tax=Decimal("8.25"),
        )
        tx = store.get_transaction(tx_id)
        assert tx.amount == Decimal("-100.00")
        assert tx.date == date(2025, 7, 22)
        assert tx.category == "Software"
        assert tx.external_reference == "CHASE-1"
        assert tx.sales_tax == Decimal("8.25")

    def test_duplicate_import_ignored(self, store):
        """Same date, description and |amount| is the same ledger line."""
        first = store.add_transaction(date(2025, 7, 22), Decimal("-100.00"), "OPENAI CHATGPT")
        second = store.add_transaction(date(2025, 7, 22), Decimal("100"), "OPENAI CHATGPT")
        assert first is not None
        assert second is None
        assert len(store.get_unmatched_transactions()) == 1

    def test_dedupe_key(self):
        key = make_dedupe_key(date(2025, 7, 22), "SQ *CAFE", Decimal("-4.50"))
        assert key == "2025_07_22_SQ__CAFE_4_5"

    def test_update_transaction(self, store):
        tx_id = store.add_transaction(date(2025, 7, 22), Decimal("-10.00"), "OLD")
        store.update_transaction(tx_id, description="NEW", category="Meals")
        tx = store.get_transaction(tx_id)
        assert tx.description == "NEW"
        assert tx.category == "Meals"
        assert tx.amount == Decimal("-10.00")

    def test_update_missing_transaction(self, store):
        with pytest.raises(NotFoundError):
            store.update_transaction(999, description="X")

    def test_unmatched_order_and_limit(self, store):
        """Most recent first; ties broken by newest id."""
        a = store.add_transaction(date(2025, 7, 1), Decimal("-1.00"), "A")
        b = store.add_transaction(date(2025, 7, 3), Decimal("-2.00"), "B")
        c = store.add_transaction(date(2025, 7, 3), Decimal("-3.00"), "C")

        assert [t.id for t in store.get_unmatched_transactions()] == [c, b, a]
        assert [t.id for t in store.get_unmatched_transactions(limit=2)] == [c, b]

    def test_delete_refused_with_confirmed_match(self, store):
        tx_id = store.add_transaction(date(2025, 7, 22), Decimal("-100.00"), "OPENAI")
        receipt_id = _completed_receipt(store)
        store.create_match(tx_id, receipt_id, auto_confirm=True)

        with pytest.raises(ReferentialIntegrityError):
            store.delete_transaction(tx_id)

    def test_delete_removes_unconfirmed_matches(self, store):
        tx_id = store.add_transaction(date(2025, 7, 22), Decimal("-100.00"), "OPENAI")
        receipt_id = _completed_receipt(store)
        store.upsert_match(tx_id, receipt_id, 90, MatchStatus.AUTO_MATCHED, False)

        store.delete_transaction(tx_id)

        assert store.get_transaction(tx_id) is None
        assert store.get_matches() == []


class TestReceiptOperations:
    """Tests for receipt lifecycle."""

    def test_create_is_processing(self, store):
        receipt_id = store.create_receipt("scan.jpg", SourceKind.IMAGE)
        receipt = store.get_receipt(receipt_id)
        assert receipt.processing_status == ProcessingStatus.PROCESSING
        assert receipt.source_kind == SourceKind.IMAGE

    def test_update_fields(self, store):
        receipt_id = store.create_receipt("r.pdf")
        store.update_receipt_fields(
            receipt_id, Decimal("12.5"), "07/22/2025", "Cafe", ProcessingStatus.COMPLETED, "text"
        )
        receipt = store.get_receipt(receipt_id)
        assert receipt.extracted_amount == Decimal("12.50")
        assert receipt.extracted_date == "07/22/2025"
        assert receipt.extracted_merchant == "Cafe"
        assert receipt.ocr_text == "text"
        assert receipt.processing_status == ProcessingStatus.COMPLETED

    def test_override_keeps_status_and_unset_fields(self, store):
        receipt_id = _completed_receipt(store)
        store.override_receipt_fields(receipt_id, merchant="OpenAI, L.L.C.")
        receipt = store.get_receipt(receipt_id)
        assert receipt.extracted_merchant == "OpenAI, L.L.C."
        assert receipt.extracted_amount == Decimal("100.00")
        assert receipt.processing_status == ProcessingStatus.COMPLETED

    def test_mark_failed(self, store):
        receipt_id = store.create_receipt("r.pdf")
        store.mark_receipt_failed(receipt_id)
        receipt = store.get_receipt(receipt_id)
        assert receipt.processing_status == ProcessingStatus.FAILED
        assert receipt.extracted_amount is None

    def test_mark_failed_missing(self, store):
        with pytest.raises(NotFoundError):
            store.mark_receipt_failed(42)

    def test_unmatched_receipts(self, store):
        """Only completed receipts with an amount and no confirmed match."""
        ready = _completed_receipt(store)
        _completed_receipt(store, amount=None)
        store.create_receipt("still-processing.pdf")
        confirmed = _completed_receipt(store)
        tx_id = store.add_transaction(date(2025, 7, 22), Decimal("-100.00"), "OPENAI")
        store.create_match(tx_id, confirmed, auto_confirm=True)

        assert [r.id for r in store.get_unmatched_receipts()] == [ready]

    def test_delete_receipt_refused_with_confirmed_match(self, store):
        tx_id = store.add_transaction(date(2025, 7, 22), Decimal("-100.00"), "OPENAI")
        receipt_id = _completed_receipt(store)
        store.create_match(tx_id, receipt_id, auto_confirm=True)

        with pytest.raises(ReferentialIntegrityError):
            store.delete_receipt(receipt_id)

    def test_delete_receipt(self, store):
        receipt_id = _completed_receipt(store)
        store.delete_receipt(receipt_id)
        assert store.get_receipt(receipt_id) is None


class TestMatchOperations:
    """Tests for match upserts and status changes."""

    @pytest.fixture
    def pair(self, store):
        tx_id = store.add_transaction(date(2025, 7, 22), Decimal("-100.00"), "OPENAI")
        return tx_id, _completed_receipt(store)

    def test_upsert_is_keyed_on_pair(self, store, pair):
        tx_id, receipt_id = pair
        first = store.upsert_match(tx_id, receipt_id, 80, MatchStatus.AUTO_MATCHED, False)
        second = store.upsert_match(tx_id, receipt_id, 95, MatchStatus.AUTO_MATCHED, False)

        matches = store.get_matches()
        assert first == second
        assert len(matches) == 1
        assert matches[0].confidence == 95

    def test_create_pending(self, store, pair):
        match_id = store.create_match(*pair)
        match = store.get_match(match_id)
        assert match.status == MatchStatus.PENDING
        assert match.user_confirmed is False

    def test_create_unknown_transaction(self, store, pair):
        with pytest.raises(NotFoundError):
            store.create_match(999, pair[1])

    def test_confirm_and_reject(self, store, pair):
        match_id = store.create_match(*pair)

        store.confirm_match(match_id)
        match = store.get_match(match_id)
        assert match.status == MatchStatus.CONFIRMED
        assert match.user_confirmed is True

        store.reject_match(match_id)
        match = store.get_match(match_id)
        assert match.status == MatchStatus.REJECTED
        assert match.user_confirmed is False

    def test_confirm_missing(self, store):
        with pytest.raises(NotFoundError):
            store.confirm_match(7)

    def test_one_confirmed_match_per_transaction(self, store, pair):
        tx_id, receipt_id = pair
        other_receipt = _completed_receipt(store)
        store.create_match(tx_id, receipt_id, auto_confirm=True)

        with pytest.raises(ConfirmedMatchConflictError):
            store.create_match(tx_id, other_receipt, auto_confirm=True)

    def test_one_confirmed_match_per_receipt(self, store, pair):
        tx_id, receipt_id = pair
        other_tx = store.add_transaction(date(2025, 7, 23), Decimal("-100.00"), "OPENAI")
        store.create_match(tx_id, receipt_id, auto_confirm=True)
        pending = store.create_match(other_tx, receipt_id)

        with pytest.raises(ConfirmedMatchConflictError):
            store.confirm_match(pending)

    def test_delete_match(self, store, pair):
        match_id = store.create_match(*pair)
        store.delete_match(match_id)
        assert store.get_match(match_id) is None
        with pytest.raises(NotFoundError):
            store.delete_match(match_id)

    def test_pending_matches(self, store, pair):
        tx_id, receipt_id = pair
        store.upsert_match(tx_id, receipt_id, 85, MatchStatus.AUTO_MATCHED, False)

        pending = store.get_pending_matches()
        assert len(pending) == 1
        assert pending[0]["match_confidence"] == 85
        assert pending[0]["tx_description"] == "OPENAI"
        assert pending[0]["receipt_amount"] == "100.00"

    def test_stats(self, store, pair):
        tx_id, receipt_id = pair
        store.create_match(tx_id, receipt_id, auto_confirm=True)
        store.add_transaction(date(2025, 7, 1), Decimal("-3.00"), "OTHER")
        _completed_receipt(store)

        stats = store.get_stats()
        assert stats == {
            "total_matches": 1,
            "confirmed_matches": 1,
            "pending_matches": 0,
            "unmatched_receipts": 1,
            "unmatched_transactions": 1,
        }

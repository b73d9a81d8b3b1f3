"""
SQLite-based state store implementation.

Tables:
- transactions: Imported ledger lines, deduplicated on date/description/|amount|
- receipts: Uploaded documents with their extracted fields
- matches: Receipt/transaction links, one row per pair

At most one user-confirmed match may reference a transaction or a receipt;
partial unique indexes enforce this. Auto-matching across overlapping runs
is best-effort: two runs may pick the same transaction for different
receipts, which is fine because auto matches are unconfirmed until a user
confirms one of them.
"""

import logging
import re
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from receipt_matcher.schemas import (
    Match,
    MatchStatus,
    ProcessingStatus,
    Receipt,
    SourceKind,
    Transaction,
)

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Base exception for state store errors."""

    pass


class NotFoundError(StateStoreError):
    """Raised when a record id does not exist."""

    pass


class ReferentialIntegrityError(StateStoreError):
    """Raised when deleting a record that a confirmed match references."""

    pass


class ConfirmedMatchConflictError(StateStoreError):
    """Raised when a transaction or receipt already has a confirmed match."""

    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _amount_text(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(Decimal(str(value)).quantize(Decimal("0.01")))


def make_dedupe_key(transaction_date: date, description: str, amount: Decimal) -> str:
    """Build the import dedupe key: date, description and |amount|, non-alphanumerics as "_"."""
    magnitude = format(abs(Decimal(str(amount))).normalize(), "f")
    raw = f"{transaction_date.isoformat()}_{description}_{magnitude}"
    return re.sub(r"[^a-zA-Z0-9]", "_", raw)


class StateStore:
    """SQLite state store for transactions, receipts and matches."""

    def __init__(self, db_path: Path | str):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    transaction_date TEXT NOT NULL,
                    description TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    category TEXT,
                    external_reference TEXT,
                    sales_tax TEXT,
                    dedupe_key TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS receipts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    filename TEXT NOT NULL,
                    source_kind TEXT NOT NULL DEFAULT 'document',
                    ocr_text TEXT,
                    extracted_amount TEXT,
                    extracted_date TEXT,
                    extracted_merchant TEXT,
                    processing_status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS matches (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    transaction_id INTEGER NOT NULL
                        REFERENCES transactions(id) ON DELETE CASCADE,
                    receipt_id INTEGER NOT NULL
                        REFERENCES receipts(id) ON DELETE CASCADE,
                    match_confidence INTEGER NOT NULL,
                    match_status TEXT NOT NULL,
                    user_confirmed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (transaction_id, receipt_id)
                )
            """
            )

            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS idx_matches_confirmed_transaction
                ON matches(transaction_id) WHERE user_confirmed = 1
            """
            )
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS idx_matches_confirmed_receipt
                ON matches(receipt_id) WHERE user_confirmed = 1
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(transaction_date)"
            )

    # === Transaction Methods ===

    def add_transaction(
        self,
        transaction_date: date,
        amount: Decimal,
        description: str,
        category: str | None = None,
        external_reference: str | None = None,
        sales_tax: Decimal | None = None,
    ) -> int | None:
        """
        Import a ledger line.

        Returns:
            The new transaction id, or None when the same date/description/
            amount was imported before.
        """
        now = _now()
        key = make_dedupe_key(transaction_date, description, amount)

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO transactions
                (transaction_date, description, amount, category, external_reference,
                 sales_tax, dedupe_key, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    transaction_date.isoformat(),
                    description,
                    _amount_text(amount),
                    category,
                    external_reference,
                    _amount_text(sales_tax),
                    key,
                    now,
                    now,
                ),
            )
            if cursor.rowcount == 0:
                logger.debug("Transaction already imported: %s", key)
                return None
            return cursor.lastrowid

    def get_transaction(self, transaction_id: int) -> Transaction | None:
        """Get a transaction by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
            ).fetchone()
            return Transaction.from_row(row) if row else None

    def update_transaction(
        self,
        transaction_id: int,
        description: str | None = None,
        amount: Decimal | None = None,
        category: str | None = None,
    ) -> None:
        """Edit a transaction; None leaves a field unchanged."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE transactions
                SET description = COALESCE(?, description),
                    amount = COALESCE(?, amount),
                    category = COALESCE(?, category),
                    updated_at = ?
                WHERE id = ?
            """,
                (description, _amount_text(amount), category, _now(), transaction_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Transaction {transaction_id} not found")

    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction and its unconfirmed matches."""
        with self._transaction() as conn:
            confirmed = conn.execute(
                "SELECT 1 FROM matches WHERE transaction_id = ? AND user_confirmed = 1",
                (transaction_id,),
            ).fetchone()
            if confirmed:
                raise ReferentialIntegrityError(
                    f"Transaction {transaction_id} has a confirmed match"
                )
            cursor = conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Transaction {transaction_id} not found")

    def get_unmatched_transactions(self, limit: int | None = None) -> list[Transaction]:
        """
        Transactions not linked to a confirmed match, most recent first.

        Args:
            limit: Maximum number of transactions (None for all)
        """
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM transactions
                WHERE id NOT IN (
                    SELECT transaction_id FROM matches WHERE user_confirmed = 1
                )
                ORDER BY transaction_date DESC, id DESC
                LIMIT ?
            """,
                (limit if limit is not None else -1,),
            ).fetchall()
            return [Transaction.from_row(row) for row in rows]

    # === Receipt Methods ===

    def create_receipt(self, filename: str, source_kind: SourceKind = SourceKind.DOCUMENT) -> int:
        """Register an uploaded receipt in processing state. Returns the receipt ID."""
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO receipts
                (filename, source_kind, processing_status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (filename, SourceKind(source_kind).value, ProcessingStatus.PROCESSING.value, now, now),
            )
            return cursor.lastrowid or 0

    def get_receipt(self, receipt_id: int) -> Receipt | None:
        """Get a receipt by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM receipts WHERE id = ?", (receipt_id,)).fetchone()
            return Receipt.from_row(row) if row else None

    def update_receipt_fields(
        self,
        receipt_id: int,
        amount: Decimal | None,
        receipt_date: str | None,
        merchant: str | None,
        status: ProcessingStatus = ProcessingStatus.COMPLETED,
        ocr_text: str | None = None,
    ) -> None:
        """Store extraction output; every field is written, including nulls."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE receipts
                SET extracted_amount = ?, extracted_date = ?, extracted_merchant = ?,
                    processing_status = ?, ocr_text = COALESCE(?, ocr_text), updated_at = ?
                WHERE id = ?
            """,
                (
                    _amount_text(amount),
                    receipt_date,
                    merchant,
                    ProcessingStatus(status).value,
                    ocr_text,
                    _now(),
                    receipt_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Receipt {receipt_id} not found")

    def override_receipt_fields(
        self,
        receipt_id: int,
        amount: Decimal | None = None,
        receipt_date: str | None = None,
        merchant: str | None = None,
    ) -> None:
        """Manually correct extracted fields; None keeps the current value."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE receipts
                SET extracted_amount = COALESCE(?, extracted_amount),
                    extracted_date = COALESCE(?, extracted_date),
                    extracted_merchant = COALESCE(?, extracted_merchant),
                    updated_at = ?
                WHERE id = ?
            """,
                (_amount_text(amount), receipt_date, merchant, _now(), receipt_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Receipt {receipt_id} not found")

    def mark_receipt_failed(self, receipt_id: int) -> None:
        """Set processing status to failed without touching extracted fields."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE receipts SET processing_status = ?, updated_at = ? WHERE id = ?",
                (ProcessingStatus.FAILED.value, _now(), receipt_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Receipt {receipt_id} not found")

    def delete_receipt(self, receipt_id: int) -> None:
        """Delete a receipt and its unconfirmed matches."""
        with self._transaction() as conn:
            confirmed = conn.execute(
                "SELECT 1 FROM matches WHERE receipt_id = ? AND user_confirmed = 1",
                (receipt_id,),
            ).fetchone()
            if confirmed:
                raise ReferentialIntegrityError(f"Receipt {receipt_id} has a confirmed match")
            cursor = conn.execute("DELETE FROM receipts WHERE id = ?", (receipt_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Receipt {receipt_id} not found")

    def get_unmatched_receipts(self) -> list[Receipt]:
        """Completed receipts with an amount and no confirmed match, by id."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM receipts
                WHERE processing_status = ?
                  AND extracted_amount IS NOT NULL
                  AND id NOT IN (
                      SELECT receipt_id FROM matches WHERE user_confirmed = 1
                  )
                ORDER BY id
            """,
                (ProcessingStatus.COMPLETED.value,),
            ).fetchall()
            return [Receipt.from_row(row) for row in rows]

    # === Match Methods ===

    def upsert_match(
        self,
        transaction_id: int,
        receipt_id: int,
        confidence: int,
        status: MatchStatus,
        user_confirmed: bool,
    ) -> int:
        """
        Insert or update the match for a (transaction, receipt) pair.

        Repeating the same call leaves exactly one row. Returns the match ID.

        Raises:
            ConfirmedMatchConflictError: if confirming would give the
                transaction or receipt a second confirmed match
        """
        now = _now()
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO matches
                    (transaction_id, receipt_id, match_confidence, match_status,
                     user_confirmed, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(transaction_id, receipt_id) DO UPDATE SET
                        match_confidence = excluded.match_confidence,
                        match_status = excluded.match_status,
                        user_confirmed = excluded.user_confirmed,
                        updated_at = excluded.updated_at
                """,
                    (
                        transaction_id,
                        receipt_id,
                        int(confidence),
                        MatchStatus(status).value,
                        int(user_confirmed),
                        now,
                        now,
                    ),
                )
                row = conn.execute(
                    "SELECT id FROM matches WHERE transaction_id = ? AND receipt_id = ?",
                    (transaction_id, receipt_id),
                ).fetchone()
                return row["id"]
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise ConfirmedMatchConflictError(
                    f"Transaction {transaction_id} or receipt {receipt_id} "
                    "already has a confirmed match"
                ) from e
            raise StateStoreError(str(e)) from e

    def create_match(
        self,
        transaction_id: int,
        receipt_id: int,
        confidence: int = 100,
        auto_confirm: bool = False,
    ) -> int:
        """Manually link a receipt to a transaction (pending, or confirmed)."""
        if self.get_transaction(transaction_id) is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if self.get_receipt(receipt_id) is None:
            raise NotFoundError(f"Receipt {receipt_id} not found")
        status = MatchStatus.CONFIRMED if auto_confirm else MatchStatus.PENDING
        return self.upsert_match(transaction_id, receipt_id, confidence, status, auto_confirm)

    def get_match(self, match_id: int) -> Match | None:
        """Get a match by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM matches WHERE id = ?", (match_id,)).fetchone()
            return Match.from_row(row) if row else None

    def _set_match_state(self, match_id: int, status: MatchStatus, user_confirmed: bool) -> None:
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    """
                    UPDATE matches
                    SET match_status = ?, user_confirmed = ?, updated_at = ?
                    WHERE id = ?
                """,
                    (status.value, int(user_confirmed), _now(), match_id),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"Match {match_id} not found")
        except sqlite3.IntegrityError as e:
            raise ConfirmedMatchConflictError(
                f"Match {match_id} conflicts with an existing confirmed match"
            ) from e

    def confirm_match(self, match_id: int) -> None:
        """Mark a match confirmed by the user."""
        self._set_match_state(match_id, MatchStatus.CONFIRMED, True)

    def reject_match(self, match_id: int) -> None:
        """Mark a match rejected; the pair stays recorded."""
        self._set_match_state(match_id, MatchStatus.REJECTED, False)

    def delete_match(self, match_id: int) -> None:
        """Delete a match."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM matches WHERE id = ?", (match_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Match {match_id} not found")

    def get_matches(self) -> list[Match]:
        """All matches, newest first."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM matches ORDER BY id DESC").fetchall()
            return [Match.from_row(row) for row in rows]

    def get_pending_matches(self) -> list[dict[str, Any]]:
        """Unconfirmed matches joined with their transaction and receipt."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT m.*, t.transaction_date AS tx_date, t.description AS tx_description,
                       t.amount AS tx_amount, r.filename AS receipt_filename,
                       r.extracted_amount AS receipt_amount,
                       r.extracted_merchant AS receipt_merchant
                FROM matches m
                JOIN transactions t ON m.transaction_id = t.id
                JOIN receipts r ON m.receipt_id = r.id
                WHERE m.user_confirmed = 0 AND m.match_status != ?
                ORDER BY m.match_confidence DESC, m.id
            """,
                (MatchStatus.REJECTED.value,),
            ).fetchall()
            return [dict(row) for row in rows]

    def get_stats(self) -> dict[str, Any]:
        """Get match statistics."""
        with self._transaction() as conn:
            total = conn.execute("SELECT COUNT(*) AS count FROM matches").fetchone()
            confirmed = conn.execute(
                "SELECT COUNT(*) AS count FROM matches WHERE user_confirmed = 1"
            ).fetchone()
            pending = conn.execute(
                "SELECT COUNT(*) AS count FROM matches WHERE user_confirmed = 0 AND match_status != ?",
                (MatchStatus.REJECTED.value,),
            ).fetchone()
            unmatched_receipts = conn.execute(
                """
                SELECT COUNT(*) AS count FROM receipts
                WHERE id NOT IN (SELECT receipt_id FROM matches WHERE user_confirmed = 1)
            """
            ).fetchone()
            unmatched_transactions = conn.execute(
                """
                SELECT COUNT(*) AS count FROM transactions
                WHERE id NOT IN (SELECT transaction_id FROM matches WHERE user_confirmed = 1)
            """
            ).fetchone()

            return {
                "total_matches": total["count"] if total else 0,
                "confirmed_matches": confirmed["count"] if confirmed else 0,
                "pending_matches": pending["count"] if pending else 0,
                "unmatched_receipts": unmatched_receipts["count"] if unmatched_receipts else 0,
                "unmatched_transactions": (
                    unmatched_transactions["count"] if unmatched_transactions else 0
                ),
            }

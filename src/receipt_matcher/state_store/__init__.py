"""State store for transactions, receipts and matches."""

from .sqlite_store import (
    ConfirmedMatchConflictError,
    NotFoundError,
    ReferentialIntegrityError,
    StateStore,
    StateStoreError,
    make_dedupe_key,
)

__all__ = [
    "ConfirmedMatchConflictError",
    "NotFoundError",
    "ReferentialIntegrityError",
    "StateStore",
    "StateStoreError",
    "make_dedupe_key",
]

"""
CLI runner module.

Provides commands:
- extract: Print extracted receipt fields
- ingest: Store and process a receipt
- add-transaction: Import a ledger line
- find-matches / auto-match: Score and link receipts
- match: Manage matches
- status: Match statistics
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]

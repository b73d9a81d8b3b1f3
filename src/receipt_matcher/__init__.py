"""
Receipt ↔ ledger reconciliation.

Recovers amount, date and merchant from OCR/PDF text of receipts and
invoices, scores them against imported bank/credit-card transactions, and
auto-links confident pairs.
"""

__version__ = "0.1.0"

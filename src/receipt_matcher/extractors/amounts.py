"""
Amount extraction from receipt/invoice text.

Each strategy is an independent function returning an optional Hit. The
AMOUNT_STRATEGIES table fixes their order, which breakdown field each one
fills, and when it is allowed to run:

    payment_label          -> total        always
    currency_code_label    -> total        only if no total yet
    multiline_total        -> total        always, overwrites (layout beats labels)
    grand_total_label      -> grand_total  always
    total_label            -> total        only if no total and no grand total
    subtotal_label         -> subtotal     always
    tax_label              -> tax          always (never the main amount)
    largest_currency_token -> total        fallbacks, only while neither
    standalone_amount_line -> total          total nor grand total is set
    balance_due_label      -> total
    billing_context        -> total

Supported formats:
- 1,234.56 (comma thousands) and 1234,56 (comma decimal)
- $, €, £, ¥ prefixes; USD/EUR/GBP/CAD/AUD/CHF codes glued to labels
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from .base import AmountBreakdown, Hit, run_strategy

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = "$€£¥"
CURRENCY_CODES = ("USD", "EUR", "GBP", "CAD", "AUD", "CHF")

# Number token as it appears after a label: 4,763.00 / 202.55 / 12,50
NUMBER = r"([0-9,]+\.?\d{0,2})"
LABEL_GAP = rf"[\s:{CURRENCY_SYMBOLS}]*"
_CODES = "|".join(CURRENCY_CODES)

PAYMENT_RE = re.compile(
    r"(?:payment|payment\s*amount|monthly\s*charge|service\s*charge|bill\s*amount"
    r"|charge|amount|total\s*charges)"
    rf"(?:\s*(?:{_CODES})\s*|{LABEL_GAP})?" + NUMBER,
    re.IGNORECASE,
)
CURRENCY_CODE_LABEL_RE = re.compile(
    rf"(?i:payment|total\s*charges|subtotal|total\s*tax)(?:{_CODES})\s*" + NUMBER
)
TOTAL_ONLY_LINE_RE = re.compile(r"^total\s*$", re.IGNORECASE)
CURRENCY_ONLY_LINE_RE = re.compile(rf"^[{CURRENCY_SYMBOLS}]\s*([0-9,]+\.?\d{{0,2}})$")
GRAND_TOTAL_RE = re.compile(
    r"(?:grand\s*total|final\s*total|total\s*amount|amount\s*due)" + LABEL_GAP + NUMBER,
    re.IGNORECASE,
)
TOTAL_RE = re.compile(r"(?:^|\s|:)total" + LABEL_GAP + NUMBER, re.IGNORECASE)
SUBTOTAL_RE = re.compile(r"(?:sub\s*total|subtotal)" + LABEL_GAP + NUMBER, re.IGNORECASE)
TAX_RE = re.compile(r"(?:tax|vat|gst)" + LABEL_GAP + NUMBER, re.IGNORECASE)
CURRENCY_TOKEN_RE = re.compile(rf"[{CURRENCY_SYMBOLS}]\s*([0-9,]+\.?\d{{0,2}})")
STANDALONE_AMOUNT_RE = re.compile(rf"^[{CURRENCY_SYMBOLS}]?([0-9,]+\.?\d{{2}})$")
BALANCE_DUE_RE = re.compile(
    r"(?:balance\s*due|amount\s*owed|amount\s*payable|invoice\s*amount)" + LABEL_GAP + NUMBER,
    re.IGNORECASE,
)
BILLING_CONTEXT_RE = re.compile(r"bill|invoice|charge|amount|payment", re.IGNORECASE)
TWO_DECIMAL_RE = re.compile(r"(?<![\d.])(\d[0-9,]*\.\d{2})(?!\d)")

EUROPEAN_DECIMAL_RE = re.compile(r",\d{2}$")


@dataclass
class AmountLimits:
    """Sanity bounds for accepted amounts."""

    max_amount: Decimal = Decimal("50000")
    max_tax_amount: Decimal = Decimal("10000")

    def accepts(self, amount: Optional[Decimal]) -> bool:
        return amount is not None and amount.is_finite() and Decimal("0") < amount < self.max_amount

    def accepts_tax(self, amount: Optional[Decimal]) -> bool:
        return (
            amount is not None
            and amount.is_finite()
            and Decimal("0") <= amount < self.max_tax_amount
        )


def parse_amount(amount_str: str) -> Optional[Decimal]:
    """
    Parse a currency string to Decimal.

    A comma followed by exactly two digits at the end is a decimal comma
    ("12,50" -> 12.50); every other comma is a thousands separator
    ("4,763.00" -> 4763.00). Dot thousands separators are not supported.

    Returns None when the string holds no number.
    """
    cleaned = re.sub(rf"[{CURRENCY_SYMBOLS}\s]", "", amount_str)
    if EUROPEAN_DECIMAL_RE.search(cleaned):
        cleaned = cleaned[:-3].replace(",", "") + "." + cleaned[-2:]
    else:
        cleaned = cleaned.replace(",", "")
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def _first_accepted(
    pattern: re.Pattern, text: str, accepts: Callable[[Optional[Decimal]], bool]
) -> Optional[Hit[Decimal]]:
    for match in pattern.finditer(text):
        amount = parse_amount(match.group(1))
        if accepts(amount):
            return Hit(amount, match.group(0).strip())
    return None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def payment_label(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    """Payment/charge labels: "Payment 202.55", "Total Charges: $80", "PaymentUSD 202.55"."""
    return _first_accepted(PAYMENT_RE, text, limits.accepts)


def currency_code_label(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    """Label glued to a currency code: "Total ChargesUSD 202.55"."""
    return _first_accepted(CURRENCY_CODE_LABEL_RE, text, limits.accepts)


def multiline_total(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    """A line reading just "Total" followed by a line holding just "$4,763.00"."""
    lines = text.split("\n")
    for current, following in zip(lines, lines[1:]):
        if not TOTAL_ONLY_LINE_RE.match(current.strip()):
            continue
        match = CURRENCY_ONLY_LINE_RE.match(following.strip())
        if match:
            amount = parse_amount(match.group(1))
            if limits.accepts(amount):
                return Hit(amount, f"{current.strip()} / {following.strip()}")
    return None


def grand_total_label(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    return _first_accepted(GRAND_TOTAL_RE, text, limits.accepts)


def total_label(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    return _first_accepted(TOTAL_RE, text, limits.accepts)


def subtotal_label(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    return _first_accepted(SUBTOTAL_RE, text, limits.accepts)


def tax_label(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    """Tax/VAT/GST; zero is a legitimate tax amount."""
    return _first_accepted(TAX_RE, text, limits.accepts_tax)


def largest_currency_token(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    """Largest symbol-prefixed amount under the sanity bound."""
    best: Optional[Hit[Decimal]] = None
    for match in CURRENCY_TOKEN_RE.finditer(text):
        amount = parse_amount(match.group(1))
        if limits.accepts(amount) and (best is None or amount > best.value):
            best = Hit(amount, match.group(0).strip())
    return best


def standalone_amount_line(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    """A line that is nothing but an amount."""
    for line in text.split("\n"):
        match = STANDALONE_AMOUNT_RE.match(line.strip())
        if match:
            amount = parse_amount(match.group(1))
            if limits.accepts(amount):
                return Hit(amount, line.strip())
    return None


def balance_due_label(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    return _first_accepted(BALANCE_DUE_RE, text, limits.accepts)


def billing_context(text: str, limits: AmountLimits) -> Optional[Hit[Decimal]]:
    """
    First two-decimal number above 1 at or after the first billing line.

    Amounts of 1 or less are usually quantities or line numbers.
    """
    in_billing_section = False
    for line in text.split("\n"):
        line = line.strip()
        if BILLING_CONTEXT_RE.search(line):
            in_billing_section = True
        if not in_billing_section:
            continue
        for match in TWO_DECIMAL_RE.finditer(line):
            amount = parse_amount(match.group(1))
            if limits.accepts(amount) and amount > 1:
                return Hit(amount, line)
    return None


# ---------------------------------------------------------------------------
# Strategy table
# ---------------------------------------------------------------------------


def _always(breakdown: AmountBreakdown) -> bool:
    return True


def _no_total(breakdown: AmountBreakdown) -> bool:
    return breakdown.total is None


def _no_total_or_grand_total(breakdown: AmountBreakdown) -> bool:
    return breakdown.total is None and breakdown.grand_total is None


@dataclass(frozen=True)
class AmountStrategy:
    """One row of the amount waterfall."""

    name: str
    func: Callable[[str, AmountLimits], Optional[Hit[Decimal]]]
    field: str  # AmountBreakdown attribute it fills
    applies: Callable[[AmountBreakdown], bool] = _always


AMOUNT_STRATEGIES: tuple[AmountStrategy, ...] = (
    AmountStrategy("payment_label", payment_label, "total"),
    AmountStrategy("currency_code_label", currency_code_label, "total", _no_total),
    AmountStrategy("multiline_total", multiline_total, "total"),
    AmountStrategy("grand_total_label", grand_total_label, "grand_total"),
    AmountStrategy("total_label", total_label, "total", _no_total_or_grand_total),
    AmountStrategy("subtotal_label", subtotal_label, "subtotal"),
    AmountStrategy("tax_label", tax_label, "tax"),
    AmountStrategy("largest_currency_token", largest_currency_token, "total", _no_total_or_grand_total),
    AmountStrategy("standalone_amount_line", standalone_amount_line, "total", _no_total_or_grand_total),
    AmountStrategy("balance_due_label", balance_due_label, "total", _no_total_or_grand_total),
    AmountStrategy("billing_context", billing_context, "total", _no_total_or_grand_total),
)


def extract_amounts(
    text: str,
    limits: Optional[AmountLimits] = None,
    strategies: tuple[AmountStrategy, ...] = AMOUNT_STRATEGIES,
) -> tuple[AmountBreakdown, dict[str, str]]:
    """
    Run the amount waterfall over text.

    Returns:
        The filled breakdown and, per breakdown field, a note naming the
        strategy and the matched text that set it.
    """
    limits = limits or AmountLimits()
    breakdown = AmountBreakdown()
    notes: dict[str, str] = {}

    for strategy in strategies:
        if not strategy.applies(breakdown):
            continue
        hit = run_strategy(strategy.name, strategy.func, text, limits)
        if hit is None:
            continue
        setattr(breakdown, strategy.field, hit.value)
        notes[strategy.field] = f"{strategy.name}: {hit.evidence!r}"
        logger.debug("%s = %s via %s (%r)", strategy.field, hit.value, strategy.name, hit.evidence)

    return breakdown, notes

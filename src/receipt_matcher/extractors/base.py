"""
Extraction result types and the strategy-table combinator.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Generic, Optional, TypeVar

from ..schemas import SourceKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Hit(Generic[T]):
    """A value produced by one strategy, with the text it came from."""

    value: T
    evidence: str


@dataclass
class AmountBreakdown:
    """Every labelled amount found on the document."""

    subtotal: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    total: Optional[Decimal] = None
    grand_total: Optional[Decimal] = None

    @property
    def final_amount(self) -> Optional[Decimal]:
        """Grand total, else total, else subtotal."""
        for value in (self.grand_total, self.total, self.subtotal):
            if value is not None:
                return value
        return None

    @property
    def final_source(self) -> Optional[str]:
        if self.grand_total is not None:
            return "grand_total"
        if self.total is not None:
            return "total"
        if self.subtotal is not None:
            return "subtotal"
        return None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "subtotal": str(self.subtotal) if self.subtotal is not None else None,
            "tax": str(self.tax) if self.tax is not None else None,
            "total": str(self.total) if self.total is not None else None,
            "grand_total": str(self.grand_total) if self.grand_total is not None else None,
        }


@dataclass
class ExtractionResult:
    """Fields recovered from one receipt's text."""

    amount: Optional[Decimal] = None
    date: Optional[str] = None  # MM/DD/YYYY
    merchant: Optional[str] = None
    breakdown: AmountBreakdown = field(default_factory=AmountBreakdown)

    source_kind: SourceKind = SourceKind.DOCUMENT
    has_text: bool = True
    # Debug info: field name -> how the value was found
    provenance: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "amount": str(self.amount) if self.amount is not None else None,
            "date": self.date,
            "merchant": self.merchant,
            "breakdown": self.breakdown.to_dict(),
            "source_kind": self.source_kind.value,
            "has_text": self.has_text,
            "provenance": dict(self.provenance),
        }


def run_strategy(name: str, func: Callable[..., Optional[Hit[T]]], *args) -> Optional[Hit[T]]:
    """
    Call one strategy, absorbing its failure.

    A strategy that blows up on odd input counts as "no match" so the
    remaining strategies still get their turn.
    """
    try:
        return func(*args)
    except Exception:
        logger.warning("Extraction strategy %s failed; continuing", name, exc_info=True)
        return None


def first_hit(
    strategies: list[tuple[str, Callable[..., Optional[Hit[T]]]]],
    *args,
) -> tuple[Optional[str], Optional[Hit[T]]]:
    """Try strategies in order; the first one yielding a hit wins."""
    for name, func in strategies:
        hit = run_strategy(name, func, *args)
        if hit is not None:
            return name, hit
    return None, None

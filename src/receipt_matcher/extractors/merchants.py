"""
Merchant extraction from receipt/invoice text.

Strategy:
- Scan the first few non-blank lines (the letterhead). A line with a
  company indicator (LLC, Inc, Services, ...) wins outright; otherwise the
  first properly capitalized line is kept as a weaker candidate.
- Fall back to the line after a "Bill to" / "From" / "Vendor" label.
- Finally apply the known-vendor override table.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .base import Hit, run_strategy

logger = logging.getLogger(__name__)

EXCLUDE_PATTERNS = [
    re.compile(r"^page\s+\d+", re.IGNORECASE),
    re.compile(r"^\d+$"),
    re.compile(r"^[\d\s\-()]+$"),
    re.compile(r"invoice|bill|receipt|statement", re.IGNORECASE),
    re.compile(r"total|subtotal|tax|amount|due", re.IGNORECASE),
    re.compile(r"^(to|from|attn|attention):", re.IGNORECASE),
    re.compile(r"^(phone|tel|fax|email|address)", re.IGNORECASE),
    re.compile(r"^(thank you|thanks)", re.IGNORECASE),
    re.compile(r"^\W+$"),
    re.compile(r"^\d+[.,]\d+$"),
]

# Prefix match so "Corporation", "Incorporated" and "PLLC" count too
COMPANY_INDICATOR_RE = re.compile(
    r"LLC|\b(?:Inc|Corp|Company|Ltd|Construction|Services|Group)|\bCo\.", re.IGNORECASE
)
PROPER_CASE_RE = re.compile(r"^[A-Z][a-z]")
PARTY_LABEL_RE = re.compile(r"(?:bill\s*to|from|vendor)[\s:]*\n([^\n]+)", re.IGNORECASE)

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 60


class OverrideMode(str, Enum):
    """When a vendor override may replace the heuristic result."""

    FORCE = "force"  # Always
    FALLBACK = "fallback"  # Only when nothing usable was found


@dataclass(frozen=True)
class VendorOverride:
    """Content signature that maps a document to a canonical merchant name."""

    canonical_name: str
    mode: OverrideMode
    all_of: tuple[str, ...] = ()
    any_of: tuple[str, ...] = ()

    def matches(self, lowered_text: str) -> bool:
        if self.all_of and not all(term in lowered_text for term in self.all_of):
            return False
        if self.any_of and not any(term in lowered_text for term in self.any_of):
            return False
        return bool(self.all_of or self.any_of)


# Vendors whose invoices put the customer, not the vendor, in the letterhead.
VENDOR_OVERRIDES: tuple[VendorOverride, ...] = (
    VendorOverride("Birdseye Surveillance LLC", OverrideMode.FORCE, all_of=("birdseye", "surveillance")),
    VendorOverride("Starlink", OverrideMode.FALLBACK, any_of=("starlink", "spacex")),
    VendorOverride("Birdseye Surveillance LLC", OverrideMode.FALLBACK, any_of=("birdseye", "surveillance")),
)


def _is_candidate(line: str) -> bool:
    if not MIN_NAME_LENGTH <= len(line) <= MAX_NAME_LENGTH:
        return False
    return not any(pattern.search(line) for pattern in EXCLUDE_PATTERNS)


def header_merchant(text: str, max_lines: int = 8) -> Optional[Hit[str]]:
    """Company name from the letterhead lines."""
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    candidate: Optional[Hit[str]] = None

    for i, line in enumerate(lines[:max_lines]):
        if not _is_candidate(line):
            continue
        if COMPANY_INDICATOR_RE.search(line):
            return Hit(line, f"line {i + 1} (company indicator)")
        if candidate is None and PROPER_CASE_RE.match(line):
            candidate = Hit(line, f"line {i + 1} (capitalized)")

    return candidate


def party_label_merchant(text: str) -> Optional[Hit[str]]:
    """The line following a "Bill to:" / "From:" / "Vendor:" label."""
    match = PARTY_LABEL_RE.search(text)
    if not match:
        return None
    name = match.group(1).strip()
    if MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        return Hit(name, f"after label {match.group(0).splitlines()[0].strip()!r}")
    return None


def apply_vendor_overrides(
    text: str,
    merchant: Optional[str],
    account_holder_names: tuple[str, ...] = (),
    overrides: tuple[VendorOverride, ...] = VENDOR_OVERRIDES,
) -> Optional[VendorOverride]:
    """
    Pick the override that applies to this document, if any.

    FORCE overrides win regardless of the heuristic result. FALLBACK
    overrides apply when no merchant was found, or when the "merchant" is
    really the account holder's own name printed in the letterhead.
    """
    lowered = text.lower()
    for override in overrides:
        if override.mode == OverrideMode.FORCE and override.matches(lowered):
            return override

    unresolved = merchant is None or any(
        name.lower() in merchant.lower() for name in account_holder_names
    )
    if unresolved:
        for override in overrides:
            if override.mode == OverrideMode.FALLBACK and override.matches(lowered):
                return override
    return None


def extract_merchant(
    text: str,
    max_lines: int = 8,
    account_holder_names: tuple[str, ...] = (),
) -> tuple[Optional[str], Optional[str]]:
    """
    Find the merchant name.

    Returns:
        (merchant or None, provenance note or None)
    """
    merchant: Optional[str] = None
    note: Optional[str] = None

    for name, func, args in (
        ("header", header_merchant, (text, max_lines)),
        ("party_label", party_label_merchant, (text,)),
    ):
        hit = run_strategy(name, func, *args)
        if hit is not None:
            merchant, note = hit.value, f"{name}: {hit.value!r} {hit.evidence}"
            break

    override = apply_vendor_overrides(text, merchant, account_holder_names)
    if override is not None:
        logger.debug("merchant override %r replaces %r", override.canonical_name, merchant)
        merchant = override.canonical_name
        note = f"vendor_override ({override.mode.value}): {override.canonical_name!r}"

    return merchant, note

"""
Date extraction from receipt/invoice text.

Strategies are tried in order and the first one yielding a usable date
wins. Inside a matched span a numeric date (7/22/2025) is preferred over a
written one (July 22, 2025). Output is always MM/DD/YYYY when the date can
be validated.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from .base import Hit, first_hit

logger = logging.getLogger(__name__)

MONTHS = (
    "january|february|march|april|may|june|july|august|september|october|november|december"
    "|jan|feb|mar|apr|jun|jul|aug|sep|sept|oct|nov|dec"
)

NUMERIC_DATE = r"(?<!\d)\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}(?!\d)"
WRITTEN_DATE = r"[a-z]+\.?\s+\d{1,2},?\s+\d{4}"

NUMERIC_DATE_RE = re.compile(rf"({NUMERIC_DATE})")
WRITTEN_DATE_RE = re.compile(rf"\b({MONTHS})\.?\s+(\d{{1,2}}),?\s+(\d{{4}})", re.IGNORECASE)

LABEL_WRITTEN_RE = re.compile(
    rf"(?:invoice\s*date|bill\s*date|date\s*paid)[\s:]*({WRITTEN_DATE})", re.IGNORECASE
)
# "Date paidJuly 22, 2025" - PDF text layers often drop the space
DATE_PAID_GLUED_RE = re.compile(rf"date\s*paid({WRITTEN_DATE})", re.IGNORECASE)
LABEL_NUMERIC_RE = re.compile(
    rf"(?:invoice\s*date|bill\s*date|date)[\s:]*({NUMERIC_DATE})", re.IGNORECASE
)
DUE_DATE_RE = re.compile(
    rf"(?:due\s*date|payment\s*due)[\s:]*({WRITTEN_DATE}|{NUMERIC_DATE})", re.IGNORECASE
)
GENERIC_NUMERIC_RE = re.compile(rf"({NUMERIC_DATE})")
MONTH_NAME_RE = re.compile(
    r"((?:january|february|march|april|may|june|july|august|september|october|november"
    r"|december)\s+\d{1,2},?\s+\d{4})",
    re.IGNORECASE,
)


def normalize_numeric_date(token: str) -> str:
    """
    Normalize a numeric month/day/year token.

    "7/4/25" -> "07/04/2025". Tokens that are not a valid US-order date
    (e.g. "22/07/2025") are kept with "/" separators; downstream date
    parsing then ignores them.
    """
    parts = re.split(r"[/\-]", token)
    try:
        month, day, year = (int(p) for p in parts)
        if len(parts[2]) == 2:
            year += 2000
        elif len(parts[2]) != 4:
            raise ValueError(f"unsupported year: {parts[2]}")
        parsed = datetime(year, month, day)
    except ValueError:
        return "/".join(parts)
    return parsed.strftime("%m/%d/%Y")


def parse_written_date(text: str) -> Optional[str]:
    """
    Convert "July 22, 2025" / "Sept. 3 2024" to MM/DD/YYYY.

    Returns None when no month name is present or the date does not exist.
    """
    match = WRITTEN_DATE_RE.search(text)
    if not match:
        return None
    month_name, day, year = match.groups()
    month_key = month_name.lower()[:3]
    try:
        parsed = datetime.strptime(f"{month_key} {day} {year}", "%b %d %Y")
    except ValueError:
        return None
    return parsed.strftime("%m/%d/%Y")


def _date_from_span(span: str) -> Optional[str]:
    numeric = NUMERIC_DATE_RE.search(span)
    if numeric:
        return normalize_numeric_date(numeric.group(1))
    return parse_written_date(span)


def _first_date(pattern: re.Pattern, text: str) -> Optional[Hit[str]]:
    for match in pattern.finditer(text):
        value = _date_from_span(match.group(1))
        if value:
            return Hit(value, match.group(0).strip())
    return None


def label_written_date(text: str) -> Optional[Hit[str]]:
    """Labelled written dates: "Invoice Date: April 10, 2025", "Date paid July 22, 2025"."""
    return _first_date(LABEL_WRITTEN_RE, text)


def date_paid_glued(text: str) -> Optional[Hit[str]]:
    return _first_date(DATE_PAID_GLUED_RE, text)


def label_numeric_date(text: str) -> Optional[Hit[str]]:
    return _first_date(LABEL_NUMERIC_RE, text)


def due_date(text: str) -> Optional[Hit[str]]:
    return _first_date(DUE_DATE_RE, text)


def generic_numeric_date(text: str) -> Optional[Hit[str]]:
    return _first_date(GENERIC_NUMERIC_RE, text)


def month_name_date(text: str) -> Optional[Hit[str]]:
    return _first_date(MONTH_NAME_RE, text)


DATE_STRATEGIES = [
    ("label_written", label_written_date),
    ("date_paid_glued", date_paid_glued),
    ("label_numeric", label_numeric_date),
    ("due_date", due_date),
    ("generic_numeric", generic_numeric_date),
    ("month_name", month_name_date),
]


def extract_date(text: str) -> tuple[Optional[str], Optional[str]]:
    """
    Find the document date.

    Returns:
        (MM/DD/YYYY or None, provenance note or None)
    """
    name, hit = first_hit(DATE_STRATEGIES, text)
    if hit is None:
        return None, None
    logger.debug("date = %s via %s (%r)", hit.value, name, hit.evidence)
    return hit.value, f"{name}: {hit.evidence!r}"

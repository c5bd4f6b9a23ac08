"""
Date parsing with handling of European DD.MM.YYYY vs American MM/DD/YYYY input.

When the first number of a dot-separated date is > 12 it must be the day,
since months only go to 12. When the second number is > 12 the first one is
the month. If both are <= 12 the date is ambiguous and dot-separated dates are
read the European way (day.month.year).
"""

import re
from datetime import date, datetime
from typing import Iterator, NamedTuple

from dateutil.relativedelta import relativedelta

DOT_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{2,4})$")

# Tried in order after the dot-separated rule; first successful parse wins.
# strptime's %m/%d accept one or two digits, so M/d/yyyy and d/M/yyyy are covered.
STANDARD_FORMATS = [
    "%m/%d/%Y",   # 02/06/2026, 2/6/2026
    "%d/%m/%Y",   # 13/02/2026
    "%Y-%m-%d",   # 2026-02-06
    "%B %d, %Y",  # February 6, 2026
    "%b %d, %Y",  # Feb 6, 2026
    "%d %B %Y",   # 6 February 2026
    "%d %b %Y",   # 6 Feb 2026
    "%m-%d-%Y",
    "%d-%m-%Y",
    "%m/%d/%y",
    "%d/%m/%y",
]

_MONTHS = r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?"

# Regex patterns for detecting date-like strings (search and classification)
DATE_PATTERNS = [
    r"\d{1,2}\.\d{1,2}\.\d{2,4}",              # DD.MM.YYYY
    r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}",          # DD/MM/YYYY or MM/DD/YYYY
    r"\d{4}[/-]\d{1,2}[/-]\d{1,2}",            # YYYY-MM-DD
    _MONTHS + r"\s+\d{1,2},?\s+\d{4}",         # Month DD, YYYY
    r"\d{1,2}\s+" + _MONTHS + r"\s+\d{4}",     # DD Month YYYY
]

_DETECTORS = [
    re.compile(r"(?<![\d.])" + pattern + r"(?![\d])", re.IGNORECASE) for pattern in DATE_PATTERNS
]
_MONTH_FIRST_RE = re.compile(r"^([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})$")
_DAY_FIRST_RE = re.compile(r"^(\d{1,2})\s+([A-Za-z]+)\.?\s+(\d{4})$")


class DateMatch(NamedTuple):
    text: str
    start: int
    end: int
    value: date


def expand_year(year: int) -> int:
    if year < 100:
        return year + (1900 if year > 50 else 2000)
    return year


def parse_dot_separated_date(text: str) -> date | None:
    """
    Parse a dot-separated date (e.g. "06.02.2026").

    - first number > 12: DD.MM.YYYY
    - second number > 12: MM.DD.YYYY
    - both <= 12: DD.MM.YYYY (European default)
    """
    match = DOT_DATE_RE.match(text.strip())
    if not match:
        return None

    first, second = int(match.group(1)), int(match.group(2))
    year = expand_year(int(match.group(3)))

    if first > 12:
        day, month = first, second
    elif second > 12:
        month, day = first, second
    else:
        day, month = first, second

    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None

    try:
        return date(year, month, day)
    except ValueError:
        # 31.02.2026 and friends
        return None


def _normalize_month_name(text: str) -> str:
    """Bring "Feb. 6 2026" / "6 Feb. 2026" into the shapes STANDARD_FORMATS expect"""
    match = _MONTH_FIRST_RE.match(text)
    if match:
        return f"{_month_name(match.group(1))} {match.group(2)}, {match.group(3)}"
    match = _DAY_FIRST_RE.match(text)
    if match:
        return f"{match.group(1)} {_month_name(match.group(2))} {match.group(3)}"
    return text


def _month_name(name: str) -> str:
    # "Sept" is neither %B nor %b
    try:
        datetime.strptime(name, "%B")
        return name
    except ValueError:
        return name[:3]


def parse_date(text: str) -> date | None:
    """
    Parse a date string with smart format detection.

    Returns:
        The parsed date, or None when no supported format matches
    """
    if not text:
        return None
    trimmed = " ".join(text.split())

    parsed = parse_dot_separated_date(trimmed)
    if parsed:
        return parsed

    candidates = [trimmed]
    normalized = _normalize_month_name(trimmed)
    if normalized != trimmed:
        candidates.append(normalized)

    for candidate in candidates:
        for fmt in STANDARD_FORMATS:
            try:
                return datetime.strptime(candidate, fmt).date()
            except ValueError:
                continue
    return None


def looks_like_date(text: str) -> bool:
    return any(detector.search(text) for detector in _DETECTORS)


def find_dates(text: str) -> Iterator[DateMatch]:
    """
    Yield every date-like substring of text that parses, in text order.

    Overlapping detections are reported once, keeping the earliest and longest.
    """
    spans: list[DateMatch] = []
    for detector in _DETECTORS:
        for match in detector.finditer(text):
            parsed = parse_date(match.group(0))
            if parsed is None:
                continue
            spans.append(DateMatch(match.group(0), match.start(), match.end(), parsed))

    spans.sort(key=lambda m: (m.start, -(m.end - m.start)))
    last_end = -1
    for span in spans:
        if span.start >= last_end:
            last_end = span.end
            yield span


def within_date_window(value: date, today: date, past_years: int = 5, future_years: int = 10) -> bool:
    """Whether value lies within [-past_years, +future_years] whole years of today"""
    years = relativedelta(value, today).years
    return -past_years <= years <= future_years

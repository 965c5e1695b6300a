"""
Date phrase resolution.

Turns natural-language temporal phrases into half-open date intervals
[start_date, end_date). Rules are evaluated in order and the first match wins.

Every branch, "last month" included, is half-open, so callers always emit
`column >= start` and `column < end`.
"""

import calendar
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta

import structlog

logger = structlog.get_logger()

MONTHS = {
    "january": 1,
    "jan": 1,
    "february": 2,
    "feb": 2,
    "march": 3,
    "mar": 3,
    "april": 4,
    "apr": 4,
    "may": 5,
    "june": 6,
    "jun": 6,
    "july": 7,
    "jul": 7,
    "august": 8,
    "aug": 8,
    "september": 9,
    "sept": 9,
    "sep": 9,
    "october": 10,
    "oct": 10,
    "november": 11,
    "nov": 11,
    "december": 12,
    "dec": 12,
}

# Longest names first so "june" wins over "jun"
_MONTH = "(" + "|".join(sorted(MONTHS, key=len, reverse=True)) + ")"
_DAY = r"(\d{1,2})(?:st|nd|rd|th)?"
_YEAR = r"(\d{4})"


@dataclass(frozen=True)
class DateRange:
    """Half-open calendar interval."""

    start_date: date  # Inclusive
    end_date: date  # Exclusive

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days


def first_of_next_month(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1)
    return date(year, month + 1, 1)


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _first_week(match: re.Match, today: date) -> DateRange:
    start = date(int(match.group(2)), MONTHS[match.group(1)], 1)
    return DateRange(start, start + timedelta(days=7))


def _between(match: re.Match, today: date) -> DateRange:
    first_month = MONTHS[match.group(1)]
    second_month = MONTHS[match.group(3)] if match.group(3) else first_month
    year = int(match.group(5))
    start = date(year, first_month, int(match.group(2)))
    # Closing day is inclusive in the phrase
    end = date(year, second_month, int(match.group(4))) + timedelta(days=1)
    return DateRange(start, end)


def _month_year(match: re.Match, today: date) -> DateRange:
    year, month = int(match.group(2)), MONTHS[match.group(1)]
    return DateRange(date(year, month, 1), first_of_next_month(year, month))


def _last_month(match: re.Match, today: date) -> DateRange:
    current_first = today.replace(day=1)
    previous_first = (current_first - timedelta(days=1)).replace(day=1)
    return DateRange(previous_first, current_first)


def _whole_year(match: re.Match, today: date) -> DateRange:
    year = int(match.group(1))
    return DateRange(date(year, 1, 1), date(year + 1, 1, 1))


# Ordered rule table: (name, pattern, handler)
_DATE_RULES: list[tuple[str, re.Pattern, Callable[[re.Match, date], DateRange]]] = [
    ("first_week", re.compile(rf"\bfirst\s+week\s+of\s+{_MONTH}\s*,?\s+{_YEAR}\b"), _first_week),
    (
        "between",
        re.compile(rf"\bbetween\s+{_MONTH}\s+{_DAY}\s+and\s+(?:{_MONTH}\s+)?{_DAY}\s*,?\s+{_YEAR}\b"),
        _between,
    ),
    ("month_year", re.compile(rf"\b{_MONTH}\s*,?\s+{_YEAR}\b"), _month_year),
    ("last_month", re.compile(r"\blast\s+month\b"), _last_month),
    ("year", re.compile(rf"\b(?:in|during)\s+{_YEAR}\b"), _whole_year),
]


def resolve_date_phrase(text: str, today: date | None = None) -> DateRange | None:
    """
    Resolve the first recognised temporal phrase in text.

    Args:
        text: Raw question text
        today: Reference date for relative phrases (defaults to date.today())

    Returns:
        DateRange, or None when no rule matches

    Examples:
        >>> resolve_date_phrase("rides in June 2025")
        DateRange(start_date=datetime.date(2025, 6, 1), end_date=datetime.date(2025, 7, 1))
        >>> resolve_date_phrase("first week of June 2025").days
        7
    """
    lowered = text.lower()
    reference = today or date.today()

    for name, pattern, handler in _DATE_RULES:
        match = pattern.search(lowered)
        if match is None:
            continue
        try:
            resolved = handler(match, reference)
        except ValueError as e:
            # e.g. "between feb 30 and ..." - not a real calendar date
            logger.debug("date_phrase_invalid", rule=name, phrase=match.group(0), error=str(e))
            continue
        logger.debug(
            "date_phrase_resolved",
            rule=name,
            start=resolved.start_date.isoformat(),
            end=resolved.end_date.isoformat(),
        )
        return resolved

    return None


def find_month_year(text: str) -> tuple[int, int] | None:
    """Return (year, month) of the first bare month-year phrase, if any."""
    match = _DATE_RULES[2][1].search(text.lower())
    if match is None:
        return None
    return int(match.group(2)), MONTHS[match.group(1)]

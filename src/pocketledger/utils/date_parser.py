"""Date parsing utilities."""

import re
from datetime import date, timedelta
from typing import Optional
from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


# Day-first forms (DD-MM-YYYY, DD/MM/YY) and ISO-like year-first forms.
STATEMENT_DATE_PATTERN = re.compile(
    r"\b(?:\d{4}[-/]\d{1,2}[-/]\d{1,2}|\d{1,2}[-/]\d{1,2}[-/](?:\d{4}|\d{2}))\b"
)

_YEAR_FIRST = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_DAY_FIRST = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4}|\d{2})$")


def normalize_statement_date(date_str: str) -> Optional[str]:
    """Normalize a statement date token to canonical ``YYYY-MM-DD``.

    Accepts ``DD-MM-YYYY``, ``DD/MM/YYYY``, ``YYYY-MM-DD`` and two-digit-year
    variants. Two-digit years below 50 map to 20xx, the rest to 19xx.
    Only month 1-12 and day 1-31 are checked; ``31-02-2024`` passes.

    Args:
        date_str: Candidate date token

    Returns:
        Canonical date string, or None if the token is not a statement date
    """
    token = date_str.strip()
    match = _YEAR_FIRST.match(token)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = _DAY_FIRST.match(token)
        if match is None:
            return None
        day, month, year = (int(g) for g in match.groups())
        if len(match.group(3)) == 2:
            year += 2000 if year < 50 else 1900

    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


def to_calendar_date(canonical: str) -> date:
    """Convert a canonical statement date to a real date.

    Raises:
        ValueError: If the date does not exist on the calendar (e.g. Feb 31)
    """
    try:
        return date.fromisoformat(canonical)
    except (TypeError, ValueError) as e:
        raise ValueError(f"'{canonical}' is not a valid calendar date: {e}")


_RELATIVE_DAYS = {"yesterday": -1, "today": 0, "tomorrow": 1}
_PERIOD_UNITS = ("week", "month", "year")
SUPPORTED_PERIODS = ("this-month", "this-year", "last-month", "last-year")


def _period_start(unit: str, today: date, back: int = 0) -> date:
    """First day of the week, month or year containing today, ``back`` periods ago."""
    if unit == "week":
        return today - timedelta(days=today.weekday(), weeks=back)
    if unit == "month":
        return today.replace(day=1) - relativedelta(months=back)
    return today.replace(month=1, day=1) - relativedelta(years=back)


def parse_date(date_str: str) -> date:
    """Parse a date string into a date object.

    Relative forms resolve against today: ``today``, ``yesterday``,
    ``tomorrow`` and ``this``/``last`` followed by ``week``, ``month`` or
    ``year`` (the first day of that period). Numeric dates are read day first,
    anything else goes through dateutil.

    Raises:
        ValueError: If date string cannot be parsed
    """
    text = date_str.strip().lower()
    today = date.today()

    if text in _RELATIVE_DAYS:
        return today + timedelta(days=_RELATIVE_DAYS[text])

    which, _, unit = text.partition(" ")
    if which in ("this", "last"):
        if unit not in _PERIOD_UNITS:
            raise ValueError(f"Unknown relative date '{date_str}'. Use this/last with week, month or year")
        return _period_start(unit, today, back=1 if which == "last" else 0)

    canonical = normalize_statement_date(text)
    if canonical is not None:
        return to_calendar_date(canonical)

    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def get_date_range(period: str) -> tuple[date, date]:
    """Return the (start, end) dates of a named reporting period.

    ``this-*`` periods end today; ``last-*`` periods end the day before the
    current one starts.
    """
    key = period.strip().lower()
    if key not in SUPPORTED_PERIODS:
        raise ValueError(f"Unknown period: '{period}'. Supported periods: {', '.join(SUPPORTED_PERIODS)}")

    which, unit = key.split("-")
    today = date.today()
    current = _period_start(unit, today)
    if which == "this":
        return current, today
    return _period_start(unit, today, back=1), current - timedelta(days=1)

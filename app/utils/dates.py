"""Travel date parsing and validation for the chat dialogs."""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

# (pattern, strptime format, two-digit year)
_DATE_FORMATS = [
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "%Y-%m-%d", False),
    (re.compile(r"^\d{2}-\d{2}-\d{2}$"), "%d-%m-%y", True),
    (re.compile(r"^\d{2}-\d{2}-\d{4}$"), "%d-%m-%Y", False),
    (re.compile(r"^\d{2}/\d{2}/\d{4}$"), "%d/%m/%Y", False),
]

ONE_WAY_TOKEN = "oneway"


def parse_date(text: str) -> Optional[str]:
    """
    Normalise a user-typed date to YYYY-MM-DD.

    Accepts YYYY-MM-DD, DD-MM-YY (always 20YY), DD-MM-YYYY and DD/MM/YYYY.
    Returns None for anything else, including impossible dates like 31-02-2025.
    """
    if not text:
        return None
    text = text.strip()

    for pattern, fmt, short_year in _DATE_FORMATS:
        if not pattern.match(text):
            continue
        if short_year:
            # strptime maps 69-99 to 19xx
            day, month, year = text.split("-")
            text, fmt = f"{day}-{month}-20{year}", "%d-%m-%Y"
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            return None

    return None


def to_date(value: str) -> date:
    return date.fromisoformat(value)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def is_valid_travel_date(value: str, horizon_days: int = 330, today: Optional[date] = None) -> bool:
    """True if the ISO date is strictly after today and within the booking horizon."""
    today = today or today_utc()
    try:
        travel = to_date(value)
    except ValueError:
        return False
    return today < travel <= today + timedelta(days=horizon_days)


def is_valid_return_date(departure: str, return_date: str) -> bool:
    try:
        return to_date(return_date) > to_date(departure)
    except ValueError:
        return False


def is_one_way(text: str) -> bool:
    return text.strip().lower() == ONE_WAY_TOKEN

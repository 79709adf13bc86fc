import re
from typing import Optional

from errors import ValidationError

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_MONTH_INDEX = {name.lower(): idx for idx, name in enumerate(MONTH_NAMES, start=1)}
_LABEL_RE = re.compile(r"^\s*([A-Za-z]+)\s*[\s,./_-]\s*(\d{4})\s*$")

INVALID_MONTH_MESSAGE = 'Month must be in format "Month YYYY" (e.g., January 2025)'


def parse_month_label(value: object) -> tuple[int, int]:
    """Return ``(year, month)`` for a label such as ``"january-2025"``."""
    if not isinstance(value, str):
        raise ValidationError(INVALID_MONTH_MESSAGE)
    match = _LABEL_RE.match(value)
    if not match:
        raise ValidationError(INVALID_MONTH_MESSAGE)
    month = _MONTH_INDEX.get(match.group(1).lower())
    year = int(match.group(2))
    if month is None or year < 1:
        raise ValidationError(INVALID_MONTH_MESSAGE)
    return year, month


def format_month_label(year: int, month: int) -> str:
    return f"{MONTH_NAMES[month - 1]} {year:04d}"


def normalize_month_label(value: object) -> str:
    year, month = parse_month_label(value)
    return format_month_label(year, month)


def month_sort_key(label: str) -> tuple[int, int]:
    return parse_month_label(label)


def month_in_range(
    label: str, start: Optional[str] = None, end: Optional[str] = None
) -> bool:
    key = month_sort_key(label)
    if start is not None and key < month_sort_key(start):
        return False
    if end is not None and key > month_sort_key(end):
        return False
    return True

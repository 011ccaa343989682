"""
Small formatting and parsing helpers shared by the pipeline and the web layer.
"""

import re
from datetime import date, datetime
from typing import Any, Optional, Union

PLACEHOLDER = "Select..."

_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def is_blank(value: Any, placeholder: str = PLACEHOLDER) -> bool:
    """True for None, whitespace-only strings and the placeholder sentinel."""
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped == placeholder
    return False


def clean_value(value: Any, placeholder: str = PLACEHOLDER) -> Optional[str]:
    """Trimmed string, or None when blank."""
    if is_blank(value, placeholder):
        return None
    return str(value).strip()


def plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse a datetime-local ("2024-01-15T10:00") or date ("2024-01-15") value.

    Returns a naive datetime in local wall-clock time, or None when the value
    is empty or not a recognisable ISO date/time.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def format_date(value: Union[str, datetime, date, None]) -> str:
    """'Jan 15, 2024'"""
    parsed = parse_datetime(value)
    if parsed is None:
        return ""
    return f"{_MONTHS[parsed.month - 1]} {parsed.day}, {parsed.year}"


def format_datetime(value: Union[str, datetime, date, None]) -> str:
    """'Jan 15, 2024 at 10:00'. Unparseable input is returned unchanged."""
    parsed = parse_datetime(value)
    if parsed is None:
        return "" if value is None else str(value)
    return f"{format_date(parsed)} at {parsed:%H:%M}"


def format_phone(phone: Optional[str]) -> str:
    """Format a 10-digit phone number as 905-555-1234; anything else unchanged."""
    if not phone:
        return ""
    digits = clean_phone(phone)
    if len(digits) == 10:
        return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"
    return phone


def clean_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")

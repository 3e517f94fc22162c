"""
Parsing and display helpers for amounts and SAT timestamps.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


ZERO = Decimal("0")

_DATETIME_FORMATS = [
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y",
    "%Y-%m-%d",
]


def parse_decimal(value: Any) -> Decimal:
    """Parse a numeric attribute to Decimal, defaulting to 0."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        text = str(value).strip()
        parsed = Decimal(text) if text else ZERO
    except (InvalidOperation, ValueError):
        return ZERO
    return parsed if parsed.is_finite() else ZERO


def parse_amount(value: Any) -> Decimal:
    """
    Parse a money amount as the SAT portal renders it.

    Handles "$1,234.56", "1234.56" and plain numbers. Anything that does not
    parse becomes 0.
    """
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").replace(" ", "")
    return parse_decimal(value)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a SAT timestamp. Offsets are normalized to naive UTC so values compare."""
    if not value:
        return None
    text = str(value).strip()
    if not text:
        return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    except ValueError:
        pass

    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a request date parameter."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def format_currency(amount: Decimal, symbol: str = "$ ") -> str:
    """Render an amount as "$ 1,234.56"."""
    return f"{symbol}{amount:,.2f}"


def format_timestamp(value: Optional[str]) -> str:
    """Render a SAT timestamp as dd/mm/YYYY HH:MM:SS; unparseable text is kept."""
    parsed = parse_datetime(value)
    if parsed is None:
        return value or ""
    return parsed.strftime("%d/%m/%Y %H:%M:%S")


def format_date_range(start: date, end: date) -> str:
    return f"{start.strftime('%d/%m/%Y')} - {end.strftime('%d/%m/%Y')}"

"""Utility modules."""

from .formatting import (
    format_currency,
    format_date_range,
    format_timestamp,
    parse_amount,
    parse_date,
    parse_datetime,
    parse_decimal,
)

__all__ = [
    "format_currency",
    "format_date_range",
    "format_timestamp",
    "parse_amount",
    "parse_date",
    "parse_datetime",
    "parse_decimal",
]

#!/usr/bin/env python3
"""
FinancialDate Primitive Type

Immutable date wrapper with consistent formatting for reconciliation.
Bank feeds and accounting records use several date shapes; everything is
normalised to FinancialDate at the boundary, and scoring uses the lenient
helpers below so an unparseable date never raises.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

# Formats accepted by coerce_date, tried in order
ACCEPTED_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d", "%d-%m-%Y")


@dataclass(frozen=True, order=True)
class FinancialDate:
    """Immutable financial date wrapper with consistent formatting."""

    date: date

    @classmethod
    def from_string(cls, date_str: str, date_format: str = "%Y-%m-%d") -> "FinancialDate":
        """
        Parse from string in specified format.

        Args:
            date_str: Date string to parse
            date_format: Date format (default: ISO format "%Y-%m-%d")

        Returns:
            FinancialDate object
        """
        return cls(date=datetime.strptime(date_str, date_format).date())

    @classmethod
    def from_timestamp(cls, timestamp: float) -> "FinancialDate":
        """Create from Unix timestamp."""
        return cls(date=datetime.fromtimestamp(timestamp).date())

    @classmethod
    def today(cls) -> "FinancialDate":
        """Get today's date."""
        return cls(date=date.today())

    def to_iso_string(self) -> str:
        """Format as YYYY-MM-DD."""
        return self.date.isoformat()

    def days_from(self, other: "FinancialDate") -> int:
        """Absolute number of days between this date and another."""
        return abs((self.date - other.date).days)

    def __str__(self) -> str:
        return self.to_iso_string()

    def __repr__(self) -> str:
        return f"FinancialDate(date={self.date!r})"


def coerce_date(value: Any) -> FinancialDate | None:
    """
    Best-effort conversion of a date-like value to FinancialDate.

    Accepts FinancialDate, date, datetime and strings in any of
    ACCEPTED_DATE_FORMATS (an ISO timestamp prefix is also accepted).

    Returns:
        FinancialDate, or None when the value is missing or unparseable
    """
    if value is None:
        return None
    if isinstance(value, FinancialDate):
        return value
    if isinstance(value, datetime):
        return FinancialDate(date=value.date())
    if isinstance(value, date):
        return FinancialDate(date=value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    # "2024-01-10T08:30:00Z" style timestamps
    if len(text) > 10 and text[4] == "-" and text[10] in "T ":
        text = text[:10]

    for date_format in ACCEPTED_DATE_FORMATS:
        try:
            return FinancialDate.from_string(text, date_format)
        except ValueError:
            continue
    return None


def days_between(first: Any, second: Any) -> int | None:
    """
    Absolute day difference between two date-like values.

    Returns:
        Number of days, or None when either side cannot be parsed
    """
    a = coerce_date(first)
    b = coerce_date(second)
    if a is None or b is None:
        return None
    return a.days_from(b)

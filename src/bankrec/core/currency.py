#!/usr/bin/env python3
"""
Currency Amount Handling Utilities

All reconciliation arithmetic uses integer minor units (cents) to avoid
floating-point drift when matched amounts are accumulated on a bank line.

Amount Systems:
- Bank feeds and accounting records arrive as decimal strings or floats
- Internal calculations use cents: 100 cents = 1.00 of the line currency
- Display uses plain decimal strings: "1,000.00"

Key Principles:
- Never use floating-point arithmetic for amount comparisons
- The reconciliation tolerance is exactly one cent
- Percentage comparisons are done by cross-multiplication
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

# 0.01 of a currency unit
TOLERANCE_CENTS = 1


def cents_to_amount_str(cents: int, grouping: bool = False) -> str:
    """
    Convert cents to a decimal amount string using pure integer arithmetic.

    Args:
        cents: Amount in cents
        grouping: If True, insert thousands separators

    Returns:
        Formatted amount string

    Example:
        cents_to_amount_str(100050) -> "1000.50"
        cents_to_amount_str(100050, grouping=True) -> "1,000.50"
    """
    is_negative = cents < 0
    abs_cents = abs(int(cents))

    units = abs_cents // 100
    remainder = abs_cents % 100

    units_str = f"{units:,}" if grouping else str(units)
    if is_negative:
        return f"-{units_str}.{remainder:02d}"
    return f"{units_str}.{remainder:02d}"


def parse_amount_to_cents(amount_str: str) -> int:
    """
    Parse an amount string to cents using integer arithmetic only.

    Currency symbols and thousands separators are stripped. Fractional digits
    beyond two are truncated.

    Examples:
        parse_amount_to_cents("12.34") -> 1234
        parse_amount_to_cents("฿1,234.56") -> 123456
        parse_amount_to_cents("12.5") -> 1250
        parse_amount_to_cents("-12.34") -> -1234
    """
    clean = "".join(ch for ch in amount_str if ch.isdigit() or ch in ".-")

    if not clean or clean in ("-", "."):
        return 0

    is_negative = clean.startswith("-")
    clean = clean.lstrip("-")

    if "." in clean:
        whole, _, fraction = clean.partition(".")
        units = int(whole) if whole else 0
        cents = int(fraction.replace(".", "").ljust(2, "0")[:2])
        total = units * 100 + cents
    else:
        total = int(clean) * 100

    return -total if is_negative else total


def safe_amount_to_cents(value: Union[str, int, float, Decimal, None]) -> int:
    """
    Safely convert an amount of any supported type to integer cents.

    Floats and Decimals are rounded half-up to the nearest cent. Invalid input
    yields 0 rather than raising.

    Examples:
        safe_amount_to_cents('1,000.00') -> 100000
        safe_amount_to_cents(10.05) -> 1005
        safe_amount_to_cents(None) -> 0
    """
    if value is None:
        return 0
    try:
        if isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return value * 100
        if isinstance(value, (float, Decimal)):
            quantized = (Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            return int(quantized)
        clean = str(value).strip()
        if not clean or clean.lower() in ("nan", "none", "null"):
            return 0
        return parse_amount_to_cents(clean)
    except (ValueError, TypeError, OverflowError, InvalidOperation):
        return 0


def within_tolerance(a_cents: int, b_cents: int, tolerance: int = TOLERANCE_CENTS) -> bool:
    """Check whether two cent amounts differ by no more than the tolerance."""
    return abs(a_cents - b_cents) <= tolerance


def within_percent(a_cents: int, b_cents: int, percent: int = 1) -> bool:
    """
    Check whether two magnitudes are within a percentage of the larger one.

    Uses cross-multiplication so no division or float is involved. Two zero
    amounts are considered equal.

    Example:
        within_percent(100000, 100500) -> True   # 0.5% apart
        within_percent(100000, 102000) -> False  # ~2% apart
    """
    a = abs(a_cents)
    b = abs(b_cents)
    larger = max(a, b)
    if larger == 0:
        return True
    return abs(a - b) * 100 <= larger * percent


def format_cents(cents: int) -> str:
    """Format cents as an amount string with thousands separators."""
    return cents_to_amount_str(cents, grouping=True)

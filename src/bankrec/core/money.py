#!/usr/bin/env python3
"""
Money Primitive Type

Immutable amount wrapper that uses integer cents internally.
Prevents floating-point errors when matched amounts accumulate on a bank line.
"""

from dataclasses import dataclass
from decimal import Decimal

from .currency import cents_to_amount_str, parse_amount_to_cents, safe_amount_to_cents


@dataclass(frozen=True)
class Money:
    """
    Immutable money value in cents of the owning line's currency.

    Supports both positive (credits/inflows) and negative (debits/outflows) amounts.
    The currency itself lives on the bank line or record; Money only carries the
    magnitude so arithmetic stays integer-only.

    Examples:
        >>> credit = Money.from_cents(100000)
        >>> str(credit)
        '1,000.00'

        >>> debit = Money.from_amount("-250.50")
        >>> debit.to_cents()
        -25050

        >>> debit.abs()
        Money(cents=25050)
    """

    cents: int

    @classmethod
    def from_cents(cls, cents: int) -> "Money":
        """Create Money from cents."""
        return cls(cents=cents)

    @classmethod
    def from_amount(cls, amount: str | int | float | Decimal) -> "Money":
        """
        Parse from an amount string like '1,000.50' or a numeric value in major units.

        Args:
            amount: String like "1,000.50", integer 1000 or float 1000.5

        Returns:
            Money object
        """
        if isinstance(amount, str):
            return cls(cents=parse_amount_to_cents(amount))
        return cls(cents=safe_amount_to_cents(amount))

    @classmethod
    def zero(cls) -> "Money":
        """Zero amount."""
        return cls(cents=0)

    def to_cents(self) -> int:
        """Get value in cents."""
        return self.cents

    def to_decimal(self) -> Decimal:
        """Get value in major units as an exact Decimal."""
        return Decimal(self.cents) / Decimal(100)

    def abs(self) -> "Money":
        """Return absolute value of Money."""
        return Money(cents=abs(self.cents))

    def is_zero(self) -> bool:
        return self.cents == 0

    def __add__(self, other: "Money") -> "Money":
        """Add two Money objects."""
        return Money(cents=self.cents + other.cents)

    def __sub__(self, other: "Money") -> "Money":
        """Subtract two Money objects."""
        return Money(cents=self.cents - other.cents)

    def __neg__(self) -> "Money":
        return Money(cents=-self.cents)

    def __mul__(self, scalar: int) -> "Money":
        """Multiply Money by integer scalar."""
        return Money(cents=self.cents * scalar)

    def __lt__(self, other: "Money") -> bool:
        return self.cents < other.cents

    def __le__(self, other: "Money") -> bool:
        return self.cents <= other.cents

    def __gt__(self, other: "Money") -> bool:
        return self.cents > other.cents

    def __ge__(self, other: "Money") -> bool:
        return self.cents >= other.cents

    def __str__(self) -> str:
        """Format as amount string."""
        return cents_to_amount_str(self.cents, grouping=True)

    def __repr__(self) -> str:
        return f"Money(cents={self.cents})"

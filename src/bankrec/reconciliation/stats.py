#!/usr/bin/env python3
"""
Reconciliation Statistics

Read-only rollups over an already-scoped slice of bank feed lines. Amount
totals are kept per currency since lines in different currencies are never
summed together.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from ..core.currency import TOLERANCE_CENTS, cents_to_amount_str
from ..core.money import Money
from .models import BankFeedLine, BankFeedStatus

COVERAGE_COLUMNS = [
    "account_id",
    "currency",
    "total_lines",
    "matched",
    "unmatched",
    "missing_record",
    "needs_review",
    "ignored",
    "net_movement",
    "reconciled_pct",
]


def _open_gap(line: BankFeedLine) -> Money:
    """Part of |amount| not covered by matches, or zero when within tolerance."""
    gap = (line.abs_amount - line.matched_amount).abs()
    return gap if gap.cents > TOLERANCE_CENTS else Money.zero()


def _signed(line: BankFeedLine, amount: Money) -> Money:
    return -amount if line.amount.cents < 0 else amount


def _add(totals: dict[str, Money], currency: str, amount: Money) -> None:
    totals[currency] = totals.get(currency, Money.zero()) + amount


@dataclass
class ReconciliationStats:
    """Status counts, outstanding amounts and coverage for a set of lines."""

    total_lines: int = 0
    status_counts: dict[BankFeedStatus, int] = field(
        default_factory=lambda: {status: 0 for status in BankFeedStatus}
    )
    unmatched_amount: dict[str, Money] = field(default_factory=dict)
    discrepancy_amount: dict[str, Money] = field(default_factory=dict)
    partial_gap_amount: dict[str, Money] = field(default_factory=dict)
    net_movement: dict[str, Money] = field(default_factory=dict)
    total_system_movement: dict[str, Money] = field(default_factory=dict)

    @classmethod
    def from_lines(cls, lines: Iterable[BankFeedLine]) -> "ReconciliationStats":
        """
        Aggregate one pass over the lines.

        - unmatched_amount: sum of |amount| over unmatched and missing_record lines
        - discrepancy_amount: sum of | |amount| - matched_amount | over every
          line that is not ignored and whose gap exceeds the tolerance
        - partial_gap_amount: the same gap restricted to lines with some amount matched
        - net_movement: signed sum of all line amounts
        - total_system_movement: matched amounts, signed by their line's direction
        """
        stats = cls()
        for line in lines:
            currency = line.currency
            stats.total_lines += 1
            stats.status_counts[line.status] += 1
            _add(stats.net_movement, currency, line.amount)
            _add(stats.total_system_movement, currency, _signed(line, line.matched_amount))

            if line.status in (BankFeedStatus.UNMATCHED, BankFeedStatus.MISSING_RECORD):
                _add(stats.unmatched_amount, currency, line.abs_amount)

            if line.status == BankFeedStatus.IGNORED:
                continue
            gap = _open_gap(line)
            if gap.is_zero():
                continue
            _add(stats.discrepancy_amount, currency, gap)
            if not line.matched_amount.is_zero():
                _add(stats.partial_gap_amount, currency, gap)

        return stats

    @property
    def net_difference(self) -> dict[str, Money]:
        """Bank movement minus system movement, per currency."""
        return {
            currency: movement - self.total_system_movement.get(currency, Money.zero())
            for currency, movement in self.net_movement.items()
        }

    def count(self, status: BankFeedStatus) -> int:
        return self.status_counts.get(status, 0)

    @property
    def matched_count(self) -> int:
        return self.count(BankFeedStatus.MATCHED)

    @property
    def coverage_ratio(self) -> float:
        """matched lines / total lines; 0.0 for an empty scope."""
        if self.total_lines == 0:
            return 0.0
        return self.matched_count / self.total_lines

    def to_dict(self) -> dict[str, Any]:
        def amounts(totals: dict[str, Money]) -> dict[str, str]:
            return {c: cents_to_amount_str(m.cents) for c, m in sorted(totals.items())}

        return {
            "total_lines": self.total_lines,
            "status_counts": {status.value: count for status, count in self.status_counts.items()},
            "unmatched_amount": amounts(self.unmatched_amount),
            "discrepancy_amount": amounts(self.discrepancy_amount),
            "partial_gap_amount": amounts(self.partial_gap_amount),
            "net_movement": amounts(self.net_movement),
            "total_system_movement": amounts(self.total_system_movement),
            "net_difference": amounts(self.net_difference),
            "coverage_ratio": round(self.coverage_ratio, 4),
        }


def coverage_by_account(lines: Iterable[BankFeedLine]) -> pd.DataFrame:
    """
    Per-account reconciliation coverage.

    One row per (account_id, currency), sorted by account then currency.
    ``net_movement`` is in major units; ``reconciled_pct`` counts matched and
    ignored lines as reconciled.
    """
    rows: dict[tuple[str, str], dict[str, Any]] = {}
    for line in lines:
        key = (line.account_id, line.currency)
        row = rows.get(key)
        if row is None:
            row = {column: 0 for column in COVERAGE_COLUMNS}
            row["account_id"], row["currency"] = key
            row["net_cents"] = 0
            rows[key] = row
        row["total_lines"] += 1
        row[line.status.value] += 1
        row["net_cents"] += line.amount.cents

    if not rows:
        return pd.DataFrame(columns=COVERAGE_COLUMNS)

    df = pd.DataFrame(list(rows.values()))
    df["net_movement"] = df["net_cents"] / 100
    df["reconciled_pct"] = ((df["matched"] + df["ignored"]) / df["total_lines"] * 100).round(1)
    df = df.drop(columns=["net_cents"])
    return df[COVERAGE_COLUMNS].sort_values(["account_id", "currency"]).reset_index(drop=True)

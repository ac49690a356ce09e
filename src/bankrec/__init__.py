"""
bankrec - Bank Reconciliation Matching Engine

Scores imported bank statement lines against internal accounting records
(receipts, invoices, expenses), generates ranked suggestions, auto-matches
high-confidence pairs in bulk, and keeps the match/unmatch lifecycle
consistent with each line's bank amount.

Domain Packages:
- core: Money and currency handling, dates, configuration, errors
- reconciliation: scoring, suggestions, ledger, auto matching, statistics
- cli: Command-line interface

Example Usage:
    from bankrec.reconciliation import InMemoryRepository, ReconciliationService

    service = ReconciliationService(InMemoryRepository(lines, records))
    result = service.auto_match_bank_lines()
    print(result.summary_text())
"""

__version__ = "0.1.0"
__author__ = "bankrec contributors"

from .core.config import Environment, get_config
from .core.money import Money
from .reconciliation.models import BankFeedLine, BankFeedStatus, BankMatch, MatchingRuleSet, SystemRecord
from .reconciliation.service import ReconciliationService

__all__ = [
    # Core
    "Money",
    "get_config",
    "Environment",
    # Models
    "BankFeedLine",
    "BankFeedStatus",
    "BankMatch",
    "MatchingRuleSet",
    "SystemRecord",
    # Service
    "ReconciliationService",
]

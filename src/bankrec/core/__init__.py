"""
Core Utilities Package

Shared building blocks for the matching engine:
- Integer-cents amount handling with a one-cent tolerance
- Lenient financial date parsing
- Environment configuration and logging setup
- Typed error hierarchy
"""

from .config import (
    Config,
    Environment,
    MatchingConfig,
    get_config,
    get_data_dir,
    is_development,
    is_production,
    is_test,
    reload_config,
)
from .currency import (
    TOLERANCE_CENTS,
    cents_to_amount_str,
    format_cents,
    parse_amount_to_cents,
    safe_amount_to_cents,
    within_percent,
    within_tolerance,
)
from .dates import FinancialDate, coerce_date, days_between
from .errors import (
    ConcurrencyConflictError,
    LineAlreadyMatchedError,
    LineIgnoredError,
    LineNotFoundError,
    MatchNotFoundError,
    OverMatchError,
    ReconciliationError,
    RecordAlreadyMatchedError,
    RecordNotFoundError,
    ValidationError,
)
from .money import Money

__all__ = [
    # Configuration
    "Config",
    "Environment",
    "MatchingConfig",
    "get_config",
    "get_data_dir",
    "is_development",
    "is_production",
    "is_test",
    "reload_config",
    # Currency
    "TOLERANCE_CENTS",
    "cents_to_amount_str",
    "format_cents",
    "parse_amount_to_cents",
    "safe_amount_to_cents",
    "within_percent",
    "within_tolerance",
    # Dates
    "FinancialDate",
    "coerce_date",
    "days_between",
    # Errors
    "ConcurrencyConflictError",
    "LineAlreadyMatchedError",
    "LineIgnoredError",
    "LineNotFoundError",
    "MatchNotFoundError",
    "OverMatchError",
    "ReconciliationError",
    "RecordAlreadyMatchedError",
    "RecordNotFoundError",
    "ValidationError",
    "Money",
]

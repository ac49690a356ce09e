"""
Bank Reconciliation Package

Matching engine between bank feed lines and system records.

Components (leaf-first):
- ScoringEngine: weighted multi-criterion score for one (line, record) pair
- SuggestionGenerator: filtered, ranked, bounded suggestions for one line
- MatchLedger: create/remove matches, ignore/unignore lines
- AutoMatcher: greedy threshold-based batch matching
- ReconciliationStats: status and amount rollups
"""

from .auto_matcher import AutoMatcher, partition_by_currency
from .ledger import MatchLedger, derive_status
from .models import (
    AutoMatchResult,
    BankFeedLine,
    BankFeedStatus,
    BankMatch,
    BankRule,
    Criterion,
    LineFilter,
    MatchingRule,
    MatchingRuleSet,
    MatchInput,
    MatchMethod,
    RecordType,
    ScoreResult,
    SuggestedMatch,
    SystemRecord,
)
from .normalize import normalize_documents, to_system_record
from .repository import InMemoryRepository, JsonFileRepository, ReconciliationRepository
from .rules import ConfigRuleSetProvider, RuleUsage, RuleUsageTracker, StaticRuleSetProvider
from .scorer import ScoringEngine
from .service import ReconciliationService
from .stats import ReconciliationStats, coverage_by_account
from .suggestions import SuggestionCache, SuggestionGenerator

__all__ = [
    "AutoMatchResult",
    "AutoMatcher",
    "BankFeedLine",
    "BankFeedStatus",
    "BankMatch",
    "BankRule",
    "ConfigRuleSetProvider",
    "Criterion",
    "InMemoryRepository",
    "JsonFileRepository",
    "LineFilter",
    "MatchInput",
    "MatchLedger",
    "MatchMethod",
    "MatchingRule",
    "MatchingRuleSet",
    "ReconciliationRepository",
    "ReconciliationService",
    "ReconciliationStats",
    "RuleUsage",
    "RuleUsageTracker",
    "RecordType",
    "ScoreResult",
    "ScoringEngine",
    "StaticRuleSetProvider",
    "SuggestedMatch",
    "SuggestionCache",
    "SuggestionGenerator",
    "SystemRecord",
    "coverage_by_account",
    "derive_status",
    "normalize_documents",
    "partition_by_currency",
    "to_system_record",
]

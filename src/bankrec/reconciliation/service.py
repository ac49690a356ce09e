#!/usr/bin/env python3
"""
Reconciliation Service

Entry point for callers of the matching engine. Wires the repository, rule-set
provider, scoring, suggestion cache, ledger and auto matcher together.

The rule set is read fresh at the start of every scoring pass. The suggestion
cache is invalidated by every ledger write and misses whenever the visible
candidate set or rule set differs from the one it was computed against.
"""

import dataclasses
import logging
import threading
from collections.abc import Callable
from datetime import datetime

import pandas as pd

from ..core.config import Config
from ..core.money import Money
from .auto_matcher import AutoMatcher
from .ledger import MatchLedger
from .models import (
    AutoMatchResult,
    BankFeedLine,
    BankMatch,
    LineFilter,
    MatchInput,
    MatchMethod,
    ScoreResult,
    SuggestedMatch,
)
from .repository import JsonFileRepository, ReconciliationRepository
from .rules import ConfigRuleSetProvider, RuleSetProvider, RuleUsageTracker, StaticRuleSetProvider
from .scorer import ScoringEngine
from .stats import ReconciliationStats, coverage_by_account
from .suggestions import SuggestionCache, SuggestionGenerator

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Score, suggest, auto-match and manage matches over one repository"""

    def __init__(
        self,
        repository: ReconciliationRepository,
        rule_provider: RuleSetProvider | None = None,
        default_actor: str = "system",
        max_retries: int = 3,
        max_workers: int = 1,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.rule_provider = rule_provider or StaticRuleSetProvider()
        self.default_actor = default_actor
        self.max_workers = max_workers

        self.engine = ScoringEngine()
        self.generator = SuggestionGenerator(self.engine)
        self.cache = SuggestionCache()
        self.rule_usage = RuleUsageTracker()
        self.ledger = MatchLedger(repository, clock=clock, max_retries=max_retries, on_change=self.cache.invalidate)

    @classmethod
    def from_config(cls, config: Config) -> "ReconciliationService":
        """Service over the JSON file store and rule settings named by the configuration."""
        return cls(
            repository=JsonFileRepository(config.store.ledger_file),
            rule_provider=ConfigRuleSetProvider(config.matching),
            default_actor=config.default_actor,
            max_retries=config.matching.max_retries,
        )

    def score(self, line_id: str, record_id: str) -> ScoreResult:
        """Score one (line, record) pair under the current rule set."""
        line = self.repository.get_line(line_id)
        record = self.repository.get_record(record_id)
        return self.engine.score(line, record, self.rule_provider.current())

    def generate_suggested_matches(self, line_id: str, use_cache: bool = True) -> list[SuggestedMatch]:
        """
        Ranked suggestions for one line against unreconciled records in its currency.

        Raises:
            LineNotFoundError: If the line does not exist
        """
        line = self.repository.get_line(line_id)
        rule_set = self.rule_provider.current()
        candidates = self.repository.list_records(currency=line.currency, unreconciled_only=True)

        if use_cache:
            cached = self.cache.get(line, candidates, rule_set)
            if cached is not None:
                logger.debug("Suggestion cache hit for line %s", line_id)
                return cached

        suggestions = self.generator.generate(line, candidates, rule_set)
        self.cache.put(line, candidates, rule_set, suggestions)
        return suggestions

    def auto_match_bank_lines(
        self,
        line_filter: LineFilter | None = None,
        actor: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AutoMatchResult:
        """
        Auto-match every line in scope.

        Lines are read in import order; the candidate pool is all unreconciled
        records. Per-line failures are collected in the result.
        """
        rule_set = self.rule_provider.current()
        lines = self.repository.list_lines(line_filter)
        currencies = {line.currency for line in lines}
        candidates = [
            record for record in self.repository.list_records(unreconciled_only=True) if record.currency in currencies
        ]

        logger.info(
            "Auto-matching %d line(s) against %d candidate record(s) (threshold %d)",
            len(lines),
            len(candidates),
            rule_set.auto_match_threshold,
        )
        matcher = AutoMatcher(
            self.ledger, self.generator, actor=actor or self.default_actor, usage=self.rule_usage
        )
        return matcher.run_partitioned(lines, candidates, rule_set, max_workers=self.max_workers, cancel_event=cancel_event)

    def create_match(self, line_id: str, match_input: MatchInput) -> BankMatch:
        return self.ledger.create_match(line_id, match_input)

    def match_record(
        self,
        line_id: str,
        record_id: str,
        actor: str | None = None,
        amount: Money | None = None,
        adjustment_reason: str | None = None,
    ) -> BankMatch:
        """
        Match a line to a record chosen by a person.

        The match is recorded as ``suggested`` when the record is among the
        line's current suggestions and ``manual`` otherwise. Without an explicit
        amount, the record amount is used, capped at the line's outstanding
        amount.
        """
        line = self.repository.get_line(line_id)
        record = self.repository.get_record(record_id)

        suggestion = next((s for s in self.generate_suggested_matches(line_id) if s.record.id == record_id), None)
        if amount is None:
            amount = self._default_amount(line, record.amount.abs())

        if suggestion is not None:
            match_input = MatchInput.from_suggestion(
                suggestion, matched_by=actor or self.default_actor, matched_amount=amount
            )
        else:
            match_input = MatchInput(
                record_type=record.type,
                record_id=record.id,
                matched_amount=amount,
                matched_by=actor or self.default_actor,
                match_method=MatchMethod.MANUAL,
                match_score=self.engine.score(line, record, self.rule_provider.current()).total,
                project_id=record.project_id,
            )
        if adjustment_reason:
            match_input = dataclasses.replace(match_input, adjustment_reason=adjustment_reason)
        return self.ledger.create_match(line_id, match_input)

    @staticmethod
    def _default_amount(line: BankFeedLine, record_amount: Money) -> Money:
        outstanding = line.outstanding_amount
        if outstanding.is_zero():
            # Let the ledger report the line as already matched
            return record_amount
        return min(record_amount, outstanding)

    def remove_match(self, line_id: str, match_id: str) -> BankFeedLine:
        return self.ledger.remove_match(line_id, match_id)

    def ignore_line(self, line_id: str, actor: str | None = None, reason: str | None = None) -> BankFeedLine:
        return self.ledger.ignore_line(line_id, actor or self.default_actor, reason)

    def unignore_line(self, line_id: str) -> BankFeedLine:
        return self.ledger.unignore_line(line_id)

    def get_stats(self, line_filter: LineFilter | None = None) -> ReconciliationStats:
        return ReconciliationStats.from_lines(self.repository.list_lines(line_filter))

    def get_coverage(self, line_filter: LineFilter | None = None) -> pd.DataFrame:
        """Per-account coverage table for the lines in scope."""
        return coverage_by_account(self.repository.list_lines(line_filter))

#!/usr/bin/env python3
"""
Suggestion Generation

Applies the scoring engine across every eligible candidate for one bank line,
then filters, ranks and bounds the result.
"""

import logging
from collections.abc import Iterable

from ..core.money import Money
from .models import BankFeedLine, MatchingRuleSet, SuggestedMatch, SystemRecord
from .scorer import ScoringEngine

logger = logging.getLogger(__name__)


class SuggestionGenerator:
    """Ranked, bounded suggestion lists for bank feed lines"""

    def __init__(self, engine: ScoringEngine | None = None):
        self.engine = engine or ScoringEngine()

    @staticmethod
    def is_eligible(line: BankFeedLine, record: SystemRecord) -> bool:
        """
        Hard pre-filters applied before scoring.

        Currency must match exactly and the record must not already be
        reconciled. These are filters, not scored criteria: an ineligible
        record never appears regardless of how well it would score.
        """
        if record.reconciled:
            return False
        return bool(line.currency) and line.currency.upper() == (record.currency or "").upper()

    def generate(
        self,
        line: BankFeedLine,
        candidates: Iterable[SystemRecord],
        rule_set: MatchingRuleSet,
    ) -> list[SuggestedMatch]:
        """
        Generate suggestions for one line.

        Args:
            line: Bank feed line to suggest matches for
            candidates: Candidate system records (any order)
            rule_set: Scoring rules, score floor and top-K bound

        Returns:
            At most ``rule_set.max_suggestions`` suggestions scoring strictly
            above ``rule_set.min_score``, best first
        """
        bank_rule = rule_set.applicable_bank_rule(line)
        rule_id = bank_rule.id if bank_rule else None

        suggestions = []
        for record in candidates:
            if not self.is_eligible(line, record):
                continue

            result = self.engine.score(line, record, rule_set)
            if result.total <= rule_set.min_score:
                continue

            suggestions.append(
                SuggestedMatch(
                    bank_line_id=line.id,
                    record=record,
                    score=result,
                    amount_difference=Money.from_cents(self.engine.amount_difference_cents(line, record)),
                    date_difference=self.engine.date_difference_days(line, record),
                    rule_id=rule_id if bank_rule and bank_rule.suggest_type == record.type else None,
                )
            )

        suggestions.sort(key=self.engine.rank_key)
        bounded = suggestions[: max(rule_set.max_suggestions, 0)]

        logger.debug(
            "Line %s: %d scored candidates, %d suggested (top score %s)",
            line.id,
            len(suggestions),
            len(bounded),
            bounded[0].match_score if bounded else None,
        )
        return bounded


class SuggestionCache:
    """
    Best-effort memo of suggestion lists per line.

    An entry is only served while the line version, the visible candidate set
    and the rule set are all unchanged; anything else is a miss. Holding no
    correctness obligation, it can be cleared at any time.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[tuple, list[SuggestedMatch]]] = {}

    @staticmethod
    def _key(line: BankFeedLine, candidates: Iterable[SystemRecord], rule_set: MatchingRuleSet) -> tuple:
        candidate_fingerprint = tuple(sorted(hash(record) for record in candidates))
        return (line.version, line.status, candidate_fingerprint, hash(rule_set))

    def get(
        self, line: BankFeedLine, candidates: Iterable[SystemRecord], rule_set: MatchingRuleSet
    ) -> list[SuggestedMatch] | None:
        entry = self._entries.get(line.id)
        if entry is None:
            return None
        key, suggestions = entry
        if key != self._key(line, candidates, rule_set):
            self._entries.pop(line.id, None)
            return None
        return list(suggestions)

    def put(
        self,
        line: BankFeedLine,
        candidates: Iterable[SystemRecord],
        rule_set: MatchingRuleSet,
        suggestions: list[SuggestedMatch],
    ) -> None:
        self._entries[line.id] = (self._key(line, candidates, rule_set), list(suggestions))

    def invalidate(self, line_id: str) -> None:
        self._entries.pop(line_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

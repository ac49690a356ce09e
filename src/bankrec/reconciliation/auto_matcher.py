#!/usr/bin/env python3
"""
Batch Auto-Matching

Runs suggestion generation across a batch of bank lines, promotes
high-confidence suggestions to matches through the ledger, and caches the
remaining suggestions per line.

Assignment is greedy and first-line-wins: lines are processed in input order
and a record consumed by one line is removed from the pool for the rest of
the batch. This is not a globally optimal one-to-one assignment; running the
same batch in a different order can assign a contested record differently.
"""

import logging
import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor

from ..core.errors import ReconciliationError, RecordAlreadyMatchedError
from ..core.money import Money
from .ledger import MatchLedger
from .models import (
    AUTO_MATCH_ELIGIBLE,
    AutoMatchResult,
    BankFeedLine,
    BankFeedStatus,
    LineFailure,
    MatchInput,
    MatchingRuleSet,
    MatchMethod,
    SuggestedMatch,
    SystemRecord,
)
from .rules import RuleUsageTracker
from .suggestions import SuggestionGenerator

logger = logging.getLogger(__name__)


def partition_by_currency(
    lines: Iterable[BankFeedLine], candidates: Iterable[SystemRecord]
) -> list[tuple[str, list[BankFeedLine], list[SystemRecord]]]:
    """
    Split a batch into independent (currency, lines, candidates) partitions.

    Candidates never cross currencies, so partitions share no records and can
    run concurrently. Partition order follows first appearance in ``lines``
    and line order inside a partition is preserved.
    """
    lines_by_currency: dict[str, list[BankFeedLine]] = {}
    for line in lines:
        lines_by_currency.setdefault(line.currency.upper(), []).append(line)

    candidates_by_currency: dict[str, list[SystemRecord]] = {}
    for record in candidates:
        candidates_by_currency.setdefault((record.currency or "").upper(), []).append(record)

    return [
        (currency, currency_lines, candidates_by_currency.get(currency, []))
        for currency, currency_lines in lines_by_currency.items()
    ]


class AutoMatcher:
    """Greedy threshold-based batch matcher"""

    def __init__(
        self,
        ledger: MatchLedger,
        generator: SuggestionGenerator | None = None,
        actor: str = "system",
        usage: RuleUsageTracker | None = None,
    ):
        self.ledger = ledger
        self.generator = generator or SuggestionGenerator()
        self.actor = actor
        self.usage = usage

    def run_batch(
        self,
        lines: Sequence[BankFeedLine],
        candidates: Iterable[SystemRecord],
        rule_set: MatchingRuleSet,
        cancel_event: threading.Event | None = None,
    ) -> AutoMatchResult:
        """
        Auto-match a batch of lines in input order.

        Args:
            lines: Bank lines; ineligible statuses are skipped
            candidates: Candidate pool shared by the whole batch
            rule_set: Rule set read once for this batch
            cancel_event: When set, processing stops before the next line

        Returns:
            AutoMatchResult with created matches, cached suggestions for lines
            that were not auto-matched, and per-line failures
        """
        result = AutoMatchResult()
        pool = list(candidates)
        consumed: set[str] = set()

        for line in lines:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Auto-match cancelled before line %s", line.id)
                result.cancelled = True
                break

            if line.status not in AUTO_MATCH_ELIGIBLE:
                result.skipped_line_ids.append(line.id)
                continue

            available = [record for record in pool if record.id not in consumed]
            suggestions = self.generator.generate(line, available, rule_set)

            try:
                top = suggestions[0] if suggestions else None
                if top is not None and top.match_score >= rule_set.auto_match_threshold_for(line):
                    match = self._auto_match(line, top)
                    result.matches.append(match)
                    if match.rule_id and self.usage is not None:
                        self.usage.record(match.rule_id, match.matched_at)
                    consumed.add(top.record.id)
                    continue

                result.suggestions[line.id] = suggestions
                if not suggestions and line.matched_amount.is_zero():
                    self.ledger.flag_missing_record(line.id, missing=True)
                    result.missing_record_line_ids.append(line.id)
                elif suggestions and line.status == BankFeedStatus.MISSING_RECORD:
                    self.ledger.flag_missing_record(line.id, missing=False)
            except RecordAlreadyMatchedError as e:
                # Taken by a concurrent writer; keep it out of this batch too
                consumed.add(e.record_id)
                result.failures.append(LineFailure(line_id=line.id, error=e))
                logger.warning("Auto-match failed for line %s: %s", line.id, e)
            except (ReconciliationError, OSError) as e:
                result.failures.append(LineFailure(line_id=line.id, error=e))
                logger.warning("Auto-match failed for line %s: %s", line.id, e)

        logger.info("Auto-match batch of %d line(s): %s", len(lines), result.summary_text())
        return result

    def _auto_match(self, line: BankFeedLine, suggestion: SuggestedMatch):
        # A record slightly larger than the bank amount is capped so the
        # line's matched amount never exceeds its bank amount.
        amount = min(suggestion.record.amount.abs(), line.outstanding_amount)
        if amount <= Money.zero():
            amount = suggestion.record.amount.abs()
        match_input = MatchInput.from_suggestion(
            suggestion,
            matched_by=self.actor,
            matched_amount=amount,
            match_method=MatchMethod.AUTO,
        )
        return self.ledger.create_match(line.id, match_input)

    def run_partitioned(
        self,
        lines: Sequence[BankFeedLine],
        candidates: Iterable[SystemRecord],
        rule_set: MatchingRuleSet,
        max_workers: int = 1,
        cancel_event: threading.Event | None = None,
    ) -> AutoMatchResult:
        """
        Run one batch per currency partition, optionally in parallel.

        Within a partition lines keep their input order, so the outcome is the
        same as a single sequential batch; only the order of the merged
        result lists follows partition order.
        """
        partitions = partition_by_currency(lines, candidates)
        merged = AutoMatchResult()

        if max_workers <= 1 or len(partitions) <= 1:
            for _, partition_lines, partition_candidates in partitions:
                merged.merge(self.run_batch(partition_lines, partition_candidates, rule_set, cancel_event))
            return merged

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(self.run_batch, partition_lines, partition_candidates, rule_set, cancel_event)
                for _, partition_lines, partition_candidates in partitions
            ]
            for future in futures:
                merged.merge(future.result())
        return merged

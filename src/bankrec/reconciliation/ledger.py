#!/usr/bin/env python3
"""
Match Ledger

Owns the create/remove lifecycle of persisted matches and keeps each bank
line's cumulative matched amount and status consistent.

Every mutation follows the same optimistic cycle: read the current line,
validate against it, build the updated line, and write it back conditioned
on the version that was read. A concurrent writer causes a conflict and the
whole cycle is retried from a fresh read, so the conservation invariant

    matched_amount <= |amount| + tolerance

is always validated against the state actually being replaced.
"""

import dataclasses
import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from ..core.currency import TOLERANCE_CENTS, format_cents
from ..core.errors import (
    ConcurrencyConflictError,
    LineAlreadyMatchedError,
    LineIgnoredError,
    MatchNotFoundError,
    OverMatchError,
    RecordAlreadyMatchedError,
    ValidationError,
)
from ..core.money import Money
from .models import BankFeedLine, BankFeedStatus, BankMatch, MatchInput
from .repository import ReconciliationRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ADJUSTMENT_REASON = "Amount difference detected"


def derive_status(line: BankFeedLine, matched_amount: Money, has_matches: bool) -> BankFeedStatus:
    """
    Status implied by match state alone.

    No matches -> unmatched; cumulative amount closes |amount| within
    tolerance -> matched; anything in between -> needs_review.
    """
    if not has_matches and matched_amount.cents == 0:
        return BankFeedStatus.UNMATCHED
    if abs(line.abs_amount.cents - matched_amount.cents) <= TOLERANCE_CENTS:
        return BankFeedStatus.MATCHED
    return BankFeedStatus.NEEDS_REVIEW


class MatchLedger:
    """Create/remove matches and ignore/unignore lines with optimistic concurrency"""

    def __init__(
        self,
        repository: ReconciliationRepository,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        max_retries: int = 3,
        on_change: Callable[[str], None] | None = None,
    ):
        """
        Initialize the ledger.

        Args:
            repository: Storage for lines, records and matches
            clock: Timestamp source for matched_at / ignored_at
            id_factory: Match id generator
            max_retries: Extra attempts after a version conflict
            on_change: Called with the line id after every successful write
        """
        self.repository = repository
        self.clock = clock
        self.id_factory = id_factory
        self.max_retries = max_retries
        self.on_change = on_change

    def _commit(self, line_id: str, attempt: Callable[[BankFeedLine], tuple[BankFeedLine, list, list, T]]) -> T:
        """
        Run one read-validate-write cycle, retrying on version conflicts.

        ``attempt`` receives a fresh copy of the line and returns
        (updated_line, added_matches, removed_match_ids, result). Validation
        errors raised by ``attempt`` propagate immediately without a write.
        """
        attempt_number = 0
        while True:
            line = self.repository.get_line(line_id)
            updated, added, removed, result = attempt(line)
            if updated is line and not added and not removed:
                return result
            try:
                self.repository.save_line(updated, line.version, added_matches=added, removed_match_ids=removed)
            except ConcurrencyConflictError:
                attempt_number += 1
                if attempt_number > self.max_retries:
                    raise
                logger.warning("Version conflict on line %s (attempt %d), retrying", line_id, attempt_number)
                continue
            if self.on_change is not None:
                self.on_change(line_id)
            return result

    def create_match(self, line_id: str, match_input: MatchInput) -> BankMatch:
        """
        Attribute part or all of a bank line to a system record.

        Raises:
            ValidationError: Non-positive amount or record type mismatch
            LineNotFoundError / RecordNotFoundError: Unknown ids
            LineIgnoredError: The line is ignored
            LineAlreadyMatchedError: The line is already fully matched
            OverMatchError: The new cumulative amount would exceed |amount| + tolerance
            RecordAlreadyMatchedError: The record is already reconciled
        """
        if match_input.matched_amount.cents <= 0:
            raise ValidationError(
                f"Matched amount must be positive, got {format_cents(match_input.matched_amount.cents)}"
            )
        if not match_input.matched_by:
            raise ValidationError("matched_by is required")

        def attempt(line: BankFeedLine) -> tuple[BankFeedLine, list, list, BankMatch]:
            if line.status == BankFeedStatus.IGNORED:
                raise LineIgnoredError(line.id)
            if line.matched_amount.cents > 0 and line.is_fully_matched:
                raise LineAlreadyMatchedError(line.id)

            record = self.repository.get_record(match_input.record_id)
            if record.type != match_input.record_type:
                raise ValidationError(
                    f"Record {record.id} is a {record.type.value}, not a {match_input.record_type.value}"
                )
            if record.reconciled:
                raise RecordAlreadyMatchedError(record.id)

            new_total = line.matched_amount + match_input.matched_amount
            if new_total.cents > line.abs_amount.cents + TOLERANCE_CENTS:
                raise OverMatchError(
                    f"Matching {format_cents(match_input.matched_amount.cents)} on line {line.id} would bring "
                    f"the matched amount to {format_cents(new_total.cents)}, above the bank amount "
                    f"{format_cents(line.abs_amount.cents)}"
                )

            amount_difference = line.abs_amount - new_total
            adjustment_required = abs(amount_difference.cents) > TOLERANCE_CENTS
            match = BankMatch(
                id=self.id_factory(),
                bank_line_id=line.id,
                record_type=record.type,
                record_id=record.id,
                project_id=match_input.project_id or record.project_id,
                matched_amount=match_input.matched_amount,
                amount_difference=amount_difference,
                matched_by=match_input.matched_by,
                matched_at=self.clock(),
                match_score=match_input.match_score,
                match_method=match_input.match_method,
                rule_id=match_input.rule_id,
                adjustment_required=adjustment_required,
                adjustment_reason=(
                    (match_input.adjustment_reason or DEFAULT_ADJUSTMENT_REASON) if adjustment_required else None
                ),
            )

            updated = dataclasses.replace(
                line,
                matched_amount=new_total,
                status=derive_status(line, new_total, has_matches=True),
                confidence_score=max(match.match_score, line.confidence_score or 0),
            )
            return updated, [match], [], match

        match = self._commit(line_id, attempt)
        logger.info(
            "Matched line %s to %s %s for %s (%s)",
            line_id,
            match.record_type.value,
            match.record_id,
            format_cents(match.matched_amount.cents),
            match.match_method.value,
        )
        return match

    def remove_match(self, line_id: str, match_id: str) -> BankFeedLine:
        """
        Delete a match and roll its amount back off the line.

        Returns:
            The updated line

        Raises:
            MatchNotFoundError: The match does not exist on this line
        """

        def attempt(line: BankFeedLine) -> tuple[BankFeedLine, list, list, BankFeedLine]:
            matches = self.repository.list_matches(line.id)
            target = next((m for m in matches if m.id == match_id), None)
            if target is None:
                raise MatchNotFoundError(line.id, match_id)

            remaining = [m for m in matches if m.id != match_id]
            new_total = line.matched_amount - target.matched_amount
            if new_total.cents < 0 or not remaining:
                new_total = Money.zero()

            if line.status == BankFeedStatus.IGNORED:
                status = BankFeedStatus.IGNORED
            else:
                status = derive_status(line, new_total, has_matches=bool(remaining))

            updated = dataclasses.replace(
                line,
                matched_amount=new_total,
                status=status,
                confidence_score=max((m.match_score for m in remaining), default=None),
            )
            return updated, [], [match_id], updated

        updated = self._commit(line_id, attempt)
        logger.info("Removed match %s from line %s (now %s)", match_id, line_id, updated.status.value)
        return updated

    def ignore_line(self, line_id: str, actor: str, reason: str | None = None) -> BankFeedLine:
        """Mark a line as ignored. Existing matches and amounts are left untouched."""

        def attempt(line: BankFeedLine) -> tuple[BankFeedLine, list, list, BankFeedLine]:
            updated = dataclasses.replace(
                line,
                status=BankFeedStatus.IGNORED,
                status_before_ignore=(
                    line.status if line.status != BankFeedStatus.IGNORED else line.status_before_ignore
                ),
                ignored_by=actor,
                ignored_at=self.clock(),
                ignored_reason=reason,
            )
            return updated, [], [], updated

        updated = self._commit(line_id, attempt)
        logger.info("Ignored line %s (%s)", line_id, reason or "no reason given")
        return updated

    def unignore_line(self, line_id: str) -> BankFeedLine:
        """
        Clear the ignore flag and restore the status match state implies.

        A line that was flagged missing_record before being ignored, and still
        has no matches, returns to missing_record.
        """

        def attempt(line: BankFeedLine) -> tuple[BankFeedLine, list, list, BankFeedLine]:
            if line.status != BankFeedStatus.IGNORED:
                return line, [], [], line

            has_matches = bool(self.repository.list_matches(line.id))
            status = derive_status(line, line.matched_amount, has_matches)
            if status == BankFeedStatus.UNMATCHED and line.status_before_ignore == BankFeedStatus.MISSING_RECORD:
                status = BankFeedStatus.MISSING_RECORD

            updated = dataclasses.replace(
                line,
                status=status,
                status_before_ignore=None,
                ignored_by=None,
                ignored_at=None,
                ignored_reason=None,
            )
            return updated, [], [], updated

        updated = self._commit(line_id, attempt)
        logger.info("Unignored line %s (now %s)", line_id, updated.status.value)
        return updated

    def flag_missing_record(self, line_id: str, missing: bool) -> BankFeedLine:
        """
        Toggle missing_record on a line with no matches.

        Lines that have gained matches or left the unmatched/missing_record
        states in the meantime are returned unchanged.
        """

        def attempt(line: BankFeedLine) -> tuple[BankFeedLine, list, list, BankFeedLine]:
            if line.status not in (BankFeedStatus.UNMATCHED, BankFeedStatus.MISSING_RECORD):
                return line, [], [], line
            if line.matched_amount.cents > 0 or self.repository.list_matches(line.id):
                return line, [], [], line

            target = BankFeedStatus.MISSING_RECORD if missing else BankFeedStatus.UNMATCHED
            updated = dataclasses.replace(line, status=target)
            return updated, [], [], updated

        return self._commit(line_id, attempt)

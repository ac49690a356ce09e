#!/usr/bin/env python3
"""
Weighted Match Scoring

Scores one (bank line, system record) pair against a MatchingRuleSet.
Scoring is pure: no I/O, no hidden state, and identical inputs always give an
identical ScoreResult. Every criterion is evaluated independently and the
total is the plain sum of the weights that fired; the only coupling is the
two mutually exclusive pairs (exact/close amount, same/close date).

Malformed input never raises. A criterion that cannot be evaluated (missing
reference, unparseable date) contributes zero points.
"""

import logging
import re
from collections.abc import Callable

from ..core.currency import TOLERANCE_CENTS, within_percent, within_tolerance
from ..core.dates import days_between
from .models import (
    BankFeedLine,
    Criterion,
    MatchingRuleSet,
    RuleHit,
    ScoreResult,
    SuggestedMatch,
    SystemRecord,
)

logger = logging.getLogger(__name__)

CLOSE_AMOUNT_PERCENT = 1
CLOSE_DATE_DAYS = 3
KEYWORD_OVERLAP_MIN = 0.5
MIN_TOKEN_LENGTH = 3
# Shortest record reference searched for inside a free-text description
MIN_EMBEDDED_REFERENCE_LENGTH = 4

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "from", "with", "via", "per", "our", "your",
        "payment", "payments", "paid", "pay", "transfer", "trf", "xfer",
        "bank", "ref", "reference", "deposit", "withdrawal", "txn", "transaction",
        "invoice", "receipt", "expense", "online", "mobile", "internet",
    }
)

LEGAL_SUFFIXES = frozenset({"ltd", "limited", "inc", "llc", "plc", "co", "company", "corp", "gmbh", "pte", "pcl"})

REFERENCE_PATTERNS = (
    re.compile(r"INV-?\d{4}-?\d{3,4}", re.IGNORECASE),
    re.compile(r"REC-?\d{4}-?\d{3,4}", re.IGNORECASE),
    re.compile(r"QT-?\d{4}-?\d{3,4}", re.IGNORECASE),
    re.compile(r"CN-?\d{4}-?\d{4}", re.IGNORECASE),
    re.compile(r"DN-?\d{4}-?\d{4}", re.IGNORECASE),
    re.compile(r"\b[A-Z]{2,4}-\d{3,}", re.IGNORECASE),
)

_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_TOKEN = re.compile(r"[0-9a-z]+")


def normalize_reference(value: str | None) -> str:
    """Case-, whitespace- and separator-insensitive form of a reference."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", str(value).casefold())


def extract_references(description: str | None) -> set[str]:
    """Normalized document references embedded in a bank description."""
    if not description:
        return set()
    found = set()
    for pattern in REFERENCE_PATTERNS:
        for match in pattern.findall(description):
            found.add(normalize_reference(match))
    found.discard("")
    return found


def tokenize(text: str | None) -> set[str]:
    """Lower-cased word tokens with stop words and short tokens removed."""
    if not text:
        return set()
    return {
        token
        for token in _TOKEN.findall(str(text).casefold())
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS
    }


class ScoringEngine:
    """Weighted multi-criterion scoring for bank line / system record pairs"""

    @staticmethod
    def score(line: BankFeedLine, record: SystemRecord, rule_set: MatchingRuleSet) -> ScoreResult:
        """
        Score a single pair.

        Args:
            line: Bank feed line
            record: Candidate system record
            rule_set: Weights, enabled flags and bank rules

        Returns:
            ScoreResult with the unclamped total and one RuleHit per enabled rule
        """
        fired: set[Criterion] = set()
        for criterion, predicate in _PREDICATES:
            if rule_set.weight_of(criterion) <= 0:
                continue
            if _safe(predicate, line, record, rule_set, criterion):
                fired.add(criterion)

        breakdown = tuple(
            RuleHit(criterion=rule.criterion, points=rule.weight if rule.criterion in fired else 0)
            for rule in rule_set.rules
            if rule.enabled
        )
        total = sum(hit.points for hit in breakdown)

        logger.debug("Scored line %s vs record %s: %d %s", line.id, record.id, total, sorted(c.value for c in fired))
        return ScoreResult(total=total, breakdown=breakdown)

    @staticmethod
    def amount_difference_cents(line: BankFeedLine, record: SystemRecord) -> int:
        """Absolute difference between the two magnitudes in cents."""
        return abs(line.amount.abs().cents - record.amount.abs().cents)

    @staticmethod
    def date_difference_days(line: BankFeedLine, record: SystemRecord) -> int | None:
        return days_between(line.transaction_date, record.date)

    @staticmethod
    def rank_key(suggestion: SuggestedMatch) -> tuple[int, int, int, str]:
        """
        Deterministic ordering for candidates of one line.

        Score descending, then smaller amount difference, then smaller date
        difference (unknown dates last), then record id ascending.
        """
        date_diff = suggestion.date_difference
        return (
            -suggestion.score.total,
            suggestion.amount_difference.cents,
            date_diff if date_diff is not None else 10**9,
            suggestion.record.id,
        )


def _safe(
    predicate: Callable[[BankFeedLine, SystemRecord, MatchingRuleSet], bool],
    line: BankFeedLine,
    record: SystemRecord,
    rule_set: MatchingRuleSet,
    criterion: Criterion,
) -> bool:
    try:
        return bool(predicate(line, record, rule_set))
    except (TypeError, ValueError, AttributeError) as e:
        # Degraded score rather than a crashed batch
        logger.debug("Criterion %s skipped for line %s / record %s: %s", criterion.value, line.id, record.id, e)
        return False


def _amount_exact(line: BankFeedLine, record: SystemRecord, _: MatchingRuleSet) -> bool:
    return within_tolerance(line.amount.abs().cents, record.amount.abs().cents, TOLERANCE_CENTS)


def _amount_close(line: BankFeedLine, record: SystemRecord, rule_set: MatchingRuleSet) -> bool:
    if _amount_exact(line, record, rule_set):
        return False
    return within_percent(line.amount.cents, record.amount.cents, CLOSE_AMOUNT_PERCENT)


def _date_exact(line: BankFeedLine, record: SystemRecord, _: MatchingRuleSet) -> bool:
    return days_between(line.transaction_date, record.date) == 0


def _date_close(line: BankFeedLine, record: SystemRecord, _: MatchingRuleSet) -> bool:
    diff = days_between(line.transaction_date, record.date)
    return diff is not None and 0 < diff <= CLOSE_DATE_DAYS


def _reference_match(line: BankFeedLine, record: SystemRecord, _: MatchingRuleSet) -> bool:
    record_ref = normalize_reference(record.reference)
    if not record_ref:
        return False

    line_refs = extract_references(line.description)
    line_ref = normalize_reference(line.reference)
    if line_ref:
        line_refs.add(line_ref)
    if record_ref in line_refs:
        return True

    # Reference quoted verbatim somewhere in the bank description
    if len(record_ref) >= MIN_EMBEDDED_REFERENCE_LENGTH:
        return record_ref in normalize_reference(line.description)
    return False


def _counterparty_match(line: BankFeedLine, record: SystemRecord, _: MatchingRuleSet) -> bool:
    if not record.counterparty or not line.description:
        return False

    name_tokens = [t for t in _TOKEN.findall(record.counterparty.casefold()) if t not in LEGAL_SUFFIXES]
    compact_name = "".join(name_tokens)
    if len(compact_name) >= MIN_TOKEN_LENGTH and compact_name in normalize_reference(line.description):
        return True

    significant = {t for t in name_tokens if len(t) >= MIN_TOKEN_LENGTH and t not in STOP_WORDS}
    return bool(significant & tokenize(line.description))


def _description_match(line: BankFeedLine, record: SystemRecord, _: MatchingRuleSet) -> bool:
    record_tokens = tokenize(record.description)
    if not record_tokens:
        return False
    overlap = record_tokens & tokenize(line.description)
    return len(overlap) / len(record_tokens) >= KEYWORD_OVERLAP_MIN


def _rule_match(line: BankFeedLine, record: SystemRecord, rule_set: MatchingRuleSet) -> bool:
    bank_rule = rule_set.applicable_bank_rule(line)
    return bank_rule is not None and bank_rule.suggest_type == record.type


_PREDICATES: tuple[tuple[Criterion, Callable[[BankFeedLine, SystemRecord, MatchingRuleSet], bool]], ...] = (
    (Criterion.AMOUNT_EXACT, _amount_exact),
    (Criterion.AMOUNT_CLOSE, _amount_close),
    (Criterion.REFERENCE_MATCH, _reference_match),
    (Criterion.DATE_EXACT, _date_exact),
    (Criterion.DATE_CLOSE, _date_close),
    (Criterion.COUNTERPARTY_MATCH, _counterparty_match),
    (Criterion.DESCRIPTION_MATCH, _description_match),
    (Criterion.RULE_MATCH, _rule_match),
)

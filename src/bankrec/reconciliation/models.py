#!/usr/bin/env python3
"""
Bank Reconciliation Domain Models

Type-safe models for bank feed lines, the normalized system records they are
reconciled against, persisted matches and ephemeral suggestions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..core.currency import TOLERANCE_CENTS, cents_to_amount_str
from ..core.dates import FinancialDate, coerce_date
from ..core.money import Money


class BankFeedStatus(Enum):
    """Reconciliation status of a bank feed line."""

    UNMATCHED = "unmatched"
    MATCHED = "matched"
    MISSING_RECORD = "missing_record"
    NEEDS_REVIEW = "needs_review"
    IGNORED = "ignored"


# Statuses the auto matcher is allowed to process
AUTO_MATCH_ELIGIBLE = frozenset({BankFeedStatus.UNMATCHED, BankFeedStatus.MISSING_RECORD})


class RecordType(Enum):
    """Internal accounting document types a bank line can reconcile against."""

    RECEIPT = "receipt"
    INVOICE = "invoice"
    EXPENSE = "expense"


class MatchMethod(Enum):
    """How a match was created."""

    MANUAL = "manual"
    SUGGESTED = "suggested"
    AUTO = "auto"


class Criterion(Enum):
    """Scoring criteria. Amount and date criteria come in mutually exclusive pairs."""

    AMOUNT_EXACT = "amount_exact"
    AMOUNT_CLOSE = "amount_close"
    REFERENCE_MATCH = "reference_match"
    DATE_EXACT = "date_exact"
    DATE_CLOSE = "date_close"
    COUNTERPARTY_MATCH = "counterparty_match"
    DESCRIPTION_MATCH = "description_match"
    RULE_MATCH = "rule_match"


@dataclass
class BankFeedLine:
    """
    One imported bank statement transaction awaiting reconciliation.

    ``amount`` is signed (positive = credit, negative = debit); ``matched_amount``
    is the cumulative, always non-negative amount attributed by matches.
    ``version`` increments on every stored mutation and backs optimistic
    concurrency in the repository.
    """

    id: str
    account_id: str
    company_id: str
    currency: str
    transaction_date: FinancialDate | None
    description: str
    amount: Money

    # Optional bank fields
    project_id: str | None = None
    value_date: FinancialDate | None = None
    reference: str | None = None
    running_balance: Money | None = None

    # Reconciliation state
    status: BankFeedStatus = BankFeedStatus.UNMATCHED
    matched_amount: Money = field(default_factory=Money.zero)
    confidence_score: int | None = None

    # Import metadata
    imported_at: datetime | None = None
    imported_by: str | None = None
    import_source: str = "manual"
    notes: str | None = None

    # Ignore metadata
    ignored_by: str | None = None
    ignored_at: datetime | None = None
    ignored_reason: str | None = None
    status_before_ignore: BankFeedStatus | None = None

    version: int = 0

    @property
    def abs_amount(self) -> Money:
        return self.amount.abs()

    @property
    def outstanding_amount(self) -> Money:
        """Part of the bank amount not yet attributed to a match (never negative)."""
        remaining = self.abs_amount - self.matched_amount
        return remaining if remaining.cents > 0 else Money.zero()

    @property
    def is_fully_matched(self) -> bool:
        return abs(self.abs_amount.cents - self.matched_amount.cents) <= TOLERANCE_CENTS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "account_id": self.account_id,
            "company_id": self.company_id,
            "project_id": self.project_id,
            "currency": self.currency,
            "transaction_date": self.transaction_date.to_iso_string() if self.transaction_date else None,
            "value_date": self.value_date.to_iso_string() if self.value_date else None,
            "description": self.description,
            "reference": self.reference,
            "amount": _amount_str(self.amount),
            "running_balance": _amount_str(self.running_balance) if self.running_balance else None,
            "status": self.status.value,
            "matched_amount": _amount_str(self.matched_amount),
            "confidence_score": self.confidence_score,
            "imported_at": self.imported_at.isoformat() if self.imported_at else None,
            "imported_by": self.imported_by,
            "import_source": self.import_source,
            "notes": self.notes,
            "ignored_by": self.ignored_by,
            "ignored_at": self.ignored_at.isoformat() if self.ignored_at else None,
            "ignored_reason": self.ignored_reason,
            "status_before_ignore": self.status_before_ignore.value if self.status_before_ignore else None,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BankFeedLine":
        """
        Create BankFeedLine from dictionary.

        Amounts are major units ("1000.00", 1000.0 or 1000), matching to_dict.
        """
        return cls(
            id=str(data["id"]),
            account_id=str(data["account_id"]),
            company_id=str(data.get("company_id", "")),
            project_id=data.get("project_id"),
            currency=str(data.get("currency", "")).upper(),
            transaction_date=coerce_date(data.get("transaction_date")),
            value_date=coerce_date(data.get("value_date")),
            description=data.get("description") or "",
            reference=data.get("reference"),
            amount=_money_from_value(data.get("amount")),
            running_balance=(
                _money_from_value(data["running_balance"]) if data.get("running_balance") is not None else None
            ),
            status=BankFeedStatus(data.get("status", BankFeedStatus.UNMATCHED.value)),
            matched_amount=_money_from_value(data.get("matched_amount", 0)),
            confidence_score=data.get("confidence_score"),
            imported_at=_parse_datetime(data.get("imported_at")),
            imported_by=data.get("imported_by"),
            import_source=data.get("import_source", "manual"),
            notes=data.get("notes"),
            ignored_by=data.get("ignored_by"),
            ignored_at=_parse_datetime(data.get("ignored_at")),
            ignored_reason=data.get("ignored_reason"),
            status_before_ignore=(
                BankFeedStatus(data["status_before_ignore"]) if data.get("status_before_ignore") else None
            ),
            version=int(data.get("version", 0)),
        )


@dataclass(frozen=True)
class SystemRecord:
    """
    Normalized projection over receipts, invoices and expenses.

    Produced at the system boundary (see normalize.py); read-only to the engine.
    ``amount`` keeps the accounting sign (receipts positive, expenses negative);
    scoring compares magnitudes.
    """

    id: str
    type: RecordType
    amount: Money
    currency: str
    date: FinancialDate | None
    reference: str | None = None
    counterparty: str | None = None
    description: str | None = None
    project_id: str | None = None
    reconciled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "amount": _amount_str(self.amount),
            "currency": self.currency,
            "date": self.date.to_iso_string() if self.date else None,
            "reference": self.reference,
            "counterparty": self.counterparty,
            "description": self.description,
            "project_id": self.project_id,
            "reconciled": self.reconciled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SystemRecord":
        return cls(
            id=str(data["id"]),
            type=RecordType(data["type"]),
            amount=_money_from_value(data.get("amount")),
            currency=str(data.get("currency", "")).upper(),
            date=coerce_date(data.get("date")),
            reference=data.get("reference"),
            counterparty=data.get("counterparty"),
            description=data.get("description"),
            project_id=data.get("project_id"),
            reconciled=bool(data.get("reconciled", False)),
        )


@dataclass(frozen=True)
class BankMatch:
    """Persisted link between a bank feed line and a system record."""

    id: str
    bank_line_id: str
    record_type: RecordType
    record_id: str
    matched_amount: Money
    amount_difference: Money  # |line.amount| - matched_amount
    matched_by: str
    matched_at: datetime
    match_score: int
    match_method: MatchMethod
    project_id: str | None = None
    rule_id: str | None = None
    adjustment_required: bool = False
    adjustment_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bank_line_id": self.bank_line_id,
            "record_type": self.record_type.value,
            "record_id": self.record_id,
            "project_id": self.project_id,
            "matched_amount": _amount_str(self.matched_amount),
            "amount_difference": _amount_str(self.amount_difference),
            "matched_by": self.matched_by,
            "matched_at": self.matched_at.isoformat(),
            "match_score": self.match_score,
            "match_method": self.match_method.value,
            "rule_id": self.rule_id,
            "adjustment_required": self.adjustment_required,
            "adjustment_reason": self.adjustment_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BankMatch":
        matched_at = _parse_datetime(data.get("matched_at"))
        if matched_at is None:
            raise ValueError(f"Match {data.get('id')} has no matched_at timestamp")
        return cls(
            id=str(data["id"]),
            bank_line_id=str(data["bank_line_id"]),
            record_type=RecordType(data["record_type"]),
            record_id=str(data["record_id"]),
            project_id=data.get("project_id"),
            matched_amount=_money_from_value(data["matched_amount"]),
            amount_difference=_money_from_value(data.get("amount_difference", 0)),
            matched_by=data.get("matched_by", "system"),
            matched_at=matched_at,
            match_score=int(data.get("match_score", 0)),
            match_method=MatchMethod(data.get("match_method", MatchMethod.MANUAL.value)),
            rule_id=data.get("rule_id"),
            adjustment_required=bool(data.get("adjustment_required", False)),
            adjustment_reason=data.get("adjustment_reason"),
        )


@dataclass(frozen=True)
class RuleHit:
    """Points one criterion awarded for a (line, record) pair."""

    criterion: Criterion
    points: int

    @property
    def fired(self) -> bool:
        return self.points > 0


@dataclass(frozen=True)
class ScoreResult:
    """Total score plus the per-criterion breakdown, in rule-set order."""

    total: int
    breakdown: tuple[RuleHit, ...] = ()

    @property
    def reasons(self) -> list[str]:
        """Names of the criteria that fired."""
        return [hit.criterion.value for hit in self.breakdown if hit.fired]

    def points_for(self, criterion: Criterion) -> int:
        return sum(hit.points for hit in self.breakdown if hit.criterion == criterion)


@dataclass(frozen=True)
class SuggestedMatch:
    """Unpersisted ranked candidate for a bank line. Regenerable at any time."""

    bank_line_id: str
    record: SystemRecord
    score: ScoreResult
    amount_difference: Money  # | |line| - |record| |
    date_difference: int | None  # days, None when either date is unknown
    rule_id: str | None = None

    @property
    def match_score(self) -> int:
        return self.score.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "bank_line_id": self.bank_line_id,
            "record_type": self.record.type.value,
            "record_id": self.record.id,
            "reference": self.record.reference,
            "counterparty": self.record.counterparty,
            "amount": _amount_str(self.record.amount.abs()),
            "date": self.record.date.to_iso_string() if self.record.date else None,
            "match_score": self.score.total,
            "match_reasons": self.score.reasons,
            "amount_difference": _amount_str(self.amount_difference),
            "date_difference": self.date_difference,
            "rule_id": self.rule_id,
        }


@dataclass(frozen=True)
class MatchingRule:
    """One weighted scoring criterion."""

    criterion: Criterion
    weight: int
    enabled: bool = True
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.criterion.value


@dataclass(frozen=True)
class BankRule:
    """
    Pattern rule describing which bank lines are expected to reconcile against
    a given record type (e.g. "description contains PAYROLL -> expense").

    All populated conditions must hold for the rule to apply to a line.
    """

    id: str
    name: str
    suggest_type: RecordType | None = None
    enabled: bool = True
    priority: int = 0
    description_contains: tuple[str, ...] = ()
    amount_min: Money | None = None
    amount_max: Money | None = None
    amount_sign: str | None = None  # "debit" | "credit"
    bank_account_ids: tuple[str, ...] = ()
    auto_match_if_confidence: int | None = None

    def applies_to(self, line: BankFeedLine) -> bool:
        """Check every populated condition against the line."""
        if not self.enabled:
            return False

        if self.description_contains:
            description = (line.description or "").upper()
            if not any(keyword.upper() in description for keyword in self.description_contains):
                return False

        abs_cents = line.abs_amount.cents
        if self.amount_min is not None and abs_cents < self.amount_min.abs().cents:
            return False
        if self.amount_max is not None and abs_cents > self.amount_max.abs().cents:
            return False

        if self.amount_sign == "debit" and line.amount.cents >= 0:
            return False
        if self.amount_sign == "credit" and line.amount.cents < 0:
            return False

        if self.bank_account_ids and line.account_id not in self.bank_account_ids:
            return False

        return True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BankRule":
        sign = data.get("amount_sign")
        if sign not in (None, "debit", "credit"):
            raise ValueError(f"Invalid amount_sign for rule {data.get('id')}: {sign!r}")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            suggest_type=RecordType(data["suggest_type"]) if data.get("suggest_type") else None,
            enabled=bool(data.get("enabled", True)),
            priority=int(data.get("priority", 0)),
            description_contains=tuple(data.get("description_contains") or ()),
            amount_min=Money.from_amount(data["amount_min"]) if data.get("amount_min") is not None else None,
            amount_max=Money.from_amount(data["amount_max"]) if data.get("amount_max") is not None else None,
            amount_sign=sign,
            bank_account_ids=tuple(data.get("bank_account_ids") or ()),
            auto_match_if_confidence=(
                int(data["auto_match_if_confidence"]) if data.get("auto_match_if_confidence") is not None else None
            ),
        )


DEFAULT_WEIGHTS: dict[Criterion, int] = {
    Criterion.AMOUNT_EXACT: 40,
    Criterion.AMOUNT_CLOSE: 20,
    Criterion.REFERENCE_MATCH: 30,
    Criterion.DATE_EXACT: 20,
    Criterion.DATE_CLOSE: 10,
    Criterion.COUNTERPARTY_MATCH: 15,
    Criterion.DESCRIPTION_MATCH: 15,
    Criterion.RULE_MATCH: 20,
}

DEFAULT_AUTO_MATCH_THRESHOLD = 85


@dataclass(frozen=True)
class MatchingRuleSet:
    """Weighted rules plus the thresholds that drive suggestions and automation."""

    rules: tuple[MatchingRule, ...]
    auto_match_threshold: int = DEFAULT_AUTO_MATCH_THRESHOLD
    min_score: int = 0
    max_suggestions: int = 5
    bank_rules: tuple[BankRule, ...] = ()

    @classmethod
    def default(cls, **overrides: Any) -> "MatchingRuleSet":
        """Default weighted rule set."""
        rules = tuple(MatchingRule(criterion=c, weight=w) for c, w in DEFAULT_WEIGHTS.items())
        return cls(rules=rules, **overrides)

    def weight_of(self, criterion: Criterion) -> int:
        """Weight of an enabled criterion, 0 when disabled or absent."""
        for rule in self.rules:
            if rule.criterion == criterion and rule.enabled:
                return rule.weight
        return 0

    def applicable_bank_rule(self, line: BankFeedLine) -> BankRule | None:
        """Highest-priority enabled bank rule whose conditions hold for the line."""
        ordered = sorted(self.bank_rules, key=lambda r: (-r.priority, r.id))
        for rule in ordered:
            if rule.applies_to(line):
                return rule
        return None

    def auto_match_threshold_for(self, line: BankFeedLine) -> int:
        """Threshold for auto-matching the line: its bank rule's own confidence when set."""
        rule = self.applicable_bank_rule(line)
        if rule is not None and rule.auto_match_if_confidence is not None:
            return rule.auto_match_if_confidence
        return self.auto_match_threshold

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchingRuleSet":
        """
        Build a rule set from a JSON-style dictionary.

        ``weights`` entries override default weights; ``disabled`` lists
        criteria to switch off.
        """
        weights = dict(DEFAULT_WEIGHTS)
        for name, weight in (data.get("weights") or {}).items():
            weights[Criterion(name)] = int(weight)
        disabled = {Criterion(name) for name in data.get("disabled") or ()}

        rules = tuple(
            MatchingRule(criterion=c, weight=w, enabled=c not in disabled) for c, w in weights.items()
        )
        return cls(
            rules=rules,
            auto_match_threshold=int(data.get("auto_match_threshold", DEFAULT_AUTO_MATCH_THRESHOLD)),
            min_score=int(data.get("min_score", 0)),
            max_suggestions=int(data.get("max_suggestions", 5)),
            bank_rules=tuple(BankRule.from_dict(r) for r in data.get("bank_rules") or ()),
        )


@dataclass(frozen=True)
class MatchInput:
    """Caller-supplied details for creating a match."""

    record_type: RecordType
    record_id: str
    matched_amount: Money
    matched_by: str
    match_method: MatchMethod = MatchMethod.MANUAL
    match_score: int = 0
    project_id: str | None = None
    rule_id: str | None = None
    adjustment_reason: str | None = None

    @classmethod
    def from_suggestion(
        cls,
        suggestion: SuggestedMatch,
        matched_by: str,
        matched_amount: Money,
        match_method: MatchMethod = MatchMethod.SUGGESTED,
    ) -> "MatchInput":
        return cls(
            record_type=suggestion.record.type,
            record_id=suggestion.record.id,
            matched_amount=matched_amount,
            matched_by=matched_by,
            match_method=match_method,
            match_score=suggestion.match_score,
            project_id=suggestion.record.project_id,
            rule_id=suggestion.rule_id,
        )


@dataclass
class LineFailure:
    """A per-line error collected during a batch."""

    line_id: str
    error: Exception

    def to_dict(self) -> dict[str, Any]:
        return {"line_id": self.line_id, "error": str(self.error), "error_type": type(self.error).__name__}


@dataclass
class AutoMatchResult:
    """Outcome of one auto-match batch."""

    matches: list[BankMatch] = field(default_factory=list)
    suggestions: dict[str, list[SuggestedMatch]] = field(default_factory=dict)
    failures: list[LineFailure] = field(default_factory=list)
    missing_record_line_ids: list[str] = field(default_factory=list)
    skipped_line_ids: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def matched_count(self) -> int:
        return len(self.matches)

    @property
    def suggested_count(self) -> int:
        return sum(1 for s in self.suggestions.values() if s)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def summary_text(self) -> str:
        return f"{self.matched_count} matched / {self.suggested_count} suggested / {self.failed_count} failed"

    def merge(self, other: "AutoMatchResult") -> None:
        """Fold another batch result into this one."""
        self.matches.extend(other.matches)
        self.suggestions.update(other.suggestions)
        self.failures.extend(other.failures)
        self.missing_record_line_ids.extend(other.missing_record_line_ids)
        self.skipped_line_ids.extend(other.skipped_line_ids)
        self.cancelled = self.cancelled or other.cancelled


@dataclass(frozen=True)
class LineFilter:
    """Scope for reading bank feed lines. Empty fields mean "any"."""

    account_ids: tuple[str, ...] = ()
    currencies: tuple[str, ...] = ()
    statuses: tuple[BankFeedStatus, ...] = ()
    date_from: FinancialDate | None = None
    date_to: FinancialDate | None = None
    company_id: str | None = None

    def accepts(self, line: BankFeedLine) -> bool:
        if self.account_ids and line.account_id not in self.account_ids:
            return False
        if self.currencies and line.currency not in {c.upper() for c in self.currencies}:
            return False
        if self.statuses and line.status not in self.statuses:
            return False
        if self.company_id is not None and line.company_id != self.company_id:
            return False
        if self.date_from is not None or self.date_to is not None:
            if line.transaction_date is None:
                return False
            if self.date_from is not None and line.transaction_date < self.date_from:
                return False
            if self.date_to is not None and line.transaction_date > self.date_to:
                return False
        return True


def _amount_str(money: Money) -> str:
    """Serialized amounts are plain decimal strings in major units."""
    return cents_to_amount_str(money.to_cents())


def _money_from_value(value: Any) -> Money:
    """Amounts in dictionaries are always major units: "1000.50", 1000.5 or 1000."""
    if isinstance(value, Money):
        return value
    if value is None:
        return Money.zero()
    return Money.from_amount(value)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None

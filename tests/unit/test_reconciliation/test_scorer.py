#!/usr/bin/env python3
"""Tests for weighted match scoring and ranking."""

import pytest

from bankrec.core.money import Money
from bankrec.reconciliation.models import (
    BankRule,
    Criterion,
    MatchingRuleSet,
    RecordType,
    ScoreResult,
    SuggestedMatch,
)
from bankrec.reconciliation.scorer import (
    ScoringEngine,
    extract_references,
    normalize_reference,
    tokenize,
)
from tests.fixtures.synthetic_data import make_line, make_record


@pytest.mark.scoring
class TestTextNormalization:
    """Test reference and keyword normalization helpers."""

    def test_normalize_reference_ignores_case_whitespace_and_separators(self):
        assert normalize_reference(" inv-500 ") == normalize_reference("INV 500") == "inv500"
        assert normalize_reference(None) == ""
        assert normalize_reference("  ") == ""

    def test_extract_references_from_description(self):
        refs = extract_references("Payment INV-2024-001 and REC-2024-0002 thanks")
        assert {"inv2024001", "rec20240002"} <= refs

    def test_extract_references_empty(self):
        assert extract_references(None) == set()
        assert extract_references("cash deposit") == set()

    def test_tokenize_drops_stop_words_and_short_tokens(self):
        assert tokenize("Payment for Consulting services to ABC") == {"consulting", "services", "abc"}


@pytest.mark.scoring
class TestScoringEngine:
    """Test ScoringEngine.score."""

    def setup_method(self):
        self.engine = ScoringEngine()
        self.rule_set = MatchingRuleSet.default()

    def test_scenario_a_exact_amount_reference_and_date(self):
        """Exact amount + reference + same date = 90."""
        line = make_line("l1", amount="1000.00", reference="INV-500", transaction_date="2024-01-10")
        record = make_record("r1", amount="1000.00", reference="INV-500", date="2024-01-10")

        result = self.engine.score(line, record, self.rule_set)

        assert result.total == 90
        assert set(result.reasons) == {"amount_exact", "reference_match", "date_exact"}

    def test_scenario_b_close_amount_and_close_date(self):
        """Within 1% and two days apart = 20 + 10."""
        line = make_line("l1", amount="1000.00", transaction_date="2024-01-10")
        record = make_record("r1", amount="1005.00", date="2024-01-12")

        result = self.engine.score(line, record, self.rule_set)

        assert result.total == 30
        assert result.points_for(Criterion.AMOUNT_CLOSE) == 20
        assert result.points_for(Criterion.DATE_CLOSE) == 10

    def test_debit_line_scores_against_negative_expense(self):
        line = make_line("l1", amount="-250.00")
        record = make_record("e1", amount="-250.00", record_type=RecordType.EXPENSE)

        assert self.engine.score(line, record, self.rule_set).points_for(Criterion.AMOUNT_EXACT) == 40

    def test_one_cent_difference_is_still_exact(self):
        line = make_line("l1", amount="1000.00")
        record = make_record("r1", amount="1000.01")

        result = self.engine.score(line, record, self.rule_set)

        assert result.points_for(Criterion.AMOUNT_EXACT) == 40
        assert result.points_for(Criterion.AMOUNT_CLOSE) == 0

    def test_amount_and_date_pairs_are_mutually_exclusive(self):
        line = make_line("l1", amount="1000.00", transaction_date="2024-01-10")
        record = make_record("r1", amount="1000.00", date="2024-01-10")

        result = self.engine.score(line, record, self.rule_set)

        assert result.points_for(Criterion.AMOUNT_CLOSE) == 0
        assert result.points_for(Criterion.DATE_CLOSE) == 0

    def test_close_amount_does_not_fire_for_exact_when_exact_disabled(self):
        rule_set = MatchingRuleSet.from_dict({"disabled": ["amount_exact"]})
        line = make_line("l1", amount="1000.00")
        record = make_record("r1", amount="1000.00", date=None)

        assert self.engine.score(line, record, rule_set).total == 0

    def test_outside_close_ranges_scores_nothing(self):
        line = make_line("l1", amount="1000.00", transaction_date="2024-01-10")
        record = make_record("r1", amount="1020.00", date="2024-01-14")

        assert self.engine.score(line, record, self.rule_set).total == 0

    def test_reference_found_in_description(self):
        line = make_line("l1", description="TRF FROM CLIENT INV-2024-001")
        record = make_record("r1", amount="1.00", reference="INV-2024-001", date=None)

        assert self.engine.score(line, record, self.rule_set).reasons == ["reference_match"]

    def test_counterparty_name_in_description(self):
        line = make_line("l1", description="Transfer from EXAMPLE TRADING", transaction_date=None)
        record = make_record("r1", amount="1.00", counterparty="Example Trading Co., Ltd.")

        assert self.engine.score(line, record, self.rule_set).reasons == ["counterparty_match"]

    def test_description_keyword_overlap(self):
        line = make_line("l1", description="Consulting services Jan", transaction_date=None)
        record = make_record("r1", amount="1.00", description="Consulting services January")

        assert self.engine.score(line, record, self.rule_set).reasons == ["description_match"]

    def test_bank_rule_match(self):
        rule_set = MatchingRuleSet.default(
            bank_rules=(
                BankRule(
                    id="payroll",
                    name="Payroll",
                    suggest_type=RecordType.EXPENSE,
                    description_contains=("PAYROLL",),
                    amount_sign="debit",
                ),
            )
        )
        line = make_line("l1", amount="-5000.00", description="PAYROLL JAN", transaction_date=None)
        expense = make_record("e1", amount="-1.00", record_type=RecordType.EXPENSE)
        receipt = make_record("r1", amount="1.00")

        assert self.engine.score(line, expense, rule_set).reasons == ["rule_match"]
        assert self.engine.score(line, receipt, rule_set).total == 0

    def test_total_is_not_clamped(self):
        rule_set = MatchingRuleSet.default(
            bank_rules=(BankRule(id="r", name="r", suggest_type=RecordType.RECEIPT, description_contains=("CONSULTING",)),)
        )
        line = make_line(
            "l1",
            amount="1000.00",
            reference="INV-500",
            description="Example Trading consulting services",
        )
        record = make_record(
            "r1",
            amount="1000.00",
            reference="INV-500",
            counterparty="Example Trading",
            description="Consulting services",
        )

        assert self.engine.score(line, record, rule_set).total == 140

    def test_malformed_input_contributes_zero(self):
        """Missing references and unparseable dates never raise."""
        line = make_line("l1", amount="1000.00", transaction_date="garbage", reference=None)
        record = make_record("r1", amount="1000.00", date="not a date", reference=None, counterparty=None)

        result = self.engine.score(line, record, self.rule_set)

        assert result.total == 40
        assert result.reasons == ["amount_exact"]

    def test_disabled_rule_absent_from_breakdown(self):
        rule_set = MatchingRuleSet.from_dict({"disabled": ["description_match"]})
        line = make_line("l1")
        record = make_record("r1")

        criteria = [hit.criterion for hit in self.engine.score(line, record, rule_set).breakdown]

        assert Criterion.DESCRIPTION_MATCH not in criteria
        assert len(criteria) == len(Criterion) - 1

    def test_custom_weights(self):
        rule_set = MatchingRuleSet.from_dict({"weights": {"amount_exact": 50, "date_exact": 5}})
        line = make_line("l1")
        record = make_record("r1")

        assert self.engine.score(line, record, rule_set).total == 55

    def test_score_is_deterministic(self):
        line = make_line("l1", reference="INV-500", description="Example Trading")
        record = make_record("r1", reference="inv 500", counterparty="Example Trading")

        first = self.engine.score(line, record, self.rule_set)
        second = self.engine.score(line, record, self.rule_set)

        assert first == second


@pytest.mark.scoring
class TestRanking:
    """Test deterministic candidate ordering."""

    def _suggestion(self, record_id, score_total, amount_diff, date_diff):
        return SuggestedMatch(
            bank_line_id="l1",
            record=make_record(record_id),
            score=ScoreResult(total=score_total),
            amount_difference=Money.from_cents(amount_diff),
            date_difference=date_diff,
        )

    def test_rank_key_tie_breaks(self):
        suggestions = [
            self._suggestion("r-d", 60, 0, 0),
            self._suggestion("r-c", 60, 0, None),
            self._suggestion("r-b", 60, 500, 0),
            self._suggestion("r-a", 90, 900, 3),
            self._suggestion("r-e", 60, 0, 0),
        ]

        ordered = sorted(suggestions, key=ScoringEngine.rank_key)

        assert [s.record.id for s in ordered] == ["r-a", "r-d", "r-e", "r-c", "r-b"]

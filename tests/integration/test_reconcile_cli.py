#!/usr/bin/env python3
"""
Integration tests for the reconciliation CLI commands.

Drives the commands against the JSON ledger in the test data directory,
the same way an operator would from a shell.
"""

import json

import pytest
from click.testing import CliRunner

from bankrec.cli.main import main
from bankrec.core.config import get_config
from bankrec.core.json_utils import read_json, write_json
from tests.fixtures.synthetic_data import make_record, receipt_document, write_import_files


def created_match_id(output: str) -> str:
    """Match id from a 'Created match <id>: ...' line."""
    return output.split("Created match ", 1)[1].split(":", 1)[0]


@pytest.mark.integration
class TestReconcileCLI:
    """Test the load / automatch / match / stats workflow end to end."""

    @pytest.fixture(autouse=True)
    def loaded(self, temp_dir):
        self.runner = CliRunner()
        self.temp_dir = temp_dir
        self.lines_file, self.records_file = write_import_files(temp_dir)

        result = self.runner.invoke(main, ["load-lines", str(self.lines_file)])
        assert result.exit_code == 0, result.output
        assert "Imported 3 of 3 bank line(s)" in result.output

        result = self.runner.invoke(main, ["load-records", str(self.records_file)])
        assert result.exit_code == 0, result.output
        assert "Loaded 2 system record(s)" in result.output

    def invoke(self, *args):
        return self.runner.invoke(main, list(args))

    def test_ledger_file_written(self):
        ledger = read_json(get_config().store.ledger_file)

        assert [line["id"] for line in ledger["lines"]] == ["line-1", "line-2", "line-3"]
        assert {record["id"] for record in ledger["records"]} == {"rec-1", "exp-2"}
        assert ledger["matches"] == []

    def test_reloading_lines_skips_duplicates(self):
        result = self.invoke("load-lines", str(self.lines_file))

        assert result.exit_code == 0
        assert "Imported 0 of 3 bank line(s)" in result.output

    def test_load_normalized_records(self):
        records_file = self.temp_dir / "records.json"
        write_json(records_file, {"records": [make_record("rec-n", amount="10.00").to_dict()]})

        result = self.invoke("load-records", str(records_file), "--normalized")

        assert result.exit_code == 0
        assert "Loaded 1 system record(s)" in result.output

    def test_load_records_reports_skipped(self):
        documents_file = self.temp_dir / "mixed.json"
        write_json(documents_file, [receipt_document("rec-9", "9.00", "REC-9"), {"type": "payslip", "id": "x"}])

        result = self.invoke("load-records", str(documents_file))

        assert result.exit_code == 0
        assert "Loaded 1 system record(s) (1 skipped)" in result.output

    def test_load_lines_rejects_non_list(self):
        bad_file = self.temp_dir / "bad.json"
        write_json(bad_file, {"lines": "nope"})

        result = self.invoke("load-lines", str(bad_file))

        assert result.exit_code != 0
        assert "Expected a JSON list" in result.output

    def test_suggest(self):
        result = self.invoke("suggest", "line-1")

        assert result.exit_code == 0
        assert "Suggestions for line line-1:" in result.output
        assert "receipt rec-1 REC-2024-0001" in result.output
        assert "score=90" in result.output

    def test_suggest_json(self):
        result = self.invoke("suggest", "line-2", "--json")

        assert result.exit_code == 0
        suggestions = json.loads(result.output)
        assert suggestions[0]["record_id"] == "exp-2"
        assert suggestions[0]["match_score"] == 90
        assert suggestions[0]["match_reasons"] == ["amount_exact", "reference_match", "date_exact"]

    def test_suggest_unknown_line(self):
        result = self.invoke("suggest", "nope")

        assert result.exit_code != 0
        assert "Bank feed line not found: nope" in result.output

    def test_automatch_and_stats(self):
        result = self.invoke("automatch")

        assert result.exit_code == 0, result.output
        assert "Auto-match complete: 2 matched" in result.output
        assert "0 failed" in result.output
        assert "Missing records: 1 line(s)" in result.output

        result = self.invoke("stats")

        assert result.exit_code == 0
        assert "Total lines: 3" in result.output
        assert "matched: 2" in result.output
        assert "missing_record: 1" in result.output
        assert "Coverage: 66.7%" in result.output
        assert "Unmatched amount (THB): 777.77" in result.output

        ledger = read_json(get_config().store.ledger_file)
        assert {m["record_id"] for m in ledger["matches"]} == {"rec-1", "exp-2"}
        assert {m["match_method"] for m in ledger["matches"]} == {"auto"}

    def test_automatch_filtered_to_other_account(self):
        result = self.invoke("automatch", "--account", "acc-other")

        assert result.exit_code == 0
        assert "0 matched / 0 suggested / 0 failed" in result.output

    def test_stats_json_and_by_account(self):
        self.invoke("automatch")

        result = self.invoke("stats", "--json", "--by-account")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["total_lines"] == 3
        assert data["status_counts"]["matched"] == 2
        assert data["unmatched_amount"] == {"THB": "777.77"}
        assert data["discrepancy_amount"] == {"THB": "777.77"}
        assert data["total_system_movement"] == {"THB": "750.00"}
        assert data["net_difference"] == {"THB": "777.77"}
        assert data["by_account"][0]["account_id"] == "acc-1"
        assert data["by_account"][0]["total_lines"] == 3

    def test_stats_by_account_table(self):
        result = self.invoke("stats", "--by-account", "--currency", "thb")

        assert result.exit_code == 0
        assert "Coverage by account:" in result.output
        assert "acc-1" in result.output

    def test_manual_match_and_unmatch(self):
        self.invoke("automatch")
        documents_file = self.temp_dir / "late.json"
        write_json(documents_file, [receipt_document("rec-3", "777.77", "REC-2024-0003")])
        self.invoke("load-records", str(documents_file))

        result = self.invoke("match", "line-3", "rec-3", "--actor", "alice")

        assert result.exit_code == 0, result.output
        assert "line line-3 -> receipt rec-3 for 777.77 (suggested, score 60)" in result.output
        match_id = created_match_id(result.output)

        result = self.invoke("unmatch", "line-3", match_id)

        assert result.exit_code == 0, result.output
        assert f"Removed match {match_id}; line line-3 is now unmatched" in result.output

    def test_partial_match_reports_adjustment(self):
        result = self.invoke("match", "line-1", "rec-1", "--amount", "990.00", "--reason", "Bank fee")

        assert result.exit_code == 0, result.output
        assert "Adjustment required: 10.00 (Bank fee)" in result.output

        result = self.invoke("stats")
        assert "needs_review: 1" in result.output
        assert "Partially matched gap (THB): 10.00" in result.output
        # line-2 and line-3 are still open, so they count towards the discrepancy too
        assert "Discrepancy amount (THB): 1,037.77" in result.output
        assert "Net difference (THB): 537.77" in result.output

    def test_match_already_reconciled_record_fails(self):
        self.invoke("automatch")

        result = self.invoke("match", "line-3", "rec-1")

        assert result.exit_code != 0
        assert "rec-1" in result.output

    def test_unmatch_unknown_match(self):
        result = self.invoke("unmatch", "line-1", "missing-id")

        assert result.exit_code != 0
        assert "Match missing-id not found" in result.output

    def test_ignore_and_unignore(self):
        self.invoke("automatch")

        result = self.invoke("ignore", "line-3", "--reason", "Owner top-up")
        assert result.exit_code == 0
        assert "Ignored line line-3" in result.output

        result = self.invoke("stats")
        assert "ignored: 1" in result.output

        result = self.invoke("unignore", "line-3")
        assert result.exit_code == 0
        assert "Unignored line line-3; now missing_record" in result.output

"""
Pytest Configuration and Shared Fixtures

Provides common test fixtures and configuration for the entire test suite.
"""

import pytest

from bankrec.core import config as config_module
from bankrec.reconciliation.models import MatchingRuleSet
from bankrec.reconciliation.repository import InMemoryRepository
from bankrec.reconciliation.service import ReconciliationService
from tests.fixtures.synthetic_data import FIXED_NOW, make_line, make_record


@pytest.fixture
def temp_dir(tmp_path):
    """Temporary directory for test files."""
    return tmp_path


@pytest.fixture
def fixed_clock():
    """Clock returning a constant timestamp."""
    return lambda: FIXED_NOW


@pytest.fixture
def rule_set() -> MatchingRuleSet:
    """Default weighted rule set (threshold 85, top-5)."""
    return MatchingRuleSet.default()


@pytest.fixture
def scenario_a_line():
    """THB 1000.00 credit with reference INV-500 on 2024-01-10."""
    return make_line("line-a", amount="1000.00", reference="INV-500", transaction_date="2024-01-10")


@pytest.fixture
def scenario_a_record():
    return make_record("rec-a", amount="1000.00", reference="INV-500", date="2024-01-10")


@pytest.fixture
def repository(scenario_a_line, scenario_a_record) -> InMemoryRepository:
    """In-memory repository holding the Scenario A pair."""
    return InMemoryRepository(lines=[scenario_a_line], records=[scenario_a_record])


@pytest.fixture
def service(repository, fixed_clock) -> ReconciliationService:
    return ReconciliationService(repository, clock=fixed_clock)


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, tmp_path):
    """Set up test environment variables."""
    # Ensure tests don't use real data
    monkeypatch.setenv("BANKREC_ENV", "test")
    monkeypatch.setenv("BANKREC_DATA_DIR", str(tmp_path / "bankrec_data"))
    for name in (
        "BANKREC_AUTO_MATCH_THRESHOLD",
        "BANKREC_MIN_SCORE",
        "BANKREC_MAX_SUGGESTIONS",
        "BANKREC_RULES_FILE",
        "BANKREC_MAX_RETRIES",
        "BANKREC_ACTOR",
    ):
        monkeypatch.delenv(name, raising=False)

    # Fresh global configuration per test
    monkeypatch.setattr(config_module, "_config", None)


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for complete workflows")
    config.addinivalue_line("markers", "currency: Tests for amount handling and precision")
    config.addinivalue_line("markers", "scoring: Tests for match scoring and ranking")
    config.addinivalue_line("markers", "ledger: Tests for the match/unmatch lifecycle")
    config.addinivalue_line("markers", "automatch: Tests for batch auto-matching")
    config.addinivalue_line("markers", "stats: Tests for reconciliation statistics")

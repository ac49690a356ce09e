#!/usr/bin/env python3
"""
Integration tests for configuration module.

Tests configuration loading, validation and path resolution.
"""

from pathlib import Path

import pytest

from bankrec.core.config import (
    Config,
    Environment,
    get_config,
    get_data_dir,
    is_development,
    is_production,
    is_test,
    reload_config,
)


@pytest.mark.integration
class TestConfigLoading:
    """Test configuration loading and structure."""

    def test_config_loads_successfully(self):
        config = get_config()

        assert config.environment == Environment.TEST
        assert config.matching.auto_match_threshold == 85
        assert config.matching.min_score == 0
        assert config.matching.max_suggestions == 5
        assert config.matching.rules_file is None
        assert config.default_actor == "system"

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_data_directory_from_environment(self, tmp_path):
        config = get_config()

        assert config.data_dir == tmp_path / "bankrec_data"
        assert config.data_dir.exists()
        assert config.store.ledger_file == config.data_dir / "reconciliation" / "ledger.json"

    def test_get_data_dir_returns_absolute_path(self):
        data_dir = get_data_dir()

        assert isinstance(data_dir, Path)
        assert data_dir.is_absolute()

    def test_environment_detection_functions(self):
        assert is_test() is True
        assert is_development() is False
        assert is_production() is False

    def test_matching_settings_from_environment(self, monkeypatch, tmp_path):
        rules_file = tmp_path / "rules.json"
        rules_file.write_text("{}")
        monkeypatch.setenv("BANKREC_AUTO_MATCH_THRESHOLD", "90")
        monkeypatch.setenv("BANKREC_MIN_SCORE", "20")
        monkeypatch.setenv("BANKREC_MAX_SUGGESTIONS", "3")
        monkeypatch.setenv("BANKREC_MAX_RETRIES", "1")
        monkeypatch.setenv("BANKREC_RULES_FILE", str(rules_file))

        config = reload_config()

        assert config.matching.auto_match_threshold == 90
        assert config.matching.min_score == 20
        assert config.matching.max_suggestions == 3
        assert config.matching.max_retries == 1
        assert config.matching.rules_file == rules_file


@pytest.mark.integration
class TestConfigValidation:
    """Test configuration validation errors."""

    def test_missing_rules_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BANKREC_RULES_FILE", str(tmp_path / "missing.json"))

        with pytest.raises(ValueError, match="BANKREC_RULES_FILE does not exist"):
            reload_config()

    def test_min_score_must_be_below_threshold(self, monkeypatch):
        monkeypatch.setenv("BANKREC_MIN_SCORE", "85")

        with pytest.raises(ValueError, match="BANKREC_MIN_SCORE"):
            reload_config()

    def test_validate_collects_all_errors(self):
        config = Config.from_environment()
        config.matching.max_suggestions = 0
        config.default_actor = ""

        errors = config.validate()

        assert len(errors) == 2

    def test_to_dict_is_json_friendly(self):
        data = get_config().to_dict()

        assert data["environment"] == "test"
        assert isinstance(data["data_dir"], str)
        assert data["matching"]["auto_match_threshold"] == 85
        assert isinstance(data["store"]["ledger_file"], str)

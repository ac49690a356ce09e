#!/usr/bin/env python3
"""
Configuration Management for Bank Reconciliation

Handles environment-based configuration with safe defaults and validation.
Supports multiple environments (development, test, production); the matching
thresholds can be tuned per deployment without touching code.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


@dataclass
class MatchingConfig:
    """Scoring and automation settings."""

    auto_match_threshold: int = 85
    min_score: int = 0  # suggestions must score strictly above this
    max_suggestions: int = 5
    rules_file: Path | None = None
    max_retries: int = 3


@dataclass
class StoreConfig:
    """File store settings for the CLI."""

    ledger_file: Path


@dataclass
class Config:
    """
    Main configuration class for the reconciliation engine.

    Loads configuration from environment variables with defaults and
    validation for each environment type.
    """

    environment: Environment

    # Core directories
    data_dir: Path

    # Component configurations
    matching: MatchingConfig
    store: StoreConfig

    # Application settings
    default_actor: str = "system"
    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_environment(cls) -> "Config":
        """Create configuration from environment variables."""
        env = Environment(os.getenv("BANKREC_ENV", "development"))

        if env == Environment.TEST:
            default_test_dir = Path(tempfile.gettempdir()) / "test_bankrec"
            data_dir = Path(os.getenv("BANKREC_DATA_DIR", str(default_test_dir)))
        else:
            data_dir = Path(os.getenv("BANKREC_DATA_DIR", "./data")).expanduser().resolve()

        data_dir.mkdir(parents=True, exist_ok=True)

        rules_file = os.getenv("BANKREC_RULES_FILE")
        matching = MatchingConfig(
            auto_match_threshold=int(os.getenv("BANKREC_AUTO_MATCH_THRESHOLD", "85")),
            min_score=int(os.getenv("BANKREC_MIN_SCORE", "0")),
            max_suggestions=int(os.getenv("BANKREC_MAX_SUGGESTIONS", "5")),
            rules_file=Path(rules_file).expanduser() if rules_file else None,
            max_retries=int(os.getenv("BANKREC_MAX_RETRIES", "3")),
        )

        store = StoreConfig(ledger_file=data_dir / "reconciliation" / "ledger.json")

        return cls(
            environment=env,
            data_dir=data_dir,
            matching=matching,
            store=store,
            default_actor=os.getenv("BANKREC_ACTOR", "system"),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> list:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.data_dir.exists():
            errors.append(f"data_dir does not exist: {self.data_dir}")

        if self.matching.auto_match_threshold <= 0:
            errors.append("BANKREC_AUTO_MATCH_THRESHOLD must be positive")
        if self.matching.min_score < 0:
            errors.append("BANKREC_MIN_SCORE must be non-negative")
        if self.matching.min_score >= self.matching.auto_match_threshold:
            errors.append("BANKREC_MIN_SCORE must be below the auto-match threshold")
        if self.matching.max_suggestions <= 0:
            errors.append("BANKREC_MAX_SUGGESTIONS must be positive")
        if self.matching.max_retries < 0:
            errors.append("BANKREC_MAX_RETRIES must be non-negative")
        if self.matching.rules_file is not None and not self.matching.rules_file.exists():
            errors.append(f"BANKREC_RULES_FILE does not exist: {self.matching.rules_file}")

        if not self.default_actor:
            errors.append("BANKREC_ACTOR must not be empty")

        return errors

    def setup_logging(self) -> None:
        """Configure logging based on configuration."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.environment == Environment.DEVELOPMENT:
            format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            format_str = "%(asctime)s - %(levelname)s - %(message)s"

        logging.basicConfig(level=level, format=format_str, datefmt="%Y-%m-%d %H:%M:%S")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a JSON-friendly dictionary."""
        result: dict[str, Any] = {}

        for field_name, field_value in self.__dict__.items():
            if hasattr(field_value, "__dict__") and not isinstance(field_value, (Path, Enum)):
                nested_dict: dict[str, Any] = {}
                for nested_name, nested_value in field_value.__dict__.items():
                    if isinstance(nested_value, Path):
                        nested_dict[nested_name] = str(nested_value)
                    else:
                        nested_dict[nested_name] = nested_value
                result[field_name] = nested_dict
            elif isinstance(field_value, Path):
                result[field_name] = str(field_value)
            elif isinstance(field_value, Enum):
                result[field_name] = field_value.value
            else:
                result[field_name] = field_value

        return result


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        config = Config.from_environment()

        errors = config.validate()
        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        config.setup_logging()
        _config = config

    return _config


def reload_config() -> Config:
    """Reload configuration from environment (useful for testing)."""
    global _config
    _config = None
    return get_config()


def get_data_dir() -> Path:
    """Get the data directory path."""
    return get_config().data_dir


def is_development() -> bool:
    return get_config().environment == Environment.DEVELOPMENT


def is_test() -> bool:
    return get_config().environment == Environment.TEST


def is_production() -> bool:
    return get_config().environment == Environment.PRODUCTION

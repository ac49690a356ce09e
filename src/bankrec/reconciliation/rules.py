#!/usr/bin/env python3
"""
Rule-Set Providers

A scoring pass reads the current MatchingRuleSet once at its start. Providers
hide where that rule set comes from: built-in defaults, or the environment
configuration plus an optional JSON rules file that may be edited between
passes.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from ..core.config import MatchingConfig
from ..core.json_utils import read_json
from .models import MatchingRuleSet

logger = logging.getLogger(__name__)


class RuleSetProvider(Protocol):
    """Read interface for the current matching rule set."""

    def current(self) -> MatchingRuleSet:
        ...


class StaticRuleSetProvider:
    """Always returns the same rule set (defaults unless one is given)."""

    def __init__(self, rule_set: MatchingRuleSet | None = None):
        self.rule_set = rule_set or MatchingRuleSet.default()

    def current(self) -> MatchingRuleSet:
        return self.rule_set


class ConfigRuleSetProvider:
    """
    Rule set from MatchingConfig, overridden by a JSON rules file when present.

    The rules file is re-read on every call so edits apply to the next pass.
    Thresholds in the file win over the environment values.
    """

    def __init__(self, matching: MatchingConfig):
        self.matching = matching

    def current(self) -> MatchingRuleSet:
        data = {
            "auto_match_threshold": self.matching.auto_match_threshold,
            "min_score": self.matching.min_score,
            "max_suggestions": self.matching.max_suggestions,
        }
        rules_file = self.matching.rules_file
        if rules_file is not None:
            data.update(load_rules_file(rules_file))
        return MatchingRuleSet.from_dict(data)


def load_rules_file(path: Path) -> dict:
    """
    Load a JSON rule-set override.

    Expected shape::

        {
          "auto_match_threshold": 85,
          "weights": {"amount_exact": 40},
          "disabled": ["description_match"],
          "bank_rules": [{"id": "payroll", "description_contains": ["PAYROLL"],
                          "suggest_type": "expense"}]
        }

    Raises:
        ValueError: If the file does not hold a JSON object
    """
    data = read_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid rules file {path}: expected object, got {type(data).__name__}")
    logger.debug("Loaded rule-set override from %s", path)
    return data


@dataclass
class RuleUsage:
    """How often a bank rule produced an automatic match, and when it last did."""

    rule_id: str
    use_count: int = 0
    last_used: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "use_count": self.use_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }


class RuleUsageTracker:
    """Thread-safe per-rule usage counters, shared by concurrent partitions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._usage: dict[str, RuleUsage] = {}

    def record(self, rule_id: str, used_at: datetime) -> RuleUsage:
        with self._lock:
            usage = self._usage.setdefault(rule_id, RuleUsage(rule_id))
            usage.use_count += 1
            if usage.last_used is None or used_at > usage.last_used:
                usage.last_used = used_at
            return RuleUsage(usage.rule_id, usage.use_count, usage.last_used)

    def get(self, rule_id: str) -> RuleUsage:
        with self._lock:
            usage = self._usage.get(rule_id)
            if usage is None:
                return RuleUsage(rule_id)
            return RuleUsage(usage.rule_id, usage.use_count, usage.last_used)

    def all(self) -> list[RuleUsage]:
        """Usage for every rule seen so far, ordered by rule id."""
        with self._lock:
            return [RuleUsage(u.rule_id, u.use_count, u.last_used) for _, u in sorted(self._usage.items())]

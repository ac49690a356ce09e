#!/usr/bin/env python3
"""
Reconciliation Error Types

Typed errors reported to callers of the matching engine. Every validation
failure is raised before any repository write, so catching one of these
means the stored state is unchanged.
"""


class ReconciliationError(Exception):
    """Base class for all matching engine errors."""


class ValidationError(ReconciliationError, ValueError):
    """Input rejected before any state change (e.g. non-positive matched amount)."""


class LineNotFoundError(ReconciliationError):
    """No bank feed line exists with the given id."""

    def __init__(self, line_id: str):
        super().__init__(f"Bank feed line not found: {line_id}")
        self.line_id = line_id


class RecordNotFoundError(ReconciliationError):
    """No system record exists with the given id."""

    def __init__(self, record_id: str):
        super().__init__(f"System record not found: {record_id}")
        self.record_id = record_id


class MatchNotFoundError(ReconciliationError):
    """The match does not exist or does not belong to the given line."""

    def __init__(self, line_id: str, match_id: str):
        super().__init__(f"Match {match_id} not found on bank feed line {line_id}")
        self.line_id = line_id
        self.match_id = match_id


class LineAlreadyMatchedError(ReconciliationError):
    """The line's matched amount already closes its bank amount."""

    def __init__(self, line_id: str):
        super().__init__(f"Bank feed line {line_id} is already fully matched")
        self.line_id = line_id


class OverMatchError(ReconciliationError):
    """The requested match would push the matched amount past the bank amount."""


class LineIgnoredError(ReconciliationError):
    """Matches cannot be created against an ignored line."""

    def __init__(self, line_id: str):
        super().__init__(f"Bank feed line {line_id} is ignored; unignore it before matching")
        self.line_id = line_id


class ConcurrencyConflictError(ReconciliationError):
    """The stored line changed between read and write."""

    def __init__(self, line_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Bank feed line {line_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.line_id = line_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class RecordAlreadyMatchedError(ReconciliationError):
    """The system record is already reconciled or linked to another match."""

    def __init__(self, record_id: str):
        super().__init__(f"System record {record_id} is already reconciled")
        self.record_id = record_id

#!/usr/bin/env python3
"""
Reconciliation Repository

Storage contract the matching engine needs, plus two implementations:

- InMemoryRepository: thread-safe store used by tests and embedding callers
- JsonFileRepository: the same store persisted to a JSON file (CLI)

Every line carries a version. ``save_line`` is the single transactional write:
it checks the expected version, applies the line update together with the
match rows added or removed, and bumps the version. A stale version raises
ConcurrencyConflictError and nothing is written.
"""

import copy
import dataclasses
import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Protocol

from filelock import FileLock

from ..core.errors import (
    ConcurrencyConflictError,
    LineNotFoundError,
    MatchNotFoundError,
    RecordAlreadyMatchedError,
    RecordNotFoundError,
)
from ..core.json_utils import read_json, write_json
from .models import BankFeedLine, BankMatch, LineFilter, SystemRecord

logger = logging.getLogger(__name__)


class ReconciliationRepository(Protocol):
    """
    Protocol for bank line, system record and match persistence.

    Implementations must return copies: mutating a returned object never
    changes stored state.
    """

    def get_line(self, line_id: str) -> BankFeedLine:
        """
        Raises:
            LineNotFoundError: If no line has this id
        """
        ...

    def list_lines(self, line_filter: LineFilter | None = None) -> list[BankFeedLine]:
        """Lines in scope, in import order."""
        ...

    def get_record(self, record_id: str) -> SystemRecord:
        """
        Raises:
            RecordNotFoundError: If no record has this id
        """
        ...

    def list_records(self, currency: str | None = None, unreconciled_only: bool = True) -> list[SystemRecord]:
        """Candidate records, optionally restricted to one currency and to unreconciled ones."""
        ...

    def list_matches(self, line_id: str) -> list[BankMatch]:
        ...

    def save_line(
        self,
        line: BankFeedLine,
        expected_version: int,
        added_matches: Iterable[BankMatch] = (),
        removed_match_ids: Iterable[str] = (),
    ) -> BankFeedLine:
        """
        Atomically store a line update with its match changes.

        Returns:
            The stored line with its new version

        Raises:
            ConcurrencyConflictError: If the stored version differs from expected_version
            RecordAlreadyMatchedError: If an added match targets an already matched record
            MatchNotFoundError: If a removed match does not belong to the line
        """
        ...


class InMemoryRepository:
    """Thread-safe in-process repository with optimistic line versioning."""

    def __init__(
        self,
        lines: Iterable[BankFeedLine] = (),
        records: Iterable[SystemRecord] = (),
        matches: Iterable[BankMatch] = (),
    ):
        self._lock = threading.RLock()
        self._lines: dict[str, BankFeedLine] = {}
        self._records: dict[str, SystemRecord] = {}
        self._matches: dict[str, BankMatch] = {}
        for line in lines:
            self._lines[line.id] = copy.deepcopy(line)
        for record in records:
            self._records[record.id] = record
        for match in matches:
            self._matches[match.id] = match

    # Storage hooks

    @contextmanager
    def _writing(self) -> Iterator[None]:
        """Serialize one write. Persistent subclasses also lock and reload storage here."""
        with self._lock:
            yield

    def _refresh(self) -> None:
        """Bring memory up to date with storage before a read."""

    def _persist(
        self,
        lines: dict[str, BankFeedLine],
        records: dict[str, SystemRecord],
        matches: dict[str, BankMatch],
    ) -> None:
        """Durably store a candidate state. Raising leaves the current state untouched."""

    def _install(
        self,
        lines: dict[str, BankFeedLine],
        records: dict[str, SystemRecord],
        matches: dict[str, BankMatch],
    ) -> None:
        # Memory only changes once storage has accepted the new state
        self._persist(lines, records, matches)
        self._lines, self._records, self._matches = lines, records, matches

    # Loading

    def add_lines(self, lines: Iterable[BankFeedLine], imported_by: str | None = None) -> int:
        """
        Import bank lines. Lines whose id already exists are skipped, never overwritten.

        Returns:
            Number of lines added
        """
        added = 0
        with self._writing():
            new_lines = dict(self._lines)
            for line in lines:
                if line.id in new_lines:
                    logger.debug("Skipping duplicate bank line %s", line.id)
                    continue
                stored = copy.deepcopy(line)
                if stored.imported_at is None:
                    stored.imported_at = datetime.now()
                if imported_by and stored.imported_by is None:
                    stored.imported_by = imported_by
                new_lines[stored.id] = stored
                added += 1
            if added:
                self._install(new_lines, self._records, self._matches)
        logger.info("Imported %d bank line(s)", added)
        return added

    def add_records(self, records: Iterable[SystemRecord]) -> int:
        """Add or refresh system records (records are owned by the accounting side)."""
        count = 0
        with self._writing():
            new_records = dict(self._records)
            for record in records:
                new_records[record.id] = record
                count += 1
            if count:
                self._install(self._lines, new_records, self._matches)
        return count

    # Reads

    def get_line(self, line_id: str) -> BankFeedLine:
        with self._lock:
            self._refresh()
            line = self._lines.get(line_id)
            if line is None:
                raise LineNotFoundError(line_id)
            return copy.deepcopy(line)

    def list_lines(self, line_filter: LineFilter | None = None) -> list[BankFeedLine]:
        with self._lock:
            self._refresh()
            return [
                copy.deepcopy(line)
                for line in self._lines.values()
                if line_filter is None or line_filter.accepts(line)
            ]

    def _matched_record_ids(self) -> set[str]:
        return {match.record_id for match in self._matches.values()}

    def _with_reconciled_flag(self, record: SystemRecord, matched: set[str]) -> SystemRecord:
        if record.id in matched and not record.reconciled:
            return dataclasses.replace(record, reconciled=True)
        return record

    def get_record(self, record_id: str) -> SystemRecord:
        with self._lock:
            self._refresh()
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFoundError(record_id)
            return self._with_reconciled_flag(record, self._matched_record_ids())

    def list_records(self, currency: str | None = None, unreconciled_only: bool = True) -> list[SystemRecord]:
        with self._lock:
            self._refresh()
            matched = self._matched_record_ids()
            records = []
            for record in self._records.values():
                if currency is not None and record.currency != currency.upper():
                    continue
                record = self._with_reconciled_flag(record, matched)
                if unreconciled_only and record.reconciled:
                    continue
                records.append(record)
            return records

    def list_matches(self, line_id: str) -> list[BankMatch]:
        with self._lock:
            self._refresh()
            return [m for m in self._matches.values() if m.bank_line_id == line_id]

    def get_match(self, match_id: str) -> BankMatch | None:
        with self._lock:
            self._refresh()
            return self._matches.get(match_id)

    # Writes

    def save_line(
        self,
        line: BankFeedLine,
        expected_version: int,
        added_matches: Iterable[BankMatch] = (),
        removed_match_ids: Iterable[str] = (),
    ) -> BankFeedLine:
        added_matches = list(added_matches)
        removed_match_ids = list(removed_match_ids)

        with self._writing():
            current = self._lines.get(line.id)
            if current is None:
                raise LineNotFoundError(line.id)
            if current.version != expected_version:
                raise ConcurrencyConflictError(line.id, expected_version, current.version)

            for match_id in removed_match_ids:
                existing = self._matches.get(match_id)
                if existing is None or existing.bank_line_id != line.id:
                    raise MatchNotFoundError(line.id, match_id)

            remaining_record_ids = {
                m.record_id for m in self._matches.values() if m.id not in removed_match_ids
            }
            for match in added_matches:
                record = self._records.get(match.record_id)
                if record is None:
                    raise RecordNotFoundError(match.record_id)
                if record.reconciled or match.record_id in remaining_record_ids:
                    raise RecordAlreadyMatchedError(match.record_id)
                remaining_record_ids.add(match.record_id)

            new_matches = dict(self._matches)
            for match_id in removed_match_ids:
                del new_matches[match_id]
            for match in added_matches:
                new_matches[match.id] = match

            stored = copy.deepcopy(line)
            stored.version = expected_version + 1
            new_lines = dict(self._lines)
            new_lines[line.id] = stored

            self._install(new_lines, self._records, new_matches)
            return copy.deepcopy(stored)

    # Metadata

    def item_count(self) -> int:
        with self._lock:
            self._refresh()
            return len(self._lines)

    def summary_text(self) -> str:
        with self._lock:
            self._refresh()
            return (
                f"Bank lines: {len(self._lines)}, system records: {len(self._records)}, "
                f"matches: {len(self._matches)}"
            )


class JsonFileRepository(InMemoryRepository):
    """
    InMemoryRepository persisted to a single JSON file.

    Several processes may share one ledger file. Every write holds an
    exclusive lock on ``<ledger>.lock``, reloads the file, validates against
    what is on disk and rewrites the whole store before releasing the lock,
    so the version check covers writers in other processes too. Reads reload
    whenever the file has been replaced since it was last seen.
    """

    def __init__(self, ledger_file: Path, lock_timeout: float = 30.0):
        self.ledger_file = Path(ledger_file)
        self._file_lock = FileLock(f"{self.ledger_file}.lock", timeout=lock_timeout)
        self._signature: tuple[int, int, int] | None = None
        super().__init__()
        self._refresh()

    def _file_signature(self) -> tuple[int, int, int] | None:
        try:
            stat = self.ledger_file.stat()
        except FileNotFoundError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _load(self) -> None:
        signature = self._file_signature()
        lines: dict[str, BankFeedLine] = {}
        records: dict[str, SystemRecord] = {}
        matches: dict[str, BankMatch] = {}

        if signature is not None:
            data = read_json(self.ledger_file)
            if not isinstance(data, dict):
                raise ValueError(
                    f"Invalid ledger format in {self.ledger_file}: expected dict, got {type(data).__name__}"
                )
            for item in data.get("lines", []):
                line = BankFeedLine.from_dict(item)
                lines[line.id] = line
            for item in data.get("records", []):
                record = SystemRecord.from_dict(item)
                records[record.id] = record
            for item in data.get("matches", []):
                match = BankMatch.from_dict(item)
                matches[match.id] = match
            logger.debug("Loaded ledger %s (%d lines)", self.ledger_file, len(lines))

        self._lines, self._records, self._matches = lines, records, matches
        self._signature = signature

    def _refresh(self) -> None:
        if self._file_signature() != self._signature:
            self._load()

    @contextmanager
    def _writing(self) -> Iterator[None]:
        with self._lock:
            self.ledger_file.parent.mkdir(parents=True, exist_ok=True)
            with self._file_lock:
                self._load()
                yield

    def _persist(
        self,
        lines: dict[str, BankFeedLine],
        records: dict[str, SystemRecord],
        matches: dict[str, BankMatch],
    ) -> None:
        write_json(
            self.ledger_file,
            {
                "lines": [line.to_dict() for line in lines.values()],
                "records": [record.to_dict() for record in records.values()],
                "matches": [match.to_dict() for match in matches.values()],
            },
        )
        self._signature = self._file_signature()

    def exists(self) -> bool:
        return self.ledger_file.exists()

    def last_modified(self) -> datetime | None:
        if not self.exists():
            return None
        return datetime.fromtimestamp(self.ledger_file.stat().st_mtime)

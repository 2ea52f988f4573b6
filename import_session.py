"""Transient review state for statements uploaded while building a report."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import PurePath
from typing import Callable, Optional, Sequence, Union
from uuid import uuid4

from classifier import classify, coerce_category
from csv_utils import (
    OCR_EXTENSIONS,
    TEXT_EXTENSIONS,
    StatementParseError,
    normalize_date,
    parse_statement,
    read_statement_bytes,
)
from models import Direction, FileStatus, SpendingCategory
from schemas import ExternalFileResult, TransactionRecord

logger = logging.getLogger(__name__)


class ImportSessionClosed(ValueError):
    pass


class ImportSessionNotFound(ValueError):
    pass


class RowNotFound(ValueError):
    pass


@dataclass
class ReviewableTransaction:
    row_id: str
    record: TransactionRecord
    included: bool


@dataclass
class UploadedFile:
    file_id: str
    name: str
    extension: str
    status: FileStatus = FileStatus.processing
    error: Optional[str] = None
    transaction_count: int = 0


RowPredicate = Callable[[ReviewableTransaction], bool]

SELECTORS: dict[str, RowPredicate] = {
    "all": lambda row: True,
    "none": lambda row: False,
    "debits": lambda row: row.record.direction != Direction.credit,
}


class ImportSession:
    """
    Rows collected from one or more uploaded statements, awaiting review.

    A session belongs to one household and one report-building workflow.
    Nothing here is persisted; ``discard()`` ends the workflow explicitly.
    """

    def __init__(self, household_id: int, session_id: Optional[str] = None) -> None:
        self.household_id = household_id
        self.session_id = session_id or uuid4().hex
        self.created_at = datetime.utcnow()
        self.touched_at = self.created_at
        self._rows: list[ReviewableTransaction] = []
        self._files: list[UploadedFile] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def rows(self) -> list[ReviewableTransaction]:
        with self._lock:
            return list(self._rows)

    @property
    def files(self) -> list[UploadedFile]:
        with self._lock:
            return list(self._files)

    def touch(self) -> None:
        self.touched_at = datetime.utcnow()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ImportSessionClosed("Import session has been discarded")

    def _register_file(self, name: str) -> UploadedFile:
        self._ensure_open()
        entry = UploadedFile(
            file_id=uuid4().hex[:12],
            name=name,
            extension=PurePath(name).suffix.lower(),
        )
        with self._lock:
            self._files.append(entry)
        return entry

    def _complete(
        self,
        entry: UploadedFile,
        records: Sequence[TransactionRecord],
        error: Optional[str] = None,
    ) -> UploadedFile:
        with self._lock:
            if self._closed:
                raise ImportSessionClosed("Import session has been discarded")
            if error:
                entry.status = FileStatus.error
                entry.error = error
                entry.transaction_count = 0
            else:
                entry.status = FileStatus.done if records else FileStatus.empty
                entry.transaction_count = len(records)
                self._rows.extend(
                    ReviewableTransaction(
                        row_id=f"{entry.file_id}-{idx}",
                        record=record,
                        included=record.direction == Direction.debit,
                    )
                    for idx, record in enumerate(records)
                )
        self.touch()
        if error:
            logger.warning(f"import_file_failed: file={entry.name} error={error}")
        else:
            logger.info(
                f"import_file_done: file={entry.name} status={entry.status.value} "
                f"rows={entry.transaction_count}"
            )
        return entry

    def add_statement(self, name: str, data: bytes) -> UploadedFile:
        entry = self._register_file(name)
        if entry.extension in OCR_EXTENSIONS:
            return self._complete(
                entry, [], error="File requires OCR; submit the extracted rows instead"
            )
        if entry.extension not in TEXT_EXTENSIONS:
            return self._complete(
                entry, [], error=f"Unsupported file type '{entry.extension or name}'"
            )
        try:
            records = parse_statement(read_statement_bytes(data), name)
        except StatementParseError as exc:
            return self._complete(entry, [], error=str(exc))
        return self._complete(entry, records)

    def add_files(
        self, files: Sequence[tuple[str, bytes]], max_workers: int = 4
    ) -> list[UploadedFile]:
        """Parse several uploads concurrently; results keep the input order."""
        if not files:
            return []
        workers = max(1, min(max_workers, len(files)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda item: self.add_statement(*item), files))

    def add_external_result(self, result: ExternalFileResult) -> UploadedFile:
        """Accept rows that an OCR collaborator already extracted from a file."""
        entry = self._register_file(result.filename)
        if result.error:
            return self._complete(entry, [], error=result.error)

        records: list[TransactionRecord] = []
        for item in result.transactions:
            date_value = normalize_date(item.date)
            amount = abs(item.amount)
            if not date_value or not amount:
                continue
            direction = item.direction or (
                Direction.debit if item.amount < 0 else Direction.credit
            )
            description = " ".join(item.description.split())
            category = (
                coerce_category(item.category)
                if item.category
                else classify(description)
            )
            records.append(
                TransactionRecord(
                    date=date_value,
                    description=description,
                    amount=amount,
                    direction=direction,
                    category=category,
                    source_label=result.filename,
                )
            )
        return self._complete(entry, records)

    def _find(self, row_id: str) -> ReviewableTransaction:
        for row in self._rows:
            if row.row_id == row_id:
                return row
        raise RowNotFound(f"Row '{row_id}' not found")

    def toggle_include(self, row_id: str) -> ReviewableTransaction:
        self._ensure_open()
        with self._lock:
            row = self._find(row_id)
            row.included = not row.included
        self.touch()
        return row

    def set_category(
        self, row_id: str, category: SpendingCategory
    ) -> ReviewableTransaction:
        self._ensure_open()
        category = SpendingCategory(category)
        with self._lock:
            row = self._find(row_id)
            row.record = row.record.model_copy(update={"category": category})
        self.touch()
        return row

    def bulk_select(self, predicate: Union[str, RowPredicate]) -> int:
        """Set ``included`` on every row from the predicate; returns the included count."""
        self._ensure_open()
        if isinstance(predicate, str):
            try:
                predicate = SELECTORS[predicate]
            except KeyError as exc:
                raise ValueError(f"Unknown selection '{predicate}'") from exc
        with self._lock:
            for row in self._rows:
                row.included = bool(predicate(row))
            included = sum(1 for row in self._rows if row.included)
        self.touch()
        return included

    def remove_source(self, source_label: str) -> int:
        self._ensure_open()
        with self._lock:
            before = len(self._rows)
            self._rows = [r for r in self._rows if r.record.source_label != source_label]
            self._files = [f for f in self._files if f.name != source_label]
            removed = before - len(self._rows)
        self.touch()
        logger.info(f"import_source_removed: source={source_label} rows={removed}")
        return removed

    def remove_file(self, file_id: str) -> int:
        self._ensure_open()
        prefix = f"{file_id}-"
        with self._lock:
            if not any(f.file_id == file_id for f in self._files):
                raise ValueError(f"File '{file_id}' not found")
            before = len(self._rows)
            self._rows = [r for r in self._rows if not r.row_id.startswith(prefix)]
            self._files = [f for f in self._files if f.file_id != file_id]
            removed = before - len(self._rows)
        self.touch()
        return removed

    def included_rows(self) -> list[ReviewableTransaction]:
        return [row for row in self.rows if row.included]

    def included_debit_total(self) -> Decimal:
        return sum(
            (
                row.record.amount
                for row in self.rows
                if row.included and row.record.direction == Direction.debit
            ),
            Decimal("0"),
        )

    def included_by_category(self) -> dict[SpendingCategory, Decimal]:
        totals: dict[SpendingCategory, Decimal] = {}
        for row in self.rows:
            if not row.included or row.record.direction != Direction.debit:
                continue
            category = row.record.category
            totals[category] = totals.get(category, Decimal("0")) + row.record.amount
        return totals

    def discard(self) -> None:
        with self._lock:
            self._rows = []
            self._files = []
            self._closed = True
        logger.info(f"import_session_discarded: session={self.session_id}")


class ImportSessionRegistry:
    """Live import sessions for this process, looked up per household."""

    def __init__(self) -> None:
        self._sessions: dict[str, ImportSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, household_id: int) -> ImportSession:
        session = ImportSession(household_id)
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str, household_id: int) -> ImportSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if not session or session.household_id != household_id:
            raise ImportSessionNotFound("Import session not found")
        return session

    def discard(self, session_id: str, household_id: int) -> None:
        session = self.get(session_id, household_id)
        with self._lock:
            self._sessions.pop(session_id, None)
        session.discard()

    def purge_idle(self, max_age: timedelta, *, now: Optional[datetime] = None) -> int:
        cutoff = (now or datetime.utcnow()) - max_age
        with self._lock:
            stale = [s for s in self._sessions.values() if s.touched_at < cutoff]
            for session in stale:
                self._sessions.pop(session.session_id, None)
        for session in stale:
            session.discard()
        return len(stale)

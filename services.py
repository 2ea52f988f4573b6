from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from aggregator import build_report
from classifier import coerce_category
from import_session import ImportSession
from models import Direction, ReconciledState, SyncedTransaction, UNCATEGORIZED
from periods import resolve_month
from schemas import LedgerUpdateIn, MonthlyReport, MonthlyReportRequest, TransactionRecord

logger = logging.getLogger(__name__)


class TransactionNotFound(ValueError):
    pass


@dataclass
class LedgerFilters:
    month: Optional[str] = None
    account_id: Optional[str] = None
    reconciled_state: ReconciledState = ReconciledState.all


@dataclass
class CategorySummary:
    category: str
    total_cents: int
    count: int


@dataclass
class LedgerPage:
    records: list[SyncedTransaction]
    total_count: int
    page: int
    page_size: int

    @property
    def page_count(self) -> int:
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_more(self) -> bool:
        return (self.page + 1) * self.page_size < self.total_count


# Blank labels count as missing, matching SyncedTransaction.display_category.
_display_category = func.coalesce(
    func.nullif(SyncedTransaction.user_category, ""),
    func.nullif(SyncedTransaction.primary_category, ""),
    UNCATEGORIZED,
)


def to_transaction_record(txn: SyncedTransaction) -> TransactionRecord:
    """
    Convert a synced row (signed cents, outflow positive) into the unsigned
    amount + direction form used for uploaded statements.
    """
    cents = int(txn.amount_cents)
    return TransactionRecord(
        date=txn.date.isoformat(),
        description=txn.merchant or txn.name,
        amount=(Decimal(abs(cents)) / 100).quantize(Decimal("0.01")),
        direction=Direction.debit if cents > 0 else Direction.credit,
        category=coerce_category(txn.display_category),
        source_label=f"account:{txn.account_id}",
    )


class ReconciliationLedger:
    def __init__(self, session: Session, household_id: int) -> None:
        self.session = session
        self.household_id = household_id

    def _conditions(self, filters: LedgerFilters) -> list:
        month = resolve_month(filters.month)
        conditions = [
            SyncedTransaction.household_id == self.household_id,
            SyncedTransaction.date.between(month.start, month.end),
        ]
        if filters.account_id:
            conditions.append(SyncedTransaction.account_id == filters.account_id)
        if filters.reconciled_state == ReconciledState.reconciled:
            conditions.append(SyncedTransaction.is_reconciled.is_(True))
        elif filters.reconciled_state == ReconciledState.unreconciled:
            conditions.append(SyncedTransaction.is_reconciled.is_(False))
        return conditions

    def query(
        self, filters: LedgerFilters, page: int = 0, page_size: int = 50
    ) -> LedgerPage:
        if page < 0:
            raise ValueError("Page must be zero or greater")
        if page_size < 1:
            raise ValueError("Page size must be at least 1")
        conditions = self._conditions(filters)

        total = int(
            self.session.execute(
                select(func.count(SyncedTransaction.id)).where(*conditions)
            ).scalar_one()
            or 0
        )
        stmt = (
            select(SyncedTransaction)
            .where(*conditions)
            .order_by(SyncedTransaction.date.desc(), SyncedTransaction.id.desc())
            .offset(page * page_size)
            .limit(page_size)
        )
        records = list(self.session.scalars(stmt).all())
        return LedgerPage(
            records=records, total_count=total, page=page, page_size=page_size
        )

    def summarize_by_category(self, filters: LedgerFilters) -> list[CategorySummary]:
        total = func.coalesce(func.sum(SyncedTransaction.amount_cents), 0)
        stmt = (
            select(
                _display_category.label("category"),
                total.label("total_cents"),
                func.count(SyncedTransaction.id).label("count"),
            )
            .where(*self._conditions(filters))
            .group_by(_display_category)
            .order_by(func.abs(total).desc(), _display_category)
        )
        return [
            CategorySummary(
                category=row.category,
                total_cents=int(row.total_cents or 0),
                count=int(row.count or 0),
            )
            for row in self.session.execute(stmt)
        ]

    def get(self, transaction_id: int) -> SyncedTransaction:
        txn = self.session.scalar(
            select(SyncedTransaction).where(
                SyncedTransaction.household_id == self.household_id,
                SyncedTransaction.id == transaction_id,
            )
        )
        if not txn:
            raise TransactionNotFound("Transaction not found")
        return txn

    def _save(self, txn: SyncedTransaction) -> SyncedTransaction:
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def set_category(
        self, transaction_id: int, category: Optional[str]
    ) -> SyncedTransaction:
        """Set or clear (``None``) the household's category override."""
        txn = self.get(transaction_id)
        clean = (category or "").strip() or None
        txn.user_category = clean
        logger.info(
            f"ledger_category_set: household={self.household_id} "
            f"transaction={transaction_id} category={clean}"
        )
        return self._save(txn)

    def set_reconciled(self, transaction_id: int, value: bool) -> SyncedTransaction:
        txn = self.get(transaction_id)
        if txn.is_reconciled == value:
            return txn
        txn.is_reconciled = value
        logger.info(
            f"ledger_reconciled_set: household={self.household_id} "
            f"transaction={transaction_id} value={value}"
        )
        return self._save(txn)

    def set_note(self, transaction_id: int, note: Optional[str]) -> SyncedTransaction:
        txn = self.get(transaction_id)
        txn.reconciliation_note = (note or "").strip() or None
        return self._save(txn)

    def update(self, transaction_id: int, data: LedgerUpdateIn) -> SyncedTransaction:
        txn = self.get(transaction_id)
        provided = data.model_fields_set
        if "user_category" in provided:
            txn = self.set_category(transaction_id, data.user_category)
        if "is_reconciled" in provided and data.is_reconciled is not None:
            txn = self.set_reconciled(transaction_id, data.is_reconciled)
        if "reconciliation_note" in provided:
            txn = self.set_note(transaction_id, data.reconciliation_note)
        return txn


class ReportService:
    def build(
        self,
        payload: MonthlyReportRequest,
        import_session: Optional[ImportSession] = None,
    ) -> MonthlyReport:
        rows = import_session.rows if import_session else []
        report = build_report(
            payload.month,
            payload.income,
            payload.fixed_expenses,
            payload.fixed_payments,
            payload.variable_expenses,
            payload.goals,
            payload.splits,
            rows,
            credit_cards=payload.credit_cards,
        )
        logger.info(
            f"report_built: month={report.month} income={report.total_income} "
            f"expenses={report.total_expenses} imported={report.imported_transaction_count}"
        )
        return report

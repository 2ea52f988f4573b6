from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class SpendingCategory(str, Enum):
    groceries = "Groceries"
    dining = "Dining"
    gas = "Gas"
    medical = "Medical"
    shopping = "Shopping"
    transportation = "Transportation"
    subscriptions = "Subscriptions"
    utilities = "Utilities"
    housing = "Housing"
    transfer = "Transfer"
    income = "Income"
    other = "Other"


class Direction(str, Enum):
    debit = "debit"
    credit = "credit"


class ReconciledState(str, Enum):
    all = "all"
    reconciled = "reconciled"
    unreconciled = "unreconciled"


class FileStatus(str, Enum):
    processing = "processing"
    done = "done"
    empty = "empty"
    error = "error"


UNCATEGORIZED = "Uncategorized"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class SyncedTransaction(Base, TimestampMixin):
    """A bank-feed transaction written by the sync collaborator.

    ``amount_cents`` is signed with outflows positive, the opposite of the
    unsigned amount + direction pair used for uploaded statements.
    """

    __tablename__ = "synced_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    merchant: Mapped[Optional[str]] = mapped_column(String(200))
    primary_category: Mapped[Optional[str]] = mapped_column(String(100))
    user_category: Mapped[Optional[str]] = mapped_column(String(100))
    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_pending: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reconciliation_note: Mapped[Optional[str]] = mapped_column(Text)

    @property
    def display_category(self) -> str:
        return self.user_category or self.primary_category or UNCATEGORIZED

    __table_args__ = (
        Index("ix_synced_household_date", "household_id", "date"),
        Index("ix_synced_household_account_date", "household_id", "account_id", "date"),
        Index("ix_synced_household_reconciled", "household_id", "is_reconciled"),
    )

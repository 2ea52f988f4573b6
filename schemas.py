import datetime as dt
import re
from decimal import Decimal
from typing import Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from models import Direction, FileStatus, SpendingCategory
from periods import month_of

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

RecordId = Union[int, str]


class TransactionRecord(BaseModel):
    """One normalized statement line. Amount is unsigned; sign lives in direction."""

    model_config = ConfigDict(frozen=True)

    date: str
    description: str = ""
    amount: Decimal = Field(..., ge=0)
    direction: Direction
    category: SpendingCategory = SpendingCategory.other
    source_label: str = ""

    @property
    def month(self) -> Optional[str]:
        if not _ISO_DATE_RE.match(self.date):
            return None
        return month_of(self.date)


class ExternalTransactionIn(BaseModel):
    date: str
    description: str = ""
    amount: Decimal
    direction: Optional[Direction] = Field(
        default=None, validation_alias=AliasChoices("direction", "type")
    )
    category: Optional[str] = None


class ExternalFileResult(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    transactions: list[ExternalTransactionIn] = Field(default_factory=list)
    error: Optional[str] = None


class IncomeIn(BaseModel):
    id: Optional[RecordId] = None
    source: Optional[str] = None
    member: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("member", "userName")
    )
    amount: Decimal
    month: Optional[str] = None
    date: Optional[str] = None

    @property
    def effective_month(self) -> Optional[str]:
        return month_of(self.month) or month_of(self.date)


class FixedExpenseIn(BaseModel):
    id: RecordId = Field(..., validation_alias=AliasChoices("id", "_id"))
    name: str
    amount: Decimal
    category: Optional[str] = None
    due_day: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("due_day", "dueDay")
    )


class FixedPaymentIn(BaseModel):
    fixed_expense_id: RecordId = Field(
        ..., validation_alias=AliasChoices("fixed_expense_id", "fixedExpenseId")
    )
    amount: Optional[Decimal] = None
    month: Optional[str] = None
    payment_date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("payment_date", "paymentDate")
    )

    @property
    def effective_month(self) -> Optional[str]:
        return month_of(self.month) or month_of(self.payment_date)


class VariableExpenseIn(BaseModel):
    id: Optional[RecordId] = None
    description: Optional[str] = None
    amount: Decimal
    category: Optional[str] = None
    month: Optional[str] = None
    date: Optional[str] = None

    @property
    def effective_month(self) -> Optional[str]:
        return month_of(self.month) or month_of(self.date)


class GoalIn(BaseModel):
    id: Optional[RecordId] = None
    name: str
    type: Optional[str] = None
    target: Decimal = Decimal("0")
    current_balance: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("current_balance", "currentBalance"),
    )
    monthly_contribution: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("monthly_contribution", "monthlyContribution"),
    )


class IncomeSplitIn(BaseModel):
    member: str = Field(..., validation_alias=AliasChoices("member", "userName"))
    split_percentage: Decimal = Field(
        ...,
        ge=0,
        le=100,
        validation_alias=AliasChoices("split_percentage", "splitPercentage"),
    )


class CreditCardIn(BaseModel):
    name: str = Field(..., validation_alias=AliasChoices("name", "cardName"))
    current_balance: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("current_balance", "currentBalance"),
    )
    credit_limit: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("credit_limit", "creditLimit"),
    )


class MonthlyReportRequest(BaseModel):
    month: str
    income: list[IncomeIn] = Field(default_factory=list)
    fixed_expenses: list[FixedExpenseIn] = Field(default_factory=list)
    fixed_payments: list[FixedPaymentIn] = Field(default_factory=list)
    variable_expenses: list[VariableExpenseIn] = Field(default_factory=list)
    goals: list[GoalIn] = Field(default_factory=list)
    splits: list[IncomeSplitIn] = Field(default_factory=list)
    credit_cards: list[CreditCardIn] = Field(default_factory=list)
    import_token: Optional[str] = None


class FixedExpenseStatus(BaseModel):
    id: RecordId
    name: str
    amount: Decimal
    category: Optional[str] = None
    paid: bool
    payment_amount: Optional[Decimal] = None


class CategoryTotal(BaseModel):
    category: str
    count: int
    total: Decimal
    variable_total: Decimal
    imported_total: Decimal


class CreditCardSummary(BaseModel):
    name: str
    current_balance: Decimal
    credit_limit: Decimal
    utilization_pct: Decimal


class GoalProgress(BaseModel):
    name: str
    type: Optional[str] = None
    target: Decimal
    current_balance: Decimal
    monthly_contribution: Decimal
    progress_pct: Decimal


class SplitAllocation(BaseModel):
    member: str
    split_percentage: Decimal
    monthly_share: Decimal
    weekly_share: Decimal


class MonthlyReport(BaseModel):
    month: str
    income: list[IncomeIn]
    total_income: Decimal
    fixed_expenses: list[FixedExpenseStatus]
    total_fixed_paid: Decimal
    total_fixed_unpaid: Decimal
    total_fixed: Decimal
    variable_by_category: list[CategoryTotal]
    total_variable_records: Decimal
    total_imported: Decimal
    total_variable: Decimal
    total_expenses: Decimal
    net_remaining: Decimal
    credit_cards: list[CreditCardSummary]
    total_card_balance: Decimal
    goals: list[GoalProgress]
    savings_contribution: Decimal
    splits: list[SplitAllocation]
    imported_transaction_count: int
    undated_transaction_count: int


class CategoryUpdateIn(BaseModel):
    category: SpendingCategory


class BulkSelectIn(BaseModel):
    mode: Literal["all", "none", "debits"]


class UploadedFileOut(BaseModel):
    file_id: str
    name: str
    extension: str
    status: FileStatus
    error: Optional[str] = None
    transaction_count: int


class ReviewRowOut(BaseModel):
    row_id: str
    included: bool
    date: str
    description: str
    amount: Decimal
    direction: Direction
    category: SpendingCategory
    source_label: str


class ImportSessionOut(BaseModel):
    session_id: str
    token: str
    files: list[UploadedFileOut]
    rows: list[ReviewRowOut]
    included_count: int
    included_debit_total: Decimal
    included_by_category: dict[str, Decimal]


class SyncedTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: str
    date: dt.date
    amount_cents: int
    name: str
    merchant: Optional[str] = None
    primary_category: Optional[str] = None
    user_category: Optional[str] = None
    display_category: str
    is_reconciled: bool
    is_pending: bool
    reconciliation_note: Optional[str] = None


class LedgerPageOut(BaseModel):
    records: list[SyncedTransactionOut]
    total_count: int
    page: int
    page_size: int
    page_count: int
    has_more: bool


class CategorySummaryOut(BaseModel):
    category: str
    total_cents: int
    count: int


class LedgerUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_category: Optional[str] = Field(default=None, max_length=100)
    is_reconciled: Optional[bool] = None
    reconciliation_note: Optional[str] = Field(default=None, max_length=1000)

"""Monthly report assembly from already-fetched budget lists and reviewed imports.

Everything here is a pure computation over its arguments. Nothing is
clamped or corrected: a negative remainder or an over-allocated split is
reported exactly as the inputs produce it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence, Union

from import_session import ReviewableTransaction
from models import Direction, SpendingCategory
from periods import resolve_month
from schemas import (
    CategoryTotal,
    CreditCardIn,
    CreditCardSummary,
    FixedExpenseIn,
    FixedExpenseStatus,
    FixedPaymentIn,
    GoalIn,
    GoalProgress,
    IncomeIn,
    IncomeSplitIn,
    MonthlyReport,
    SplitAllocation,
    TransactionRecord,
    VariableExpenseIn,
)

WEEKS_PER_MONTH = Decimal("4.33")
CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

ImportedRow = Union[ReviewableTransaction, TransactionRecord]


@dataclass
class _Bucket:
    count: int = 0
    variable_total: Decimal = ZERO
    imported_total: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.variable_total + self.imported_total


def _pct(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator <= 0:
        return ZERO
    return (numerator / denominator * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def _included_debits(rows: Iterable[ImportedRow]) -> list[TransactionRecord]:
    records: list[TransactionRecord] = []
    for row in rows:
        if isinstance(row, ReviewableTransaction):
            if not row.included:
                continue
            record = row.record
        else:
            record = row
        if record.direction == Direction.debit:
            records.append(record)
    return records


def _fixed_statuses(
    month: str,
    fixed_expenses: Sequence[FixedExpenseIn],
    fixed_payments: Sequence[FixedPaymentIn],
) -> list[FixedExpenseStatus]:
    # Ids are compared as strings: stores hand back ints and strings for the same key.
    payments: dict[str, FixedPaymentIn] = {}
    for payment in fixed_payments:
        if payment.effective_month != month:
            continue
        payments.setdefault(str(payment.fixed_expense_id), payment)

    statuses = []
    for expense in fixed_expenses:
        payment = payments.get(str(expense.id))
        statuses.append(
            FixedExpenseStatus(
                id=expense.id,
                name=expense.name,
                amount=expense.amount,
                category=expense.category,
                paid=payment is not None,
                payment_amount=payment.amount if payment else None,
            )
        )
    return statuses


def _category_totals(
    variable_expenses: Sequence[VariableExpenseIn],
    imported: Sequence[TransactionRecord],
) -> list[CategoryTotal]:
    buckets: dict[str, _Bucket] = {}
    for expense in variable_expenses:
        name = (expense.category or "").strip() or SpendingCategory.other.value
        bucket = buckets.setdefault(name, _Bucket())
        bucket.count += 1
        bucket.variable_total += expense.amount
    for record in imported:
        bucket = buckets.setdefault(record.category.value, _Bucket())
        bucket.count += 1
        bucket.imported_total += record.amount

    ordered = sorted(buckets.items(), key=lambda item: (-item[1].total, item[0]))
    return [
        CategoryTotal(
            category=name,
            count=bucket.count,
            total=bucket.total,
            variable_total=bucket.variable_total,
            imported_total=bucket.imported_total,
        )
        for name, bucket in ordered
    ]


def build_report(
    month: str,
    income: Sequence[IncomeIn],
    fixed_expenses: Sequence[FixedExpenseIn],
    fixed_payments: Sequence[FixedPaymentIn],
    variable_expenses: Sequence[VariableExpenseIn],
    goals: Sequence[GoalIn],
    splits: Sequence[IncomeSplitIn],
    included_transactions: Iterable[ImportedRow],
    credit_cards: Sequence[CreditCardIn] = (),
) -> MonthlyReport:
    """
    Build the consolidated report for ``month`` (``YYYY-MM``).

    Income and variable expenses are limited to the month; fixed expenses
    and goals are recurring and always count. Imported rows contribute only
    when included and a debit, and are merged into the same category lines
    as the variable expense records.
    """
    target = resolve_month(month).slug

    month_income = [item for item in income if item.effective_month == target]
    month_variable = [
        item for item in variable_expenses if item.effective_month == target
    ]
    imported = _included_debits(included_transactions)

    total_income = sum((item.amount for item in month_income), ZERO)

    fixed = _fixed_statuses(target, fixed_expenses, fixed_payments)
    total_fixed_paid = sum((item.amount for item in fixed if item.paid), ZERO)
    total_fixed_unpaid = sum((item.amount for item in fixed if not item.paid), ZERO)
    total_fixed = total_fixed_paid + total_fixed_unpaid

    total_variable_records = sum((item.amount for item in month_variable), ZERO)
    total_imported = sum((record.amount for record in imported), ZERO)
    total_variable = total_variable_records + total_imported

    total_expenses = total_fixed + total_variable
    net_remaining = total_income - total_expenses

    cards = [
        CreditCardSummary(
            name=card.name,
            current_balance=card.current_balance,
            credit_limit=card.credit_limit,
            utilization_pct=_pct(card.current_balance, card.credit_limit),
        )
        for card in credit_cards
    ]

    goal_rows = [
        GoalProgress(
            name=goal.name,
            type=goal.type,
            target=goal.target,
            current_balance=goal.current_balance,
            monthly_contribution=goal.monthly_contribution,
            progress_pct=min(_pct(goal.current_balance, goal.target), HUNDRED),
        )
        for goal in goals
    ]
    savings_contribution = sum((goal.monthly_contribution for goal in goals), ZERO)

    allocations = []
    for split in splits:
        monthly_share = net_remaining * split.split_percentage / HUNDRED
        allocations.append(
            SplitAllocation(
                member=split.member,
                split_percentage=split.split_percentage,
                monthly_share=monthly_share,
                weekly_share=(monthly_share / WEEKS_PER_MONTH).quantize(
                    CENT, rounding=ROUND_HALF_UP
                ),
            )
        )

    return MonthlyReport(
        month=target,
        income=month_income,
        total_income=total_income,
        fixed_expenses=fixed,
        total_fixed_paid=total_fixed_paid,
        total_fixed_unpaid=total_fixed_unpaid,
        total_fixed=total_fixed,
        variable_by_category=_category_totals(month_variable, imported),
        total_variable_records=total_variable_records,
        total_imported=total_imported,
        total_variable=total_variable,
        total_expenses=total_expenses,
        net_remaining=net_remaining,
        credit_cards=cards,
        total_card_balance=sum((card.current_balance for card in cards), ZERO),
        goals=goal_rows,
        savings_contribution=savings_contribution,
        splits=allocations,
        imported_transaction_count=len(imported),
        undated_transaction_count=sum(1 for record in imported if record.month is None),
    )


class BudgetAggregator:
    """Holds the fetched budget lists so several months can be reported from one load."""

    def __init__(
        self,
        income: Sequence[IncomeIn] = (),
        fixed_expenses: Sequence[FixedExpenseIn] = (),
        fixed_payments: Sequence[FixedPaymentIn] = (),
        variable_expenses: Sequence[VariableExpenseIn] = (),
        goals: Sequence[GoalIn] = (),
        splits: Sequence[IncomeSplitIn] = (),
        credit_cards: Sequence[CreditCardIn] = (),
    ) -> None:
        self.income = list(income)
        self.fixed_expenses = list(fixed_expenses)
        self.fixed_payments = list(fixed_payments)
        self.variable_expenses = list(variable_expenses)
        self.goals = list(goals)
        self.splits = list(splits)
        self.credit_cards = list(credit_cards)

    def build(
        self, month: str, included_transactions: Optional[Iterable[ImportedRow]] = None
    ) -> MonthlyReport:
        return build_report(
            month,
            self.income,
            self.fixed_expenses,
            self.fixed_payments,
            self.variable_expenses,
            self.goals,
            self.splits,
            included_transactions or (),
            credit_cards=self.credit_cards,
        )

from __future__ import annotations

import codecs
import csv
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from classifier import classify
from models import Direction
from schemas import MonthlyReport, TransactionRecord

if TYPE_CHECKING:  # pragma: no cover
    from import_session import ReviewableTransaction

logger = logging.getLogger(__name__)

DATE_ALIASES = ("Date", "date", "Transaction Date", "Posted Date")
DESCRIPTION_ALIASES = ("Description", "description", "Memo", "memo", "Name", "name")
AMOUNT_ALIASES = ("Amount", "amount")
DEBIT_ALIASES = ("Debit", "debit")
CREDIT_ALIASES = ("Credit", "credit")

TEXT_EXTENSIONS = frozenset({".csv", ".tsv", ".txt"})
OCR_EXTENSIONS = frozenset({".pdf", ".png", ".jpg", ".jpeg"})

_DELIMITERS = (",", ";", "\t", "|")
_CURRENCY_RE = re.compile(r"[$€£¥\s,]")
_ISO_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T]")

# Month-first before day-first: a numeric date is read day-first only when
# the month-first reading is impossible.
_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%m-%d-%y",
    "%b %d, %Y",
    "%b %d %Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d/%m/%Y",
    "%d/%m/%y",
    "%d-%m-%Y",
)


class StatementParseError(ValueError):
    pass


@dataclass(frozen=True)
class ColumnLayout:
    date: Optional[str]
    description: Optional[str]
    amount: Optional[str]
    debit: Optional[str]
    credit: Optional[str]

    @property
    def usable(self) -> bool:
        has_money = (
            self.amount is not None or self.debit is not None or self.credit is not None
        )
        return self.date is not None and has_money


def _first_present(headers: set[str], aliases: Sequence[str]) -> Optional[str]:
    for alias in aliases:
        if alias in headers:
            return alias
    return None


def resolve_columns(headers: Sequence[str]) -> ColumnLayout:
    present = {h.strip().lstrip("\ufeff") for h in headers}
    return ColumnLayout(
        date=_first_present(present, DATE_ALIASES),
        description=_first_present(present, DESCRIPTION_ALIASES),
        amount=_first_present(present, AMOUNT_ALIASES),
        debit=_first_present(present, DEBIT_ALIASES),
        credit=_first_present(present, CREDIT_ALIASES),
    )


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a statement amount, tolerating currency symbols, thousands
    separators and accounting-style parentheses. Returns None when the cell
    holds no number.
    """
    if value is None:
        return None
    clean = value.strip().strip('"').strip()
    if not clean:
        return None

    negative = False
    if clean.startswith("(") and clean.endswith(")"):
        negative = True
        clean = clean[1:-1]
    clean = _CURRENCY_RE.sub("", clean)
    if clean.endswith("-"):
        negative = True
        clean = clean[:-1]
    if clean.startswith("-"):
        negative = True
        clean = clean[1:]
    elif clean.startswith("+"):
        clean = clean[1:]
    if clean.startswith(("-", "+")):
        return None

    try:
        amount = Decimal(clean)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return -amount if negative else amount


def normalize_date(value: Optional[str]) -> str:
    """Return an ISO date when the value parses, otherwise the stripped raw text."""
    raw = (value or "").strip().strip('"').strip()
    if not raw:
        return ""
    prefix = _ISO_PREFIX_RE.match(raw)
    candidate = prefix.group(1) if prefix else raw
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date().isoformat()
        except ValueError:
            continue
    return raw


def read_statement_bytes(data: bytes) -> str:
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        try:
            return data.decode("utf-16")
        except UnicodeDecodeError as exc:
            raise StatementParseError("Could not decode UTF-16 statement") from exc
    if b"\x00" in data:
        raise StatementParseError("File looks binary, not delimited text")
    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1")


def _detect_delimiter(content: str) -> str:
    header = next((line for line in content.splitlines() if line.strip()), "")
    best = ","
    best_count = header.count(",")
    for delimiter in _DELIMITERS[1:]:
        count = header.count(delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def _cell(row: Sequence[str], index: dict[str, int], column: Optional[str]) -> Optional[str]:
    if column is None:
        return None
    position = index[column]
    return row[position] if position < len(row) else None


def _amount_and_direction(
    row: Sequence[str], index: dict[str, int], layout: ColumnLayout
) -> Optional[tuple[Decimal, Direction]]:
    if layout.amount is not None:
        value = parse_amount(_cell(row, index, layout.amount))
        if not value:
            return None
        return abs(value), Direction.debit if value < 0 else Direction.credit

    debit = parse_amount(_cell(row, index, layout.debit))
    if debit:
        return abs(debit), Direction.debit
    credit = parse_amount(_cell(row, index, layout.credit))
    if credit:
        return abs(credit), Direction.credit
    return None


def parse_statement(content: str, file_name: str) -> list[TransactionRecord]:
    """
    Parse one delimited bank export into normalized records.

    Rows lacking a date or a non-zero amount are skipped; an unrecognized
    header layout therefore yields an empty list rather than an error.
    """
    if not content.strip():
        return []

    delimiter = _detect_delimiter(content)
    records: list[TransactionRecord] = []
    dropped = 0
    try:
        reader = csv.reader(StringIO(content), delimiter=delimiter)
        header = next(
            (row for row in reader if any(cell.strip() for cell in row)), None
        )
        if header is None:
            return []
        headers = [h.strip().lstrip("\ufeff") for h in header]
        layout = resolve_columns(headers)
        if not layout.usable:
            logger.info(
                f"statement_layout_unrecognized: file={file_name} headers={headers}"
            )
            return []

        index: dict[str, int] = {}
        for position, name in enumerate(headers):
            index.setdefault(name, position)

        for row in reader:
            date_value = normalize_date(_cell(row, index, layout.date))
            money = _amount_and_direction(row, index, layout) if date_value else None
            if money is None:
                dropped += 1
                continue
            amount, direction = money
            description = " ".join((_cell(row, index, layout.description) or "").split())
            records.append(
                TransactionRecord(
                    date=date_value,
                    description=description,
                    amount=amount,
                    direction=direction,
                    category=classify(description),
                    source_label=file_name,
                )
            )
    except csv.Error as exc:
        raise StatementParseError(f"Malformed delimited text: {exc}") from exc

    logger.info(
        f"statement_parsed: file={file_name} rows={len(records)} dropped={dropped}"
    )
    return records


def sanitize_csv_value(value: str) -> str:
    """
    Prefix values that a spreadsheet would evaluate as a formula with a tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")
    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^http[s]?://",
    ]
    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def export_review_rows(rows: Iterable["ReviewableTransaction"]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(
        ["Date", "Description", "Amount", "Direction", "Category", "Source", "Included"]
    )
    for row in rows:
        record = row.record
        writer.writerow(
            [
                record.date,
                sanitize_csv_value(record.description),
                _money(record.amount),
                record.direction.value,
                record.category.value,
                sanitize_csv_value(record.source_label),
                "1" if row.included else "0",
            ]
        )
    return output.getvalue()


def export_report(report: MonthlyReport) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Section", "Item", "Amount", "Detail"])

    summary = [
        ("Total income", report.total_income),
        ("Fixed expenses (paid)", report.total_fixed_paid),
        ("Fixed expenses (unpaid)", report.total_fixed_unpaid),
        ("Fixed expenses", report.total_fixed),
        ("Variable expenses", report.total_variable),
        ("Total expenses", report.total_expenses),
        ("Net remaining", report.net_remaining),
        ("Savings contribution", report.savings_contribution),
    ]
    for label, value in summary:
        writer.writerow(["Summary", label, _money(value), report.month])

    for fixed in report.fixed_expenses:
        writer.writerow(
            [
                "Fixed",
                sanitize_csv_value(fixed.name),
                _money(fixed.amount),
                "paid" if fixed.paid else "unpaid",
            ]
        )
    for row in report.variable_by_category:
        writer.writerow(
            ["Variable", row.category, _money(row.total), f"{row.count} items"]
        )
    for card in report.credit_cards:
        writer.writerow(
            [
                "Credit card",
                sanitize_csv_value(card.name),
                _money(card.current_balance),
                f"{card.utilization_pct}% of {_money(card.credit_limit)}",
            ]
        )
    for goal in report.goals:
        writer.writerow(
            [
                "Goal",
                sanitize_csv_value(goal.name),
                _money(goal.monthly_contribution),
                f"{goal.progress_pct}% of {_money(goal.target)}",
            ]
        )
    for split in report.splits:
        writer.writerow(
            [
                "Split",
                sanitize_csv_value(split.member),
                _money(split.monthly_share),
                f"{_money(split.weekly_share)} weekly",
            ]
        )
    return output.getvalue()

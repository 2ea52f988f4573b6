from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from import_session import (
    ImportSession,
    ImportSessionClosed,
    ImportSessionNotFound,
    ImportSessionRegistry,
    RowNotFound,
)
from models import Direction, FileStatus, SpendingCategory
from schemas import ExternalFileResult, ExternalTransactionIn

CHECKING = (
    b"Date,Description,Amount\n"
    b"2024-01-05,WHOLE FOODS #123,-54.20\n"
    b"2024-01-06,PAYROLL ACME,2500.00\n"
    b"2024-01-07,UBER EATS,-18.40\n"
)

CARD = (
    b"Posted Date,Memo,Debit,Credit\n"
    b"01/09/2024,NETFLIX.COM,15.99,\n"
    b"01/10/2024,AMAZON REFUND,,25.00\n"
)


def _session_with_files() -> ImportSession:
    session = ImportSession(household_id=1)
    session.add_statement("checking.csv", CHECKING)
    session.add_statement("card.csv", CARD)
    return session


def test_debits_are_included_by_default_and_credits_are_not() -> None:
    session = _session_with_files()

    included = {row.record.description: row.included for row in session.rows}

    assert included == {
        "WHOLE FOODS #123": True,
        "PAYROLL ACME": False,
        "UBER EATS": True,
        "NETFLIX.COM": True,
        "AMAZON REFUND": False,
    }
    assert session.included_debit_total() == Decimal("88.59")


def test_file_statuses() -> None:
    session = ImportSession(household_id=1)

    done = session.add_statement("checking.csv", CHECKING)
    empty = session.add_statement("empty.csv", b"Date,Description,Amount\n")
    unknown = session.add_statement("weird.csv", b"Foo,Bar\n1,2\n")
    binary = session.add_statement("broken.csv", b"\x00\x01\x02\x03")
    scanned = session.add_statement("scan.pdf", b"%PDF-1.7")
    unsupported = session.add_statement("notes.docx", b"PK\x03\x04")

    assert done.status == FileStatus.done
    assert done.transaction_count == 3
    assert empty.status == FileStatus.empty
    assert empty.error is None
    assert unknown.status == FileStatus.empty
    assert binary.status == FileStatus.error
    assert scanned.status == FileStatus.error
    assert "OCR" in scanned.error
    assert unsupported.status == FileStatus.error
    # failed files leave the parsed rows usable
    assert len(session.rows) == 3
    assert len(session.files) == 6


def test_toggle_include_flips_state() -> None:
    session = _session_with_files()
    payroll = next(r for r in session.rows if r.record.description == "PAYROLL ACME")

    session.toggle_include(payroll.row_id)
    assert payroll.included is True
    session.toggle_include(payroll.row_id)
    assert payroll.included is False


def test_set_category_keeps_inclusion() -> None:
    session = _session_with_files()
    row = next(r for r in session.rows if r.record.description == "UBER EATS")

    session.set_category(row.row_id, SpendingCategory.transportation)

    assert row.record.category == SpendingCategory.transportation
    assert row.included is True
    assert session.included_by_category()[SpendingCategory.transportation] == Decimal(
        "18.40"
    )


def test_unknown_row_is_rejected() -> None:
    session = _session_with_files()

    with pytest.raises(RowNotFound):
        session.toggle_include("missing-0")
    with pytest.raises(RowNotFound):
        session.set_category("missing-0", SpendingCategory.other)


def test_bulk_select_modes() -> None:
    session = _session_with_files()

    assert session.bulk_select("all") == 5
    assert all(row.included for row in session.rows)

    assert session.bulk_select("none") == 0
    assert session.included_debit_total() == Decimal("0")

    assert session.bulk_select("debits") == 3

    big = session.bulk_select(lambda row: row.record.amount > Decimal("100"))
    assert big == 1

    with pytest.raises(ValueError):
        session.bulk_select("credits-only")


def test_remove_source_drops_rows_and_file() -> None:
    session = _session_with_files()

    removed = session.remove_source("checking.csv")

    assert removed == 3
    assert {row.record.source_label for row in session.rows} == {"card.csv"}
    assert [entry.name for entry in session.files] == ["card.csv"]
    assert session.included_debit_total() == Decimal("15.99")


def test_remove_file_by_id() -> None:
    session = ImportSession(household_id=1)
    first = session.add_statement("checking.csv", CHECKING)
    session.add_statement("card.csv", CARD)

    assert session.remove_file(first.file_id) == 3
    assert len(session.rows) == 2
    with pytest.raises(ValueError):
        session.remove_file(first.file_id)


def test_category_totals_sum_to_included_debit_total() -> None:
    session = _session_with_files()
    session.toggle_include(session.rows[1].row_id)  # payroll credit, included but not a debit

    by_category = session.included_by_category()

    assert sum(by_category.values(), Decimal("0")) == session.included_debit_total()
    assert by_category == {
        SpendingCategory.groceries: Decimal("54.20"),
        SpendingCategory.dining: Decimal("18.40"),
        SpendingCategory.subscriptions: Decimal("15.99"),
    }


def test_add_files_parses_concurrently_with_unique_row_ids() -> None:
    session = ImportSession(household_id=1)
    files = [(f"statement_{idx}.csv", CHECKING) for idx in range(6)]

    results = session.add_files(files, max_workers=4)

    assert [entry.name for entry in results] == [name for name, _ in files]
    assert all(entry.status == FileStatus.done for entry in results)
    rows = session.rows
    assert len(rows) == 18
    assert len({row.row_id for row in rows}) == 18
    for entry in results:
        descriptions = [
            row.record.description
            for row in rows
            if row.row_id.startswith(f"{entry.file_id}-")
        ]
        assert descriptions == ["WHOLE FOODS #123", "PAYROLL ACME", "UBER EATS"]


def test_external_results_are_normalized() -> None:
    session = ImportSession(household_id=1)

    entry = session.add_external_result(
        ExternalFileResult(
            filename="scan.pdf",
            transactions=[
                ExternalTransactionIn(
                    date="01/05/2024", description="Whole  Foods", amount=Decimal("-20.00")
                ),
                ExternalTransactionIn(
                    date="2024-01-06",
                    description="Corner bistro",
                    amount=Decimal("12.00"),
                    direction=Direction.debit,
                    category="Dinning",
                ),
                ExternalTransactionIn(date="2024-01-07", description="Zero", amount=0),
            ],
        )
    )

    assert entry.status == FileStatus.done
    assert entry.transaction_count == 2
    first, second = session.rows
    assert first.record.date == "2024-01-05"
    assert first.record.description == "Whole Foods"
    assert first.record.amount == Decimal("20.00")
    assert first.record.direction == Direction.debit
    assert first.record.category == SpendingCategory.groceries
    assert first.record.source_label == "scan.pdf"
    assert second.record.category == SpendingCategory.dining
    assert second.included is True


def test_external_error_is_reported_per_file() -> None:
    session = ImportSession(household_id=1)

    entry = session.add_external_result(
        ExternalFileResult(filename="blurry.png", error="OCR could not read the image")
    )

    assert entry.status == FileStatus.error
    assert entry.error == "OCR could not read the image"
    assert session.rows == []


def test_discard_ends_the_session() -> None:
    session = _session_with_files()
    row_id = session.rows[0].row_id

    session.discard()

    assert session.closed
    assert session.rows == []
    with pytest.raises(ImportSessionClosed):
        session.toggle_include(row_id)
    with pytest.raises(ImportSessionClosed):
        session.add_statement("checking.csv", CHECKING)


def test_registry_scopes_sessions_by_household() -> None:
    registry = ImportSessionRegistry()
    session = registry.create(household_id=7)

    assert registry.get(session.session_id, 7) is session
    with pytest.raises(ImportSessionNotFound):
        registry.get(session.session_id, 8)
    with pytest.raises(ImportSessionNotFound):
        registry.get("nope", 7)

    registry.discard(session.session_id, 7)
    assert session.closed
    assert len(registry) == 0


def test_registry_purges_idle_sessions() -> None:
    registry = ImportSessionRegistry()
    stale = registry.create(household_id=1)
    fresh = registry.create(household_id=1)
    stale.touched_at = datetime.utcnow() - timedelta(hours=3)

    purged = registry.purge_idle(timedelta(hours=2))

    assert purged == 1
    assert stale.closed
    assert registry.get(fresh.session_id, 1) is fresh


def test_statement_with_leading_blank_line_is_done() -> None:
    session = ImportSession(household_id=1)

    entry = session.add_statement(
        "lead.csv", b"\r\nDate,Description,Amount\r\n2024-01-05,X,-5.00\r\n"
    )

    assert entry.status == FileStatus.done
    assert entry.transaction_count == 1
    assert session.included_debit_total() == Decimal("5.00")

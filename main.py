import logging
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from config import get_settings
from csv_utils import export_report, export_review_rows
from database import get_db
from import_session import (
    ImportSession,
    ImportSessionClosed,
    ImportSessionNotFound,
    ImportSessionRegistry,
    RowNotFound,
    UploadedFile,
)
from models import ReconciledState
from scheduler import SchedulerManager
from schemas import (
    BulkSelectIn,
    CategorySummaryOut,
    CategoryUpdateIn,
    ExternalFileResult,
    ImportSessionOut,
    LedgerPageOut,
    LedgerUpdateIn,
    MonthlyReport,
    MonthlyReportRequest,
    ReviewRowOut,
    SyncedTransactionOut,
    UploadedFileOut,
)
from services import (
    LedgerFilters,
    ReconciliationLedger,
    ReportService,
    TransactionNotFound,
)
from session_tokens import InvalidSessionToken, issue_session_token, read_session_token

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Household Reconciliation")

registry = ImportSessionRegistry()
scheduler_manager = SchedulerManager(registry)


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def household_context(
    x_household_id: Optional[int] = Header(default=None),
) -> int:
    if x_household_id is None:
        raise HTTPException(status_code=401, detail="Missing household context")
    return x_household_id


def _import_session(token: str, household_id: int) -> ImportSession:
    try:
        session_id = read_session_token(token, household_id)
        return registry.get(session_id, household_id)
    except (InvalidSessionToken, ImportSessionNotFound) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _file_out(entry: UploadedFile) -> UploadedFileOut:
    return UploadedFileOut(
        file_id=entry.file_id,
        name=entry.name,
        extension=entry.extension,
        status=entry.status,
        error=entry.error,
        transaction_count=entry.transaction_count,
    )


def _session_out(session: ImportSession, token: str) -> ImportSessionOut:
    rows = session.rows
    return ImportSessionOut(
        session_id=session.session_id,
        token=token,
        files=[_file_out(entry) for entry in session.files],
        rows=[
            ReviewRowOut(
                row_id=row.row_id,
                included=row.included,
                date=row.record.date,
                description=row.record.description,
                amount=row.record.amount,
                direction=row.record.direction,
                category=row.record.category,
                source_label=row.record.source_label,
            )
            for row in rows
        ],
        included_count=sum(1 for row in rows if row.included),
        included_debit_total=session.included_debit_total(),
        included_by_category={
            category.value: total
            for category, total in session.included_by_category().items()
        },
    )


def _csv_response(csv_text: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/import-sessions", status_code=201)
def create_import_session(household_id: int = Depends(household_context)):
    session = registry.create(household_id)
    token = issue_session_token(session.session_id, household_id)
    logger.info(
        f"import_session_created: household={household_id} session={session.session_id}"
    )
    return {"token": token, "session_id": session.session_id}


@app.get("/api/import-sessions/{token}", response_model=ImportSessionOut)
def get_import_session(token: str, household_id: int = Depends(household_context)):
    session = _import_session(token, household_id)
    return _session_out(session, token)


@app.post("/api/import-sessions/{token}/files")
async def upload_statements(
    token: str,
    files: List[UploadFile] = File(...),
    household_id: int = Depends(household_context),
):
    session = _import_session(token, household_id)
    if len(files) > settings.max_files_per_upload:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.max_files_per_upload} files per upload",
        )
    payloads: list[tuple[str, bytes]] = []
    for upload in files:
        data = await upload.read()
        if len(data) > settings.max_upload_bytes:
            raise HTTPException(
                status_code=413, detail=f"{upload.filename} exceeds the upload limit"
            )
        payloads.append((upload.filename or "statement.csv", data))
    try:
        results = await run_in_threadpool(
            session.add_files, payloads, settings.parse_workers
        )
    except ImportSessionClosed as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    return {"files": [_file_out(entry) for entry in results]}


@app.post("/api/import-sessions/{token}/external")
def add_external_results(
    token: str,
    results: List[ExternalFileResult],
    household_id: int = Depends(household_context),
):
    session = _import_session(token, household_id)
    try:
        entries = [session.add_external_result(result) for result in results]
    except ImportSessionClosed as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    return {"files": [_file_out(entry) for entry in entries]}


@app.post(
    "/api/import-sessions/{token}/rows/{row_id}/toggle",
    response_model=ImportSessionOut,
)
def toggle_row(
    token: str, row_id: str, household_id: int = Depends(household_context)
):
    session = _import_session(token, household_id)
    try:
        session.toggle_include(row_id)
    except ImportSessionClosed as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    except RowNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _session_out(session, token)


@app.patch(
    "/api/import-sessions/{token}/rows/{row_id}", response_model=ImportSessionOut
)
def update_row_category(
    token: str,
    row_id: str,
    data: CategoryUpdateIn,
    household_id: int = Depends(household_context),
):
    session = _import_session(token, household_id)
    try:
        session.set_category(row_id, data.category)
    except ImportSessionClosed as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    except RowNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _session_out(session, token)


@app.post("/api/import-sessions/{token}/select", response_model=ImportSessionOut)
def bulk_select_rows(
    token: str, data: BulkSelectIn, household_id: int = Depends(household_context)
):
    session = _import_session(token, household_id)
    try:
        session.bulk_select(data.mode)
    except ImportSessionClosed as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    return _session_out(session, token)


@app.delete(
    "/api/import-sessions/{token}/sources/{label}", response_model=ImportSessionOut
)
def remove_source(
    token: str, label: str, household_id: int = Depends(household_context)
):
    session = _import_session(token, household_id)
    try:
        session.remove_source(label)
    except ImportSessionClosed as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    return _session_out(session, token)


@app.delete("/api/import-sessions/{token}", status_code=204)
def discard_import_session(token: str, household_id: int = Depends(household_context)):
    session = _import_session(token, household_id)
    registry.discard(session.session_id, household_id)


@app.get("/api/import-sessions/{token}/export.csv")
def export_import_session(token: str, household_id: int = Depends(household_context)):
    session = _import_session(token, household_id)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return _csv_response(
        export_review_rows(session.rows), f"statement_review_{timestamp}.csv"
    )


def _build_report(payload: MonthlyReportRequest, household_id: int) -> MonthlyReport:
    import_session = (
        _import_session(payload.import_token, household_id)
        if payload.import_token
        else None
    )
    try:
        return ReportService().build(payload, import_session)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/reports/monthly", response_model=MonthlyReport)
def monthly_report(
    payload: MonthlyReportRequest, household_id: int = Depends(household_context)
):
    return _build_report(payload, household_id)


@app.post("/api/reports/monthly.csv")
def monthly_report_csv(
    payload: MonthlyReportRequest, household_id: int = Depends(household_context)
):
    report = _build_report(payload, household_id)
    return _csv_response(export_report(report), f"report_{report.month}.csv")


def _ledger_filters(
    month: Optional[str] = None,
    account_id: Optional[str] = None,
    reconciled: ReconciledState = ReconciledState.all,
) -> LedgerFilters:
    return LedgerFilters(month=month, account_id=account_id, reconciled_state=reconciled)


@app.get("/api/ledger/transactions", response_model=LedgerPageOut)
def ledger_transactions(
    filters: LedgerFilters = Depends(_ledger_filters),
    page: int = Query(0, ge=0),
    page_size: int = Query(50, ge=1, le=200),
    household_id: int = Depends(household_context),
    db: Session = Depends(get_db),
):
    try:
        result = ReconciliationLedger(db, household_id).query(filters, page, page_size)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return LedgerPageOut(
        records=[SyncedTransactionOut.model_validate(txn) for txn in result.records],
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
        page_count=result.page_count,
        has_more=result.has_more,
    )


@app.get("/api/ledger/summary", response_model=List[CategorySummaryOut])
def ledger_summary(
    filters: LedgerFilters = Depends(_ledger_filters),
    household_id: int = Depends(household_context),
    db: Session = Depends(get_db),
):
    try:
        rows = ReconciliationLedger(db, household_id).summarize_by_category(filters)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [
        CategorySummaryOut(
            category=row.category, total_cents=row.total_cents, count=row.count
        )
        for row in rows
    ]


@app.get("/api/ledger/transactions/{transaction_id}", response_model=SyncedTransactionOut)
def ledger_transaction(
    transaction_id: int,
    household_id: int = Depends(household_context),
    db: Session = Depends(get_db),
):
    try:
        txn = ReconciliationLedger(db, household_id).get(transaction_id)
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SyncedTransactionOut.model_validate(txn)


@app.patch(
    "/api/ledger/transactions/{transaction_id}", response_model=SyncedTransactionOut
)
def update_ledger_transaction(
    transaction_id: int,
    data: LedgerUpdateIn,
    household_id: int = Depends(household_context),
    db: Session = Depends(get_db),
):
    try:
        txn = ReconciliationLedger(db, household_id).update(transaction_id, data)
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SyncedTransactionOut.model_validate(txn)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()

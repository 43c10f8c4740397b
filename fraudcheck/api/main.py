"""
HTTP surface: the integrator API (fraud check, fraud submission, name
search) and the admin review endpoints for pending CSV uploads.
"""

from fastapi import FastAPI, Depends, Header
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional

from .schemas import (
    FraudCheckRequest,
    NameSearchRequest,
    SubmitFraudRequest,
    UploadCreateRequest,
    UploadDecisionRequest,
    UploadStatus,
    UploadDetail,
    UploadListResponse,
    UploadDecisionResponse,
    ImportSummaryResponse,
    BankInfo,
    BankListResponse,
    HealthResponse,
    ErrorBody,
    ErrorEnvelope,
)
from ..core.banks import search_banks
from ..core.config import VERSION, debug_enabled, get_api_keys, get_rng
from ..core.db import health_check
from ..core.evaluator import check_account, evaluate_record, search_by_name, to_wire
from ..core.normalizer import MappingError, UploadValidationError
from ..core.resolver import clear_imported_data, import_bank_account_data
from ..core.schema import UPLOAD_APPROVED, AccountKey
from ..core.store import IAccountStore, PartialWriteError, SQLiteAccountStore, StoreError
from ..core.submissions import AccountInput, Reporter, SubmissionError, submit_fraud_report
from ..core.uploads import PendingUploadQueue, SQLiteUploadPersistence, UploadNotFoundError, UploadStateError
from ..util.logging import logger


class APIError(Exception):
    """Error rendered with the integrator error envelope."""

    def __init__(self, status_code: int, code: str, message: str, details=None):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


# Initialize the FastAPI application
app = FastAPI(
    title="Fraud Check API",
    version=VERSION,
    description="Shared bank account fraud database with admin-reviewed CSV imports",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_store = None
_queue = None


def get_store() -> IAccountStore:
    """Lazy initialization of the account store."""
    global _store
    if _store is None:
        _store = SQLiteAccountStore()
    return _store


def get_queue(store: IAccountStore = Depends(get_store)) -> PendingUploadQueue:
    """Lazy initialization of the pending upload queue."""
    global _queue
    if _queue is None or _queue.store is not store:
        _queue = PendingUploadQueue(SQLiteUploadPersistence(), store)
    return _queue


def require_api_key(authorization: Optional[str] = Header(None)):
    """Bearer token check; open access when no API keys are configured."""
    keys = get_api_keys()
    if not keys:
        return None

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or token.strip() not in keys:
        raise APIError(401, "UNAUTHORIZED", "Invalid or missing API key",
                       "Send an Authorization: Bearer <api key> header")
    return token.strip()


def _success(data, status_code: int = 200, message: Optional[str] = None) -> JSONResponse:
    content = {"status": "success", "data": data}
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content)


def _upload_status(upload) -> UploadStatus:
    return UploadStatus(
        id=upload.id,
        upload_date=upload.upload_date,
        company_name=upload.company_name,
        file_name=upload.file_name,
        record_count=upload.record_count,
        status=upload.status
    )


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(store: IAccountStore = Depends(get_store)):
    """Check system health."""
    db_health = health_check(store.db_path) if isinstance(store, SQLiteAccountStore) else True
    account_count = store.count() if db_health else 0

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        account_count=account_count
    )


# Integrator API
@app.post("/fraud-check", dependencies=[Depends(require_api_key)])
def fraud_check_endpoint(request: FraudCheckRequest, store: IAccountStore = Depends(get_store)):
    """Check an account's fraud status. Every check is counted."""
    result = check_account(store, request.routing_number, request.account_number_last4)
    return _success(to_wire(result))


@app.post("/submit-fraud", dependencies=[Depends(require_api_key)])
def submit_fraud_endpoint(request: SubmitFraudRequest, store: IAccountStore = Depends(get_store)):
    """Report a fraudulent account and any accounts associated with it."""
    receipt = submit_fraud_report(
        store,
        reporter=Reporter(email=request.reporter_email, company_name=request.company_name),
        account=AccountInput(
            account_number_last4=request.account_number_last4,
            account_holder_name=request.account_holder_name,
            routing_number=request.routing_number,
            bank_name=request.bank_name
        ),
        tags=request.tags,
        notes=request.notes,
        default_balance=request.default_balance,
        associated_accounts=[
            AccountInput(
                account_number_last4=a.account_number_last4,
                account_holder_name=a.account_holder_name,
                routing_number=a.routing_number,
                bank_name=a.bank_name
            )
            for a in request.associated_accounts
        ]
    )
    return _success(receipt.to_wire(), status_code=201,
                    message="Fraud report submitted successfully and added to database")


@app.post("/search/name", dependencies=[Depends(require_api_key)])
def name_search_endpoint(request: NameSearchRequest, store: IAccountStore = Depends(get_store)):
    """Search reports by account holder name. Does not count as a check."""
    result = search_by_name(store, request.account_holder_name)
    return _success(to_wire(result))


@app.get("/banks", response_model=BankListResponse, dependencies=[Depends(require_api_key)])
def list_banks_endpoint(query: str = "", limit: int = 10):
    """Search known banks by name or alias."""
    banks = search_banks(query, limit)
    return BankListResponse(banks=[
        BankInfo(name=b.name, routing_numbers=b.routing_numbers, aliases=b.aliases) for b in banks
    ])


# Admin review endpoints
@app.get("/accounts/{account_key}", dependencies=[Depends(require_api_key)])
def get_account_endpoint(account_key: str, store: IAccountStore = Depends(get_store)):
    """Fetch a stored account record with its current status (not counted as a check)."""
    try:
        key = AccountKey.parse(account_key)
    except ValueError as e:
        raise APIError(400, "VALIDATION_ERROR", "Invalid account key", str(e))

    record = store.get(key)
    if record is None:
        raise APIError(404, "NOT_FOUND", f"Account {account_key} not found")

    data = record.to_dict()
    data["fraudStatus"] = evaluate_record(store, record).fraud_status
    return _success(data)


@app.get("/uploads", response_model=UploadListResponse, dependencies=[Depends(require_api_key)])
def list_uploads_endpoint(status: Optional[str] = None, queue: PendingUploadQueue = Depends(get_queue)):
    """List uploads, optionally filtered by status."""
    try:
        uploads = queue.list(status)
    except ValueError as e:
        raise APIError(400, "VALIDATION_ERROR", str(e))
    return UploadListResponse(uploads=[_upload_status(u) for u in uploads])


@app.post("/uploads", response_model=UploadStatus, status_code=201, dependencies=[Depends(require_api_key)])
def create_upload_endpoint(request: UploadCreateRequest, queue: PendingUploadQueue = Depends(get_queue)):
    """Normalize a CSV upload and queue it for admin review."""
    upload = queue.submit_csv(request.company_name, request.csv_text, request.file_name, request.mapping)
    return _upload_status(upload)


@app.get("/uploads/{upload_id}", response_model=UploadDetail, dependencies=[Depends(require_api_key)])
def get_upload_endpoint(upload_id: str, queue: PendingUploadQueue = Depends(get_queue)):
    upload = queue.get(upload_id)
    return UploadDetail(**_upload_status(upload).model_dump(), data=upload.data)


@app.post("/uploads/{upload_id}/approve", response_model=UploadDecisionResponse,
          dependencies=[Depends(require_api_key)])
def approve_upload_endpoint(upload_id: str, decision: Optional[UploadDecisionRequest] = None,
                            queue: PendingUploadQueue = Depends(get_queue)):
    """Approve a pending upload and import its rows."""
    decision = decision or UploadDecisionRequest()
    summary = queue.approve(upload_id, reviewer=decision.reviewer, rng=get_rng())
    return UploadDecisionResponse(
        success=True,
        upload_id=upload_id,
        status=UPLOAD_APPROVED,
        message=f"Successfully processed {summary.processed} accounts "
                f"({summary.default_count} default, {summary.associated_count} associated)",
        summary=ImportSummaryResponse(**summary.to_dict())
    )


@app.post("/uploads/{upload_id}/reject", response_model=UploadDecisionResponse,
          dependencies=[Depends(require_api_key)])
def reject_upload_endpoint(upload_id: str, decision: Optional[UploadDecisionRequest] = None,
                           queue: PendingUploadQueue = Depends(get_queue)):
    """Reject a pending upload; its rows are kept for audit."""
    decision = decision or UploadDecisionRequest()
    upload = queue.reject(upload_id, reviewer=decision.reviewer, reason=decision.reason)
    return UploadDecisionResponse(
        success=True,
        upload_id=upload_id,
        status=upload.status,
        message="Upload rejected"
    )


# Debug-only maintenance endpoints
@app.post("/admin/import-seed", dependencies=[Depends(require_api_key)])
def import_seed_endpoint(company_name: Optional[str] = None, store: IAccountStore = Depends(get_store)):
    """Load the bundled sample accounts (debug mode only)."""
    if not debug_enabled():
        raise APIError(403, "FORBIDDEN", "Admin endpoints require debug mode")

    summary = import_bank_account_data(store, company_name=company_name, rng=get_rng())
    return _success(summary.to_dict())


@app.delete("/admin/imported", dependencies=[Depends(require_api_key)])
def clear_imported_endpoint(store: IAccountStore = Depends(get_store)):
    """Remove accounts created by imports (debug mode only)."""
    if not debug_enabled():
        raise APIError(403, "FORBIDDEN", "Admin endpoints require debug mode")

    removed = clear_imported_data(store)
    return _success({"removed": removed})


@app.get("/admin/export", dependencies=[Depends(require_api_key)])
def export_endpoint(store: IAccountStore = Depends(get_store)):
    """Account store snapshot in the {timestamp, version, data} envelope (debug mode only)."""
    if not debug_enabled():
        raise APIError(403, "FORBIDDEN", "Admin endpoints require debug mode")

    return store.export_envelope()


# Exception handlers render the error envelope

def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    envelope = ErrorEnvelope(error=ErrorBody(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


@app.exception_handler(APIError)
async def api_error_handler(request, exc: APIError):
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    errors = [f"{'.'.join(str(p) for p in e.get('loc', []))}: {e.get('msg')}" for e in exc.errors()]
    logger.log_validation_error(request.url.path, errors)
    return _error_response(422, "VALIDATION_ERROR", "Request validation failed", errors)


@app.exception_handler(SubmissionError)
async def submission_error_handler(request, exc: SubmissionError):
    logger.log_validation_error("submission", [exc.message])
    return _error_response(400, "VALIDATION_ERROR", exc.message, exc.details)


@app.exception_handler(MappingError)
async def mapping_error_handler(request, exc: MappingError):
    return _error_response(400, "VALIDATION_ERROR", str(exc), {"missing": exc.missing})


@app.exception_handler(UploadValidationError)
async def upload_validation_handler(request, exc: UploadValidationError):
    return _error_response(400, "VALIDATION_ERROR", str(exc))


@app.exception_handler(UploadNotFoundError)
async def upload_not_found_handler(request, exc: UploadNotFoundError):
    return _error_response(404, "NOT_FOUND", str(exc))


@app.exception_handler(UploadStateError)
async def upload_state_handler(request, exc: UploadStateError):
    return _error_response(409, "INVALID_STATE", str(exc), {"status": exc.status})


@app.exception_handler(PartialWriteError)
async def partial_write_handler(request, exc: PartialWriteError):
    logger.error(f"Partial write on {request.url.path}: {exc}")
    return _error_response(500, "PARTIAL_WRITE", str(exc), {"written": exc.written, "total": exc.total})


@app.exception_handler(StoreError)
async def store_error_handler(request, exc: StoreError):
    logger.error(f"Store failure on {request.url.path}: {exc}")
    return _error_response(500, "STORE_ERROR", "Account store unavailable", str(exc) if debug_enabled() else None)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    return _error_response(500, "INTERNAL_ERROR", "Internal server error", str(exc) if debug_enabled() else None)

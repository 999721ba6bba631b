from fastapi import FastAPI, HTTPException, Request, Depends, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from typing import List
import io
import structlog
import time
from contextlib import asynccontextmanager

from config import get_settings
from errors import LedgerError
from logging_config import configure_logging
from models import (
    AccountSnapshot,
    CSVProcessingResponse,
    ErrorResponse,
    HealthResponse,
    TransactionRecord,
)
from processor import CSVProcessor
from services import LedgerEngine, get_ledger_engine

settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address)

# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Ledger API")
    yield
    logger.info("Shutting down Ledger API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Applies deposits, withdrawals and the dispute lifecycle to client accounts",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=settings.allowed_methods,
    allow_headers=settings.allowed_headers,
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response

# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get ledger statistics"
)
async def health_check(engine: LedgerEngine = Depends(get_ledger_engine)):
    return HealthResponse(
        status="healthy",
        accounts_count=engine.account_repo.count(),
        transactions_count=engine.transaction_repo.count()
    )

# Apply a single record
@app.post(
    "/transactions",
    response_model=AccountSnapshot,
    status_code=status.HTTP_201_CREATED,
    summary="Apply Transaction",
    description="Apply one deposit, withdrawal, dispute, resolve or chargeback record",
    responses={
        201: {"description": "Record applied; returns the client's account"},
        400: {"description": "Record is missing its amount"},
        404: {"description": "Client or transaction not found"},
        409: {"description": "Record conflicts with ledger state"},
        422: {"description": "Validation error"},
        429: {"description": "Rate limit exceeded"}
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def apply_transaction(
    request: Request,
    record: TransactionRecord,
    engine: LedgerEngine = Depends(get_ledger_engine)
):
    logger.info(
        "Transaction request received",
        type=record.transaction_type.value,
        client_id=record.client_id,
        transaction_id=record.transaction_id
    )

    engine.apply(record)

    return AccountSnapshot.from_account(record.client_id, engine.get_account(record.client_id))

# Apply a CSV stream
@app.post(
    "/transactions/csv",
    response_model=CSVProcessingResponse,
    summary="Apply CSV",
    description="Apply every row of a CSV body in order; rejected rows are reported, not fatal"
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def apply_csv(
    request: Request,
    engine: LedgerEngine = Depends(get_ledger_engine)
):
    body = await request.body()
    if len(body) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="CSV body too large"
        )
    try:
        text = body.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV body must be UTF-8")

    summary, errors = CSVProcessor(engine).collect(io.StringIO(text, newline=""))

    return CSVProcessingResponse(
        rows=summary.rows,
        applied=summary.applied,
        rejected=summary.rejected,
        errors=errors
    )

@app.get(
    "/accounts",
    response_model=List[AccountSnapshot],
    summary="List Accounts",
    description="Snapshot of every known client account, ordered by client id"
)
async def list_accounts(engine: LedgerEngine = Depends(get_ledger_engine)):
    return CSVProcessor(engine).snapshots()

@app.get(
    "/accounts/{client_id}",
    response_model=AccountSnapshot,
    summary="Get Account",
    responses={404: {"description": "Account not found"}}
)
async def get_account(client_id: int, engine: LedgerEngine = Depends(get_ledger_engine)):
    account = engine.get_account(client_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return AccountSnapshot.from_account(client_id, account)

# Ledger rejections
@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    logger.warning(
        "Ledger rejected request",
        error_code=exc.error_code,
        detail=exc.message,
        url=str(request.url)
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            detail=exc.message,
            error_code=exc.error_code,
            details=exc.details
        ).model_dump(mode="json")
    )

# Global exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            detail=exc.detail,
            error_code=f"HTTP_{exc.status_code}"
        ).model_dump(mode="json")
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail="Internal server error",
            error_code="INTERNAL_ERROR"
        ).model_dump(mode="json")
    )

# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    return {"message": settings.app_name, "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )

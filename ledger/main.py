import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request
from starlette.responses import JSONResponse

from ledger.core.config import settings
from ledger.core.exceptions import DatabaseError, LedgerError
from ledger.routers import health, recurring

logging.basicConfig(
    level=getattr(logging, settings.api_log_level.upper()),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger("ledger")


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("%s %s database error: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=DatabaseError.status_code,
        content={"detail": "Database unavailable", "kind": DatabaseError.kind},
    )


app = FastAPI(
    title="Workspace Ledger API",
    version="0.1.0",
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None,
)
app.add_exception_handler(LedgerError, ledger_error_handler)
app.add_exception_handler(SQLAlchemyError, database_error_handler)

# ─── CORS ──────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
)

# ─── Routers ──────────────────────────────────
app.include_router(health.router)
app.include_router(recurring.router, prefix="/api/v1")

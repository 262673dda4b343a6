# app/main.py - Fee ledger API application
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging
import traceback
import time

from app.core.config import settings
from app.core.db import db_manager, get_engine, health_check as db_health_check
from app.core.errors import FeeLedgerError
from app.core.logging import configure_logging
from app.models import Base
from app.api.routers import fees, students, payments, ledger, discounts
from app.api.routers import installments, notifications, expenses, reports

configure_logging()
logger = logging.getLogger(__name__)

HTTP_ERROR_KINDS = {
    401: "Unauthorized",
    403: "PermissionDenied",
    404: "NotFound",
    405: "MethodNotAllowed",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting {settings.API_TITLE} ({settings.ENV})")
    logger.info(f"Database URL: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'local'}")

    engine = get_engine()

    # Production schemas are managed by alembic
    if settings.DATABASE_CREATE_TABLES and not settings.is_production:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)

    yield

    db_manager.close()
    logger.info(f"Shutting down {settings.API_TITLE}...")


app = FastAPI(
    title=settings.API_TITLE,
    description="School fee ledger and payment collection",
    version=settings.API_VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log each request with its status and duration"""
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Error processing {request.method} {request.url.path}: {e}")
        logger.error(traceback.format_exc())
        raise
    process_time = time.time() - start_time
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")
    return response


app.add_middleware(CORSMiddleware, **settings.get_cors_config())


@app.exception_handler(FeeLedgerError)
async def fee_ledger_error_handler(request: Request, exc: FeeLedgerError):
    """Domain errors keep their kind and context"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    fields = [".".join(str(part) for part in e["loc"] if part != "body") for e in errors]
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "detail": "; ".join(f"{f}: {e['msg']}" if f else e["msg"] for f, e in zip(fields, errors)),
            "context": {"fields": [f for f in fields if f]},
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError"),
            "detail": exc.detail,
            "context": {},
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    logger.error(traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalError",
            "detail": str(exc) if settings.is_development else "Internal server error",
            "context": {},
        },
    )


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENV,
        "version": settings.API_VERSION,
        "database": db_health_check(),
    }


API_PREFIX = "/api/finance"

app.include_router(fees.router, prefix=API_PREFIX, tags=["Fee Catalog"])
app.include_router(students.router, prefix=API_PREFIX, tags=["Student Fees"])
app.include_router(payments.router, prefix=API_PREFIX, tags=["Payments"])
app.include_router(ledger.router, prefix=API_PREFIX, tags=["Ledger"])
app.include_router(discounts.router, prefix=API_PREFIX, tags=["Discounts"])
app.include_router(installments.router, prefix=API_PREFIX, tags=["Installments"])
app.include_router(notifications.router, prefix=API_PREFIX, tags=["Reminders"])
app.include_router(expenses.router, prefix=API_PREFIX, tags=["Expenses"])
app.include_router(reports.router, prefix=API_PREFIX, tags=["Reports"])
logger.info("All routers registered successfully")


@app.get("/")
async def root():
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "docs_url": "/docs" if not settings.is_production else "Documentation disabled in production",
        "api_prefix": API_PREFIX,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)

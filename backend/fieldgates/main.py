import logging
import sqlite3
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from fieldgates.config import settings
from fieldgates.core.exceptions import (
    GateAlreadyResolvedError,
    InvalidExceptionReasonError,
    NotAssignedError,
    NotFoundError,
    UploadFailedError,
    ValidationFailedError,
    WrongStageError,
)
from fieldgates.database import init_db
from fieldgates.routers import gates, jobs, monitoring, photos

logger = logging.getLogger("fieldgates")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create/migrate the database and integrity-check it
    try:
        init_db(settings.db_path)
        conn = sqlite3.connect(str(settings.db_path))
        result = conn.execute("PRAGMA integrity_check").fetchone()
        conn.close()
        if result and result[0] == "ok":
            logger.info("Database integrity check passed.")
        else:
            logger.error("DATABASE INTEGRITY CHECK FAILED: %s", result)
    except sqlite3.Error as exc:
        logger.error("Could not run startup migration/integrity check: %s", exc)
    settings.photos_dir.mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(
    title="Field Gates",
    description="Gate workflow engine for on-site restoration job visits",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.info("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(NotAssignedError)
async def not_assigned_handler(request: Request, exc: NotAssignedError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(GateAlreadyResolvedError)
async def already_resolved_handler(request: Request, exc: GateAlreadyResolvedError):
    logger.info("Ignored action on resolved gate %s (%s)", exc.gate_id, exc.status)
    return JSONResponse(status_code=409, content={"detail": str(exc), "status": exc.status})


@app.exception_handler(ValidationFailedError)
async def validation_failed_handler(request: Request, exc: ValidationFailedError):
    logger.info("Gate validation failed on %s: %d error(s)", request.url.path, len(exc.errors))
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "errors": exc.errors, "warnings": exc.warnings},
    )


@app.exception_handler(InvalidExceptionReasonError)
@app.exception_handler(WrongStageError)
async def bad_request_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(UploadFailedError)
async def upload_failed_handler(request: Request, exc: UploadFailedError):
    logger.error("Upload failed on %s after %d attempt(s): %s", request.url.path, exc.attempts, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def metadata_invalid_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": "Invalid gate metadata", "errors": exc.errors(include_url=False, include_context=False)},
    )


app.include_router(jobs.router, prefix=settings.api_prefix)
app.include_router(gates.router, prefix=settings.api_prefix)
app.include_router(photos.router, prefix=settings.api_prefix)
app.include_router(monitoring.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}

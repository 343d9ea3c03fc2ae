"""ScripTrack API application."""

import logging
import os
import subprocess
import sys
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy import text

from app.api import api_router
from app.config import get_settings
from app.database import close_db
from app.logging_config import setup_logging
from app.services.storage import StorageError, storage_service

settings = get_settings()

setup_logging()
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def run_migrations() -> None:
    """Bring the schema to the latest Alembic revision."""
    logger.info("Running database migrations...")
    try:
        result = subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            cwd=settings.base_dir,
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"Migration failed: {e.stderr}")
        raise
    logger.info(f"Migrations completed: {result.stdout or result.stderr}")


def describe_storage() -> str:
    if storage_service.is_remote_configured():
        return f"S3 bucket {settings.aws_s3_bucket} ({settings.aws_region})"
    return f"local directory {settings.uploads_dir} (legacy: {settings.legacy_uploads_dir})"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager."""
    logger.info("Starting ScripTrack...")

    settings.ensure_directories()

    # Tests create the schema themselves
    if os.getenv("SKIP_ALEMBIC_MIGRATIONS"):
        logger.info("Skipping database migrations (SKIP_ALEMBIC_MIGRATIONS is set)")
    else:
        run_migrations()

    logger.info(f"File storage: {describe_storage()}")
    logger.info(f"ScripTrack is running on http://{settings.host}:{settings.port}")

    yield

    logger.info("Shutting down ScripTrack...")
    await close_db()
    logger.info("ScripTrack stopped")


app = FastAPI(
    title=settings.app_name,
    description="Screenplay tracking: file storage, file serving and integrity audits",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "type": type(exc).__name__,
            "path": str(request.url.path),
        },
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    """A storage backend refused a write that a route did not handle itself."""
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "File storage is unavailable"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Validation error",
            "errors": exc.errors(),
        },
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """ValueError (including an unusable file locator) is a bad request."""
    logger.warning(f"ValueError on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


app.state.templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

app.include_router(api_router)


def storage_status() -> tuple[str, bool]:
    """Name the active backend and whether it can take writes."""
    if storage_service.is_remote_configured():
        return "s3", True

    uploads_dir = settings.uploads_dir
    if uploads_dir.is_dir() and os.access(uploads_dir, os.W_OK):
        return "local", True
    return "unhealthy: upload directory not writable", False


@app.get("/health")
async def health_check():
    """Database and storage backend status."""
    from app.database import async_session_maker

    checks = {
        "status": "healthy",
        "app": settings.app_name,
        "version": VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "components": {
            "database": "unknown",
            "storage": "unknown",
        },
    }

    try:
        async with async_session_maker() as db:
            await db.execute(text("SELECT 1"))
        checks["components"]["database"] = "healthy"
    except Exception as e:
        checks["components"]["database"] = f"unhealthy: {type(e).__name__}"
        checks["status"] = "degraded"
        logger.error(f"Database health check failed: {e}")

    checks["components"]["storage"], writable = storage_status()
    if not writable:
        checks["status"] = "degraded"

    status_code = 200 if checks["status"] == "healthy" else 503
    return JSONResponse(content=checks, status_code=status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

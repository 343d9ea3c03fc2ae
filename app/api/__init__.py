"""API routes package."""

from fastapi import APIRouter, Depends

from app.api.dependencies import verify_credentials
from app.api.files import router as files_router
from app.api.integrity import router as integrity_router
from app.api.scripts import router as scripts_router
from app.api.upload import router as upload_router

api_router = APIRouter()

# API routes (All require authentication)
api_router.include_router(
    scripts_router,
    prefix="/api/scripts",
    tags=["scripts"],
    dependencies=[Depends(verify_credentials)],
)
api_router.include_router(
    upload_router,
    prefix="/api/upload",
    tags=["upload"],
    dependencies=[Depends(verify_credentials)],
)
api_router.include_router(
    integrity_router,
    prefix="/api/integrity",
    tags=["integrity"],
    dependencies=[Depends(verify_credentials)],
)

# File routes: serving is public, maintenance routes authenticate per route
api_router.include_router(files_router, prefix="/api/files", tags=["files"])

__all__ = ["api_router"]

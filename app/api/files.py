"""API routes for serving and maintaining stored files."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import verify_credentials
from app.database import get_db
from app.models.activity import Activity, ActivityType
from app.models.script import Script
from app.models.script_file import ScriptFile
from app.models.user import User
from app.schemas.files import CleanupResult, FileDeleteRequest, FileDeleteResult
from app.schemas.integrity import FileHealthRead
from app.services.integrity import AuditMode, AuditScope, integrity_auditor
from app.services.resolver import ResolveOutcome, file_resolver
from app.services.script_files import remove_script_file
from app.services.storage import extract_key, storage_service

logger = logging.getLogger(__name__)
router = APIRouter()

CACHE_FOREVER = "public, max-age=31536000"
NO_CACHE = "no-cache, no-store, must-revalidate"


@router.get("/health-check", response_model=FileHealthRead)
async def file_health_check(
    username: str = Depends(verify_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Report how many stored file references still resolve."""
    report = await integrity_auditor.file_health(db)
    return FileHealthRead.model_validate(report)


@router.post("/cleanup", response_model=CleanupResult)
async def cleanup_broken_references(
    username: str = Depends(verify_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Remove references to files that no longer exist."""
    report = await integrity_auditor.run(db, mode=AuditMode.REPAIR, scope=AuditScope.FILES)
    total = sum(report.repaired.values())

    logger.info(f"File cleanup by {username}: {report.repaired or 'nothing to clean'}")

    return CleanupResult(
        success=True,
        cleaned=report.repaired,
        total_cleaned=total,
        message=(
            f"Cleaned up {total} broken file references"
            if total
            else "No broken file references found"
        ),
    )


@router.delete("", response_model=FileDeleteResult)
async def delete_file(
    body: FileDeleteRequest,
    username: str = Depends(verify_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Delete a stored file and the record field that references it."""
    if body.file_type == "script_file":
        script_file = await db.get(ScriptFile, body.file_id)
        if not script_file:
            raise HTTPException(status_code=404, detail="Script file not found")

        url = script_file.file_url
        db.add(
            _file_deleted_activity(
                script_file.script_id,
                username,
                f"{script_file.file_type.lower()} file deleted",
                {"file_name": script_file.file_name, "file_url": url, "version": script_file.version},
            )
        )
        await remove_script_file(db, script_file)

    elif body.file_type == "cover_image":
        script = await db.get(Script, body.file_id)
        if not script:
            raise HTTPException(status_code=404, detail="Script not found")
        if not script.cover_image_url:
            raise HTTPException(status_code=404, detail="Script has no cover image")

        url = script.cover_image_url
        script.cover_image_url = None
        db.add(_file_deleted_activity(script.id, username, "Cover image deleted", {"file_url": url}))
        await db.commit()

    else:
        user = await db.get(User, body.file_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        if not user.photo_url:
            raise HTTPException(status_code=404, detail="User has no profile photo")

        url = user.photo_url
        user.photo_url = None
        await db.commit()

    # Records are updated first; a blob left behind is harmless
    key = extract_key(url)
    if key:
        await storage_service.delete(key)

    logger.info(f"Deleted {body.file_type} {body.file_id} ({url}) by {username}")

    return FileDeleteResult(
        success=True,
        message="File deleted successfully",
        file_id=body.file_id,
        file_type=body.file_type,
    )


def _file_deleted_activity(script_id: int, username: str, title: str, details: dict) -> Activity:
    return Activity(
        script_id=script_id,
        type=ActivityType.FILE_DELETED.value,
        title=title,
        description=f"Deleted by {username}",
        details={**details, "deleted_by": username},
    )


@router.get("/{path:path}")
async def serve_file(path: str, request: Request):
    """Serve a stored file. Public, so links in records work without credentials."""
    result = await file_resolver.resolve(path)

    if result.outcome == ResolveOutcome.FOUND:
        return Response(
            content=result.data,
            media_type=result.content_type,
            headers={
                "Cache-Control": CACHE_FOREVER,
                "Content-Length": str(len(result.data)),
            },
        )

    if result.outcome == ResolveOutcome.NOT_FOUND:
        status_code = status.HTTP_404_NOT_FOUND
        title = "File not found"
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        title = "Error loading file"

    return request.app.state.templates.TemplateResponse(
        request,
        "file_error.html",
        {
            "page_title": title,
            "status_code": status_code,
            "detail": result.detail,
            "filename": result.filename or path,
        },
        status_code=status_code,
        headers={"Cache-Control": NO_CACHE},
    )

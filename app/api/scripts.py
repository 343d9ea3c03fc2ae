"""API routes for scripts and their files."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import verify_credentials
from app.database import get_db
from app.models.activity import Activity, ActivityType
from app.models.script import Script
from app.models.user import User
from app.schemas.script import ScriptCoverRead, ScriptCoverUpdate, ScriptDeleteResult
from app.schemas.script_file import ScriptFileCreate, ScriptFileList, ScriptFileRead
from app.services.integrity import DEPENDENT_COLLECTIONS
from app.services.script_files import add_script_file, list_script_files
from app.services.storage import InvalidLocatorError
from app.services.validator import reference_validator

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_script(db: AsyncSession, script_id: int) -> Script:
    script = await db.get(Script, script_id)
    if not script:
        raise HTTPException(status_code=404, detail="Script not found")
    return script


@router.get("/{script_id}/files", response_model=ScriptFileList)
async def get_script_files(
    script_id: int,
    latest_only: bool = True,
    db: AsyncSession = Depends(get_db),
):
    """List a script's files, latest versions only unless asked otherwise."""
    await _get_script(db, script_id)
    files = await list_script_files(db, script_id, latest_only=latest_only)
    return ScriptFileList(
        items=[ScriptFileRead.model_validate(f) for f in files],
        total=len(files),
    )


@router.post(
    "/{script_id}/files",
    response_model=ScriptFileRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_script_file(
    script_id: int,
    data: ScriptFileCreate,
    username: str = Depends(verify_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Add a new version of a script document."""
    await _get_script(db, script_id)
    if not await db.get(User, data.uploaded_by):
        raise HTTPException(status_code=404, detail="Uploader not found")

    # Committed together with the file row
    db.add(
        Activity(
            script_id=script_id,
            user_id=data.uploaded_by,
            type=ActivityType.FILE_UPLOADED.value,
            title=f"{data.file_type.value.lower()} uploaded",
            description=data.file_name,
            details={"file_url": data.file_url, "file_size": data.file_size, "by": username},
        )
    )

    try:
        script_file = await add_script_file(
            db,
            script_id=script_id,
            file_type=data.file_type.value,
            file_name=data.file_name,
            file_url=data.file_url,
            file_size=data.file_size,
            uploaded_by=data.uploaded_by,
        )
    except InvalidLocatorError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    except IntegrityError as e:
        logger.warning(f"Concurrent file upload for script {script_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Another version of this file was uploaded at the same time, retry",
        ) from e

    return script_file


@router.put("/{script_id}/cover", response_model=ScriptCoverRead)
async def update_cover_image(
    script_id: int,
    data: ScriptCoverUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Set the cover image. A locator that does not resolve is stored as null."""
    script = await _get_script(db, script_id)

    cleaned = await reference_validator.clean_script_payload(data.model_dump())
    script.cover_image_url = cleaned["cover_image_url"]
    await db.commit()
    await db.refresh(script)

    requested = (data.cover_image_url or "").strip()
    return ScriptCoverRead(
        id=script.id,
        title=script.title,
        cover_image_url=script.cover_image_url,
        cleaned=bool(requested) and script.cover_image_url is None,
    )


@router.delete("/{script_id}", response_model=ScriptDeleteResult)
async def delete_script(
    script_id: int,
    username: str = Depends(verify_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Delete a script. Dependent rows are removed by the database cascade."""
    script = await _get_script(db, script_id)
    title = script.title

    related = {}
    for name, model, fk_column, parent in DEPENDENT_COLLECTIONS:
        if parent is Script:
            related[name] = await db.scalar(
                select(func.count()).select_from(model).where(fk_column == script_id)
            )

    # Removed by the cascade together with the script
    db.add(
        Activity(
            script_id=script_id,
            type=ActivityType.SCRIPT_DELETED.value,
            title="Script deleted",
            description=f'Script "{title}" was permanently deleted by {username}',
            details={
                "deleted_by": username,
                "related_records_deleted": related,
                "total_related_records": sum(related.values()),
            },
        )
    )
    await db.flush()

    await db.execute(delete(Script).where(Script.id == script_id))
    await db.commit()

    logger.info(f"Script deleted: {title!r} (id={script_id}), related records: {related}")

    return ScriptDeleteResult(success=True, script_id=script_id, title=title, deleted=related)

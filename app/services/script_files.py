"""Versioned script file records."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.script_file import ScriptFile, ScriptFileType
from app.services.validator import ReferenceValidator, reference_validator

logger = logging.getLogger(__name__)


async def list_script_files(
    db: AsyncSession,
    script_id: int,
    latest_only: bool = True,
) -> list[ScriptFile]:
    query = select(ScriptFile).where(ScriptFile.script_id == script_id)
    if latest_only:
        query = query.where(ScriptFile.is_latest.is_(True))
    query = query.order_by(ScriptFile.file_type, ScriptFile.version.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def add_script_file(
    db: AsyncSession,
    script_id: int,
    file_type: str,
    file_name: str,
    file_url: str,
    file_size: int | None,
    uploaded_by: int,
    validator: ReferenceValidator | None = None,
) -> ScriptFile:
    """
    Record a new version of a script document.

    The previous latest row for (script, type) is flipped to
    ``is_latest=False`` and the new row is inserted with the next version
    number. Both writes are committed together or rolled back together.

    Raises:
        InvalidLocatorError: file_url does not point at an existing blob
        ValueError: unknown file_type
    """
    validator = validator or reference_validator
    await validator.require_valid_file_url(file_url)
    file_type = ScriptFileType(file_type).value

    try:
        result = await db.execute(
            select(ScriptFile).where(
                ScriptFile.script_id == script_id,
                ScriptFile.file_type == file_type,
                ScriptFile.is_latest.is_(True),
            )
        )
        for previous in result.scalars().all():
            previous.is_latest = False

        max_version = await db.scalar(
            select(func.max(ScriptFile.version)).where(
                ScriptFile.script_id == script_id,
                ScriptFile.file_type == file_type,
            )
        )

        # The old row must be demoted before the new latest row is inserted
        await db.flush()

        script_file = ScriptFile(
            script_id=script_id,
            file_type=file_type,
            file_name=file_name,
            file_url=file_url,
            file_size=file_size or 0,
            version=(max_version or 0) + 1,
            is_latest=True,
            uploaded_by=uploaded_by,
        )
        db.add(script_file)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(script_file)
    logger.info(
        f"Added {file_type} v{script_file.version} for script {script_id}: {file_name}"
    )
    return script_file


async def remove_script_file(db: AsyncSession, script_file: ScriptFile) -> None:
    """Delete a file row; if it was the latest, promote the highest remaining version."""
    script_id = script_file.script_id
    file_type = script_file.file_type
    was_latest = script_file.is_latest

    try:
        await db.delete(script_file)
        await db.flush()

        if was_latest:
            result = await db.execute(
                select(ScriptFile)
                .where(
                    ScriptFile.script_id == script_id,
                    ScriptFile.file_type == file_type,
                )
                .order_by(ScriptFile.version.desc())
                .limit(1)
            )
            successor = result.scalar_one_or_none()
            if successor is not None:
                successor.is_latest = True

        await db.commit()
    except Exception:
        await db.rollback()
        raise

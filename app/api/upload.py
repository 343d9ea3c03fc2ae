"""API route for uploading files to storage."""

import logging
import shutil
from pathlib import PurePath

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from app.config import get_settings
from app.schemas.files import UploadResponse
from app.services.storage import StorageError, storage_service

logger = logging.getLogger(__name__)
router = APIRouter()

SCRIPT_UPLOAD_TYPES = {
    "screenplay",
    "pitchdeck",
    "treatment",
    "oneline_order",
    "storyboard",
    "team_profile",
}
IMAGE_UPLOAD_TYPES = {"cover", "profile"}

DOCUMENT_CONTENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}
DOCUMENT_EXTENSIONS = {".pdf", ".doc", ".docx", ".ppt", ".pptx"}

IMAGE_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

READ_CHUNK_SIZE = 1024 * 1024


def _check_file_kind(upload_type: str, filename: str, content_type: str | None) -> int:
    """Validate type and extension for an upload kind. Returns the size limit in MB."""
    settings = get_settings()
    extension = PurePath(filename).suffix.lower()

    if upload_type in SCRIPT_UPLOAD_TYPES:
        if content_type not in DOCUMENT_CONTENT_TYPES or extension not in DOCUMENT_EXTENSIONS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    "Invalid file type. Only PDF, DOC, DOCX, PPT, and PPTX files "
                    "are allowed for script files."
                ),
            )
        return settings.max_script_file_size_mb

    if upload_type in IMAGE_UPLOAD_TYPES:
        if content_type not in IMAGE_CONTENT_TYPES or extension not in IMAGE_EXTENSIONS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid file type. Only JPEG, PNG, and WebP images are allowed.",
            )
        return settings.max_image_size_mb

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Invalid upload type: {upload_type}",
    )


def _check_free_space(size: int) -> None:
    """Refuse local writes that would leave less than the configured free space."""
    settings = get_settings()
    settings.uploads_dir.mkdir(parents=True, exist_ok=True)
    free = shutil.disk_usage(settings.uploads_dir).free
    required = size + settings.min_free_space_mb * 1024 * 1024

    if free < required:
        logger.error(
            f"Not enough disk space for upload: {free} bytes free, {required} bytes required"
        )
        raise HTTPException(
            status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
            detail="Not enough storage space available for this upload",
        )


async def _read_limited(file: UploadFile, limit_mb: int) -> bytes:
    """Read an upload in chunks, giving up once it passes the size limit."""
    limit = limit_mb * 1024 * 1024
    too_large = HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"File too large. Maximum size is {limit_mb}MB.",
    )
    if file.size is not None and file.size > limit:
        raise too_large

    chunks: list[bytes] = []
    total = 0
    while True:
        # Never ask for more than one byte past the limit
        chunk = await file.read(min(READ_CHUNK_SIZE, limit + 1 - total))
        if not chunk:
            break
        chunks.append(chunk)
        total += len(chunk)
        if total > limit:
            raise too_large

    return b"".join(chunks)


@router.post("", response_model=UploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    type: str = Form(...),
):
    """Upload a script document or an image and return its locator."""
    upload_type = type.strip().lower()
    filename = file.filename or ""
    if not filename:
        raise HTTPException(status_code=400, detail="No file provided")

    limit_mb = _check_file_kind(upload_type, filename, file.content_type)

    data = await _read_limited(file, limit_mb)
    if not data:
        raise HTTPException(status_code=400, detail="File is empty")

    if not storage_service.is_remote_configured():
        _check_free_space(len(data))

    try:
        stored = await storage_service.store(data, filename, file.content_type)
    except StorageError as e:
        logger.error(f"Upload of {filename} failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload file. Please try again.",
        ) from e

    return UploadResponse(
        success=True,
        key=stored.key,
        url=stored.url,
        file_name=filename,
        file_size=stored.size,
        type=upload_type,
        is_persistent=stored.backend == "s3",
    )

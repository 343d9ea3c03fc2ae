"""Pydantic schemas for file upload and maintenance endpoints."""

from typing import Literal

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Schema returned after a successful upload."""

    success: bool = True
    key: str
    url: str
    file_name: str
    file_size: int
    type: str
    is_persistent: bool


class FileDeleteRequest(BaseModel):
    """Schema for deleting a file and the reference to it."""

    file_id: int = Field(..., ge=1)
    file_type: Literal["script_file", "cover_image", "user_photo"]


class FileDeleteResult(BaseModel):
    success: bool
    message: str
    file_id: int
    file_type: str


class CleanupResult(BaseModel):
    """Counts of broken references removed by a cleanup run."""

    success: bool
    cleaned: dict[str, int]
    total_cleaned: int
    message: str

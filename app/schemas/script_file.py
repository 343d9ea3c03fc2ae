"""Pydantic schemas for script files."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.script_file import ScriptFileType


class ScriptFileBase(BaseModel):
    """Base schema for ScriptFile."""

    file_type: ScriptFileType
    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=500)
    file_size: int = Field(default=0, ge=0)

    @field_validator("file_type", mode="before")
    @classmethod
    def normalize_file_type(cls, v):
        """Accept lowercase type names like ``screenplay``."""
        if isinstance(v, str):
            return v.strip().upper()
        return v


class ScriptFileCreate(ScriptFileBase):
    """Schema for adding a new file version."""

    uploaded_by: int


class ScriptFileRead(ScriptFileBase):
    """Schema for reading a script file."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    script_id: int
    version: int
    is_latest: bool
    uploaded_by: int
    created_at: datetime


class ScriptFileList(BaseModel):
    """Schema for listing script files."""

    items: list[ScriptFileRead]
    total: int

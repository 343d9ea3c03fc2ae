"""Pydantic schemas for Script model."""

from pydantic import BaseModel, ConfigDict


class ScriptCoverUpdate(BaseModel):
    """Schema for setting a script's cover image."""

    cover_image_url: str | None = None


class ScriptCoverRead(BaseModel):
    """Cover image after validation; ``cleaned`` is set when the locator was dropped."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    cover_image_url: str | None
    cleaned: bool = False


class ScriptDeleteResult(BaseModel):
    """Schema returned after deleting a script."""

    success: bool
    script_id: int
    title: str
    deleted: dict[str, int]

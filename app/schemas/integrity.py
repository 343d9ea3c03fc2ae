"""Pydantic schemas for integrity and file health reports."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.services.integrity import AuditMode, AuditScope


class CollectionReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    total: int
    orphaned: int
    orphan_ids: list[int]


class DanglingReferenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    record_id: int
    url: str
    error: str | None = None
    script_id: int | None = None


class CascadeResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    passed: bool
    remaining: dict[str, int]
    error: str | None = None


class IntegrityReportRead(BaseModel):
    """Schema for an integrity audit report."""

    model_config = ConfigDict(from_attributes=True)

    mode: AuditMode
    scope: AuditScope
    generated_at: datetime
    collections: dict[str, CollectionReportRead]
    files_checked: dict[str, int]
    dangling: list[DanglingReferenceRead]
    repaired: dict[str, int]
    cascade: CascadeResultRead | None = None
    orphan_count: int
    problem_count: int
    is_clean: bool


class FileKindHealthRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    valid: int
    broken: int


class FileHealthRead(BaseModel):
    """Schema for the file health check."""

    model_config = ConfigDict(from_attributes=True)

    total_files: int
    valid_files: int
    broken_files: int
    success_rate: float
    breakdown: dict[str, FileKindHealthRead]
    broken: list[DanglingReferenceRead]
    recommendations: list[str]
    remote_configured: bool

"""Pydantic schemas package."""

from app.schemas.files import (
    CleanupResult,
    FileDeleteRequest,
    FileDeleteResult,
    UploadResponse,
)
from app.schemas.integrity import (
    FileHealthRead,
    IntegrityReportRead,
)
from app.schemas.script import (
    ScriptCoverRead,
    ScriptCoverUpdate,
    ScriptDeleteResult,
)
from app.schemas.script_file import (
    ScriptFileCreate,
    ScriptFileList,
    ScriptFileRead,
)

__all__ = [
    "CleanupResult",
    "FileDeleteRequest",
    "FileDeleteResult",
    "UploadResponse",
    "FileHealthRead",
    "IntegrityReportRead",
    "ScriptCoverRead",
    "ScriptCoverUpdate",
    "ScriptDeleteResult",
    "ScriptFileCreate",
    "ScriptFileList",
    "ScriptFileRead",
]

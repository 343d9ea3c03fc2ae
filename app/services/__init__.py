"""Services package."""

from app.services.integrity import IntegrityAuditor
from app.services.resolver import FileResolver
from app.services.storage import StorageService
from app.services.validator import ReferenceValidator

__all__ = [
    "FileResolver",
    "IntegrityAuditor",
    "ReferenceValidator",
    "StorageService",
]

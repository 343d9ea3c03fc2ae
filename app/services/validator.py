"""Check that locators stored in records point at blobs that exist."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from app.config import RemotePolicy
from app.services.storage import (
    FileStats,
    InvalidLocatorError,
    StorageService,
    extract_key,
    is_safe_key,
    storage_service,
)

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    is_valid: bool
    exists: bool
    url: str | None
    key: str | None = None
    error: str | None = None


class ReferenceValidator:
    """
    Existence checks for locators, without reading blob content.

    Local storage (primary, then legacy directory) is always consulted.
    Whether the remote bucket counts depends on ``effective_remote_policy``:
    ``local_only`` ignores it, ``head_object`` asks S3 (the default while S3
    is configured), ``assume_present`` trusts any well-formed key while
    remote storage is configured.
    """

    def __init__(self, storage: StorageService | None = None) -> None:
        self.storage = storage or storage_service

    async def file_exists_by_key(self, key: str) -> bool:
        if not is_safe_key(key):
            return False

        for backend in self.storage.local_backends():
            try:
                if await backend.exists(key):
                    return True
            except OSError as e:
                logger.warning(f"Could not check {key} in {backend.name} storage: {e}")

        if not self.storage.is_remote_configured():
            return False

        policy = self.storage.settings.effective_remote_policy
        if policy == RemotePolicy.ASSUME_PRESENT:
            return True

        if policy == RemotePolicy.HEAD_OBJECT:
            try:
                return await self.storage.remote_backend().exists(key)
            except (ClientError, BotoCoreError) as e:
                # Inconclusive; never report a blob missing on a failed call
                logger.warning(f"S3 existence check failed for {key}: {e}")
                return True

        return False

    async def validate(self, locator: Any) -> ValidationResult:
        if not isinstance(locator, str) or not locator.strip():
            return ValidationResult(
                is_valid=False,
                exists=False,
                url=locator if isinstance(locator, str) else None,
                error="Locator is empty",
            )

        key = extract_key(locator)
        if key is None:
            return ValidationResult(
                is_valid=False,
                exists=False,
                url=locator,
                error="Key not extractable",
            )

        exists = await self.file_exists_by_key(key)
        return ValidationResult(
            is_valid=exists,
            exists=exists,
            url=locator,
            key=key,
            error=None if exists else "File not found in storage",
        )

    async def validate_and_clean(self, locator: Any) -> str | None:
        """Return the locator if it resolves, otherwise None."""
        if locator is None:
            return None

        result = await self.validate(locator)
        if result.is_valid:
            return locator

        logger.warning(f"Dropping invalid file reference {locator!r}: {result.error}")
        return None

    async def batch_validate(self, locators: list[Any]) -> list[ValidationResult]:
        return list(await asyncio.gather(*(self.validate(loc) for loc in locators)))

    async def stats_for(self, locator: Any) -> FileStats:
        key = extract_key(locator)
        if key is None:
            return FileStats(exists=False)
        return await self.storage.stats(key)

    async def _clean_field(self, data: dict[str, Any], field: str) -> dict[str, Any]:
        cleaned = dict(data)
        if field not in cleaned:
            return cleaned

        value = cleaned[field]
        if isinstance(value, str) and not value.strip():
            # Blank means "no file"
            cleaned[field] = None
        else:
            cleaned[field] = await self.validate_and_clean(value)
        return cleaned

    async def clean_script_payload(self, data: dict[str, Any]) -> dict[str, Any]:
        """Null out a blank or dangling cover image before a script is written."""
        return await self._clean_field(data, "cover_image_url")

    async def clean_user_payload(self, data: dict[str, Any]) -> dict[str, Any]:
        """Null out a blank or dangling profile photo before a user is written."""
        return await self._clean_field(data, "photo_url")

    async def require_valid_file_url(self, url: Any) -> str:
        """Script file rows must reference an existing blob."""
        result = await self.validate(url)
        if not result.is_valid:
            raise InvalidLocatorError(f"Invalid file URL {url!r}: {result.error}")
        return url


# Global instance
reference_validator = ReferenceValidator()

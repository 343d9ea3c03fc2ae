"""Resolve a request path to blob bytes through an ordered chain of lookups."""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum

from botocore.exceptions import BotoCoreError, ClientError

from app.services.storage import (
    LEGACY_PREFIX,
    Blob,
    LocalBackend,
    StorageService,
    storage_service,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class LookupStatus(str, Enum):
    """Result of a single lookup strategy."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class ResolveOutcome(str, Enum):
    """Final outcome of a resolve call."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class LookupResult:
    status: LookupStatus
    blob: Blob | None = None
    error: str | None = None


@dataclass
class ResolveResult:
    """What the HTTP layer renders: bytes on success, otherwise a detail message."""

    outcome: ResolveOutcome
    detail: str
    filename: str | None = None
    data: bytes | None = None
    content_type: str | None = None
    source: str | None = None

    @property
    def found(self) -> bool:
        return self.outcome == ResolveOutcome.FOUND


def normalize_path(path: str | list[str]) -> str | None:
    """
    Turn request path segments into a storage filename.

    A leading ``uploads`` segment is dropped when more segments follow so
    that old ``/api/files/uploads/<key>`` links keep working. Returns None
    for paths with empty, ``.`` or ``..`` segments.
    """
    segments = path.split("/") if isinstance(path, str) else list(path)

    if len(segments) > 1 and segments[0] == LEGACY_PREFIX:
        segments = segments[1:]

    if not segments or any(seg in ("", ".", "..") for seg in segments):
        return None

    return "/".join(segments)


def guess_content_type(filename: str, reported: str | None = None) -> str:
    if reported:
        return reported
    return mimetypes.guess_type(filename)[0] or DEFAULT_CONTENT_TYPE


class RemoteLookup:
    """Fetch from S3 under a timeout. Failures fall through to local lookups."""

    name = "remote"
    surfaces_errors = False

    def __init__(self, storage: StorageService, timeout: float) -> None:
        self.storage = storage
        self.timeout = timeout

    async def lookup(self, filename: str) -> LookupResult:
        backend = self.storage.remote_backend()
        if backend is None:
            return LookupResult(LookupStatus.NOT_FOUND)

        try:
            blob = await asyncio.wait_for(backend.read(filename), timeout=self.timeout)
        except TimeoutError:
            return LookupResult(
                LookupStatus.ERROR, error=f"timed out after {self.timeout}s"
            )
        except (ClientError, BotoCoreError) as e:
            return LookupResult(LookupStatus.ERROR, error=str(e))

        if blob is None:
            return LookupResult(LookupStatus.NOT_FOUND)
        return LookupResult(LookupStatus.FOUND, blob=blob)


class LocalDirectoryLookup:
    """Read a file from one local blob directory."""

    surfaces_errors = True

    def __init__(self, backend: LocalBackend) -> None:
        self.backend = backend
        self.name = backend.name

    async def lookup(self, filename: str) -> LookupResult:
        try:
            blob = await self.backend.read(filename)
        except OSError as e:
            return LookupResult(LookupStatus.ERROR, error=str(e))

        if blob is None:
            return LookupResult(LookupStatus.NOT_FOUND)
        return LookupResult(LookupStatus.FOUND, blob=blob)


class FileResolver:
    """Serve blobs from remote storage, then the primary and legacy directories."""

    def __init__(self, storage: StorageService | None = None) -> None:
        self.storage = storage or storage_service

    def strategies(self) -> list:
        """Lookup chain in order. Rebuilt per call so settings changes apply."""
        chain: list = []
        if self.storage.is_remote_configured():
            chain.append(
                RemoteLookup(self.storage, self.storage.settings.remote_timeout_seconds)
            )
        chain.extend(LocalDirectoryLookup(b) for b in self.storage.local_backends())
        return chain

    async def resolve(self, path: str | list[str]) -> ResolveResult:
        """Resolve a path. Never raises; failures come back as outcomes."""
        try:
            return await self._resolve(path)
        except Exception as e:
            logger.exception(f"Unexpected error resolving {path!r}: {e}")
            return ResolveResult(
                outcome=ResolveOutcome.ERROR,
                detail="An error occurred while loading the file.",
            )

    async def _resolve(self, path: str | list[str]) -> ResolveResult:
        filename = normalize_path(path)
        if filename is None:
            logger.warning(f"Rejected file path: {path!r}")
            return ResolveResult(
                outcome=ResolveOutcome.NOT_FOUND,
                detail="The requested file could not be found.",
            )

        local_error: str | None = None

        for strategy in self.strategies():
            result = await strategy.lookup(filename)

            if result.status == LookupStatus.FOUND:
                blob = result.blob
                logger.info(f"Serving {filename} from {strategy.name} storage")
                return ResolveResult(
                    outcome=ResolveOutcome.FOUND,
                    detail="ok",
                    filename=filename,
                    data=blob.data,
                    content_type=guess_content_type(filename, blob.content_type),
                    source=strategy.name,
                )

            if result.status == LookupStatus.ERROR:
                if strategy.surfaces_errors:
                    logger.error(f"Error reading {filename} from {strategy.name} storage: {result.error}")
                    local_error = local_error or result.error
                else:
                    logger.warning(
                        f"{strategy.name} lookup failed for {filename}, trying next: {result.error}"
                    )
            else:
                logger.info(f"{filename} not in {strategy.name} storage")

        if local_error is not None:
            return ResolveResult(
                outcome=ResolveOutcome.ERROR,
                detail="An error occurred while loading the file.",
                filename=filename,
            )

        logger.warning(f"File not found in any storage: {filename}")
        return ResolveResult(
            outcome=ResolveOutcome.NOT_FOUND,
            detail="The requested file could not be found.",
            filename=filename,
        )


# Global instance
file_resolver = FileResolver()

"""Blob storage over the local filesystem and an optional S3 bucket."""

import asyncio
import logging
import mimetypes
import re
import secrets
import string
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlsplit

import aiofiles
import aiofiles.os
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

LOCATOR_PREFIX = "/api/files/"
LEGACY_PREFIX = "uploads"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9.-]")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 6

# S3 error codes that mean "object is not there"
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class StorageError(Exception):
    """Raised when a blob cannot be written."""


class InvalidLocatorError(ValueError):
    """Raised when a locator does not point to an existing blob."""


@dataclass
class Blob:
    """Bytes read from a backend."""

    key: str
    data: bytes
    content_type: str | None
    source: str


@dataclass
class StoredBlob:
    """Result of a successful store."""

    key: str
    url: str
    backend: str
    size: int


@dataclass
class FileStats:
    """Where a key lives on local disk and how large it is."""

    exists: bool
    key: str | None = None
    size: int | None = None
    path: str | None = None


def sanitize_filename(name: str) -> str:
    """Replace every character outside [A-Za-z0-9.-] with an underscore."""
    return _UNSAFE_NAME_CHARS.sub("_", name)


def generate_key(original_name: str) -> str:
    """Build a unique key: millisecond timestamp, random suffix, sanitized name."""
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{timestamp}_{suffix}_{sanitize_filename(original_name)}"


def build_locator(key: str) -> str:
    return f"{LOCATOR_PREFIX}{key}"


def is_safe_key(key: str) -> bool:
    """Keys are flat filenames: no separators and no dot segments."""
    if not key or key in (".", ".."):
        return False
    return "/" not in key and "\\" not in key and "\x00" not in key


def extract_key(locator: object) -> str | None:
    """
    Return the key embedded in a locator, or None if it is not one of ours.

    Recognized shapes are ``/api/files/<key>`` and the legacy
    ``/api/files/uploads/<key>``. Absolute URLs, empty strings and
    anything that would escape the flat key namespace return None.
    """
    if not isinstance(locator, str) or not locator.strip():
        return None

    parts = urlsplit(locator.strip())
    if parts.scheme or parts.netloc:
        return None

    path = parts.path
    if not path.startswith(LOCATOR_PREFIX):
        return None

    remainder = path[len(LOCATOR_PREFIX):]
    legacy = f"{LEGACY_PREFIX}/"
    if remainder.startswith(legacy) and len(remainder) > len(legacy):
        remainder = remainder[len(legacy):]

    key = unquote(remainder)
    if not is_safe_key(key):
        return None
    return key


def is_missing_error(exc: ClientError) -> bool:
    """Whether an S3 ClientError means the object does not exist."""
    code = str(exc.response.get("Error", {}).get("Code", ""))
    return code in _MISSING_CODES


class LocalBackend:
    """Blobs stored as flat files in one directory."""

    def __init__(self, directory: Path, name: str = "local") -> None:
        self.directory = Path(directory)
        self.name = name

    def path_for(self, key: str) -> Path:
        return self.directory / key

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(key))

    async def write(self, key: str, data: bytes) -> None:
        """Write a new blob. An existing key is never overwritten."""
        try:
            await aiofiles.os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage directory {self.directory}: {e}") from e

        try:
            async with aiofiles.open(self.path_for(key), "xb") as f:
                await f.write(data)
        except FileExistsError as e:
            raise StorageError(f"Key already exists: {key}") from e
        except OSError as e:
            raise StorageError(f"Failed to write {key} to {self.directory}: {e}") from e

    async def read(self, key: str) -> Blob | None:
        path = self.path_for(key)
        if not await aiofiles.os.path.isfile(path):
            return None
        async with aiofiles.open(path, "rb") as f:
            data = await f.read()
        return Blob(key=key, data=data, content_type=None, source=self.name)

    async def stat(self, key: str):
        path = self.path_for(key)
        if not await aiofiles.os.path.isfile(path):
            return None
        return await aiofiles.os.stat(path)

    async def delete(self, key: str) -> bool:
        await aiofiles.os.remove(self.path_for(key))
        return True


class S3Backend:
    """Blobs stored as objects in an S3 bucket, keyed by the blob key."""

    name = "s3"

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str,
        secret_access_key: str,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                aws_access_key_id=self._access_key_id,
                aws_secret_access_key=self._secret_access_key,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    async def write(self, key: str, data: bytes, content_type: str | None = None) -> None:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                **extra,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to upload {key} to s3://{self.bucket}: {e}") from e

    async def read(self, key: str) -> Blob | None:
        """Fetch an object. Returns None when it is missing; other errors raise."""
        try:
            response = await asyncio.to_thread(
                self.client.get_object, Bucket=self.bucket, Key=key
            )
        except ClientError as e:
            if is_missing_error(e):
                return None
            raise

        body = response.get("Body")
        if body is None:
            return None
        data = await asyncio.to_thread(body.read)
        return Blob(
            key=key,
            data=data,
            content_type=response.get("ContentType"),
            source=self.name,
        )

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_missing_error(e):
                return False
            raise
        return True

    async def delete(self, key: str) -> bool:
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        return True


class StorageService:
    """Owns blob lifecycle: store, retrieve and delete."""

    def __init__(self, settings: Settings | None = None, s3_client=None) -> None:
        self._settings = settings
        self._s3_client = s3_client
        self._remote: S3Backend | None = None
        self._remote_signature: tuple | None = None

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def is_remote_configured(self) -> bool:
        return self.settings.remote_configured

    def remote_backend(self) -> S3Backend | None:
        """The S3 backend, or None when credentials are not configured."""
        if not self.is_remote_configured():
            return None

        cfg = self.settings
        signature = (
            cfg.aws_s3_bucket,
            cfg.aws_region,
            cfg.aws_access_key_id,
            cfg.aws_secret_access_key,
        )
        if self._remote is None or self._remote_signature != signature:
            self._remote = S3Backend(
                bucket=cfg.aws_s3_bucket,
                region=cfg.aws_region,
                access_key_id=cfg.aws_access_key_id,
                secret_access_key=cfg.aws_secret_access_key,
                client=self._s3_client,
            )
            self._remote_signature = signature
        return self._remote

    def primary_backend(self) -> LocalBackend:
        return LocalBackend(self.settings.uploads_dir, name="primary")

    def local_backends(self) -> list[LocalBackend]:
        """Local directories in lookup order: primary, then legacy."""
        primary, legacy = self.settings.local_upload_dirs
        return [LocalBackend(primary, name="primary"), LocalBackend(legacy, name="legacy")]

    def extract_key(self, locator: object) -> str | None:
        return extract_key(locator)

    async def store(
        self,
        data: bytes,
        original_name: str,
        content_type: str | None = None,
    ) -> StoredBlob:
        """Persist a blob under a freshly generated key and return its locator."""
        if not data:
            raise ValueError("Cannot store an empty file")

        key = generate_key(original_name)
        remote = self.remote_backend()

        if remote is not None:
            content_type = content_type or mimetypes.guess_type(original_name)[0]
            await remote.write(key, data, content_type)
            backend = remote.name
        else:
            primary = self.primary_backend()
            await primary.write(key, data)
            backend = primary.name

        logger.info(f"Stored {original_name} as {key} ({len(data)} bytes, backend={backend})")

        return StoredBlob(key=key, url=build_locator(key), backend=backend, size=len(data))

    async def retrieve(self, locator: str) -> Blob | None:
        """Read the blob behind a locator, falling back from remote to local."""
        key = extract_key(locator)
        if key is None:
            return None

        remote = self.remote_backend()
        if remote is not None:
            try:
                blob = await remote.read(key)
                if blob is not None:
                    return blob
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"Remote read failed for {key}, falling back to local: {e}")

        for backend in self.local_backends():
            try:
                blob = await backend.read(key)
            except OSError as e:
                logger.error(f"Failed to read {key} from {backend.name} storage: {e}")
                continue
            if blob is not None:
                return blob

        return None

    async def stats(self, key: str) -> FileStats:
        """Size and path of a key in local storage (primary, then legacy)."""
        if not is_safe_key(key):
            return FileStats(exists=False)

        for backend in self.local_backends():
            try:
                stat = await backend.stat(key)
            except OSError as e:
                logger.warning(f"Failed to stat {key} in {backend.name} storage: {e}")
                continue
            if stat is not None:
                return FileStats(
                    exists=True,
                    key=key,
                    size=stat.st_size,
                    path=str(backend.path_for(key)),
                )

        return FileStats(exists=False, key=key)

    async def delete(self, key: str) -> None:
        """Delete a blob everywhere it might live. Failures are logged only."""
        if not is_safe_key(key):
            logger.warning(f"Refusing to delete unsafe key: {key!r}")
            return

        remote = self.remote_backend()
        if remote is not None:
            try:
                await remote.delete(key)
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"Failed to delete {key} from S3: {e}")

        for backend in self.local_backends():
            try:
                if await backend.exists(key):
                    await backend.delete(key)
                    logger.info(f"Deleted {key} from {backend.name} storage")
            except OSError as e:
                logger.warning(f"Failed to delete {key} from {backend.name} storage: {e}")


# Global instance
storage_service = StorageService()

"""Application configuration using pydantic-settings."""

import os
from enum import Enum
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RemotePolicy(str, Enum):
    """How reference checks treat the remote object store."""

    LOCAL_ONLY = "local_only"
    HEAD_OBJECT = "head_object"
    ASSUME_PRESENT = "assume_present"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "ScripTrack"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8080

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/scriptrack.db"

    # Database connection pooling (for PostgreSQL/MySQL)
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 3600  # Recycle connections after 1 hour
    db_pool_pre_ping: bool = True  # Test connections before using

    # Directories
    base_dir: Path = Path(__file__).parent.parent
    logs_dir: Path = Path("./logs")
    data_dir: Path = Path("./data")
    uploads_dir: Path = Path("./persistent-uploads")
    legacy_uploads_dir: Path = Path("./uploads-backup")

    # Remote object store (S3). Remote storage is active only when
    # key, secret and bucket are all present.
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_s3_bucket: str = ""
    aws_region: str = "us-east-1"
    remote_timeout_seconds: float = 10.0

    # Reference validation. Unset means head_object when S3 is configured,
    # local_only otherwise.
    reference_remote_policy: RemotePolicy | None = None

    # Uploads
    max_script_file_size_mb: int = 25
    max_image_size_mb: int = 10
    min_free_space_mb: int = 100  # Minimum free disk space required for local writes

    # Authentication
    admin_username: str = "admin"
    admin_password: str = "admin"

    @model_validator(mode="after")
    def make_paths_absolute(self) -> "Settings":
        """Convert relative paths to absolute based on base_dir."""
        if not self.logs_dir.is_absolute():
            self.logs_dir = self.base_dir / self.logs_dir
        if not self.data_dir.is_absolute():
            self.data_dir = self.base_dir / self.data_dir
        if not self.uploads_dir.is_absolute():
            self.uploads_dir = self.base_dir / self.uploads_dir
        if not self.legacy_uploads_dir.is_absolute():
            self.legacy_uploads_dir = self.base_dir / self.legacy_uploads_dir

        import warnings

        suppress_config_warnings = bool(os.getenv("SUPPRESS_CONFIG_WARNINGS"))

        if not suppress_config_warnings:
            if not self.database_url or str(self.database_url).startswith("sqlite"):
                warnings.warn(
                    (
                        "DATABASE_URL is not set or points to SQLite; "
                        "use a production database in non-test environments."
                    ),
                    stacklevel=2,
                )

            if self.admin_password == "admin" or len(self.admin_password) < 8:
                warnings.warn(
                    "ADMIN_PASSWORD is default or weak; set a strong admin password.",
                    stacklevel=2,
                )

            if self.remote_configured and self.reference_remote_policy == RemotePolicy.LOCAL_ONLY:
                warnings.warn(
                    (
                        "REFERENCE_REMOTE_POLICY is local_only while S3 is configured; "
                        "blobs stored in the bucket will be reported as missing."
                    ),
                    stacklevel=2,
                )

            if self.aws_s3_bucket and not self.remote_configured:
                warnings.warn(
                    "AWS_S3_BUCKET is set but credentials are missing; "
                    "files will be stored locally.",
                    stacklevel=2,
                )

        return self

    @property
    def remote_configured(self) -> bool:
        """Whether S3 credentials and bucket are all present."""
        return bool(self.aws_access_key_id and self.aws_secret_access_key and self.aws_s3_bucket)

    @property
    def effective_remote_policy(self) -> RemotePolicy:
        """The policy reference checks actually apply."""
        if self.reference_remote_policy is not None:
            return self.reference_remote_policy
        if self.remote_configured:
            return RemotePolicy.HEAD_OBJECT
        return RemotePolicy.LOCAL_ONLY

    @property
    def local_upload_dirs(self) -> list[Path]:
        """Local blob directories in lookup order (primary first)."""
        return [self.uploads_dir, self.legacy_uploads_dir]

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        import logging

        logger = logging.getLogger(__name__)

        for dir_path in [
            self.logs_dir,
            self.data_dir,
            self.uploads_dir,
            self.legacy_uploads_dir,
        ]:
            try:
                dir_path.mkdir(parents=True, exist_ok=True)
            except (PermissionError, OSError) as e:
                # Directories might be created externally
                logger.warning(
                    f"Could not create directory {dir_path}: {e}. "
                    "The directory may already exist or have permission issues."
                )


_settings_cache: Settings | None = None


def get_settings(reload: bool = False) -> Settings:
    """Get settings instance with optional reload."""
    global _settings_cache
    if _settings_cache is None or reload:
        _settings_cache = Settings()
    return _settings_cache

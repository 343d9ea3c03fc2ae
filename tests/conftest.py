"""Pytest configuration and fixtures for ScripTrack tests."""

import os

os.environ.setdefault("SUPPRESS_CONFIG_WARNINGS", "1")
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import RemotePolicy, Settings, get_settings
from app.database import Base, enable_sqlite_foreign_keys
from app.models import (
    Activity,
    ActivityType,
    Assignment,
    Feedback,
    Meeting,
    MeetingParticipant,
    Script,
    ScriptFile,
    ScriptFileType,
    User,
)
from app.services.storage import build_locator


@pytest.fixture
def upload_dirs(tmp_path: Path) -> tuple[Path, Path]:
    """Primary and legacy upload directories for one test."""
    primary = tmp_path / "persistent-uploads"
    legacy = tmp_path / "uploads-backup"
    primary.mkdir()
    legacy.mkdir()
    return primary, legacy


@pytest.fixture(autouse=True)
def isolated_settings(upload_dirs, monkeypatch) -> Settings:
    """Point the cached settings at temporary directories with S3 disabled."""
    settings = get_settings()
    primary, legacy = upload_dirs
    monkeypatch.setattr(settings, "uploads_dir", primary)
    monkeypatch.setattr(settings, "legacy_uploads_dir", legacy)
    monkeypatch.setattr(settings, "aws_access_key_id", "")
    monkeypatch.setattr(settings, "aws_secret_access_key", "")
    monkeypatch.setattr(settings, "aws_s3_bucket", "")
    monkeypatch.setattr(settings, "reference_remote_policy", RemotePolicy.LOCAL_ONLY)
    monkeypatch.setattr(settings, "min_free_space_mb", 0)
    return settings


@pytest.fixture
def remote_settings(upload_dirs) -> Settings:
    """Settings with S3 credentials configured."""
    primary, legacy = upload_dirs
    return Settings(
        aws_access_key_id="AKIATEST",
        aws_secret_access_key="secret",
        aws_s3_bucket="scriptrack-test",
        aws_region="eu-west-1",
        uploads_dir=primary,
        legacy_uploads_dir=legacy,
        remote_timeout_seconds=0.5,
    )


@pytest.fixture
def write_blob(upload_dirs):
    """Write bytes into an upload directory and return the locator."""

    def _write(key: str, data: bytes = b"blob content", legacy: bool = False) -> str:
        primary, legacy_dir = upload_dirs
        directory = legacy_dir if legacy else primary
        (directory / key).write_bytes(data)
        return build_locator(key)

    return _write


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine with foreign keys enforced."""
    database_url = os.getenv("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    engine = create_async_engine(
        database_url,
        echo=False,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_client(test_engine, db_session, session_maker, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with test database and auth."""
    import base64

    # Skip Alembic migrations in tests (prevents subprocess calls during test setup)
    monkeypatch.setenv("SKIP_ALEMBIC_MIGRATIONS", "1")

    import app.database
    from app.api.dependencies import verify_credentials
    from app.database import get_db
    from app.main import app as fastapi_app

    monkeypatch.setattr(app.database, "async_session_maker", session_maker)
    monkeypatch.setattr(app.database, "engine", test_engine)

    # Override database dependency
    async def override_get_db():
        yield db_session

    # Override auth dependency - always return test user
    def override_verify_credentials():
        return "test_user"

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[verify_credentials] = override_verify_credentials

    auth = base64.b64encode(b"admin:admin").decode("ascii")
    headers = {"Authorization": f"Basic {auth}"}

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as client:
        yield client

    # Clear overrides after test
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def insert_orphan(test_engine):
    """Insert a row whose parent does not exist, bypassing foreign keys."""

    async def _insert(model: type, **values: Any) -> int:
        async with test_engine.connect() as conn:
            await conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            result = await conn.execute(insert(model.__table__).values(**values))
            await conn.commit()
            await conn.exec_driver_sql("PRAGMA foreign_keys=ON")
            return result.inserted_primary_key[0]

    return _insert


# --- Factory fixtures ---


@pytest_asyncio.fixture
async def user_factory(db_session: AsyncSession):
    """Factory for creating test users."""
    counter = 0

    async def _create_user(email: str | None = None, name: str = "Test User", **kwargs: Any) -> User:
        nonlocal counter
        counter += 1
        user = User(email=email or f"user{counter}@example.com", name=name, **kwargs)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    yield _create_user


@pytest_asyncio.fixture
async def script_factory(db_session: AsyncSession, user_factory):
    """Factory for creating test scripts."""

    async def _create_script(
        title: str = "Test Script",
        submitted_by: int | None = None,
        **kwargs: Any,
    ) -> Script:
        if submitted_by is None:
            submitted_by = (await user_factory()).id
        script = Script(
            title=title,
            writers="Jane Writer",
            logline="A test logline",
            submitted_by=submitted_by,
            **kwargs,
        )
        db_session.add(script)
        await db_session.commit()
        await db_session.refresh(script)
        return script

    yield _create_script


@pytest_asyncio.fixture
async def script_file_factory(db_session: AsyncSession):
    """Factory for creating script file rows directly (no locator check)."""

    async def _create_file(
        script: Script,
        file_url: str,
        file_type: str = ScriptFileType.SCREENPLAY.value,
        version: int = 1,
        is_latest: bool = True,
        **kwargs: Any,
    ) -> ScriptFile:
        script_file = ScriptFile(
            script_id=script.id,
            file_type=file_type,
            file_name=kwargs.pop("file_name", "screenplay.pdf"),
            file_url=file_url,
            file_size=kwargs.pop("file_size", 12),
            version=version,
            is_latest=is_latest,
            uploaded_by=script.submitted_by,
            **kwargs,
        )
        db_session.add(script_file)
        await db_session.commit()
        await db_session.refresh(script_file)
        return script_file

    yield _create_file


@pytest_asyncio.fixture
async def populate_dependents(db_session: AsyncSession):
    """Create one row in every collection that depends on a script."""

    async def _populate(script: Script) -> dict[str, int]:
        user_id = script.submitted_by
        assignment = Assignment(script_id=script.id, assigned_to=user_id, assigned_by=user_id)
        meeting = Meeting(
            script_id=script.id,
            title="Table read",
            scheduled_at=datetime.now(UTC),
            scheduled_by=user_id,
        )
        db_session.add_all([assignment, meeting])
        await db_session.flush()

        db_session.add_all(
            [
                Feedback(
                    script_id=script.id,
                    assignment_id=assignment.id,
                    user_id=user_id,
                    comments="Strong second act",
                ),
                Activity(
                    script_id=script.id,
                    user_id=user_id,
                    type=ActivityType.SCRIPT_SUBMITTED.value,
                    title="Script submitted",
                ),
                ScriptFile(
                    script_id=script.id,
                    file_type=ScriptFileType.SCREENPLAY.value,
                    file_name="screenplay.pdf",
                    file_url=build_locator("screenplay.pdf"),
                    file_size=10,
                    uploaded_by=user_id,
                ),
                MeetingParticipant(meeting_id=meeting.id, user_id=user_id),
            ]
        )
        await db_session.commit()
        return {"meeting_id": meeting.id, "assignment_id": assignment.id}

    yield _populate


# --- Sample data fixtures ---


@pytest_asyncio.fixture
async def sample_user(user_factory) -> User:
    """Create a sample user for testing."""
    return await user_factory(email="reader@example.com", name="Sample Reader")


@pytest_asyncio.fixture
async def sample_script(script_factory, sample_user: User) -> Script:
    """Create a sample script for testing."""
    return await script_factory(title="Sample Script", submitted_by=sample_user.id)

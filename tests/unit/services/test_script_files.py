"""Unit tests for versioned script files."""

from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from app.models import ScriptFile, ScriptFileType
from app.services.script_files import add_script_file, list_script_files, remove_script_file
from app.services.storage import InvalidLocatorError


async def _rows(db_session, script_id):
    result = await db_session.execute(
        select(ScriptFile.file_name, ScriptFile.version, ScriptFile.is_latest)
        .where(ScriptFile.script_id == script_id)
        .order_by(ScriptFile.version)
    )
    return [tuple(row) for row in result.all()]


class TestAddScriptFile:
    """Tests for add_script_file."""

    @pytest.mark.asyncio
    async def test_first_upload_is_version_one(self, db_session, sample_script, write_blob):
        locator = write_blob("screenplay.pdf")
        script_file = await add_script_file(
            db_session,
            script_id=sample_script.id,
            file_type="SCREENPLAY",
            file_name="screenplay.pdf",
            file_url=locator,
            file_size=12,
            uploaded_by=sample_script.submitted_by,
        )

        assert script_file.version == 1
        assert script_file.is_latest is True

    @pytest.mark.asyncio
    async def test_reupload_flips_previous_latest(self, db_session, sample_script, write_blob):
        kwargs = {
            "script_id": sample_script.id,
            "file_type": ScriptFileType.SCREENPLAY.value,
            "file_size": 12,
            "uploaded_by": sample_script.submitted_by,
        }
        await add_script_file(
            db_session, file_name="screenplay.pdf", file_url=write_blob("v1.pdf"), **kwargs
        )
        second = await add_script_file(
            db_session, file_name="screenplay-v2.pdf", file_url=write_blob("v2.pdf"), **kwargs
        )

        assert second.version == 2
        assert await _rows(db_session, sample_script.id) == [
            ("screenplay.pdf", 1, False),
            ("screenplay-v2.pdf", 2, True),
        ]

    @pytest.mark.asyncio
    async def test_versions_are_per_type(self, db_session, sample_script, write_blob):
        common = {
            "script_id": sample_script.id,
            "file_size": 1,
            "uploaded_by": sample_script.submitted_by,
        }
        await add_script_file(
            db_session, file_type="SCREENPLAY", file_name="s.pdf", file_url=write_blob("s.pdf"), **common
        )
        deck = await add_script_file(
            db_session, file_type="PITCHDECK", file_name="d.pptx", file_url=write_blob("d.pptx"), **common
        )

        assert deck.version == 1
        latest = await list_script_files(db_session, sample_script.id)
        assert {f.file_type for f in latest} == {"SCREENPLAY", "PITCHDECK"}

    @pytest.mark.asyncio
    async def test_dangling_locator_rejected(self, db_session, sample_script):
        with pytest.raises(InvalidLocatorError):
            await add_script_file(
                db_session,
                script_id=sample_script.id,
                file_type="SCREENPLAY",
                file_name="ghost.pdf",
                file_url="/api/files/ghost.pdf",
                file_size=1,
                uploaded_by=sample_script.submitted_by,
            )

        count = await db_session.scalar(select(func.count()).select_from(ScriptFile))
        assert count == 0

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, db_session, sample_script, write_blob):
        with pytest.raises(ValueError):
            await add_script_file(
                db_session,
                script_id=sample_script.id,
                file_type="POSTER",
                file_name="p.pdf",
                file_url=write_blob("p.pdf"),
                file_size=1,
                uploaded_by=sample_script.submitted_by,
            )

    @pytest.mark.asyncio
    async def test_failed_insert_rolls_back_flip(self, db_session, sample_script, write_blob):
        script_id = sample_script.id
        kwargs = {
            "script_id": script_id,
            "file_type": "SCREENPLAY",
            "file_size": 1,
            "uploaded_by": sample_script.submitted_by,
        }
        await add_script_file(db_session, file_name="v1.pdf", file_url=write_blob("v1.pdf"), **kwargs)

        with patch.object(db_session, "commit", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                await add_script_file(
                    db_session, file_name="v2.pdf", file_url=write_blob("v2.pdf"), **kwargs
                )

        assert await _rows(db_session, script_id) == [("v1.pdf", 1, True)]


class TestListAndRemove:
    """Tests for list_script_files and remove_script_file."""

    @pytest.mark.asyncio
    async def test_list_all_versions(self, db_session, sample_script, script_file_factory):
        await script_file_factory(sample_script, "/api/files/a.pdf", version=1, is_latest=False)
        await script_file_factory(sample_script, "/api/files/b.pdf", version=2)

        assert len(await list_script_files(db_session, sample_script.id)) == 1
        everything = await list_script_files(db_session, sample_script.id, latest_only=False)
        assert [f.version for f in everything] == [2, 1]

    @pytest.mark.asyncio
    async def test_removing_latest_promotes_previous(
        self, db_session, sample_script, script_file_factory
    ):
        await script_file_factory(sample_script, "/api/files/a.pdf", version=1, is_latest=False)
        latest = await script_file_factory(sample_script, "/api/files/b.pdf", version=2)

        await remove_script_file(db_session, latest)

        rows = await _rows(db_session, sample_script.id)
        assert [(version, is_latest) for _name, version, is_latest in rows] == [(1, True)]

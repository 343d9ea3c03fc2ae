"""Full-scan audit for orphaned rows and dangling file references."""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

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
    UserRole,
)
from app.services.storage import build_locator
from app.services.validator import ReferenceValidator, reference_validator

logger = logging.getLogger(__name__)

# (collection name, model, foreign key column, parent model)
DEPENDENT_COLLECTIONS = [
    ("assignments", Assignment, Assignment.script_id, Script),
    ("feedback", Feedback, Feedback.script_id, Script),
    ("activities", Activity, Activity.script_id, Script),
    ("meetings", Meeting, Meeting.script_id, Script),
    ("script_files", ScriptFile, ScriptFile.script_id, Script),
    ("meeting_participants", MeetingParticipant, MeetingParticipant.meeting_id, Meeting),
]

COVER_IMAGE = "cover_image"
SCRIPT_FILE = "script_file"
USER_PHOTO = "user_photo"
FILE_KINDS = (SCRIPT_FILE, COVER_IMAGE, USER_PHOTO)


class AuditMode(str, Enum):
    CHECK = "check"
    REPAIR = "repair"


class AuditScope(str, Enum):
    ORPHANS = "orphans"
    FILES = "files"
    ALL = "all"


@dataclass
class CollectionReport:
    name: str
    total: int
    orphaned: int
    orphan_ids: list[int] = field(default_factory=list)


@dataclass
class DanglingReference:
    kind: str
    record_id: int
    url: str
    error: str | None = None
    script_id: int | None = None


@dataclass
class CascadeResult:
    passed: bool
    remaining: dict[str, int] = field(default_factory=dict)
    error: str | None = None


@dataclass
class IntegrityReport:
    """Audit results. Two reports compare equal regardless of when they were made."""

    mode: AuditMode
    scope: AuditScope
    collections: dict[str, CollectionReport] = field(default_factory=dict)
    files_checked: dict[str, int] = field(default_factory=dict)
    dangling: list[DanglingReference] = field(default_factory=list)
    repaired: dict[str, int] = field(default_factory=dict)
    cascade: CascadeResult | None = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC), compare=False)

    @property
    def orphan_count(self) -> int:
        return sum(c.orphaned for c in self.collections.values())

    @property
    def problem_count(self) -> int:
        return self.orphan_count + len(self.dangling)

    @property
    def cascade_failed(self) -> bool:
        return self.cascade is not None and not self.cascade.passed

    @property
    def is_clean(self) -> bool:
        return self.problem_count == 0 and not self.cascade_failed


@dataclass
class FileKindHealth:
    total: int = 0
    valid: int = 0
    broken: int = 0


@dataclass
class FileHealthReport:
    total_files: int
    valid_files: int
    broken_files: int
    success_rate: float
    breakdown: dict[str, FileKindHealth]
    broken: list[DanglingReference]
    recommendations: list[str]
    remote_configured: bool


class IntegrityAuditor:
    """
    Detects and optionally repairs referential problems across the store.

    Every problem is collected before anything is changed. Repairs run in
    one transaction per category; a failing repair is rolled back and
    re-raised, which stops the run. Categories repaired before the failure
    stay repaired.
    """

    def __init__(self, validator: ReferenceValidator | None = None) -> None:
        self.validator = validator or reference_validator

    async def scan_orphans(self, db: AsyncSession) -> dict[str, CollectionReport]:
        """
        Find dependent rows whose parent is missing.

        A parent that is itself orphaned does not count as present, so
        participants of an orphaned meeting are reported too.
        """
        parent_ids: dict[type, set[int]] = {}
        orphaned_by_model: dict[type, set[int]] = {}
        reports: dict[str, CollectionReport] = {}

        for name, model, fk_column, parent in DEPENDENT_COLLECTIONS:
            if parent not in parent_ids:
                ids = set((await db.scalars(select(parent.id))).all())
                parent_ids[parent] = ids - orphaned_by_model.get(parent, set())

            rows = (await db.execute(select(model.id, fk_column).order_by(model.id))).all()
            orphan_ids = [row_id for row_id, ref in rows if ref not in parent_ids[parent]]
            orphaned_by_model[model] = set(orphan_ids)
            reports[name] = CollectionReport(
                name=name,
                total=len(rows),
                orphaned=len(orphan_ids),
                orphan_ids=orphan_ids,
            )

        return reports

    async def scan_files(
        self, db: AsyncSession
    ) -> tuple[dict[str, int], list[DanglingReference]]:
        """Validate every stored locator. Returns (checked counts, dangling refs)."""
        candidates: list[tuple[str, int, str, int | None]] = []

        rows = await db.execute(
            select(ScriptFile.id, ScriptFile.file_url, ScriptFile.script_id).order_by(ScriptFile.id)
        )
        candidates.extend((SCRIPT_FILE, rid, url, sid) for rid, url, sid in rows.all())

        rows = await db.execute(
            select(Script.id, Script.cover_image_url)
            .where(Script.cover_image_url.is_not(None), Script.cover_image_url != "")
            .order_by(Script.id)
        )
        candidates.extend((COVER_IMAGE, rid, url, rid) for rid, url in rows.all())

        rows = await db.execute(
            select(User.id, User.photo_url)
            .where(User.photo_url.is_not(None), User.photo_url != "")
            .order_by(User.id)
        )
        candidates.extend((USER_PHOTO, rid, url, None) for rid, url in rows.all())

        results = await self.validator.batch_validate([c[2] for c in candidates])

        checked = {kind: 0 for kind in FILE_KINDS}
        dangling: list[DanglingReference] = []
        for (kind, record_id, url, script_id), result in zip(candidates, results, strict=True):
            checked[kind] += 1
            if not result.is_valid:
                dangling.append(
                    DanglingReference(
                        kind=kind,
                        record_id=record_id,
                        url=url,
                        error=result.error,
                        script_id=script_id,
                    )
                )

        return checked, dangling

    async def run(
        self,
        db: AsyncSession,
        mode: AuditMode = AuditMode.CHECK,
        scope: AuditScope = AuditScope.ALL,
        verify_cascade: bool = False,
    ) -> IntegrityReport:
        mode = AuditMode(mode)
        scope = AuditScope(scope)
        report = IntegrityReport(mode=mode, scope=scope)

        logger.info(f"Integrity audit started (mode={mode.value}, scope={scope.value})")

        if scope in (AuditScope.ORPHANS, AuditScope.ALL):
            report.collections = await self.scan_orphans(db)
        if scope in (AuditScope.FILES, AuditScope.ALL):
            report.files_checked, report.dangling = await self.scan_files(db)

        for collection in report.collections.values():
            if collection.orphaned:
                logger.warning(
                    f"{collection.orphaned} orphaned {collection.name} rows: {collection.orphan_ids}"
                )
        for ref in report.dangling:
            logger.warning(f"Dangling {ref.kind} reference on record {ref.record_id}: {ref.url}")

        if mode == AuditMode.REPAIR:
            report.repaired.update(await self.repair_orphans(db, report.collections))
            report.repaired.update(await self.repair_dangling(db, report.dangling))

        if verify_cascade:
            report.cascade = await self.verify_cascade(db)

        logger.info(
            f"Integrity audit finished: {report.problem_count} problems, "
            f"repaired={report.repaired or 'none'}"
        )
        return report

    async def repair_orphans(
        self, db: AsyncSession, collections: dict[str, CollectionReport]
    ) -> dict[str, int]:
        repaired: dict[str, int] = {}

        for name, model, _fk_column, _parent in DEPENDENT_COLLECTIONS:
            collection = collections.get(name)
            if collection is None or not collection.orphan_ids:
                continue

            try:
                result = await db.execute(delete(model).where(model.id.in_(collection.orphan_ids)))
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                logger.exception(f"Failed to delete orphaned {name} rows")
                raise

            repaired[name] = result.rowcount
            logger.info(f"Deleted {result.rowcount} orphaned {name} rows")

        return repaired

    async def repair_dangling(
        self, db: AsyncSession, dangling: list[DanglingReference]
    ) -> dict[str, int]:
        by_kind: dict[str, list[DanglingReference]] = {kind: [] for kind in FILE_KINDS}
        for ref in dangling:
            by_kind[ref.kind].append(ref)

        repaired: dict[str, int] = {}

        if by_kind[COVER_IMAGE]:
            ids = [ref.record_id for ref in by_kind[COVER_IMAGE]]
            repaired[COVER_IMAGE] = await self._apply(
                db,
                COVER_IMAGE,
                update(Script).where(Script.id.in_(ids)).values(cover_image_url=None),
            )

        if by_kind[USER_PHOTO]:
            ids = [ref.record_id for ref in by_kind[USER_PHOTO]]
            repaired[USER_PHOTO] = await self._apply(
                db,
                USER_PHOTO,
                update(User).where(User.id.in_(ids)).values(photo_url=None),
            )

        if by_kind[SCRIPT_FILE]:
            ids = [ref.record_id for ref in by_kind[SCRIPT_FILE]]
            repaired[SCRIPT_FILE] = await self._delete_script_files(db, ids)

        return repaired

    async def _apply(self, db: AsyncSession, category: str, statement) -> int:
        try:
            result = await db.execute(statement)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception(f"Failed to repair dangling {category} references")
            raise
        logger.info(f"Cleared {result.rowcount} dangling {category} references")
        return result.rowcount

    async def _delete_script_files(self, db: AsyncSession, ids: list[int]) -> int:
        """Delete file rows and give each affected (script, type) a latest row again."""
        try:
            pairs = (
                await db.execute(
                    select(ScriptFile.script_id, ScriptFile.file_type)
                    .where(ScriptFile.id.in_(ids))
                    .distinct()
                )
            ).all()
            result = await db.execute(delete(ScriptFile).where(ScriptFile.id.in_(ids)))

            for script_id, file_type in pairs:
                has_latest = await db.scalar(
                    select(func.count())
                    .select_from(ScriptFile)
                    .where(
                        ScriptFile.script_id == script_id,
                        ScriptFile.file_type == file_type,
                        ScriptFile.is_latest.is_(True),
                    )
                )
                if has_latest:
                    continue
                newest = await db.scalar(
                    select(func.max(ScriptFile.version)).where(
                        ScriptFile.script_id == script_id,
                        ScriptFile.file_type == file_type,
                    )
                )
                if newest is not None:
                    await db.execute(
                        update(ScriptFile)
                        .where(
                            ScriptFile.script_id == script_id,
                            ScriptFile.file_type == file_type,
                            ScriptFile.version == newest,
                        )
                        .values(is_latest=True)
                    )

            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Failed to repair dangling script_file references")
            raise

        logger.info(f"Deleted {result.rowcount} script file rows with missing blobs")
        return result.rowcount

    async def verify_cascade(self, db: AsyncSession) -> CascadeResult:
        """
        Prove the database cascade is live.

        Creates a throwaway user and script with one row in every dependent
        collection, deletes the script with a Core DELETE so the ORM plays
        no part, and counts what is left. The throwaway rows are removed
        afterwards whatever the outcome.
        """
        tag = secrets.token_hex(4)
        created: list = []
        user_id = script_id = meeting_id = None

        try:
            user = User(
                email=f"cascade-check-{tag}@scriptrack.invalid",
                name="Cascade check",
                role=UserRole.ADMIN.value,
            )
            db.add(user)
            await db.flush()
            user_id = user.id

            script = Script(title=f"Cascade check {tag}", submitted_by=user.id)
            db.add(script)
            await db.flush()
            script_id = script.id

            assignment = Assignment(script_id=script.id, assigned_to=user.id, assigned_by=user.id)
            meeting = Meeting(
                script_id=script.id,
                title="Cascade check",
                scheduled_at=datetime.now(UTC),
                scheduled_by=user.id,
            )
            db.add_all([assignment, meeting])
            await db.flush()
            meeting_id = meeting.id

            children = [
                Feedback(
                    script_id=script.id,
                    assignment_id=assignment.id,
                    user_id=user.id,
                    comments="Cascade check",
                ),
                Activity(
                    script_id=script.id,
                    user_id=user.id,
                    type=ActivityType.SCRIPT_SUBMITTED.value,
                    title="Cascade check",
                ),
                ScriptFile(
                    script_id=script.id,
                    file_type=ScriptFileType.SCREENPLAY.value,
                    file_name="cascade-check.pdf",
                    file_url=build_locator(f"cascade-check-{tag}.pdf"),
                    file_size=0,
                    uploaded_by=user.id,
                ),
                MeetingParticipant(meeting_id=meeting.id, user_id=user.id),
            ]
            db.add_all(children)
            await db.commit()
            created = [user, script, assignment, meeting, *children]

            await db.execute(delete(Script).where(Script.id == script_id))
            await db.commit()

            remaining = {}
            for name, model, fk_column, parent in DEPENDENT_COLLECTIONS:
                parent_id = script_id if parent is Script else meeting_id
                remaining[name] = await db.scalar(
                    select(func.count()).select_from(model).where(fk_column == parent_id)
                )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.exception("Cascade verification could not run")
            return CascadeResult(passed=False, error=str(e))
        finally:
            for obj in created:
                if obj in db:
                    db.expunge(obj)
            await self._remove_cascade_fixture(db, user_id, script_id, meeting_id)

        passed = not any(remaining.values())
        if passed:
            logger.info("Cascade verification passed")
        else:
            logger.error(f"Cascade verification failed, rows left behind: {remaining}")
        return CascadeResult(passed=passed, remaining=remaining)

    async def _remove_cascade_fixture(
        self,
        db: AsyncSession,
        user_id: int | None,
        script_id: int | None,
        meeting_id: int | None,
    ) -> None:
        if user_id is None:
            return

        # Explicit deletes so nothing is left even without a working cascade
        if meeting_id is not None:
            await db.execute(
                delete(MeetingParticipant).where(MeetingParticipant.meeting_id == meeting_id)
            )
        if script_id is not None:
            for _name, model, fk_column, parent in DEPENDENT_COLLECTIONS:
                if parent is Script:
                    await db.execute(delete(model).where(fk_column == script_id))
            await db.execute(delete(Script).where(Script.id == script_id))
        await db.execute(delete(User).where(User.id == user_id))
        await db.commit()

    async def file_health(self, db: AsyncSession) -> FileHealthReport:
        """Read-only summary of how many stored locators still resolve."""
        checked, dangling = await self.scan_files(db)

        breakdown = {kind: FileKindHealth(total=checked[kind]) for kind in FILE_KINDS}
        for ref in dangling:
            breakdown[ref.kind].broken += 1
        for health in breakdown.values():
            health.valid = health.total - health.broken

        total = sum(checked.values())
        broken = len(dangling)
        valid = total - broken
        success_rate = round(valid / total * 100, 2) if total else 100.0

        remote_configured = self.validator.storage.is_remote_configured()

        recommendations = []
        if broken:
            recommendations.append(
                f"Remove {broken} broken file references with POST /api/files/cleanup."
            )
        if success_rate < 90:
            recommendations.append(
                "Less than 90% of file references resolve; check that the upload "
                "directories are mounted on persistent storage."
            )
        if not remote_configured:
            recommendations.append(
                "Configure S3 storage (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, "
                "AWS_S3_BUCKET) for durable file storage."
            )

        return FileHealthReport(
            total_files=total,
            valid_files=valid,
            broken_files=broken,
            success_rate=success_rate,
            breakdown=breakdown,
            broken=dangling,
            recommendations=recommendations,
            remote_configured=remote_configured,
        )


# Global instance
integrity_auditor = IntegrityAuditor()

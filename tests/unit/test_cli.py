"""Unit tests for the scriptrack-audit command."""

import json

import pytest

from app.cli import (
    EXIT_CLEAN,
    EXIT_FAILURE,
    EXIT_PROBLEMS,
    exit_code_for,
    format_report,
    parse_args,
    run_audit,
)
from app.schemas.integrity import IntegrityReportRead
from app.services.integrity import (
    AuditMode,
    AuditScope,
    CascadeResult,
    CollectionReport,
    IntegrityReport,
)


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults(self):
        args = parse_args([])
        assert args.mode == "check"
        assert args.scope == "all"
        assert args.verify_cascade is False
        assert args.json is False

    def test_repair_with_scope(self):
        args = parse_args(["repair", "--scope", "files", "--verify-cascade", "--json"])
        assert args.mode == "repair"
        assert args.scope == "files"
        assert args.verify_cascade is True
        assert args.json is True

    def test_invalid_mode(self):
        with pytest.raises(SystemExit):
            parse_args(["fix-everything"])


class TestExitCodes:
    """Exit code selection."""

    def test_clean(self):
        assert exit_code_for(IntegrityReport(mode=AuditMode.CHECK, scope=AuditScope.ALL)) == EXIT_CLEAN

    def test_problems(self):
        report = IntegrityReport(
            mode=AuditMode.CHECK,
            scope=AuditScope.ORPHANS,
            collections={"feedback": CollectionReport("feedback", 3, 1, [7])},
        )
        assert exit_code_for(report) == EXIT_PROBLEMS

    def test_cascade_failure_wins(self):
        report = IntegrityReport(
            mode=AuditMode.CHECK,
            scope=AuditScope.ALL,
            collections={"feedback": CollectionReport("feedback", 3, 1, [7])},
            cascade=CascadeResult(passed=False, remaining={"feedback": 1}),
        )
        assert exit_code_for(report) == EXIT_FAILURE


class TestReportOutput:
    """Human readable and JSON output."""

    def test_format_report(self):
        report = IntegrityReport(
            mode=AuditMode.CHECK,
            scope=AuditScope.ORPHANS,
            collections={"meetings": CollectionReport("meetings", 4, 2, [3, 9])},
        )
        text = format_report(report)

        assert "meetings" in text
        assert "ids=[3, 9]" in text
        assert "2 problem(s) found." in text
        assert "scriptrack-audit repair" in text

    def test_format_clean_report(self):
        report = IntegrityReport(
            mode=AuditMode.CHECK,
            scope=AuditScope.ALL,
            cascade=CascadeResult(passed=True),
        )
        text = format_report(report)
        assert "Cascade verification: passed" in text
        assert "No problems found." in text

    def test_json_report(self):
        report = IntegrityReport(
            mode=AuditMode.REPAIR,
            scope=AuditScope.FILES,
            repaired={"cover_image": 2},
        )
        data = json.loads(IntegrityReportRead.model_validate(report).model_dump_json())

        assert data["mode"] == "repair"
        assert data["repaired"] == {"cover_image": 2}
        assert data["is_clean"] is True
        assert data["problem_count"] == 0


class TestRunAudit:
    """run_audit against the test database."""

    @pytest.mark.asyncio
    async def test_run_audit_check(self, session_maker, sample_script):
        report = await run_audit(parse_args(["check"]), session_maker=session_maker)

        assert report.mode == AuditMode.CHECK
        assert report.collections["script_files"].total == 0
        assert report.is_clean

    @pytest.mark.asyncio
    async def test_run_audit_repair_cover(self, session_maker, db_session, sample_script):
        sample_script.cover_image_url = "/api/files/missing.png"
        await db_session.commit()

        report = await run_audit(parse_args(["repair", "--scope", "files"]), session_maker=session_maker)

        assert report.repaired == {"cover_image": 1}
        assert exit_code_for(report) == EXIT_PROBLEMS

"""Command line entry point for the integrity audit."""

import argparse
import asyncio
import logging
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import async_session_maker, close_db
from app.logging_config import setup_logging
from app.schemas.integrity import IntegrityReportRead
from app.services.integrity import AuditMode, AuditScope, IntegrityAuditor, IntegrityReport

logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_PROBLEMS = 1
EXIT_FAILURE = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments for the audit."""
    parser = argparse.ArgumentParser(
        prog="scriptrack-audit",
        description="Find orphaned records and broken file references in ScripTrack.",
    )
    parser.add_argument(
        "mode",
        nargs="?",
        choices=[m.value for m in AuditMode],
        default=AuditMode.CHECK.value,
        help="check only reports problems; repair also fixes them (default: check)",
    )
    parser.add_argument(
        "--scope",
        choices=[s.value for s in AuditScope],
        default=AuditScope.ALL.value,
        help="which problems to look for (default: all)",
    )
    parser.add_argument(
        "--verify-cascade",
        action="store_true",
        help="create and delete a throwaway script to prove cascade deletes work",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="print the report as JSON",
    )
    return parser.parse_args(argv)


def exit_code_for(report: IntegrityReport) -> int:
    if report.cascade_failed:
        return EXIT_FAILURE
    if report.problem_count:
        return EXIT_PROBLEMS
    return EXIT_CLEAN


def format_report(report: IntegrityReport) -> str:
    """Human readable report."""
    lines = [
        f"Integrity audit ({report.mode.value}, scope={report.scope.value})",
        f"Generated at {report.generated_at.isoformat()}",
        "",
    ]

    if report.collections:
        lines.append("Orphaned records:")
        for collection in report.collections.values():
            line = f"  {collection.name:<22} {collection.total:>6} total  {collection.orphaned:>4} orphaned"
            if collection.orphan_ids:
                line += f"  ids={collection.orphan_ids}"
            lines.append(line)
        lines.append("")

    if report.files_checked:
        checked = ", ".join(f"{kind}={count}" for kind, count in report.files_checked.items())
        lines.append(f"File references checked: {checked}")
        if report.dangling:
            lines.append("Broken file references:")
            for ref in report.dangling:
                lines.append(f"  {ref.kind} #{ref.record_id}: {ref.url} ({ref.error})")
        lines.append("")

    if report.repaired:
        lines.append("Repaired:")
        for category, count in report.repaired.items():
            lines.append(f"  {category}: {count}")
        lines.append("")

    if report.cascade is not None:
        if report.cascade.passed:
            lines.append("Cascade verification: passed")
        elif report.cascade.error:
            lines.append(f"Cascade verification: could not run ({report.cascade.error})")
        else:
            lines.append(f"Cascade verification: FAILED, rows left behind: {report.cascade.remaining}")
        lines.append("")

    if report.is_clean:
        lines.append("No problems found.")
    else:
        lines.append(f"{report.problem_count} problem(s) found.")
        if report.mode == AuditMode.CHECK and report.problem_count:
            lines.append("Run 'scriptrack-audit repair' to fix them.")

    return "\n".join(lines)


async def run_audit(
    args: argparse.Namespace,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    auditor: IntegrityAuditor | None = None,
) -> IntegrityReport:
    session_maker = session_maker or async_session_maker
    auditor = auditor or IntegrityAuditor()

    async with session_maker() as db:
        return await auditor.run(
            db,
            mode=AuditMode(args.mode),
            scope=AuditScope(args.scope),
            verify_cascade=args.verify_cascade,
        )


async def _main(args: argparse.Namespace) -> IntegrityReport:
    try:
        return await run_audit(args)
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    """Run the audit and return the process exit code."""
    args = parse_args(argv)
    setup_logging(log_file="audit.log")

    try:
        report = asyncio.run(_main(args))
    except Exception as e:
        logger.exception(f"Integrity audit failed: {e}")
        return EXIT_FAILURE

    if args.json:
        print(IntegrityReportRead.model_validate(report).model_dump_json(indent=2))
    else:
        print(format_report(report))

    return exit_code_for(report)


if __name__ == "__main__":
    sys.exit(main())

"""API routes for the integrity audit."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.integrity import IntegrityReportRead
from app.services.integrity import AuditMode, AuditScope, integrity_auditor

router = APIRouter()


@router.get("/report", response_model=IntegrityReportRead)
async def integrity_report(
    scope: AuditScope = AuditScope.ALL,
    db: AsyncSession = Depends(get_db),
):
    """Run a read-only audit. Repairs are done with the scriptrack-audit CLI."""
    report = await integrity_auditor.run(db, mode=AuditMode.CHECK, scope=scope)
    return IntegrityReportRead.model_validate(report)

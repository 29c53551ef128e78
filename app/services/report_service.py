"""Service layer for AnalysisReport persistence."""
import json
from typing import Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.analysis_report import AnalysisReport
from app.services.job_store import Job


class ReportService:
    @staticmethod
    async def save_job_outcome(db: AsyncSession, job: Job) -> AnalysisReport:
        """Insert or update the report row for a job in a terminal state."""
        report = await ReportService.get_report_by_id(db, job.id)
        if report is None:
            report = AnalysisReport(id=job.id)

        result = job.result
        setattr(report, "status", job.status.value)
        setattr(report, "framework", job.framework.framework)
        setattr(report, "file_count", job.file_count)
        setattr(report, "endpoints_found", result.metrics.endpoints_found if result else 0)
        setattr(report, "vulnerabilities_found", result.metrics.vulnerabilities_found if result else 0)
        setattr(report, "error", job.error)
        if result is not None:
            # Ensure a JSON-serializable structure (pydantic models, enums, datetimes)
            setattr(report, "report_json", json.dumps(jsonable_encoder(result), ensure_ascii=False))

        db.add(report)
        try:
            await db.commit()
            await db.refresh(report)
        except Exception:
            await db.rollback()
            raise
        return report

    @staticmethod
    async def get_report_by_id(db: AsyncSession, report_id: str) -> Optional[AnalysisReport]:
        stmt = await db.execute(select(AnalysisReport).where(AnalysisReport.id == report_id))
        return stmt.scalars().first()

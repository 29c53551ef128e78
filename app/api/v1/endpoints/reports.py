"""Persisted analysis report endpoints"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.report import AnalysisReportResponse
from app.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/{job_id}", response_model=AnalysisReportResponse)
async def get_report(job_id: str, db: AsyncSession = Depends(get_db)) -> AnalysisReportResponse:
    """
    Fetch the stored outcome of a finished job.
    Available after the in-memory job has expired. Returns 404 until the job reaches a terminal state.
    """
    report = await ReportService.get_report_by_id(db, job_id)
    if not report:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return AnalysisReportResponse.model_validate(report)

"""Pydantic schemas for request/response"""
from app.schemas.analysis import AnalysisMetrics, AnalysisResult, AnalyzeRequest, AnalyzeResponse
from app.schemas.job import CancelResponse, JobEvent, JobProgress, JobSnapshot, JobStatus, LogEntry
from app.schemas.report import AnalysisReportResponse

__all__ = [
    "AnalysisMetrics",
    "AnalysisResult",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "CancelResponse",
    "JobEvent",
    "JobProgress",
    "JobSnapshot",
    "JobStatus",
    "LogEntry",
    "AnalysisReportResponse",
]

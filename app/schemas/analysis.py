"""Pydantic schemas for analysis requests and results"""
from typing import List, Optional

from pydantic import BaseModel, Field

from app.agents.schemas import (
    EndpointProfile,
    FileEntry,
    FrameworkDetectionResult,
    SecurityChecklist,
    SecurityReport,
)


class AnalyzeRequest(BaseModel):
    files: List[FileEntry] = Field(default_factory=list)
    framework: Optional[FrameworkDetectionResult] = None


class AnalyzeResponse(BaseModel):
    success: bool = True
    job_id: str


class AnalysisMetrics(BaseModel):
    files_analyzed: int = 0
    endpoints_found: int = 0
    checklists_generated: int = 0
    reports_generated: int = 0
    total_controls: int = 0
    missing_controls: int = 0
    vulnerabilities_found: int = 0
    analysis_time_ms: int = 0


class AnalysisResult(BaseModel):
    summary: str
    endpoint_profiles: List[EndpointProfile] = Field(default_factory=list)
    checklists: List[SecurityChecklist] = Field(default_factory=list)
    security_reports: List[SecurityReport] = Field(default_factory=list)
    metrics: AnalysisMetrics = Field(default_factory=AnalysisMetrics)

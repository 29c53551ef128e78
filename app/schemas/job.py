"""Pydantic schemas for analysis jobs and their event stream"""
from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from app.agents.schemas import FrameworkDetectionResult
from app.schemas.analysis import AnalysisResult


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

LogLevel = Literal["info", "warn", "error", "success"]
EventType = Literal["log", "progress", "status", "result", "error"]


class LogEntry(BaseModel):
    timestamp: datetime
    level: LogLevel
    message: str


class JobProgress(BaseModel):
    current: int = 0
    total: int = 100
    stage: str = "Queued"


class JobEvent(BaseModel):
    """One notification pushed to stream subscribers.

    ``data`` is the status string, a LogEntry, a JobProgress, the
    AnalysisResult or the error message, depending on ``type``.
    """
    type: EventType
    timestamp: datetime
    data: Any = None


class JobSnapshot(BaseModel):
    id: str
    status: JobStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    framework: FrameworkDetectionResult
    file_count: int
    logs: List[LogEntry] = Field(default_factory=list)
    progress: JobProgress
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None


class CancelResponse(BaseModel):
    success: bool
    status: JobStatus

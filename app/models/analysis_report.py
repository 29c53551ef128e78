"""AnalysisReport SQLAlchemy model"""
from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func

from app.core.database import Base


class AnalysisReport(Base):
    """Persistent record of a finished analysis job.

    The primary key is the job id, so a report can be fetched after the
    in-memory job has been cleaned up.
    """

    __tablename__ = "analysis_reports"

    id = Column(String(64), primary_key=True, nullable=False)
    status = Column(String(32), nullable=False, index=True)
    framework = Column(String(128), nullable=False, default="unknown")
    file_count = Column(Integer, nullable=False, default=0)
    endpoints_found = Column(Integer, nullable=False, default=0)
    vulnerabilities_found = Column(Integer, nullable=False, default=0)
    report_json = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

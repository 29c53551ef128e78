"""SQLAlchemy models"""
from app.models.analysis_report import AnalysisReport

__all__ = ["AnalysisReport"]

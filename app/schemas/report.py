"""Pydantic schema for persisted analysis reports"""
from datetime import datetime
import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AnalysisReportResponse(BaseModel):
    id: str
    status: str
    framework: str
    file_count: int
    endpoints_found: int
    vulnerabilities_found: int
    report: Optional[Any] = Field(default=None, validation_alias="report_json")
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    # Pydantic v2 configuration for ORM conversion from SQLAlchemy objects
    model_config = ConfigDict(from_attributes=True)

    @field_validator("report", mode="before")
    @classmethod
    def decode_report(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v

"""Shared service dependencies for FastAPI routes"""
from functools import lru_cache

from app.core.config import settings
from app.core.llm_client import LLMClient
from app.services.job_store import JobStore


@lru_cache
def get_job_store() -> JobStore:
    """
    Dependency returning the process-wide job store.

    Jobs are held in memory, so every request must see the same instance.
    """
    return JobStore()


@lru_cache
def get_llm_client() -> LLMClient:
    """
    Dependency returning the shared model gateway.
    Backend clients are created lazily and reused across jobs.
    """
    return LLMClient(settings)

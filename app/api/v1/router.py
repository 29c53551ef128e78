"""API v1 router combining all endpoints"""
from fastapi import APIRouter

from app.api.v1.endpoints import analyze, reports

router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
router.include_router(analyze.router)
router.include_router(reports.router)

__all__ = ["router"]

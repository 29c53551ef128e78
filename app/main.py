"""FastAPI application main entry point"""
import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from loguru import logger

from app.core.config import settings
from app.core.database import create_tables
from app.core.logging import LoggingMiddleware, setup_logging
from app.api.v1.router import router as v1_router
from app.dependencies.services import get_job_store


async def _cleanup_jobs_periodically(interval: float, max_age: float) -> None:
    """Reap finished, unwatched jobs older than ``max_age`` every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        try:
            get_job_store().cleanup_old_jobs(max_age)
        except Exception:
            logger.opt(exception=True).error("Job cleanup failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup and shutdown events.

    Args:
        app: FastAPI application instance
    """
    # Startup
    setup_logging()
    logger.info("Creating database tables...")
    await create_tables()
    cleanup_task = asyncio.create_task(
        _cleanup_jobs_periodically(settings.JOB_CLEANUP_INTERVAL_SECONDS, settings.JOB_TTL_SECONDS)
    )
    yield
    # Shutdown
    logger.info("Application shutting down...")
    cleanup_task.cancel()
    with suppress(asyncio.CancelledError):
        await cleanup_task


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-agent security posture analysis for API codebases",
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)

# Include routers
app.include_router(v1_router)


@app.get("/", tags=["health"])
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Status and service information
    """
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )

"""Analysis job endpoints

POST /analyze - accepts an ingested file set and schedules a background analysis.
GET /analyze/{job_id} - current job snapshot.
GET /analyze/{job_id}/stream - server-sent events: replayed state, then live updates.
POST /analyze/{job_id}/cancel - request cancellation of a pending or running job.
"""
import json
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.agents.schemas import FileEntry, FrameworkDetectionResult
from app.core.config import settings
from app.core.database import get_session_factory
from app.core.llm_client import LLMClient
from app.dependencies.services import get_job_store, get_llm_client
from app.schemas.analysis import AnalyzeRequest, AnalyzeResponse
from app.schemas.job import CancelResponse, JobSnapshot
from app.services.analysis_runner import AnalysisRunner
from app.services.job_store import JobStore
from app.services.report_service import ReportService

router = APIRouter(prefix="/analyze", tags=["analyze"])


async def _bg_run_analysis(
    job_id: str,
    files: List[FileEntry],
    framework: Optional[FrameworkDetectionResult],
    store: JobStore,
    llm: LLMClient,
    session_factory: async_sessionmaker,
) -> None:
    """Background wrapper that runs the pipeline and persists the outcome.

    The background task will:
    - run the three agents through AnalysisRunner (job state lives in the store)
    - store the terminal outcome as an AnalysisReport row using its own session
    """
    logger.info(f"[analyze] background start: job={job_id} files={len(files)}")
    runner = AnalysisRunner(store, llm, settings)
    try:
        await runner.run(job_id, files, framework)
    finally:
        job = store.get_job(job_id)
        if job is not None and job.status.is_terminal:
            try:
                async with session_factory() as db:
                    await ReportService.save_job_outcome(db, job)
            except Exception:
                logger.opt(exception=True).error(f"[analyze] failed to persist report for job {job_id}")
        logger.info(f"[analyze] background finished: job={job_id}")


def _check_upload_size(files: List[FileEntry]) -> None:
    total = 0
    for entry in files:
        size = len(entry.content.encode("utf-8"))
        if size > settings.MAX_FILE_BYTES:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File exceeds {settings.MAX_FILE_BYTES} bytes: {entry.path}",
            )
        total += size
    if total > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds {settings.MAX_UPLOAD_BYTES} bytes",
        )


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=AnalyzeResponse)
async def start_analysis(
    body: AnalyzeRequest,
    background_tasks: BackgroundTasks,
    store: JobStore = Depends(get_job_store),
    llm: LLMClient = Depends(get_llm_client),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AnalyzeResponse:
    """Create a job for the uploaded files and start the analysis in the background.

    Body example: {"files": [{"path": "src/app.ts", "content": "...", "size": 120}]}
    """
    if not body.files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")
    _check_upload_size(body.files)

    job = store.create_job(len(body.files), body.framework)
    store.add_log(job.id, "info", f"📥 Received {len(body.files)} files for analysis")

    background_tasks.add_task(
        _bg_run_analysis,
        job.id,
        list(body.files),
        body.framework,
        store,
        llm,
        session_factory,
    )
    return AnalyzeResponse(success=True, job_id=job.id)


@router.get("/{job_id}", response_model=JobSnapshot)
async def get_job_status(job_id: str, store: JobStore = Depends(get_job_store)) -> JobSnapshot:
    snapshot = store.snapshot(job_id)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return snapshot


@router.get("/{job_id}/stream")
async def stream_job(job_id: str, store: JobStore = Depends(get_job_store)) -> StreamingResponse:
    """Stream job events as SSE. Closes after a terminal status; idle periods send comment heartbeats."""
    if store.get_job(job_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    async def event_generator():
        async for event in store.iter_events(job_id, settings.STREAM_HEARTBEAT_SECONDS):
            if event is None:
                yield ": heartbeat\n\n"
                continue
            yield f"data: {json.dumps(jsonable_encoder(event), ensure_ascii=False)}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/{job_id}/cancel", response_model=CancelResponse)
async def cancel_job(job_id: str, store: JobStore = Depends(get_job_store)) -> CancelResponse:
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if not store.cancel_job(job_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Job cannot be cancelled (status: {job.status.value})",
        )
    return CancelResponse(success=True, status=job.status)

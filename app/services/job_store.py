"""In-memory registry of analysis jobs with pub/sub event fan-out.

Jobs live only in process memory. Every mutation is synchronous and pushes a
``JobEvent`` to the job's subscribers, so a streaming client sees logs,
progress and status changes as they happen. A subscriber that raises is
logged and skipped; it never affects the job or other subscribers.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional

from loguru import logger

from app.agents.schemas import FrameworkDetectionResult
from app.core.security import generate_job_id
from app.schemas.analysis import AnalysisResult
from app.schemas.job import (
    TERMINAL_STATUSES,
    JobEvent,
    JobProgress,
    JobSnapshot,
    JobStatus,
    LogEntry,
)

Subscriber = Callable[[JobEvent], None]

_ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
}


class JobNotFoundError(KeyError):
    """Raised when a job id is not (or no longer) in the store."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    id: str
    created_at: datetime
    framework: FrameworkDetectionResult
    file_count: int
    status: JobStatus = JobStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    logs: List[LogEntry] = field(default_factory=list)
    progress: JobProgress = field(default_factory=JobProgress)
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    subscribers: List[Subscriber] = field(default_factory=list)
    abort_event: asyncio.Event = field(default_factory=asyncio.Event)


class JobStore:
    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = generate_job_id,
    ):
        self._jobs: Dict[str, Job] = {}
        self._clock = clock
        self._id_factory = id_factory

    def __len__(self) -> int:
        return len(self._jobs)

    # --- registry ------------------------------------------------------------

    def create_job(self, file_count: int, framework: Optional[FrameworkDetectionResult] = None) -> Job:
        job_id = self._id_factory()
        while job_id in self._jobs:
            job_id = self._id_factory()
        job = Job(
            id=job_id,
            created_at=self._clock(),
            framework=framework or FrameworkDetectionResult(),
            file_count=file_count,
        )
        self._jobs[job_id] = job
        logger.info(f"Job created id={job_id} files={file_count}")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def require_job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def delete_job(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    def snapshot(self, job_id: str) -> Optional[JobSnapshot]:
        """Serializable view of a job (subscribers and abort handle excluded)."""
        job = self._jobs.get(job_id)
        if job is None:
            return None
        return JobSnapshot(
            id=job.id,
            status=job.status,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            framework=job.framework,
            file_count=job.file_count,
            logs=list(job.logs),
            progress=job.progress.model_copy(),
            result=job.result,
            error=job.error,
        )

    # --- pub/sub -------------------------------------------------------------

    def subscribe(self, job_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for the job's events; returns an unsubscribe function."""
        job = self.require_job(job_id)
        job.subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in job.subscribers:
                job.subscribers.remove(callback)

        return unsubscribe

    def _emit(self, job: Job, event_type: str, data) -> None:
        event = JobEvent(type=event_type, timestamp=self._clock(), data=data)
        for callback in list(job.subscribers):
            try:
                callback(event)
            except Exception:
                logger.opt(exception=True).warning(f"Subscriber failed for job {job.id} on {event_type} event")

    # --- mutations -----------------------------------------------------------

    def add_log(self, job_id: str, level: str, message: str) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        entry = LogEntry(timestamp=self._clock(), level=level, message=message)
        job.logs.append(entry)
        self._emit(job, "log", entry)

    def update_progress(self, job_id: str, current: int, stage: str, total: int = 100) -> None:
        """Set progress; values are clamped to [previous, total] so progress never goes back."""
        job = self._jobs.get(job_id)
        if job is None or job.status in TERMINAL_STATUSES:
            return
        current = max(job.progress.current, min(int(current), total))
        if current == job.progress.current and stage == job.progress.stage and total == job.progress.total:
            return
        job.progress = JobProgress(current=current, total=total, stage=stage)
        self._emit(job, "progress", job.progress.model_copy())

    def update_status(self, job_id: str, status: JobStatus) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            return False
        status = JobStatus(status)
        if status not in _ALLOWED_TRANSITIONS.get(job.status, set()):
            logger.debug(f"Ignoring status change {job.status.value} -> {status.value} for job {job_id}")
            return False

        job.status = status
        now = self._clock()
        if status == JobStatus.RUNNING:
            job.started_at = now
        if status in TERMINAL_STATUSES:
            job.completed_at = now
        self._emit(job, "status", status.value)
        return True

    def set_result(self, job_id: str, result: AnalysisResult) -> bool:
        """Attach the final result. Only once, never alongside an error, never after cancel."""
        job = self._jobs.get(job_id)
        if job is None or job.result is not None or job.error is not None:
            return False
        if job.status in TERMINAL_STATUSES:
            return False
        job.result = result
        self._emit(job, "result", result)
        return True

    def set_error(self, job_id: str, message: str) -> bool:
        """Record a fatal error and move the job to failed."""
        job = self._jobs.get(job_id)
        if job is None or job.result is not None or job.error is not None:
            return False
        if job.status in TERMINAL_STATUSES:
            return False
        job.error = message
        self._emit(job, "error", message)
        self.update_status(job_id, JobStatus.FAILED)
        return True

    def cancel_job(self, job_id: str) -> bool:
        """Request cancellation. False (and no events) unless pending or running."""
        job = self._jobs.get(job_id)
        if job is None or job.status in TERMINAL_STATUSES:
            return False
        job.abort_event.set()
        # log first: streams close on the terminal status event
        self.add_log(job_id, "warn", "🛑 Analysis cancelled by user")
        self.update_status(job_id, JobStatus.CANCELLED)
        return True

    def is_cancelled(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        return job is not None and (job.status == JobStatus.CANCELLED or job.abort_event.is_set())

    def cleanup_old_jobs(self, max_age_seconds: float = 30 * 60) -> int:
        """Drop idle jobs older than ``max_age_seconds``; running or watched jobs stay."""
        now = self._clock()
        stale = [
            job.id
            for job in self._jobs.values()
            if job.status != JobStatus.RUNNING
            and not job.subscribers
            and (now - job.created_at).total_seconds() > max_age_seconds
        ]
        for job_id in stale:
            del self._jobs[job_id]
        if stale:
            logger.info(f"Cleaned up {len(stale)} old job(s)")
        return len(stale)

    # --- streaming -----------------------------------------------------------

    def replay_events(self, job: Job) -> List[JobEvent]:
        now = self._clock()
        events = [JobEvent(type="status", timestamp=now, data=job.status.value)]
        events.extend(JobEvent(type="log", timestamp=entry.timestamp, data=entry) for entry in job.logs)
        events.append(JobEvent(type="progress", timestamp=now, data=job.progress.model_copy()))
        if job.result is not None:
            events.append(JobEvent(type="result", timestamp=now, data=job.result))
        if job.error is not None:
            events.append(JobEvent(type="error", timestamp=now, data=job.error))
        return events

    async def iter_events(
        self, job_id: str, heartbeat_interval: Optional[float] = None
    ) -> AsyncIterator[Optional[JobEvent]]:
        """Replay the job's state, then yield live events until a terminal status.

        The subscription is registered before the replay is built, without
        awaiting in between, so nothing is missed and nothing is sent twice.
        Yields None when ``heartbeat_interval`` passes without an event.
        """
        job = self.require_job(job_id)
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribe = self.subscribe(job_id, queue.put_nowait)
        try:
            replay = self.replay_events(job)
            finished = job.status in TERMINAL_STATUSES
            for event in replay:
                yield event
            if finished:
                return

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
                except asyncio.TimeoutError:
                    yield None
                    continue
                yield event
                if event.type == "status" and JobStatus(event.data) in TERMINAL_STATUSES:
                    return
        finally:
            unsubscribe()

"""Job orchestrator: Discovery -> Checklist -> Inspection for one job.

Progress is reported on a 0-100 scale split into fixed stage ranges. Agents
report structured unit callbacks which are mapped into their stage's range;
the job store keeps the value monotonic.
"""
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from loguru import logger

from app.agents.base import ProgressListener
from app.agents.checklist_agent import ChecklistAgent
from app.agents.conversation import ChatClient
from app.agents.discovery_agent import DiscoveryAgent
from app.agents.inspection_agent import InspectionAgent
from app.agents.schemas import (
    EndpointProfile,
    FileEntry,
    FrameworkDetectionResult,
    InspectionInput,
    SecurityChecklist,
    SecurityReport,
)
from app.agents.tools.file_scanner import generate_project_tree
from app.core.cancellation import AnalysisCancelled, raise_if_aborted
from app.core.config import Settings, settings as default_settings
from app.schemas.analysis import AnalysisMetrics, AnalysisResult
from app.schemas.job import JobStatus
from app.services.job_store import JobStore

T = TypeVar("T")

STAGE_RANGES: Dict[str, Tuple[int, int]] = {
    "init": (0, 5),
    "discovery": (5, 35),
    "checklist": (35, 65),
    "inspection": (65, 95),
    "finalize": (95, 100),
}

# share of the discovery range still unclaimed after each trace (total unknown)
_OPEN_ENDED_DECAY = 0.75


class StageProgress(ProgressListener):
    """Maps an agent's unit callbacks onto one stage's slice of 0-100."""

    def __init__(self, store: JobStore, job_id: str, stage: str, label: str):
        self.store = store
        self.job_id = job_id
        self.label = label
        self.start, self.end = STAGE_RANGES[stage]

    def _fraction(self, done: int, total: Optional[int]) -> float:
        if total:
            return min(done / total, 1.0)
        return 1.0 - _OPEN_ENDED_DECAY ** done

    def _report(self, fraction: float, stage: str) -> None:
        value = self.start + int((self.end - self.start) * fraction)
        self.store.update_progress(self.job_id, value, stage)

    def on_unit_started(self, index: int, total: Optional[int]) -> None:
        suffix = f" ({index}/{total})" if total else f" (#{index})"
        self._report(self._fraction(index - 1, total), f"{self.label}{suffix}")

    def on_unit_completed(self, index: int, total: Optional[int]) -> None:
        suffix = f" ({index}/{total})" if total else f" (#{index})"
        self._report(self._fraction(index, total), f"{self.label}{suffix}")


class AnalysisRunner:
    def __init__(self, store: JobStore, llm: ChatClient, settings: Settings = default_settings):
        self.store = store
        self.llm = llm
        self.settings = settings

    def _log(self, job_id: str, level: str, message: str) -> None:
        self.store.add_log(job_id, level, message)

    async def _run_stage(
        self,
        job_id: str,
        stage: str,
        label: str,
        has_input: bool,
        work: Callable[[StageProgress], Awaitable[List[T]]],
    ) -> List[T]:
        start, end = STAGE_RANGES[stage]
        if not has_input:
            self._log(job_id, "info", f"⏭️ {label} skipped: nothing to process")
            self.store.update_progress(job_id, end, f"{label} skipped")
            return []

        self.store.update_progress(job_id, start, label)
        try:
            results = await work(StageProgress(self.store, job_id, stage, label))
        except AnalysisCancelled:
            raise
        except Exception as e:
            logger.opt(exception=True).error(f"{label} failed for job {job_id}")
            self._log(job_id, "error", f"❌ {label} failed: {e}")
            results = []
        self.store.update_progress(job_id, end, f"{label} complete")
        return results

    def _agent_kwargs(self, job_id: str, abort_event, progress: ProgressListener) -> dict:
        return {
            "settings": self.settings,
            "abort_event": abort_event,
            "on_log": lambda level, message: self._log(job_id, level, message),
            "progress": progress,
        }

    async def run(
        self,
        job_id: str,
        files: List[FileEntry],
        framework: Optional[FrameworkDetectionResult] = None,
    ) -> Optional[AnalysisResult]:
        """Run the whole pipeline for ``job_id``.

        Returns the result on success and None when the job failed or was
        cancelled. Never raises for analysis errors; they end up on the job.
        """
        job = self.store.require_job(job_id)
        framework = framework or job.framework
        abort_event = job.abort_event
        started = time.monotonic()

        if not self.store.update_status(job_id, JobStatus.RUNNING):
            logger.info(f"Job {job_id} not started (status={job.status.value})")
            return None

        try:
            self._log(job_id, "info", "🚀 Starting security analysis...")
            self.store.update_progress(job_id, STAGE_RANGES["init"][0], "Initializing analysis")
            self._log(job_id, "info", f"📦 Detected framework: {framework.framework} ({framework.confidence.value} confidence)")
            self._log(job_id, "info", f"📊 Files to analyze: {len(files)}")
            raise_if_aborted(abort_event)
            project_tree = generate_project_tree(files, self.settings.PROJECT_TREE_DEPTH)
            self.store.update_progress(job_id, STAGE_RANGES["init"][1], "Initialized")

            async def discover(progress: StageProgress) -> List[EndpointProfile]:
                agent = DiscoveryAgent(self.llm, **self._agent_kwargs(job_id, abort_event, progress))
                return await agent.analyze(files)

            endpoints = await self._run_stage(job_id, "discovery", "Discovering endpoints", bool(files), discover)

            async def build_checklists(progress: StageProgress) -> List[SecurityChecklist]:
                agent = ChecklistAgent(self.llm, **self._agent_kwargs(job_id, abort_event, progress))
                flows = [e.to_flow_profile() for e in endpoints]
                return await agent.analyze_flows(flows, framework, project_tree)

            checklists = await self._run_stage(
                job_id, "checklist", "Generating security checklists", bool(endpoints), build_checklists
            )

            by_flow = {c.flow_name: c for c in checklists}
            items = [
                InspectionInput(endpoint=e, checklist=by_flow[e.flow_name])
                for e in endpoints
                if e.flow_name in by_flow
            ]

            async def inspect(progress: StageProgress) -> List[SecurityReport]:
                agent = InspectionAgent(self.llm, **self._agent_kwargs(job_id, abort_event, progress))
                return await agent.inspect_flows(items)

            reports = await self._run_stage(job_id, "inspection", "Inspecting code", bool(items), inspect)

            raise_if_aborted(abort_event)
            self.store.update_progress(job_id, STAGE_RANGES["finalize"][0], "Generating report")
            self._log(job_id, "info", "📝 Generating analysis report...")
            elapsed_ms = int((time.monotonic() - started) * 1000)
            result = build_result(files, framework, endpoints, checklists, reports, elapsed_ms)

            self.store.set_result(job_id, result)
            self.store.update_progress(job_id, STAGE_RANGES["finalize"][1], "Complete")
            self._log(job_id, "success", f"✅ Analysis completed in {elapsed_ms / 1000:.1f}s")
            self.store.update_status(job_id, JobStatus.COMPLETED)
            return result

        except AnalysisCancelled:
            logger.info(f"Job {job_id} cancelled")
            if not job.status.is_terminal:
                self.store.update_status(job_id, JobStatus.CANCELLED)
            return None
        except Exception as e:
            logger.opt(exception=True).error(f"Job {job_id} failed")
            self._log(job_id, "error", f"❌ Analysis failed: {e}")
            self.store.set_error(job_id, str(e) or type(e).__name__)
            return None


def build_result(
    files: List[FileEntry],
    framework: FrameworkDetectionResult,
    endpoints: List[EndpointProfile],
    checklists: List[SecurityChecklist],
    reports: List[SecurityReport],
    elapsed_ms: int,
) -> AnalysisResult:
    metrics = AnalysisMetrics(
        files_analyzed=len(files),
        endpoints_found=len(endpoints),
        checklists_generated=len(checklists),
        reports_generated=len(reports),
        total_controls=sum(len(c.all_controls()) for c in checklists),
        missing_controls=sum(r.summary.missing_count for r in reports),
        vulnerabilities_found=sum(r.summary.vulnerabilities_count for r in reports),
        analysis_time_ms=elapsed_ms,
    )
    summary = (
        f"Analyzed {metrics.files_analyzed} files ({framework.framework}): "
        f"{metrics.endpoints_found} endpoints, {metrics.checklists_generated} checklists, "
        f"{metrics.reports_generated} reports, {metrics.missing_controls} missing controls, "
        f"{metrics.vulnerabilities_found} vulnerabilities."
    )
    return AnalysisResult(
        summary=summary,
        endpoint_profiles=endpoints,
        checklists=checklists,
        security_reports=reports,
        metrics=metrics,
    )

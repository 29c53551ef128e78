"""Inspection Agent: checks each flow's code against its checklist."""
from typing import List, Optional

from pydantic import TypeAdapter

from app.agents.base import BaseAgent
from app.agents.conversation import Conversation, TurnDecision
from app.agents.prompts import INSPECTION_SYSTEM_PROMPT, build_inspection_prompt
from app.agents.schemas import (
    SEVERITY_RANK,
    AgentErrorResponse,
    InspectionInput,
    InspectionResponse,
    SecurityReport,
    SecurityReportSummary,
)
from app.core.cancellation import AnalysisCancelled

inspection_adapter: TypeAdapter = TypeAdapter(InspectionResponse)


def derive_overall_severity(report: SecurityReport) -> str:
    """Highest severity among missing controls and vulnerabilities, or 'none'."""
    severities = [m.severity.value for m in report.missing] + [v.severity.value for v in report.vulnerabilities]
    if not severities:
        return "none"
    return max(severities, key=lambda s: SEVERITY_RANK[s])


def recompute_summary(report: SecurityReport) -> SecurityReportSummary:
    implemented = len(report.implemented)
    missing = len(report.missing)
    auto_handled = len(report.auto_handled)
    return SecurityReportSummary(
        total_controls=implemented + missing + auto_handled,
        implemented_count=implemented,
        missing_count=missing,
        auto_handled_count=auto_handled,
        vulnerabilities_count=len(report.vulnerabilities),
        overall_severity=report.summary.overall_severity or derive_overall_severity(report),
    )


class InspectionAgent(BaseAgent):
    name = "inspection"
    title = "Inspection Agent"

    def __init__(self, llm, **kwargs):
        super().__init__(llm, **kwargs)
        self.max_retries = self.settings.INSPECTION_MAX_RETRIES

    async def inspect_flows(self, items: List[InspectionInput]) -> List[SecurityReport]:
        reports: List[SecurityReport] = []
        self.transcripts = []
        total = len(items)

        self.log("info", f"🔎 {self.title} starting inspection...")
        self.log("info", f"📋 Flows to inspect: {total}")
        try:
            for index, item in enumerate(items, start=1):
                self.check_cancellation()
                self.progress.on_unit_started(index, total)
                self.log("info", f"🔍 [{index}/{total}] Inspecting: {item.endpoint.flow_name}")

                try:
                    report = await self.inspect_flow(item)
                except AnalysisCancelled:
                    raise
                except Exception as e:
                    self.log("error", f"   ❌ Failed to inspect flow: {e}")
                    report = None

                if report is not None:
                    reports.append(report)
                    s = report.summary
                    self.log(
                        "success",
                        f"   ✅ {s.implemented_count} implemented, {s.missing_count} missing, "
                        f"{s.auto_handled_count} auto-handled, {s.vulnerabilities_count} vulnerabilities "
                        f"(severity: {s.overall_severity})",
                    )
                self.progress.on_unit_completed(index, total)

            self.log("success", f"✅ {self.title} complete. Generated {len(reports)}/{total} reports.")
        finally:
            self.save_debug_output({
                "flowsInspected": total,
                "reportsGenerated": reports,
            })

        return reports

    async def inspect_flow(self, item: InspectionInput) -> Optional[SecurityReport]:
        flow_name = item.endpoint.flow_name
        driver = self.driver(INSPECTION_SYSTEM_PROMPT, inspection_adapter, max_depth=1, max_retries=self.max_retries)

        def handle(response, conversation: Conversation) -> TurnDecision:
            if isinstance(response, AgentErrorResponse):
                return TurnDecision.retry(f"model reported an error: {response.message or 'no details'}")
            return TurnDecision.finish(response.result)

        outcome = await driver.run(flow_name, build_inspection_prompt(item), handle)
        if not outcome.success:
            self.log("warn", f"   ⚠️ No report for {flow_name} after {outcome.transcript.retries} failed attempts")
            return None
        return self._finalize(outcome.result, item)

    def _finalize(self, report: SecurityReport, item: InspectionInput) -> SecurityReport:
        known = item.checklist.control_ids()
        unknown = sorted({cid for cid in report.referenced_control_ids() if cid not in known})
        if unknown:
            self.log("warn", f"   ⚠️ {item.endpoint.flow_name}: report references unknown control ids: {', '.join(unknown)}")

        report = report.model_copy(update={"flow_name": item.endpoint.flow_name})
        return report.model_copy(update={"summary": recompute_summary(report)})

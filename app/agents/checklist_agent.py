"""Checklist Agent: derives a security checklist for each discovered flow."""
from typing import List, Optional

from pydantic import TypeAdapter

from app.agents.base import BaseAgent
from app.agents.conversation import Conversation, TurnDecision
from app.agents.prompts import CHECKLIST_SYSTEM_PROMPT, build_checklist_prompt
from app.agents.schemas import (
    AgentErrorResponse,
    ChecklistResponse,
    FlowProfile,
    FrameworkDetectionResult,
    SecurityChecklist,
)
from app.core.cancellation import AnalysisCancelled

checklist_adapter: TypeAdapter = TypeAdapter(ChecklistResponse)


class ChecklistAgent(BaseAgent):
    name = "checklist"
    title = "Checklist Agent"

    def __init__(self, llm, **kwargs):
        super().__init__(llm, **kwargs)
        self.max_retries = self.settings.CHECKLIST_MAX_RETRIES
        self.max_controls = self.settings.MAX_CONTROLS_PER_CHECKLIST
        self.enforce_control_limit = self.settings.ENFORCE_CONTROL_LIMIT

    async def analyze_flows(
        self,
        flows: List[FlowProfile],
        framework: FrameworkDetectionResult,
        project_tree: str,
    ) -> List[SecurityChecklist]:
        """Generate one checklist per flow; flows that fail are skipped."""
        checklists: List[SecurityChecklist] = []
        self.transcripts = []
        total = len(flows)

        self.log("info", f"🛡️ {self.title} starting security analysis...")
        self.log("info", f"📋 Flows to analyze: {total}")
        try:
            for index, flow in enumerate(flows, start=1):
                self.check_cancellation()
                self.progress.on_unit_started(index, total)
                self.log("info", f"🔍 [{index}/{total}] Analyzing: {flow.flow_name}")
                self.log("info", f"   Entry: {flow.entry_point} | Sensitivity: {flow.sensitivity_level.value}")

                try:
                    checklist = await self.analyze_flow(flow, framework, project_tree)
                except AnalysisCancelled:
                    raise
                except Exception as e:
                    self.log("error", f"   ❌ Failed to analyze flow: {e}")
                    checklist = None

                if checklist is not None:
                    checklists.append(checklist)
                    self.log(
                        "success",
                        f"   ✅ Generated {len(checklist.required_controls)} required, "
                        f"{len(checklist.recommended_controls)} recommended controls",
                    )
                self.progress.on_unit_completed(index, total)

            self.log("success", f"✅ {self.title} complete. Generated {len(checklists)}/{total} checklists.")
        finally:
            self.save_debug_output({
                "framework": framework,
                "projectTree": project_tree,
                "flowsAnalyzed": flows,
                "checklistsGenerated": checklists,
            })

        return checklists

    async def analyze_flow(
        self,
        flow: FlowProfile,
        framework: FrameworkDetectionResult,
        project_tree: str,
    ) -> Optional[SecurityChecklist]:
        driver = self.driver(CHECKLIST_SYSTEM_PROMPT, checklist_adapter, max_depth=1, max_retries=self.max_retries)

        def handle(response, conversation: Conversation) -> TurnDecision:
            if isinstance(response, AgentErrorResponse):
                return TurnDecision.retry(f"model reported an error: {response.message or 'no details'}")
            # the caller's flow name is the join key downstream
            return TurnDecision.finish(response.result.model_copy(update={"flow_name": flow.flow_name}))

        outcome = await driver.run(flow.flow_name, build_checklist_prompt(flow, framework, project_tree), handle)
        if not outcome.success:
            self.log("warn", f"   ⚠️ No checklist for {flow.flow_name} after {outcome.transcript.retries} failed attempts")
            return None
        return self._apply_control_limit(outcome.result)

    def _apply_control_limit(self, checklist: SecurityChecklist) -> SecurityChecklist:
        count = len(checklist.required_controls) + len(checklist.recommended_controls)
        if count <= self.max_controls:
            return checklist

        self.log("warn", f"   ⚠️ {checklist.flow_name}: {count} controls exceeds the limit of {self.max_controls}")
        if not self.enforce_control_limit:
            return checklist

        required = checklist.required_controls[: self.max_controls]
        recommended = checklist.recommended_controls[: self.max_controls - len(required)]
        return checklist.model_copy(update={"required_controls": required, "recommended_controls": recommended})

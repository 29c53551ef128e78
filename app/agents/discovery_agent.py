"""Discovery Agent: finds API endpoints and traces their code flow.

Each trace is one conversation. The model first picks an entry file, then asks
for files one at a time until it can describe the endpoint as an
``EndpointProfile``. Traces repeat until the model answers ``not_found``.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pydantic import TypeAdapter

from app.agents.base import BaseAgent
from app.agents.conversation import Conversation, ConversationOutcome, TurnDecision
from app.agents.prompts import (
    DISCOVERY_SYSTEM_PROMPT,
    build_discovery_initial_prompt,
    depth_warning_message,
    file_already_read_message,
    file_content_message,
    file_not_found_message,
)
from app.agents.schemas import (
    DiscoveryCompletedResponse,
    DiscoveryResponse,
    EndpointProfile,
    FileEntry,
    NotFoundResponse,
    PickEndpointResponse,
    TracingEndpointResponse,
)
from app.agents.tools.file_scanner import find_file_content, find_similar_files, generate_project_tree

discovery_adapter: TypeAdapter = TypeAdapter(DiscoveryResponse)


@dataclass
class _TraceState:
    files: List[FileEntry]
    read_later: List[str] = field(default_factory=list)
    not_found: bool = False


class DiscoveryAgent(BaseAgent):
    name = "discovery"
    title = "Discovery Agent"

    def __init__(self, llm, **kwargs):
        super().__init__(llm, **kwargs)
        s = self.settings
        self.max_depth = s.DISCOVERY_MAX_DEPTH
        self.max_retries = s.DISCOVERY_MAX_RETRIES
        self.max_consecutive_failures = s.DISCOVERY_MAX_CONSECUTIVE_FAILURES
        self.tree_depth = s.PROJECT_TREE_DEPTH
        self.similar_files_limit = s.MAX_SIMILAR_FILES

    async def analyze(self, files: List[FileEntry]) -> List[EndpointProfile]:
        """Trace endpoints until the model reports that none are left."""
        endpoints: List[EndpointProfile] = []
        claimed: List[str] = []
        flow_names: set[str] = set()
        self.transcripts = []
        project_tree = ""

        self.log("info", f"🛡️ {self.title} starting analysis...")
        try:
            self.check_cancellation()
            project_tree = generate_project_tree(files, self.tree_depth)
            self.log("info", f"📁 Project structure generated ({len(files)} files)")

            consecutive_failures = 0
            index = 0
            while True:
                self.check_cancellation()
                index += 1
                self.progress.on_unit_started(index, None)
                outcome, state = await self.trace_endpoint(files, project_tree, claimed)
                self.progress.on_unit_completed(index, None)

                if state.not_found:
                    self.log("success", f"✅ All endpoints analyzed. {self.title} complete.")
                    break

                profile: Optional[EndpointProfile] = outcome.result if outcome.success else None
                if profile is not None and profile.entry_point in claimed:
                    self.log("warn", f"⚠️ Endpoint {profile.entry_point} was already analyzed; discarding duplicate trace")
                    profile = None

                if profile is not None:
                    if profile.flow_name in flow_names:
                        renamed = f"{profile.flow_name} ({profile.entry_point})"
                        self.log("warn", f"⚠️ Duplicate flow name '{profile.flow_name}' renamed to '{renamed}'")
                        profile = profile.model_copy(update={"flow_name": renamed})
                    endpoints.append(profile)
                    claimed.append(profile.entry_point)
                    flow_names.add(profile.flow_name)
                    consecutive_failures = 0
                    self.log("info", f"📋 Endpoint recorded: {profile.entry_point} ({profile.sensitivity_level.value})")
                    continue

                consecutive_failures += 1
                self.log("warn", f"⚠️ Trace {index} produced no endpoint ({outcome.status.value}); continuing")
                if outcome.transport_only:
                    self.log("error", "❌ Model could not be reached; stopping discovery")
                    break
                if consecutive_failures >= self.max_consecutive_failures:
                    self.log("warn", f"⚠️ {consecutive_failures} traces in a row failed; stopping discovery")
                    break
        finally:
            self.save_debug_output({
                "maxDepth": self.max_depth,
                "totalFiles": len(files),
                "projectTree": project_tree,
                "endpointsFound": endpoints,
            })

        return endpoints

    async def trace_endpoint(
        self, files: List[FileEntry], project_tree: str, claimed: List[str]
    ) -> Tuple[ConversationOutcome, _TraceState]:
        """Run a single trace conversation. ``state.not_found`` ends discovery."""
        state = _TraceState(files=files)
        driver = self.driver(
            DISCOVERY_SYSTEM_PROMPT,
            discovery_adapter,
            max_depth=self.max_depth,
            max_retries=self.max_retries,
        )

        def handle(response, conversation: Conversation) -> TurnDecision:
            if isinstance(response, NotFoundResponse):
                state.not_found = True
                self.log("info", "🔍 No more endpoints found")
                return TurnDecision.finish(None)

            if isinstance(response, DiscoveryCompletedResponse):
                conversation.unit = response.result.entry_point
                self.log("info", f"✨ Endpoint analysis complete: {response.result.entry_point}")
                return TurnDecision.finish(response.result)

            if isinstance(response, PickEndpointResponse):
                conversation.unit = response.file_to_read_next
                self.log("info", f"🎯 Picking endpoint from: {response.file_to_read_next}")
                message, _ = self._read_file(state, response.file_to_read_next, conversation)
                return TurnDecision.continue_with(message, self._depth_warning(conversation))

            if not isinstance(response, TracingEndpointResponse):
                return TurnDecision.retry(f"unexpected status: {getattr(response, 'status', None)}")

            conversation.unit = response.endpoint_being_traced
            self.log("info", f"🔄 Tracing {response.endpoint_being_traced}: {response.file_to_read_next}")
            for path in response.files_to_read_later:
                if path not in conversation.files_read and path not in state.read_later:
                    state.read_later.append(path)

            message, found = self._read_file(state, response.file_to_read_next, conversation)
            prompts = [message]
            if not found and state.read_later:
                fallback = state.read_later.pop(0)
                prompts.append(self._read_file(state, fallback, conversation)[0])
            return TurnDecision.continue_with(*prompts, self._depth_warning(conversation))

        initial_prompt = build_discovery_initial_prompt(project_tree, claimed)
        outcome = await driver.run("unknown", initial_prompt, handle)
        return outcome, state

    def _read_file(self, state: _TraceState, file_path: str, conversation: Conversation) -> Tuple[str, bool]:
        if file_path in conversation.files_read:
            return file_already_read_message(file_path, conversation.files_read[file_path]), True

        content = find_file_content(state.files, file_path)
        if content is None:
            similar = find_similar_files(state.files, file_path, self.similar_files_limit)
            self.log("warn", f"⚠️ File not found: {file_path}")
            return file_not_found_message(file_path, similar), False

        conversation.files_read[file_path] = content
        if file_path in state.read_later:
            state.read_later.remove(file_path)
        return file_content_message(file_path, content), True

    def _depth_warning(self, conversation: Conversation) -> str:
        if conversation.remaining_turns == 1:
            return depth_warning_message(self.max_depth)
        return ""

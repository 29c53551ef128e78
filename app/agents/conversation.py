"""Bounded multi-turn conversation with a language model.

Every agent talks to the model through ``ConversationDriver.run``. The driver
owns the turn loop: it sends the history, parses the reply into the agent's
tagged response and hands it to an agent-specific handler, which decides
whether to continue with more user input, finish with a result or reject the
reply as a failed attempt.

Depth counts forward progress only. A reply that fails to parse, a transport
error and a handler rejection all count against the retry budget instead:
the bad assistant turn is dropped and the request is re-sent with a
corrective note attached to the last user turn.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Optional, Protocol, TypeVar

from pydantic import TypeAdapter

from app.agents.parsing import ResponseParseError, parse_response
from app.core.cancellation import AnalysisCancelled, raise_if_aborted
from app.core.llm_client import LLMError

T = TypeVar("T")

LogCallback = Callable[[str, str], None]


class ChatClient(Protocol):
    async def chat(
        self,
        model: str,
        system_prompt: str,
        messages: list[dict[str, str]],
        abort_event: Optional[asyncio.Event] = None,
    ) -> str: ...


class UnitStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


@dataclass
class Transcript:
    """Archived record of one conversation, kept for offline debugging."""

    unit: str
    messages: list[dict[str, str]] = field(default_factory=list)
    failures: list[dict[str, Optional[str]]] = field(default_factory=list)
    retries: int = 0
    depth: int = 0
    success: bool = False
    outcome: str = "pending"
    files_read: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.unit,
            "conversationHistory": [dict(m) for m in self.messages],
            "failures": [dict(f) for f in self.failures],
            "retries": self.retries,
            "depth": self.depth,
            "success": self.success,
            "outcome": self.outcome,
            "filesRead": list(self.files_read),
        }


@dataclass
class Conversation:
    """State visible to a handler while it processes one parsed reply."""

    unit: str
    max_depth: int
    depth: int = 0
    messages: list[dict[str, str]] = field(default_factory=list)
    files_read: dict[str, str] = field(default_factory=dict)

    @property
    def remaining_turns(self) -> int:
        return self.max_depth - self.depth


class TurnDecision:
    """What the driver should do after a handler has seen a parsed reply."""

    CONTINUE = "continue"
    FINISH = "finish"
    RETRY = "retry"

    def __init__(self, action: str, prompts: tuple[str, ...] = (), result: Any = None, reason: str = ""):
        self.action = action
        self.prompts = prompts
        self.result = result
        self.reason = reason

    @classmethod
    def continue_with(cls, *prompts: str) -> "TurnDecision":
        return cls(cls.CONTINUE, prompts=tuple(p for p in prompts if p))

    @classmethod
    def finish(cls, result: Any = None) -> "TurnDecision":
        return cls(cls.FINISH, result=result)

    @classmethod
    def retry(cls, reason: str) -> "TurnDecision":
        return cls(cls.RETRY, reason=reason)

    def __repr__(self) -> str:
        return f"TurnDecision({self.action!r})"


Handler = Callable[[Any, Conversation], TurnDecision]


@dataclass
class ConversationOutcome(Generic[T]):
    status: UnitStatus
    transcript: Transcript
    result: Optional[T] = None
    # True when the unit failed without a single reply reaching the parser
    transport_only: bool = False

    @property
    def success(self) -> bool:
        return self.status == UnitStatus.COMPLETED


def _null_log(level: str, message: str) -> None:
    pass


def corrective_note(error: str) -> str:
    return (
        "⚠️ Your previous response could not be used: "
        f"{error}\n"
        "Respond again with exactly one valid JSON object in the required format, "
        "including a valid \"status\" field."
    )


class ConversationDriver:
    def __init__(
        self,
        llm: ChatClient,
        model: str,
        system_prompt: str,
        adapter: TypeAdapter,
        *,
        max_depth: int,
        max_retries: int,
        abort_event: Optional[asyncio.Event] = None,
        log: Optional[LogCallback] = None,
        archive: Optional[list[Transcript]] = None,
    ):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.llm = llm
        self.model = model
        self.system_prompt = system_prompt
        self.adapter = adapter
        self.max_depth = max_depth
        self.max_retries = max_retries
        self.abort_event = abort_event
        self.log = log or _null_log
        self.archive = archive if archive is not None else []

    def _request_messages(self, messages: list[dict[str, str]], note: Optional[str]) -> list[dict[str, str]]:
        if not note:
            return list(messages)
        last = messages[-1]
        return [*messages[:-1], {"role": last["role"], "content": f"{last['content']}\n\n{note}"}]

    async def run(self, unit: str, initial_prompt: str, handler: Handler) -> ConversationOutcome:
        """Drive one unit of work to a terminal state.

        Raises AnalysisCancelled when the abort event fires; the transcript is
        archived on every path, cancellation included.
        """
        conversation = Conversation(unit=unit, max_depth=self.max_depth)
        conversation.messages.append({"role": "user", "content": initial_prompt})
        transcript = Transcript(unit=unit)
        outcome: Optional[ConversationOutcome] = None
        note: Optional[str] = None
        replies_parsed = 0

        def record_failure(error: str, reply: Optional[str]) -> bool:
            """Book a failed attempt; return True while budget remains."""
            nonlocal note
            transcript.failures.append({"error": error, "reply": reply})
            transcript.retries += 1
            conversation.depth -= 1
            if transcript.retries > self.max_retries:
                self.log("error", f"❌ {conversation.unit}: giving up after {transcript.retries} failed attempts ({error})")
                return False
            self.log("warn", f"⚠️ {conversation.unit}: attempt failed ({error}), retrying ({transcript.retries}/{self.max_retries})")
            note = corrective_note(error)
            return True

        try:
            while conversation.depth < self.max_depth:
                raise_if_aborted(self.abort_event)
                conversation.depth += 1

                try:
                    reply = await self.llm.chat(
                        self.model,
                        self.system_prompt,
                        self._request_messages(conversation.messages, note),
                        self.abort_event,
                    )
                except LLMError as e:
                    if record_failure(str(e), None):
                        continue
                    outcome = ConversationOutcome(UnitStatus.FAILED, transcript, transport_only=replies_parsed == 0)
                    break

                conversation.messages.append({"role": "assistant", "content": reply})
                replies_parsed += 1
                try:
                    response = parse_response(reply, self.adapter)
                except ResponseParseError as e:
                    conversation.messages.pop()
                    if record_failure(str(e), reply):
                        continue
                    outcome = ConversationOutcome(UnitStatus.FAILED, transcript)
                    break

                decision = handler(response, conversation)
                if decision.action == TurnDecision.RETRY:
                    conversation.messages.pop()
                    if record_failure(decision.reason, reply):
                        continue
                    outcome = ConversationOutcome(UnitStatus.FAILED, transcript)
                    break

                note = None
                if decision.action == TurnDecision.FINISH:
                    outcome = ConversationOutcome(UnitStatus.COMPLETED, transcript, result=decision.result)
                    break

                conversation.messages.append({"role": "user", "content": "\n\n".join(decision.prompts)})
            else:
                self.log("warn", f"⚠️ {conversation.unit}: max depth ({self.max_depth}) reached without a result")
                outcome = ConversationOutcome(UnitStatus.EXHAUSTED, transcript)

            return outcome
        except AnalysisCancelled:
            transcript.outcome = UnitStatus.CANCELLED.value
            raise
        finally:
            transcript.unit = conversation.unit
            transcript.messages = list(conversation.messages)
            transcript.depth = conversation.depth
            transcript.files_read = list(conversation.files_read)
            if outcome is not None:
                transcript.outcome = outcome.status.value
                transcript.success = outcome.success
            self.archive.append(transcript)

"""Common plumbing for the three analysis agents."""
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

from fastapi.encoders import jsonable_encoder
from loguru import logger
from pydantic import TypeAdapter

from app.agents.conversation import ChatClient, ConversationDriver, LogCallback, Transcript
from app.core.cancellation import raise_if_aborted
from app.core.config import Settings, settings as default_settings

_LOGURU_LEVELS = {
    "info": "INFO",
    "warn": "WARNING",
    "error": "ERROR",
    "success": "SUCCESS",
}


class ProgressListener(Protocol):
    """Structured progress callbacks; ``total`` is None when not known up front."""

    def on_unit_started(self, index: int, total: Optional[int]) -> None: ...

    def on_unit_completed(self, index: int, total: Optional[int]) -> None: ...


class NullProgressListener:
    def on_unit_started(self, index: int, total: Optional[int]) -> None:
        pass

    def on_unit_completed(self, index: int, total: Optional[int]) -> None:
        pass


def debug_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp safe for file names (':' and '.' become '-')."""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


class BaseAgent:
    name = "agent"
    title = "Agent"

    def __init__(
        self,
        llm: ChatClient,
        *,
        model: Optional[str] = None,
        settings: Settings = default_settings,
        abort_event: Optional[asyncio.Event] = None,
        on_log: Optional[LogCallback] = None,
        progress: Optional[ProgressListener] = None,
        save_debug_output: Optional[bool] = None,
    ):
        self.llm = llm
        self.settings = settings
        self.model = model or settings.model_for(self.name)
        self.abort_event = abort_event
        self.on_log = on_log
        self.progress = progress or NullProgressListener()
        self.save_debug_output_enabled = (
            settings.SAVE_DEBUG_OUTPUT if save_debug_output is None else save_debug_output
        )
        self.transcripts: list[Transcript] = []
        self._logger = logger.bind(agent=self.name)

    def log(self, level: str, message: str) -> None:
        self._logger.log(_LOGURU_LEVELS.get(level, "INFO"), message)
        if self.on_log is not None:
            self.on_log(level, message)

    def check_cancellation(self) -> None:
        raise_if_aborted(self.abort_event)

    def driver(self, system_prompt: str, adapter: TypeAdapter, *, max_depth: int, max_retries: int) -> ConversationDriver:
        return ConversationDriver(
            self.llm,
            self.model,
            system_prompt,
            adapter,
            max_depth=max_depth,
            max_retries=max_retries,
            abort_event=self.abort_event,
            log=self.log,
            archive=self.transcripts,
        )

    def debug_output_path(self, now: Optional[datetime] = None) -> Path:
        directory = Path(self.settings.DEBUG_OUTPUT_DIR) / f"{self.name}-agent"
        return directory / f"{self.name}-output-{debug_timestamp(now)}.json"

    def save_debug_output(self, payload: dict[str, Any]) -> Optional[Path]:
        """Write parameters, artifacts and all transcripts of this run to disk.

        Failures are logged and swallowed; debug output never fails a stage.
        """
        if not self.save_debug_output_enabled:
            return None

        document = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "model": self.model,
            **payload,
            "analysisHistory": [t.to_dict() for t in self.transcripts],
        }
        file_path = self.debug_output_path()
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with file_path.open("w", encoding="utf-8") as fh:
                json.dump(jsonable_encoder(document), fh, ensure_ascii=False, indent=2)
        except (OSError, TypeError, ValueError) as e:
            self.log("warn", f"⚠️ Failed to save debug output: {e}")
            return None

        self.log("info", f"💾 Debug output saved to: {file_path}")
        return file_path

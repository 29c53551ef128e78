"""Model gateway: one client in front of every chat-completion backend.

``LLMClient.chat`` takes a model identifier, a system prompt and the
conversation history and returns the completion text. The backend is picked
from the model identifier (see ``detect_provider``); every backend is spoken to
through the OpenAI-compatible async client. The gateway never retries; retry
budgets belong to the agents' conversation driver.
"""
import asyncio
from typing import Any, Callable, Optional

from loguru import logger
from openai import AsyncOpenAI

from app.core.cancellation import AnalysisCancelled, raise_if_aborted, run_abortable
from app.core.config import Settings, settings as default_settings
from app.core.llm_config import BackendConfig, LLMProvider, backend_model_name, detect_provider


class LLMError(Exception):
    """Custom exception for LLM client errors."""


ClientFactory = Callable[[BackendConfig, float], Any]


def _default_client_factory(config: BackendConfig, timeout: float) -> AsyncOpenAI:
    return AsyncOpenAI(
        base_url=config.base_url,
        api_key=config.api_key or "not-needed",
        timeout=timeout,
        max_retries=0,
    )


class LLMClient:
    def __init__(self, settings: Settings = default_settings, client_factory: Optional[ClientFactory] = None):
        self._settings = settings
        self._client_factory = client_factory or _default_client_factory
        self._clients: dict[LLMProvider, Any] = {}

    def backend_config(self, provider: LLMProvider) -> BackendConfig:
        s = self._settings
        if provider == LLMProvider.ANTHROPIC:
            return BackendConfig(provider=provider, base_url=s.ANTHROPIC_BASE_URL, api_key=s.ANTHROPIC_API_KEY)
        if provider == LLMProvider.GOOGLE:
            return BackendConfig(provider=provider, base_url=s.GOOGLE_BASE_URL, api_key=s.GOOGLE_API_KEY)
        if provider == LLMProvider.LOCAL:
            base = (s.LOCAL_LLM_BASE_URL or "").rstrip("/")
            return BackendConfig(provider=provider, base_url=f"{base}/v1" if base else None)
        return BackendConfig(provider=provider, base_url=s.OPENAI_BASE_URL, api_key=s.OPENAI_API_KEY)

    def _client_for(self, provider: LLMProvider) -> Any:
        client = self._clients.get(provider)
        if client is None:
            client = self._client_factory(self.backend_config(provider), self._settings.LLM_TIMEOUT)
            self._clients[provider] = client
        return client

    async def chat(
        self,
        model: str,
        system_prompt: str,
        messages: list[dict[str, str]],
        abort_event: Optional[asyncio.Event] = None,
    ) -> str:
        """Send the system prompt and history to the backend owning ``model``.

        Raises:
            AnalysisCancelled: the abort event fired before or during the request.
            LLMError: transport failure, backend error or empty completion.
        """
        raise_if_aborted(abort_event)
        provider = detect_provider(model)
        client = self._client_for(provider)

        params: dict[str, Any] = {
            "model": backend_model_name(model),
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "stream": False,
        }
        if self._settings.LLM_TEMPERATURE is not None:
            params["temperature"] = self._settings.LLM_TEMPERATURE
        if self._settings.LLM_MAX_TOKENS is not None:
            params["max_tokens"] = self._settings.LLM_MAX_TOKENS

        logger.debug(f"LLM request provider={provider.value} model={model} messages={len(messages)}")
        try:
            response = await run_abortable(client.chat.completions.create(**params), abort_event)
        except AnalysisCancelled:
            raise
        except Exception as e:
            raise LLMError(f"LLM request failed: {type(e).__name__}: {e}") from e

        content = _extract_content(response)
        logger.debug(f"LLM response model={model} chars={len(content)}")
        return content

    async def health_check(self, model: str) -> bool:
        """Ask the model to reply 'ok' and return True if we get any response."""
        try:
            result = await self.chat(model, "You are a health check.", [{"role": "user", "content": "reply with: ok"}])
            return bool(result)
        except LLMError:
            return False


def _extract_content(response: Any) -> str:
    choices = getattr(response, "choices", None)
    if not choices:
        raise LLMError(f"Response has no choices. Response type: {type(response).__name__}")

    message = getattr(choices[0], "message", None)
    if message is None:
        raise LLMError("Response choice has no 'message' attribute")

    content = getattr(message, "content", None)
    if content is None or not str(content).strip():
        raise LLMError("Response content is empty or whitespace only")
    return str(content).strip()

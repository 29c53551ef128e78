"""Tests for the model gateway"""
import asyncio
from types import SimpleNamespace

import pytest

from app.core.cancellation import AnalysisCancelled
from app.core.llm_client import LLMClient, LLMError
from app.core.llm_config import LLMProvider, backend_model_name, detect_provider
from tests.factories import make_settings


class FakeCompletions:
    def __init__(self, content="  hello  ", error=None, delay=0.0):
        self.content = content
        self.error = error
        self.delay = delay
        self.requests = []
        # counts request coroutines created, awaited or not
        self.invocations = 0

    def create(self, **params):
        self.invocations += 1
        return self._respond(params)

    async def _respond(self, params):
        self.requests.append(params)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


class FakeFactory:
    def __init__(self, completions):
        self.completions = completions
        self.configs = []

    def __call__(self, config, timeout):
        self.configs.append((config, timeout))
        return SimpleNamespace(chat=SimpleNamespace(completions=self.completions))


@pytest.mark.parametrize(
    "model, provider",
    [
        ("gpt-4o", LLMProvider.OPENAI),
        ("o3-mini", LLMProvider.OPENAI),
        ("claude-sonnet-4-20250514", LLMProvider.ANTHROPIC),
        ("gemini-2.0-flash", LLMProvider.GOOGLE),
        ("local/llama3", LLMProvider.LOCAL),
        ("something-else", LLMProvider.OPENAI),
    ],
)
def test_detect_provider(model, provider):
    assert detect_provider(model) == provider


def test_backend_model_name():
    assert backend_model_name("local/llama3") == "llama3"
    assert backend_model_name("gpt-4o") == "gpt-4o"


def test_backend_configs():
    settings = make_settings(
        OPENAI_API_KEY="sk-test",
        ANTHROPIC_API_KEY="ant-test",
        LOCAL_LLM_BASE_URL="http://localhost:1234/",
    )
    client = LLMClient(settings, client_factory=FakeFactory(FakeCompletions()))

    assert client.backend_config(LLMProvider.OPENAI).api_key == "sk-test"
    assert client.backend_config(LLMProvider.ANTHROPIC).base_url == settings.ANTHROPIC_BASE_URL
    local = client.backend_config(LLMProvider.LOCAL)
    assert local.base_url == "http://localhost:1234/v1"
    assert local.api_key is None


@pytest.mark.asyncio
async def test_chat_sends_system_prompt_and_history():
    completions = FakeCompletions()
    factory = FakeFactory(completions)
    client = LLMClient(make_settings(LLM_TEMPERATURE=0.2), client_factory=factory)

    reply = await client.chat("local/llama3", "be terse", [{"role": "user", "content": "hi"}])

    assert reply == "hello"
    request = completions.requests[0]
    assert request["model"] == "llama3"
    assert request["messages"] == [
        {"role": "system", "content": "be terse"},
        {"role": "user", "content": "hi"},
    ]
    assert request["temperature"] == 0.2
    assert "max_tokens" not in request
    assert factory.configs[0][0].provider == LLMProvider.LOCAL


@pytest.mark.asyncio
async def test_clients_are_reused_per_provider():
    factory = FakeFactory(FakeCompletions())
    client = LLMClient(make_settings(), client_factory=factory)

    await client.chat("gpt-4o", "s", [])
    await client.chat("gpt-4o-mini", "s", [])
    await client.chat("claude-3-5-haiku", "s", [])

    assert [c.provider for c, _ in factory.configs] == [LLMProvider.OPENAI, LLMProvider.ANTHROPIC]


@pytest.mark.asyncio
async def test_backend_error_is_wrapped():
    client = LLMClient(make_settings(), client_factory=FakeFactory(FakeCompletions(error=ConnectionError("refused"))))

    with pytest.raises(LLMError, match="ConnectionError: refused"):
        await client.chat("gpt-4o", "s", [])


@pytest.mark.asyncio
async def test_empty_completion_is_an_error():
    client = LLMClient(make_settings(), client_factory=FakeFactory(FakeCompletions(content="   ")))

    with pytest.raises(LLMError, match="empty"):
        await client.chat("gpt-4o", "s", [])


@pytest.mark.asyncio
async def test_abort_before_request():
    completions = FakeCompletions()
    client = LLMClient(make_settings(), client_factory=FakeFactory(completions))
    abort = asyncio.Event()
    abort.set()

    with pytest.raises(AnalysisCancelled):
        await client.chat("gpt-4o", "s", [], abort)

    assert completions.invocations == 0
    assert completions.requests == []


@pytest.mark.asyncio
async def test_abort_during_request():
    completions = FakeCompletions(delay=5)
    client = LLMClient(make_settings(), client_factory=FakeFactory(completions))
    abort = asyncio.Event()

    async def trigger():
        await asyncio.sleep(0.01)
        abort.set()

    asyncio.create_task(trigger())
    with pytest.raises(AnalysisCancelled):
        await asyncio.wait_for(client.chat("gpt-4o", "s", [], abort), timeout=1)
    assert len(completions.requests) == 1

import types

import httpx
import openai
import pytest
from google.api_core import exceptions as google_exceptions

from core.llm_client import AsyncGeminiLLMClient, AsyncOpenAILLMClient
from core.obs import MemoryLogger


@pytest.fixture(autouse=True)
def fast_backoff(isolated_config, monkeypatch):
    isolated_config.setenv("OPENAI_API_KEY", "sk-test")
    isolated_config.setenv("GOOGLE_API_KEY", "fake")
    isolated_config.delenv("LLM_LOG_CONTENT", raising=False)
    monkeypatch.setattr("core.llm_client._backoff", lambda attempt: 0)


def _openai_with(outcomes: list, calls: list):
    """Fake AsyncOpenAI whose create() raises or returns the scripted outcomes in order."""

    class FakeCompletions:
        async def create(self, **kwargs):
            calls.append(kwargs)
            outcome = outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return types.SimpleNamespace(
                choices=[types.SimpleNamespace(message=types.SimpleNamespace(content=outcome))],
                usage=None,
            )

    class FakeOpenAI:
        def __init__(self, *args, **kwargs):
            self.init_kwargs = kwargs
            self.chat = types.SimpleNamespace(completions=FakeCompletions())

    return FakeOpenAI


def _timeout() -> openai.APITimeoutError:
    return openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


@pytest.mark.asyncio
async def test_timeout_is_retried_then_succeeds(monkeypatch):
    calls: list = []
    monkeypatch.setattr("core.llm_client.AsyncOpenAI", _openai_with([_timeout(), "ok"], calls))
    log = MemoryLogger()

    llm = AsyncOpenAILLMClient(timeout=5, max_retries=3, logger=log)
    out = await llm.chat([{"role": "user", "content": "hi"}], model="gpt-4.1-mini", req_id="r-1")

    assert out == "ok"
    assert len(calls) == 2
    assert "llm.timeout" in log.events()
    response = next(f for _, e, f in log.records if e == "llm.response")
    assert response["attempt"] == 2
    assert response["req_id"] == "r-1"


@pytest.mark.asyncio
async def test_timeouts_exhaust_retries(monkeypatch):
    calls: list = []
    monkeypatch.setattr("core.llm_client.AsyncOpenAI", _openai_with([_timeout(), _timeout()], calls))
    llm = AsyncOpenAILLMClient(timeout=5, max_retries=2, logger=MemoryLogger())

    with pytest.raises(openai.APITimeoutError):
        await llm.chat([{"role": "user", "content": "hi"}], model="gpt-4.1-mini")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(monkeypatch):
    calls: list = []
    monkeypatch.setattr("core.llm_client.AsyncOpenAI", _openai_with([RuntimeError("bad request")], calls))
    llm = AsyncOpenAILLMClient(timeout=5, max_retries=3)

    with pytest.raises(RuntimeError):
        await llm.chat([{"role": "user", "content": "hi"}], model="gpt-4.1-mini")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_gemini_rate_limit_is_retried(monkeypatch):
    attempts: list = []

    class FakeModel:
        def __init__(self, *args, **kwargs):
            self.kwargs = kwargs

        async def generate_content_async(self, contents, generation_config=None, request_options=None):
            attempts.append(contents)
            if len(attempts) == 1:
                raise google_exceptions.ResourceExhausted("quota")
            return types.SimpleNamespace(text="fine", usage_metadata=None)

    monkeypatch.setattr("core.llm_client.genai.GenerativeModel", FakeModel)
    log = MemoryLogger()
    llm = AsyncGeminiLLMClient(logger=log, timeout=5, max_retries=2)

    out = await llm.chat(
        [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}, {"role": "assistant", "content": "yo"}],
        model="gemini-1.5-flash",
    )

    assert out == "fine"
    assert attempts[0] == [{"role": "user", "parts": ["hi"]}, {"role": "model", "parts": ["yo"]}]
    assert "llm.rate_limited" in log.events()


@pytest.mark.asyncio
async def test_content_previews_can_be_disabled(monkeypatch, isolated_config):
    isolated_config.setenv("LLM_LOG_CONTENT", "0")
    calls: list = []
    monkeypatch.setattr("core.llm_client.AsyncOpenAI", _openai_with(["secret reply"], calls))
    log = MemoryLogger()

    await AsyncOpenAILLMClient(timeout=5, logger=log).chat(
        [{"role": "user", "content": "Jane Doe, 555-0100"}], model="gpt-4.1-mini"
    )

    request = next(f for _, e, f in log.records if e == "llm.request")
    response = next(f for _, e, f in log.records if e == "llm.response")
    assert request["messages"] == [{"role": "user", "content_len": 18}]
    assert "preview" not in response
    assert "Jane Doe" not in repr(log.records)

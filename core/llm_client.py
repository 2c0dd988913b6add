""" Async LLM client port and provider adapters.

Every adapter takes OpenAI-style ``[{"role", "content"}]`` messages, returns
the assistant text, and retries transient failures (timeouts, rate limits)
with jittered exponential backoff. Anything else propagates as raised by the
SDK; ``core.errors.classify_error`` maps it for the stage record.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

import anthropic
from anthropic import AsyncAnthropic
from google.api_core import exceptions as google_exceptions
import google.generativeai as genai
import httpx
import openai
from openai import AsyncOpenAI

from core.config import get_bool_setting, get_config_value, get_float_setting
from core.errors import ProviderError
from core.obs import Logger, NullLogger, with_span

logger = logging.getLogger(__name__)

R = TypeVar("R")

_TIMEOUT_ERRORS: tuple[type[BaseException], ...] = (
    openai.APITimeoutError,
    anthropic.APITimeoutError,
    google_exceptions.DeadlineExceeded,
    httpx.TimeoutException,
)
_RATE_LIMIT_ERRORS: tuple[type[BaseException], ...] = (
    openai.RateLimitError,
    anthropic.RateLimitError,
    google_exceptions.ResourceExhausted,
)


def _get_int_setting(*keys: str, default: int | None = None) -> int | None:
    for key in keys:
        raw = (get_config_value(key) or "").strip()
        if not raw:
            continue
        try:
            return int(float(raw))
        except ValueError:
            continue
    return default


def _default_timeout() -> float:
    return get_float_setting("LLM_TIMEOUT_SECONDS", 120.0) or 120.0


def _default_max_retries() -> int:
    return max(1, _get_int_setting("LLM_MAX_RETRIES", default=3) or 3)


def _normalize_temperature(model: str, temperature: float | None, log: Logger, req_id: str) -> float | None:
    """gpt-5* rejects custom temperatures; drop it unless exactly 1."""
    if model.lower().startswith("gpt-5"):
        if temperature is not None and temperature != 1:
            log.warn(
                "llm.temperature_ignored",
                req_id=req_id,
                model=model,
                requested=temperature,
                reason="gpt-5 only supports default temperature",
            )
        return None
    return temperature if temperature is not None else 0.0


def _ensure_req_id(_args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
    req_id = kwargs.get("req_id")
    if not isinstance(req_id, str) or not req_id:
        kwargs["req_id"] = str(uuid.uuid4())


def _llm_span_fields(*args: Any, **kwargs: Any) -> dict[str, Any]:
    model = kwargs.get("model")
    if model is None and len(args) >= 3:
        model = args[2]
    return {"req_id": kwargs.get("req_id"), "model": model}


def _llm_span(provider: str) -> Callable[[Callable[..., Awaitable[str]]], Callable[..., Awaitable[str]]]:
    return with_span(
        "llm.chat",
        logger_attr="_logger",
        fields={"provider": provider},
        fields_fn=_llm_span_fields,
        pre=_ensure_req_id,
    )


def _log_content_enabled() -> bool:
    """Whether logs may include prompt/response text previews.

    On by default for local runs; set ``LLM_LOG_CONTENT=0`` anywhere resumes
    (personal data) must stay out of log sinks.
    """
    return get_bool_setting("LLM_LOG_CONTENT", True)


def _preview(text: str | None, limit: int = 1000) -> str:
    return (text or "")[:limit]


def _safe_messages(messages: list[dict[str, Any]], *, log_content: bool, key: str = "content") -> list[dict[str, Any]]:
    """Messages as they may appear in logs: previews, or only lengths."""
    out: list[dict[str, Any]] = []
    for m in messages:
        if key == "parts":
            texts = [str(p or "") for p in (m.get("parts") or [])]
            shown: Any = [_preview(t) for t in texts] if log_content else [len(t) for t in texts]
        else:
            text = m.get("content") or ""
            shown = _preview(text) if log_content else len(text)
        out.append({"role": m.get("role"), (key if log_content else f"{key}_len"): shown})
    return out


def _backoff(attempt: int) -> float:
    return 2 ** (attempt - 1) + random.random()


async def _with_retries(
    call: Callable[[], Awaitable[R]],
    *,
    log: Logger,
    provider: str,
    model: str,
    req_id: str,
    max_retries: int,
) -> tuple[int, R]:
    """Await ``call`` up to ``max_retries`` times; returns (attempt, result).

    Only timeouts and rate limits are retried. The last failure is re-raised.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return attempt, await call()
        except (_TIMEOUT_ERRORS + _RATE_LIMIT_ERRORS) as e:
            event = "llm.timeout" if isinstance(e, _TIMEOUT_ERRORS) else "llm.rate_limited"
            log.warn(event, req_id=req_id, provider=provider, model=model, attempt=attempt, error=str(e))
            if attempt >= max_retries:
                raise
            await asyncio.sleep(_backoff(attempt))
    raise ProviderError(f"{provider} request made no attempts (max_retries < 1)")


def _log_request(
    log: Logger,
    *,
    req_id: str,
    provider: str,
    model: str,
    messages: list[dict[str, Any]],
    log_content: bool,
    key: str = "content",
    system: str | None = None,
    **extra: Any,
) -> None:
    fields: dict[str, Any] = {
        "req_id": req_id,
        "provider": provider,
        "model": model,
        "message_count": len(messages),
        "messages": _safe_messages(messages, log_content=log_content, key=key),
        **extra,
    }
    if system is not None:
        fields["system_len"] = len(system)
        if log_content:
            fields["system"] = _preview(system)
    log.info("llm.request", **fields)


def _log_response(
    log: Logger,
    *,
    req_id: str,
    provider: str,
    model: str,
    attempt: int,
    usage: object,
    content: str,
    log_content: bool,
) -> None:
    fields: dict[str, Any] = {
        "req_id": req_id,
        "provider": provider,
        "model": model,
        "attempt": attempt,
        "usage": getattr(usage, "__dict__", None) if usage else None,
        "content_len": len(content or ""),
    }
    if log_content:
        fields["preview"] = _preview(content)
    log.info("llm.response", **fields)


# ---------- Async port ----------


class AsyncLLMClient(Protocol):
    """Port interface for async LLM calls."""

    async def chat(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.0,
    ) -> str:
        """
        Send chat messages to an LLM and return the assistant's content.
        """
        ...


def _split_system(messages: list[dict[str, str]]) -> tuple[str | None, list[dict[str, str]]]:
    """Pull the first system message out; everything else is user or assistant."""
    system = None
    rest: list[dict[str, str]] = []
    for m in messages:
        role = m.get("role")
        content = m.get("content", "")
        if role == "system" and system is None:
            system = content
            continue
        rest.append({"role": "assistant" if role == "assistant" else "user", "content": content})
    return system, rest


# ---------- OpenAI ----------


class AsyncOpenAILLMClient(AsyncLLMClient):
    """Chat Completions adapter."""

    def __init__(
        self,
        timeout: float | None = None,
        max_retries: int | None = None,
        logger: Optional[Logger] = None,
        api_key: str | None = None,
    ):
        self._timeout = float(timeout) if timeout is not None else _default_timeout()
        self._max_retries = max_retries or _default_max_retries()
        # SDK-level retries off; _with_retries owns backoff and logging.
        self._client = AsyncOpenAI(api_key=api_key or get_config_value("OPENAI_API_KEY"), max_retries=0)
        self._logger: Logger = logger or NullLogger()
        tokens = _get_int_setting("OPENAI_MAX_COMPLETION_TOKENS", "OPENAI_MAX_OUTPUT_TOKENS", default=0)
        self._max_tokens = tokens or None

    def _payload(self, messages, model, temperature: float | None, kwargs: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = dict(model=model, messages=messages, timeout=self._timeout, **kwargs)
        max_tokens = payload.pop("max_completion_tokens", None) or payload.pop("max_tokens", None) or self._max_tokens
        if max_tokens:
            payload["max_completion_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    @_llm_span("openai")
    async def chat(self, messages, model, temperature=0.0, **kwargs) -> str:
        req_id = kwargs.pop("req_id", None) or str(uuid.uuid4())
        log_content = _log_content_enabled()
        payload = self._payload(messages, model, _normalize_temperature(model, temperature, self._logger, req_id), kwargs)
        _log_request(
            self._logger,
            req_id=req_id,
            provider="openai",
            model=model,
            messages=messages,
            log_content=log_content,
            temperature=payload.get("temperature"),
        )
        attempt, resp = await _with_retries(
            lambda: self._client.chat.completions.create(**payload),
            log=self._logger,
            provider="openai",
            model=model,
            req_id=req_id,
            max_retries=self._max_retries,
        )
        content = resp.choices[0].message.content or ""
        _log_response(
            self._logger,
            req_id=req_id,
            provider="openai",
            model=model,
            attempt=attempt,
            usage=getattr(resp, "usage", None),
            content=content,
            log_content=log_content,
        )
        return content


# ---------- Anthropic Claude ----------


class AsyncClaudeLLMClient(AsyncLLMClient):
    """Messages API adapter; the system prompt travels outside the message list."""

    def __init__(
        self,
        timeout: float | None = None,
        logger: Optional[Logger] = None,
        max_tokens: int | None = None,
        api_key: str | None = None,
        max_retries: int | None = None,
    ):
        timeout_value = float(timeout) if timeout is not None else _default_timeout()
        api_key = api_key or get_config_value("ANTHROPIC_API_KEY")
        self._client = AsyncAnthropic(api_key=api_key, timeout=timeout_value, max_retries=0)
        self._logger: Logger = logger or NullLogger()
        self._max_retries = max_retries or _default_max_retries()
        # Optimised resumes and cover letters run long; 1024 truncates them.
        self._max_tokens = max_tokens or _get_int_setting("CLAUDE_MAX_TOKENS", default=4096) or 4096

    @_llm_span("anthropic")
    async def chat(self, messages, model, temperature=0.0, **kwargs) -> str:
        req_id = kwargs.pop("req_id", None) or str(uuid.uuid4())
        system, converted = _split_system(messages)
        log_content = _log_content_enabled()
        payload: dict[str, Any] = {
            "model": model,
            "messages": converted,
            "max_tokens": kwargs.pop("max_tokens", self._max_tokens),
            "temperature": temperature,
        }
        if system:
            payload["system"] = system
        _log_request(
            self._logger,
            req_id=req_id,
            provider="anthropic",
            model=model,
            messages=converted,
            log_content=log_content,
            system=system,
            temperature=temperature,
        )
        attempt, resp = await _with_retries(
            lambda: self._client.messages.create(**payload),
            log=self._logger,
            provider="anthropic",
            model=model,
            req_id=req_id,
            max_retries=self._max_retries,
        )
        content = "".join(getattr(block, "text", "") or "" for block in (resp.content or []))
        _log_response(
            self._logger,
            req_id=req_id,
            provider="anthropic",
            model=model,
            attempt=attempt,
            usage=getattr(resp, "usage", None),
            content=content,
            log_content=log_content,
        )
        return content


# ---------- Google Gemini ----------


def _to_gemini_contents(messages: list[dict[str, str]]) -> list[dict[str, Any]]:
    return [
        {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
        for m in messages
    ]


def _finish_reason_to_str(reason: object) -> str:
    name = getattr(reason, "name", None)
    if isinstance(name, str) and name:
        return name
    return str(reason)


def _extract_gemini_text(resp: object) -> str:
    """Text of the first candidate.

    ``response.text`` raises when the candidate has no text part (blocked
    output, MAX_TOKENS before any text); that surfaces as ``ProviderError``.
    """
    try:
        text = getattr(resp, "text")
        return (text or "").strip()
    except (ValueError, AttributeError):
        candidates = getattr(resp, "candidates", None) or []
        if not candidates:
            raise ProviderError("Gemini returned no candidates / no text parts")
        cand0 = candidates[0]
        parts = getattr(getattr(cand0, "content", None), "parts", None) or []
        texts = [str(t) for t in (getattr(part, "text", None) for part in parts) if t]
        if texts:
            return "\n".join(texts).strip()
        raise ProviderError(
            "Gemini returned no text parts (candidate finish_reason="
            f"{_finish_reason_to_str(getattr(cand0, 'finish_reason', None))}). "
            "If this is MAX_TOKENS, increase LLM_MAX_OUTPUT_TOKENS/GEMINI_MAX_TOKENS."
        )


class AsyncGeminiLLMClient(AsyncLLMClient):
    def __init__(
        self,
        api_key: str | None = None,
        logger: Optional[Logger] = None,
        max_output_tokens: int | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        self._logger: Logger = logger or NullLogger()
        genai.configure(api_key=api_key or get_config_value("GOOGLE_API_KEY"))
        self._max_retries = max_retries or _default_max_retries()
        self._max_tokens = max_output_tokens or _get_int_setting("GEMINI_MAX_TOKENS", "LLM_MAX_OUTPUT_TOKENS", default=8192) or 8192
        self._timeout = float(timeout) if timeout is not None else _default_timeout()

    @_llm_span("gemini")
    async def chat(self, messages, model, temperature=0.0, **kwargs) -> str:
        req_id = kwargs.pop("req_id", None) or str(uuid.uuid4())
        system, rest = _split_system(messages)
        contents = _to_gemini_contents(rest)
        log_content = _log_content_enabled()
        gen_config = {"temperature": temperature, "max_output_tokens": kwargs.pop("max_output_tokens", self._max_tokens)}
        gm = genai.GenerativeModel(model_name=model, system_instruction=system)
        request_options = genai.types.RequestOptions(timeout=self._timeout) if self._timeout else None
        _log_request(
            self._logger,
            req_id=req_id,
            provider="gemini",
            model=model,
            messages=contents,
            log_content=log_content,
            key="parts",
            system=system,
            temperature=temperature,
        )
        attempt, resp = await _with_retries(
            lambda: gm.generate_content_async(contents, generation_config=gen_config, request_options=request_options),
            log=self._logger,
            provider="gemini",
            model=model,
            req_id=req_id,
            max_retries=self._max_retries,
        )
        content = _extract_gemini_text(resp)
        _log_response(
            self._logger,
            req_id=req_id,
            provider="gemini",
            model=model,
            attempt=attempt,
            usage=getattr(resp, "usage_metadata", None),
            content=content,
            log_content=log_content,
        )
        return content

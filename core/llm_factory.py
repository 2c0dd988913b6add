"""Build LLM clients from configuration (LLM_PROVIDER / LLM_MODEL / LLM_TIMEOUT_SECONDS)."""

from __future__ import annotations

from typing import Callable, Dict

from core.config import get_config_value, get_default_model, get_timeout_seconds
from core.llm_client import (
    AsyncClaudeLLMClient,
    AsyncGeminiLLMClient,
    AsyncLLMClient,
    AsyncOpenAILLMClient,
)
from core.obs import Logger, default_obs_logger
from core.structured import LLMStructuredClient


# Provider registry for simple DI. Extend as new adapters are added.
_ASYNC_PROVIDERS: Dict[str, Callable[[Logger, float], AsyncLLMClient]] = {
    "openai": lambda logger, timeout: AsyncOpenAILLMClient(logger=logger, timeout=timeout),
    "claude": lambda logger, timeout: AsyncClaudeLLMClient(logger=logger, timeout=timeout),
    "gemini": lambda logger, timeout: AsyncGeminiLLMClient(logger=logger, timeout=timeout),
}

PROVIDER_API_KEYS: Dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "gemini": "GOOGLE_API_KEY",
}


def configured_provider(provider: str | None = None) -> str:
    return (provider or get_config_value("LLM_PROVIDER", "openai") or "openai").strip().lower()


def get_async_llm_client(logger: Logger | None = None, provider: str | None = None) -> AsyncLLMClient:
    # Shared structured logger by default so all LLM calls are observable.
    logger = logger or default_obs_logger("llm")
    name = configured_provider(provider)
    try:
        factory = _ASYNC_PROVIDERS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown async LLM provider '{name}'") from exc
    return factory(logger, get_timeout_seconds())


def get_structured_client(
    logger: Logger | None = None,
    provider: str | None = None,
    model: str | None = None,
) -> LLMStructuredClient:
    """Structured-generation client over the configured provider; what every pipeline stage calls."""
    llm = get_async_llm_client(logger=logger, provider=provider)
    return LLMStructuredClient(llm=llm, model=model or get_default_model())

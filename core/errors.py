"""Error taxonomy for generation calls and stage failures."""

from __future__ import annotations

import asyncio
from typing import Literal

import anthropic
from google.api_core import exceptions as google_exceptions
import httpx
import openai
from pydantic import ValidationError

ErrorKind = Literal["timeout", "validation", "provider", "input", "unknown"]


class GenerationError(RuntimeError):
    """Base error for anything raised while producing a stage output."""

    kind: ErrorKind = "unknown"


class GenerationTimeout(GenerationError):
    """The generation call (or the whole stage) ran out of time."""

    kind: ErrorKind = "timeout"


class StructuredOutputInvalid(GenerationError):
    """Model output could not be parsed or did not match the output schema."""

    kind: ErrorKind = "validation"


class ProviderError(GenerationError):
    """The hosted model rejected or failed the request (quota, 5xx, blocked output)."""

    kind: ErrorKind = "provider"


class InputValidationError(GenerationError):
    """Resume or job description text was unusable before any call was made."""

    kind: ErrorKind = "input"


class SchemaDefinitionError(ValueError):
    """A stage's output schema is inconsistent. Raised at import time, never per request."""


_TIMEOUT_TYPES = (
    asyncio.TimeoutError,
    TimeoutError,
    httpx.TimeoutException,
    openai.APITimeoutError,
    anthropic.APITimeoutError,
    google_exceptions.DeadlineExceeded,
)
_PROVIDER_TYPES = (openai.APIError, anthropic.APIError, google_exceptions.GoogleAPICallError, httpx.HTTPError)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised inside a stage onto a retry-relevant kind."""
    if isinstance(exc, GenerationError):
        return exc.kind
    if isinstance(exc, _TIMEOUT_TYPES):
        return "timeout"
    if isinstance(exc, ValidationError):
        return "validation"
    if isinstance(exc, _PROVIDER_TYPES):
        return "provider"
    return "unknown"


def error_message(exc: BaseException) -> str:
    """Human-readable message for a failed stage; never empty."""
    message = str(exc).strip()
    return message or exc.__class__.__name__

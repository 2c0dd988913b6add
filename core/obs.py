""" Structured JSON event logging for pipeline runs and LLM calls.

Two channels coexist: the stdlib ``logging`` module for developer-facing
messages, and the ``Logger`` protocol below for machine-readable events
(``pipeline.stage.completed``, ``llm.response``, ...). Every event carries
the fields bound with ``bind_log_context`` for the current task.
"""

from __future__ import annotations

import contextlib
import contextvars
import datetime
import functools
import json
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Mapping, Protocol, TypeVar

from core.config import get_config_value

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_LOG_DIR = REPO_ROOT / "logs"

# session_id, correlation_id, req_id ... for the current task.
_LOG_CONTEXT: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)

R = TypeVar("R")


@contextlib.contextmanager
def bind_log_context(**fields: Any) -> Iterator[None]:
    """Attach fields to every event emitted inside the block.

    Bindings nest and are restored on exit. Tasks spawned inside the block
    (asyncio.gather, create_task) copy the context and so inherit them.
    ``None`` values are not bound.
    """
    merged = {**_LOG_CONTEXT.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _LOG_CONTEXT.set(merged)
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


class Logger(Protocol):
    def info(self, event: str, **fields: Any) -> None: ...
    def warn(self, event: str, **fields: Any) -> None: ...
    def error(self, event: str, **fields: Any) -> None: ...


class NullLogger:
    def info(self, event: str, **fields): pass
    def warn(self, event: str, **fields): pass
    def error(self, event: str, **fields): pass


@dataclass(slots=True)
class MemoryLogger:
    """Keeps events in memory as ``(level, event, fields)``; context fields included."""

    records: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def _emit(self, level: str, event: str, fields: dict[str, Any]) -> None:
        self.records.append((level, event, {**_LOG_CONTEXT.get(), **fields}))

    def info(self, event, **fields): self._emit("info", event, fields)
    def warn(self, event, **fields): self._emit("warn", event, fields)
    def error(self, event, **fields): self._emit("error", event, fields)

    def events(self, prefix: str = "") -> list[str]:
        return [event for _, event, _ in self.records if event.startswith(prefix)]


class JsonStdoutLogger:
    """One JSON object per line on stdout (errors on stderr), optionally teed to a file."""

    def __init__(self, service: str = "pipeline", env: str = "dev", log_path: str | Path | None = None):
        self.service = service
        self.env = env
        self._log_path = Path(log_path).expanduser() if log_path else None
        self._lock = threading.Lock()

    def record(self, level: str, event: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        ts = (
            datetime.datetime.now(datetime.timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        return {
            "ts": ts,
            "level": level,
            "event": event,
            "service": self.service,
            "env": self.env,
            **_LOG_CONTEXT.get(),
            **fields,
        }

    def _emit(self, level: str, event: str, **fields):
        line = json.dumps(self.record(level, event, fields), default=str)
        print(line, file=sys.stderr if level == "error" else sys.stdout)
        if self._log_path is None:
            return
        with self._lock:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._log_path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    def info(self, event, **fields): self._emit("info", event, **fields)
    def warn(self, event, **fields): self._emit("warn", event, **fields)
    def error(self, event, **fields): self._emit("error", event, **fields)


class JsonRepoLogger(JsonStdoutLogger):
    """JSON logger that also appends to ``logs/<service>.log`` (or OBS_LOG_FILE)."""

    def __init__(
        self,
        service: str = "pipeline",
        env: str = "dev",
        log_dir: str | Path | None = None,
        filename: str | None = None,
    ):
        override = get_config_value("OBS_LOG_FILE")
        if override and not filename:
            path = Path(override).expanduser()
            if not path.is_absolute():
                path = REPO_ROOT / path
        else:
            target_dir = Path(log_dir).expanduser() if log_dir else DEFAULT_LOG_DIR
            path = target_dir / (filename or f"{service}.log")
        super().__init__(service=service, env=env, log_path=path)


@dataclass(slots=True)
class Span:
    """Times a block and emits ``<event>.start`` / ``.end`` / ``.error``."""

    logger: Logger
    event: str
    fields: Mapping[str, Any]
    start_ns: int = 0

    def __enter__(self):
        self.start_ns = time.time_ns()
        self.logger.info(self.event + ".start", **self.fields)
        return self

    def elapsed_ms(self) -> int:
        return (time.time_ns() - self.start_ns) // 1_000_000

    def __exit__(self, exc_type, exc, tb):
        if exc is None:
            self.logger.info(self.event + ".end", duration_ms=self.elapsed_ms(), **self.fields)
            return
        self.logger.error(
            self.event + ".error",
            duration_ms=self.elapsed_ms(),
            error_type=type(exc).__name__,
            error=str(exc),
            **self.fields,
        )


def with_span(
    event: str,
    *,
    logger_attr: str = "_logger",
    fields: Mapping[str, Any] | None = None,
    fields_fn: Callable[..., Mapping[str, Any]] | None = None,
    pre: Callable[[tuple[Any, ...], dict[str, Any]], None] | None = None,
) -> Callable[[Callable[..., Awaitable[R]]], Callable[..., Awaitable[R]]]:
    """Wrap an async method in a ``Span``.

    The logger is looked up on ``self`` under ``logger_attr``; without one the
    span is silent. ``pre`` may rewrite kwargs (e.g. fill in a req_id) before
    the span fields are computed.
    """

    def decorator(fn: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> R:
            if pre:
                pre(args, kwargs)
            logger = getattr(args[0], logger_attr, None) if args else None
            span_fields = dict(fields or {})
            if fields_fn:
                span_fields.update(fields_fn(*args, **kwargs))
            with Span(logger or NullLogger(), event, span_fields):
                return await fn(*args, **kwargs)

        return wrapper

    return decorator


def default_obs_logger(service: str) -> Logger:
    """Structured logger used when a component is not handed one explicitly.

    File logging is opt-in through OBS_LOG_FILE / OBS_LOG_DIR so library use
    (tests, notebooks) does not litter the working tree.
    """
    env = get_config_value("APP_ENV", "dev") or "dev"
    if get_config_value("OBS_LOG_FILE") or get_config_value("OBS_LOG_DIR"):
        return JsonRepoLogger(service=service, env=env, log_dir=get_config_value("OBS_LOG_DIR"))
    return JsonStdoutLogger(service=service, env=env)

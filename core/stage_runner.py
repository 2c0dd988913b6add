"""Run one stage and turn its outcome into a ``Stage`` record."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from core.errors import GenerationTimeout, classify_error, error_message
from core.models import Stage, StageName, StageStatus, stage_type
from core.obs import Logger, NullLogger

logger = logging.getLogger(__name__)

T = TypeVar("T")


def now_ms() -> int:
    return time.time_ns() // 1_000_000


async def run_stage(
    name: StageName,
    fn: Callable[[], Awaitable[T]],
    *,
    timeout: float | None = None,
    obs: Optional[Logger] = None,
) -> Stage:
    """Await ``fn`` and return a completed or failed stage; never raises for stage errors.

    Cancellation is not a stage failure and propagates to the caller.
    """
    obs = obs or NullLogger()
    cls = stage_type(name)
    started_at = now_ms()
    obs.info("pipeline.stage.start", stage=name.value)
    try:
        if timeout is not None:
            try:
                output = await asyncio.wait_for(fn(), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise GenerationTimeout(f"{name.value} timed out after {timeout:g}s") from exc
        else:
            output = await fn()
    except Exception as exc:
        finished_at = now_ms()
        kind = classify_error(exc)
        message = error_message(exc)
        logger.warning("stage.failed name=%s kind=%s error=%s", name.value, kind, message)
        obs.warn(
            "pipeline.stage.failed",
            stage=name.value,
            duration_ms=finished_at - started_at,
            error_kind=kind,
            error=message,
        )
        return cls(
            name=name,
            status=StageStatus.FAILED,
            started_at=started_at,
            finished_at=finished_at,
            error=message,
            error_kind=kind,
        )
    finished_at = now_ms()
    obs.info("pipeline.stage.completed", stage=name.value, duration_ms=finished_at - started_at)
    return cls(
        name=name,
        status=StageStatus.COMPLETED,
        started_at=started_at,
        finished_at=finished_at,
        output=output,
    )

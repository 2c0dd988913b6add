"""Centralized settings for the pipeline and the HTTP surface."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal

from core.config import get_bool_setting, get_config_value, get_float_setting

Topology = Literal["parallel", "sequential"]


def _parse_csv(value: str | None, *, fallback: Iterable[str]) -> list[str]:
    if not value:
        return list(fallback)
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_topology(value: str | None) -> Topology:
    name = (value or "parallel").strip().lower()
    if name not in ("parallel", "sequential"):
        raise ValueError(f"Unknown PIPELINE_TOPOLOGY '{name}' (expected parallel|sequential)")
    return name  # type: ignore[return-value]


@dataclass(slots=True)
class PipelineSettings:
    topology: Topology = "parallel"
    emit_running: bool = False
    stage_timeout_seconds: float | None = None
    json_repair: bool = True


@dataclass(slots=True)
class AppSettings:
    app_env: str = "dev"
    service_name: str = "ats-pipeline-api"
    app_version: str = "0.1.0"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    def cors_allowlist(self) -> list[str]:
        if self.app_env == "dev" and not self.cors_origins:
            return ["*"]
        return self.cors_origins


@lru_cache
def get_pipeline_settings() -> PipelineSettings:
    timeout = get_float_setting("STAGE_TIMEOUT_SECONDS", None)
    return PipelineSettings(
        topology=_parse_topology(get_config_value("PIPELINE_TOPOLOGY")),
        emit_running=get_bool_setting("PIPELINE_EMIT_RUNNING", False),
        stage_timeout_seconds=timeout if timeout and timeout > 0 else None,
        json_repair=get_bool_setting("LLM_JSON_REPAIR", True),
    )


@lru_cache
def get_app_settings() -> AppSettings:
    return AppSettings(
        app_env=get_config_value("APP_ENV", "dev") or "dev",
        service_name=get_config_value("SERVICE_NAME", "ats-pipeline-api") or "ats-pipeline-api",
        app_version=get_config_value("APP_VERSION", "0.1.0") or "0.1.0",
        cors_origins=_parse_csv(
            get_config_value("CORS_ORIGINS"), fallback=("http://localhost:3000",)
        ),
    )

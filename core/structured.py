"""Structured generation over the text-generation port.

``LLMStructuredClient`` asks a chat model for a JSON object matching an
``OutputSchema``, parses it, repairs it once through ``JsonRepairAgent`` when
parsing or validation fails, and validates the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from core.config import get_default_model
from core.errors import StructuredOutputInvalid
from core.json_repair import JsonRepairAgent
from core.json_utils import parse_json_object
from core.llm_client import AsyncLLMClient
from core.schema import OutputSchema
from core.settings import get_pipeline_settings

logger = logging.getLogger(__name__)


STRUCTURED_SYSTEM_TEMPLATE = """
You are a precise assistant that always answers with a single JSON object.
The object MUST match this JSON schema:

{schema_text}

Rules:
- Output JSON only: no markdown fences, no commentary.
- Include every required field.
- Use empty lists rather than omitting list fields.
"""


class StructuredGenerationClient(Protocol):
    """Port for calls that must return data shaped like ``schema``."""

    async def generate_structured(
        self,
        prompt: str,
        schema: OutputSchema,
        temperature: float,
        *,
        req_id: str | None = None,
    ) -> dict[str, Any]:
        ...


@dataclass(slots=True)
class LLMStructuredClient:
    llm: AsyncLLMClient
    model: str = field(default_factory=get_default_model)
    repair: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.repair is None:
            self.repair = get_pipeline_settings().json_repair

    def build_messages(self, prompt: str, schema: OutputSchema) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": STRUCTURED_SYSTEM_TEMPLATE.format(schema_text=schema.describe())},
            {"role": "user", "content": prompt},
        ]

    @staticmethod
    def _parse(raw: str, schema: OutputSchema) -> dict[str, Any]:
        return schema.validate(parse_json_object(raw, StructuredOutputInvalid))

    async def generate_structured(
        self,
        prompt: str,
        schema: OutputSchema,
        temperature: float,
        *,
        req_id: str | None = None,
    ) -> dict[str, Any]:
        extra = {"req_id": req_id} if req_id else {}
        raw = await self.llm.chat(
            messages=self.build_messages(prompt, schema),
            model=self.model,
            temperature=temperature,
            **extra,
        )
        try:
            return self._parse(raw, schema)
        except StructuredOutputInvalid as exc:
            if not self.repair:
                raise
            logger.warning("structured.repair req_id=%s error=%s", req_id, exc)
            repairer = JsonRepairAgent(llm=self.llm, model=self.model)
            repaired = await repairer.repair(raw, schema.describe(), error=str(exc), req_id=req_id)
            try:
                return self._parse(repaired, schema)
            except StructuredOutputInvalid as exc2:
                raise StructuredOutputInvalid(f"{exc2} (after JSON repair)") from exc

"""LLM-powered JSON repair utility.

Infrastructure, not a pipeline stage: given malformed model output and the
schema it should have matched, ask the model to re-emit JSON only.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.llm_client import AsyncLLMClient


REPAIR_SYSTEM_TEMPLATE = """
You are a strict JSON repair tool.
You receive invalid or partially valid JSON that was intended to match
this target JSON schema:

{schema_text}

Your job:
- Return a single valid JSON object that best matches the schema.
- Keep every value that is already present; do NOT invent content.
- If a required value is missing or unclear, use an empty string or empty list.
- Output JSON only, with no markdown, no backticks, and no commentary.
"""


@dataclass(slots=True)
class JsonRepairAgent:
    """Repair model output that failed to parse or validate."""

    llm: AsyncLLMClient
    model: str

    def build_messages(self, raw: str, schema_text: str, error: str | None = None) -> list[dict[str, str]]:
        parts = [
            "The following text is the model's output that failed to parse or validate as JSON.",
            "Return a corrected JSON version.",
            "",
            "Original output:",
            raw,
        ]
        if error:
            parts.extend(["", "Parser/validation error:", error])
        return [
            {"role": "system", "content": REPAIR_SYSTEM_TEMPLATE.format(schema_text=schema_text)},
            {"role": "user", "content": "\n".join(parts)},
        ]

    async def repair(
        self,
        raw: str,
        schema_text: str,
        error: str | None = None,
        req_id: str | None = None,
    ) -> str:
        """Return a best-effort repaired JSON string; callers still parse and validate it."""
        messages = self.build_messages(raw, schema_text, error)
        # Temperature 0 to keep the repair as deterministic as possible.
        extra = {"req_id": req_id} if req_id else {}
        return await self.llm.chat(messages=messages, model=self.model, temperature=0.0, **extra)

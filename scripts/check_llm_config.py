"""Print the effective LLM and pipeline configuration without leaking secrets.

Usage:
  .venv/bin/python -m scripts.check_llm_config
  .venv/bin/python -m scripts.check_llm_config --ping
  .venv/bin/python -m scripts.check_llm_config --ping-structured
"""

from __future__ import annotations

import argparse
import json
import os

import anyio

from agents.keyword_analysis import KEYWORD_SCHEMA
from core.config import get_config_value, get_timeout_seconds
from core.llm_factory import PROVIDER_API_KEYS, configured_provider, get_structured_client
from core.obs import NullLogger
from core.settings import get_pipeline_settings


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--ping", action="store_true", help="Make a live free-text LLM call.")
    parser.add_argument(
        "--ping-structured",
        action="store_true",
        help="Run one keyword-analysis shaped call through the structured client (JSON + schema).",
    )
    args = parser.parse_args()

    provider = configured_provider()
    pipeline = get_pipeline_settings()
    client = get_structured_client(logger=NullLogger(), provider=provider)

    print(f"LLM_PROVIDER={provider}")
    print(f"LLM_MODEL={client.model}")
    print(f"LLM_TIMEOUT_SECONDS={get_timeout_seconds()}")
    print(f"PIPELINE_TOPOLOGY={pipeline.topology}")
    print(f"PIPELINE_EMIT_RUNNING={pipeline.emit_running}")
    print(f"STAGE_TIMEOUT_SECONDS={pipeline.stage_timeout_seconds}")
    print(f"LLM_JSON_REPAIR={client.repair}")

    key_name = PROVIDER_API_KEYS.get(provider)
    if key_name:
        print(f"{key_name}: configured={bool(get_config_value(key_name))} env_set={bool(os.getenv(key_name))}")
    print(f"LLM client: {client.llm.__class__.__name__}")
    effective_max = getattr(client.llm, "_max_tokens", None)
    if isinstance(effective_max, int):
        print(f"effective_max_output_tokens={effective_max}")

    if args.ping:
        async def _ping() -> str:
            return await client.llm.chat(
                messages=[
                    {"role": "system", "content": "Reply with a single word."},
                    {"role": "user", "content": "ping"},
                ],
                model=client.model,
                temperature=1.0,
            )

        resp = anyio.run(_ping)
        print("Ping response preview:", (resp or "").strip()[:100])

    if args.ping_structured:
        async def _structured() -> dict:
            return await client.generate_structured(
                "Compare.\n\nJOB DESCRIPTION:\nPython developer with SQL\n\nRESUME:\nI write Python.",
                KEYWORD_SCHEMA,
                0.2,
            )

        print("Structured response:", json.dumps(anyio.run(_structured)))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

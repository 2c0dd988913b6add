"""Run the analysis pipeline over a resume and a JD stored as text files.

Usage:
  .venv/bin/python -m scripts.analyze_from_text --jd jd.txt --resume resume.txt
  .venv/bin/python -m scripts.analyze_from_text --jd jd.txt --resume resume.txt --mode score --progress
  .venv/bin/python -m scripts.analyze_from_text --jd jd.txt --resume resume.txt --cover-letters
"""

from __future__ import annotations

from argparse import ArgumentParser, FileType
import json
from pathlib import Path
import uuid

import anyio

from core.llm_factory import get_structured_client
from core.models import PipelineResult, StageStatus
from core.obs import JsonRepoLogger, JsonStdoutLogger
from core.pipeline_orchestrator import AnalysisMode, PipelineOrchestrator


def _summary(snapshot: PipelineResult) -> str:
    return " ".join(f"{s.name.value}={s.status.value}" for s in snapshot.stages())


def main() -> int:
    p = ArgumentParser(description="Analyze a resume against a job description.")
    p.add_argument("--jd", type=FileType("r"), required=True, help="Path to JD text file")
    p.add_argument("--resume", type=FileType("r"), required=True, help="Path to resume text file")
    p.add_argument("--mode", choices=[m.value for m in AnalysisMode], default=AnalysisMode.FULL.value)
    p.add_argument("--topology", choices=["parallel", "sequential"], help="Overrides PIPELINE_TOPOLOGY")
    p.add_argument("--progress", action="store_true", help="Print a line per progress snapshot")
    p.add_argument("--cover-letters", action="store_true", help="Generate the three cover letter variations instead")
    p.add_argument("--out-json", type=Path, help="Path to save the result JSON (e.g., out/analysis.json)")
    p.add_argument("--log-file", type=Path, help="Path to append structured logs (JSON lines)")
    args = p.parse_args()

    jd_text = args.jd.read()
    resume_text = args.resume.read()

    if args.log_file:
        logger = JsonStdoutLogger(service="scripts", env="dev", log_path=args.log_file)
    else:
        logger = JsonRepoLogger(service="scripts", env="dev", filename="analyze_from_text.log")

    orchestrator = PipelineOrchestrator.from_settings(get_structured_client(logger=logger), obs=logger)
    if args.topology:
        orchestrator.topology = args.topology
    session_id = str(uuid.uuid4())

    def _on_progress(snapshot: PipelineResult) -> None:
        print(f"[progress] {_summary(snapshot)}")

    async def _run():
        if args.cover_letters:
            return await orchestrator.generate_cover_letter_variations(resume_text, jd_text, session_id)
        return await orchestrator.analyze(
            AnalysisMode(args.mode),
            resume_text,
            jd_text,
            session_id,
            str(uuid.uuid4()),
            _on_progress if args.progress else None,
        )

    result = anyio.run(_run)
    payload = json.dumps(result.model_dump(mode="json", by_alias=True), indent=2)
    print(payload)
    if args.out_json:
        args.out_json.parent.mkdir(parents=True, exist_ok=True)
        args.out_json.write_text(payload, encoding="utf-8")

    if isinstance(result, PipelineResult):
        return 1 if any(s.status is StageStatus.FAILED for s in result.stages()) else 0
    return 0 if result.status == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(main())

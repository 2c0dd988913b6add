"""Analysis pipeline orchestrator.

Composes stage runs into the analysis entry points:

parallel topology (default)
  full      → keywordAnalysis | scoring | optimiser (+ formatter mirror)
  keywords  → keywordAnalysis
  score     → keywordAnalysis | scoring

sequential topology
  jdAnalysis → keywordAnalysis → (scoring | optimiser), trimmed per mode

Stages without a data dependency always run concurrently. Every settled
stage is published to the progress callback as soon as it settles. Each run
owns a private accumulator; stage failures live in the result, never raise.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
import inspect
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence, Union

from agents.ats_scoring import SCORING
from agents.cover_letter_agent import COVER_LETTER, CoverLetterAgent
from agents.jd_analysis import JD_ANALYSIS
from agents.keyword_analysis import KEYWORD_ANALYSIS
from agents.resume_optimizer import OPTIMISER
from agents.stage import StageDefinition, StageInputs
from core.errors import InputValidationError, classify_error, error_message
from core.models import (
    CoverLetterVariations,
    FormatterOutput,
    PipelineResult,
    Stage,
    StageName,
    StageStatus,
    stage_type,
)
from core.obs import Logger, NullLogger, bind_log_context
from core.settings import PipelineSettings, Topology, get_pipeline_settings
from core.stage_runner import now_ms, run_stage
from core.structured import StructuredGenerationClient


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PipelineResult], Union[None, Awaitable[None]]]


class AnalysisMode(str, Enum):
    FULL = "full"
    KEYWORDS = "keywords"
    SCORE = "score"


_MODE_STAGES: dict[AnalysisMode, tuple[StageName, ...]] = {
    AnalysisMode.FULL: (StageName.KEYWORD_ANALYSIS, StageName.SCORING, StageName.OPTIMISER, StageName.FORMATTER),
    AnalysisMode.KEYWORDS: (StageName.KEYWORD_ANALYSIS,),
    AnalysisMode.SCORE: (StageName.KEYWORD_ANALYSIS, StageName.SCORING),
}


def launched_stages(mode: AnalysisMode, topology: Topology) -> tuple[StageName, ...]:
    """Stage names a run of ``mode`` settles, in launch order."""
    names = _MODE_STAGES[mode]
    if topology == "sequential":
        return (StageName.JD_ANALYSIS, *names)
    return names


def mirror_formatter(optimiser: Stage) -> Stage:
    """The formatter stage is derived: it settles with the optimiser's markdown or error."""
    cls = stage_type(StageName.FORMATTER)
    common = dict(
        name=StageName.FORMATTER,
        status=optimiser.status,
        started_at=optimiser.started_at,
        finished_at=optimiser.finished_at,
    )
    if optimiser.status is StageStatus.COMPLETED:
        return cls(**common, output=FormatterOutput(markdown=optimiser.output.markdown))
    if optimiser.status is StageStatus.FAILED:
        return cls(**common, error=optimiser.error, error_kind=optimiser.error_kind)
    return cls(**common)


class _Run:
    """Per-invocation accumulator and progress channel."""

    def __init__(self, result: PipelineResult, on_progress: Optional[ProgressCallback]):
        self.result = result
        self._on_progress = on_progress

    async def publish(self, *stages: Stage) -> None:
        for stage in stages:
            self.result = self.result.with_stage(stage)
        if self._on_progress is None:
            return
        outcome = self._on_progress(self.result)
        if inspect.isawaitable(outcome):
            await outcome


@dataclass(slots=True)
class PipelineOrchestrator:
    client: StructuredGenerationClient
    topology: Topology = "parallel"
    emit_running: bool = False
    stage_timeout: float | None = None
    obs: Logger = field(default_factory=NullLogger)

    @classmethod
    def from_settings(
        cls,
        client: StructuredGenerationClient,
        settings: PipelineSettings | None = None,
        obs: Logger | None = None,
    ) -> "PipelineOrchestrator":
        settings = settings or get_pipeline_settings()
        return cls(
            client=client,
            topology=settings.topology,
            emit_running=settings.emit_running,
            stage_timeout=settings.stage_timeout_seconds,
            obs=obs or NullLogger(),
        )

    # ---------- entry points ----------

    async def analyze_resume_and_jd(
        self,
        resume_text: str,
        job_description: str,
        session_id: str,
        correlation_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        return await self.analyze(AnalysisMode.FULL, resume_text, job_description, session_id, correlation_id, on_progress)

    async def analyze_keyword_only(
        self,
        resume_text: str,
        job_description: str,
        session_id: str,
        correlation_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        return await self.analyze(AnalysisMode.KEYWORDS, resume_text, job_description, session_id, correlation_id, on_progress)

    async def analyze_score_only(
        self,
        resume_text: str,
        job_description: str,
        session_id: str,
        correlation_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        return await self.analyze(AnalysisMode.SCORE, resume_text, job_description, session_id, correlation_id, on_progress)

    async def analyze(
        self,
        mode: AnalysisMode,
        resume_text: str,
        job_description: str,
        session_id: str,
        correlation_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        mode = AnalysisMode(mode)
        sequential = self.topology == "sequential"
        run = _Run(
            PipelineResult.seed(session_id, correlation_id, with_jd_analysis=sequential),
            on_progress,
        )
        with bind_log_context(session_id=session_id, correlation_id=correlation_id):
            logger.info("pipeline.start mode=%s topology=%s session_id=%s", mode.value, self.topology, session_id)
            self.obs.info("pipeline.start", mode=mode.value, topology=self.topology)

            problem = self._input_problem(resume_text, job_description)
            if problem is not None:
                await self._fail_all(run, launched_stages(mode, self.topology), problem)
            elif sequential:
                await self._run_sequential(run, mode, StageInputs(resume_text, job_description))
            else:
                await self._run_parallel(run, mode, StageInputs(resume_text, job_description))

            result = run.result
            score = result.scoring.output.overall if result.scoring.output is not None else None
            failed = [s.name.value for s in result.stages() if s.status is StageStatus.FAILED]
            logger.info("pipeline.completed mode=%s score=%s failed=%s", mode.value, score, failed)
            self.obs.info("pipeline.completed", mode=mode.value, score=score, failed_stages=failed)
            return result

    async def stream_analysis(
        self,
        mode: AnalysisMode,
        resume_text: str,
        job_description: str,
        session_id: str,
        correlation_id: str,
    ) -> AsyncIterator[PipelineResult]:
        """Yield every progress snapshot of a run, then its final result.

        Closing the generator early cancels the run.
        """
        queue: asyncio.Queue[PipelineResult] = asyncio.Queue()
        getter: Optional[asyncio.Future] = None
        task = asyncio.create_task(
            self.analyze(mode, resume_text, job_description, session_id, correlation_id, queue.put_nowait)
        )
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield getter.result()
                    continue
                getter.cancel()
                break
            while not queue.empty():
                yield queue.get_nowait()
            yield task.result()
        finally:
            if getter is not None and not getter.done():
                getter.cancel()
            if not task.done():
                task.cancel()

    async def generate_cover_letter_variations(
        self,
        resume_text: str,
        job_description: str,
        session_id: str,
    ) -> CoverLetterVariations:
        """Three styled letters from one generation call; failures come back as data."""
        with bind_log_context(session_id=session_id):
            self.obs.info("cover_letter.start", kind="variations")
            problem = self._input_problem(resume_text, job_description)
            if problem is not None:
                self.obs.warn("cover_letter.failed", error_kind=problem.kind, error=str(problem))
                return CoverLetterVariations(status="failed", outputs=[], error=str(problem))
            agent = CoverLetterAgent(client=self.client)
            try:
                call = agent.generate_variations(resume_text, job_description)
                versions = await (asyncio.wait_for(call, self.stage_timeout) if self.stage_timeout else call)
            except Exception as exc:
                message = error_message(exc)
                logger.warning("cover_letter.failed session_id=%s error=%s", session_id, message)
                self.obs.warn("cover_letter.failed", error_kind=classify_error(exc), error=message)
                return CoverLetterVariations(status="failed", outputs=[], error=message)
            self.obs.info("cover_letter.completed", count=len(versions))
            return CoverLetterVariations(status="completed", outputs=versions)

    async def generate_cover_letter(
        self,
        resume_text: str,
        job_description: str,
        session_id: str,
    ) -> Stage:
        """One formal letter, run and recorded as the ``coverLetter`` stage."""
        with bind_log_context(session_id=session_id):
            self.obs.info("cover_letter.start", kind="single")
            problem = self._input_problem(resume_text, job_description)
            if problem is not None:
                return self._failed_stage(StageName.COVER_LETTER, problem)
            inputs = StageInputs(resume_text, job_description)
            return await run_stage(
                StageName.COVER_LETTER,
                lambda: COVER_LETTER.run(self.client, inputs),
                timeout=self.stage_timeout,
                obs=self.obs,
            )

    # ---------- topologies ----------

    async def _run_parallel(self, run: _Run, mode: AnalysisMode, inputs: StageInputs) -> None:
        definitions: list[StageDefinition] = [KEYWORD_ANALYSIS]
        if mode in (AnalysisMode.SCORE, AnalysisMode.FULL):
            definitions.append(SCORING)
        if mode is AnalysisMode.FULL:
            definitions.append(OPTIMISER)
        await self._mark_running(run, definitions)
        await asyncio.gather(*(self._launch(run, d, inputs) for d in definitions))

    async def _run_sequential(self, run: _Run, mode: AnalysisMode, inputs: StageInputs) -> None:
        await self._mark_running(run, [JD_ANALYSIS])
        jd = await self._launch(run, JD_ANALYSIS, inputs)
        inputs = StageInputs(inputs.resume_text, inputs.job_description, jd_analysis=jd.output)

        await self._mark_running(run, [KEYWORD_ANALYSIS])
        keywords = await self._launch(run, KEYWORD_ANALYSIS, inputs)
        if mode is AnalysisMode.KEYWORDS:
            return

        inputs = StageInputs(
            inputs.resume_text,
            inputs.job_description,
            jd_analysis=inputs.jd_analysis,
            keyword_analysis=keywords.output,
        )
        definitions: list[StageDefinition] = [SCORING]
        if mode is AnalysisMode.FULL:
            definitions.append(OPTIMISER)
        await self._mark_running(run, definitions)
        await asyncio.gather(*(self._launch(run, d, inputs) for d in definitions))

    async def _launch(self, run: _Run, definition: StageDefinition, inputs: StageInputs) -> Stage:
        stage = await run_stage(
            definition.name,
            lambda: definition.run(self.client, inputs),
            timeout=self.stage_timeout,
            obs=self.obs,
        )
        if stage.name is StageName.OPTIMISER:
            await run.publish(stage, mirror_formatter(stage))
        else:
            await run.publish(stage)
        return stage

    # ---------- helpers ----------

    async def _mark_running(self, run: _Run, definitions: Sequence[StageDefinition]) -> None:
        if not self.emit_running:
            return
        started_at = now_ms()
        stages: list[Stage] = []
        for definition in definitions:
            names = [definition.name]
            if definition.name is StageName.OPTIMISER:
                names.append(StageName.FORMATTER)
            for name in names:
                stages.append(stage_type(name)(name=name, status=StageStatus.RUNNING, started_at=started_at))
        await run.publish(*stages)

    @staticmethod
    def _input_problem(resume_text: str, job_description: str) -> InputValidationError | None:
        if not (resume_text or "").strip():
            return InputValidationError("resume text is empty")
        if not (job_description or "").strip():
            return InputValidationError("job description text is empty")
        return None

    def _failed_stage(self, name: StageName, problem: InputValidationError) -> Stage:
        at = now_ms()
        self.obs.warn("pipeline.stage.failed", stage=name.value, duration_ms=0, error_kind=problem.kind, error=str(problem))
        return stage_type(name)(
            name=name,
            status=StageStatus.FAILED,
            started_at=at,
            finished_at=at,
            error=str(problem),
            error_kind=problem.kind,
        )

    async def _fail_all(self, run: _Run, names: Sequence[StageName], problem: InputValidationError) -> None:
        logger.warning("pipeline.input_invalid error=%s", problem)
        await run.publish(*(self._failed_stage(name, problem) for name in names))

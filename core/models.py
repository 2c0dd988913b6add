from __future__ import annotations

from enum import Enum
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from core.errors import ErrorKind


class WireModel(BaseModel):
    """Base for everything the pipeline hands to callers.

    Immutable, snake_case in Python, camelCase on the wire
    (``model_dump(by_alias=True)``).
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ==== Stage outputs ====

class KeywordAnalysis(WireModel):
    """Keyword overlap between the resume and the job description."""

    matching_keywords: list[str] = Field(..., description="JD keywords already present in the resume.")
    missing_keywords: list[str] = Field(..., description="JD keywords absent from the resume.")
    suggestions: list[str] = Field(..., description="3-5 actionable, non-fabricated improvements.")


class ScoreBreakdown(WireModel):
    """ATS score plus the job details pulled out of the JD in the same call."""

    overall: int | float = Field(..., description="ATS match score, 0-100.")
    alignment_notes: str
    matched_keywords: list[str]
    missing_keywords: list[str]
    job_title: Optional[str] = None
    company: Optional[str] = None


class OptimizedResumeDraft(WireModel):
    markdown: str = Field(..., description="Full rewritten resume in ATS-friendly markdown.")
    rationale: str = Field(..., description="What changed and why.")


class JDAnalysis(WireModel):
    """Structured reading of the job description on its own."""

    keywords: list[str]
    skills: list[str]
    title: Optional[str] = None
    summary: Optional[str] = None
    seniority: Optional[str] = None


class FormatterOutput(WireModel):
    markdown: str


class CoverLetterDraft(WireModel):
    markdown: str


# ==== Stage record ====

class StageName(str, Enum):
    KEYWORD_ANALYSIS = "keywordAnalysis"
    SCORING = "scoring"
    OPTIMISER = "optimiser"
    JD_ANALYSIS = "jdAnalysis"
    FORMATTER = "formatter"
    COVER_LETTER = "coverLetter"


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def settled(self) -> bool:
        return self in (StageStatus.COMPLETED, StageStatus.FAILED)


T = TypeVar("T")


class Stage(WireModel, Generic[T]):
    """Execution record for one agent.

    ``output`` is set iff the stage completed and ``error`` iff it failed.
    Timestamps are epoch milliseconds.
    """

    name: StageName
    status: StageStatus = StageStatus.PENDING
    started_at: Optional[int] = None
    finished_at: Optional[int] = None
    output: Optional[T] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @model_validator(mode="after")
    def _check_status_payload(self) -> "Stage[T]":
        if self.status is StageStatus.COMPLETED:
            if self.output is None or self.error is not None:
                raise ValueError("completed stage must carry output and no error")
        elif self.status is StageStatus.FAILED:
            if self.error is None or self.output is not None:
                raise ValueError("failed stage must carry an error and no output")
        elif self.output is not None or self.error is not None:
            raise ValueError(f"{self.status.value} stage cannot carry output or error")
        return self

    @property
    def settled(self) -> bool:
        return self.status.settled


_STAGE_TYPES: dict[StageName, type[Stage]] = {
    StageName.KEYWORD_ANALYSIS: Stage[KeywordAnalysis],
    StageName.SCORING: Stage[ScoreBreakdown],
    StageName.OPTIMISER: Stage[OptimizedResumeDraft],
    StageName.JD_ANALYSIS: Stage[JDAnalysis],
    StageName.FORMATTER: Stage[FormatterOutput],
    StageName.COVER_LETTER: Stage[CoverLetterDraft],
}


def stage_type(name: StageName) -> type[Stage]:
    """The parametrized Stage class whose output matches ``name``."""
    return _STAGE_TYPES[name]


def pending_stage(name: StageName) -> Stage:
    return stage_type(name)(name=name)


# ==== Aggregate ====

_SLOTS: dict[StageName, str] = {
    StageName.KEYWORD_ANALYSIS: "keyword_analysis",
    StageName.SCORING: "scoring",
    StageName.OPTIMISER: "optimiser",
    StageName.FORMATTER: "formatter",
    StageName.JD_ANALYSIS: "jd_analysis",
}


class PipelineResult(WireModel):
    """Aggregate state of one analysis run.

    ``jd_analysis`` is only present when the sequential topology ran it.
    """

    session_id: str
    correlation_id: str
    keyword_analysis: Stage[KeywordAnalysis]
    scoring: Stage[ScoreBreakdown]
    optimiser: Stage[OptimizedResumeDraft]
    formatter: Stage[FormatterOutput]
    jd_analysis: Optional[Stage[JDAnalysis]] = None

    @classmethod
    def seed(cls, session_id: str, correlation_id: str, *, with_jd_analysis: bool = False) -> "PipelineResult":
        return cls(
            session_id=session_id,
            correlation_id=correlation_id,
            keyword_analysis=pending_stage(StageName.KEYWORD_ANALYSIS),
            scoring=pending_stage(StageName.SCORING),
            optimiser=pending_stage(StageName.OPTIMISER),
            formatter=pending_stage(StageName.FORMATTER),
            jd_analysis=pending_stage(StageName.JD_ANALYSIS) if with_jd_analysis else None,
        )

    def stage(self, name: StageName) -> Optional[Stage]:
        return getattr(self, _SLOTS[name])

    def stages(self) -> list[Stage]:
        return [s for s in (self.stage(name) for name in _SLOTS) if s is not None]

    def with_stage(self, stage: Stage) -> "PipelineResult":
        """Return a copy with ``stage`` in its slot; this instance is untouched."""
        slot = _SLOTS.get(stage.name)
        if slot is None:
            raise KeyError(f"{stage.name.value} has no slot in PipelineResult")
        return self.model_copy(update={slot: stage})

    @property
    def settled(self) -> bool:
        return all(s.settled for s in self.stages())


# ==== Cover letters ====

class CoverLetterVersion(WireModel):
    id: str
    markdown: str
    style: str
    created_at: int
    job_title: Optional[str] = None
    company: Optional[str] = None


class CoverLetterVariations(WireModel):
    status: Literal["completed", "failed"]
    outputs: list[CoverLetterVersion] = Field(default_factory=list)
    error: Optional[str] = None


class CoverLetter(WireModel):
    """The letter a user keeps, plus the versions it was picked from."""

    markdown: str
    job_title: Optional[str] = None
    company: Optional[str] = None
    versions: list[CoverLetterVersion] = Field(default_factory=list)
    selected_id: Optional[str] = None

    @classmethod
    def from_variations(cls, variations: CoverLetterVariations) -> "CoverLetter":
        if variations.status != "completed" or not variations.outputs:
            raise ValueError("cannot build a cover letter from failed variations")
        first = variations.outputs[0]
        return cls(
            markdown="",
            job_title=first.job_title,
            company=first.company,
            versions=list(variations.outputs),
        )

    def select(self, version_id: str) -> "CoverLetter":
        for version in self.versions:
            if version.id == version_id:
                return self.model_copy(
                    update={
                        "markdown": version.markdown,
                        "selected_id": version.id,
                        "job_title": version.job_title or self.job_title,
                        "company": version.company or self.company,
                    }
                )
        raise KeyError(f"unknown cover letter version '{version_id}'")


# ==== Chat ====

class ChatMessage(WireModel):
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: Optional[int] = None

""" ATS Scoring stage. Also extracts the job title and company from the JD. """

from __future__ import annotations

import math

from agents.common_prompts import (
    join_sections,
    render_documents,
    render_jd_context,
    render_keyword_context,
)
from agents.stage import StageDefinition, StageInputs
from core.errors import StructuredOutputInvalid
from core.models import ScoreBreakdown, StageName
from core.schema import OutputSchema, array_of, number, string


SCORING_SCHEMA = OutputSchema(
    fields={
        "overall": number("Overall ATS match score from 0 to 100."),
        "alignmentNotes": string("Short explanation of how well the resume aligns with the role."),
        "matchedKeywords": array_of(string()),
        "missingKeywords": array_of(string()),
        "jobTitle": string("Job title extracted from the job description."),
        "company": string("Company name extracted from the job description."),
    },
    required=frozenset({"overall", "alignmentNotes", "matchedKeywords", "missingKeywords"}),
)

SCORING_INSTRUCTIONS = """You are the ATS Scorer agent. Compare the Resume against the Job Description.
1. Calculate an overall match score (0-100).
2. Provide alignment notes.
3. List matched and missing keywords.
4. EXTRACT the "Job Title" and "Company Name" from the Job Description."""


def build_scoring_prompt(inputs: StageInputs) -> str:
    return join_sections(
        SCORING_INSTRUCTIONS,
        render_jd_context(inputs.jd_analysis),
        render_keyword_context(inputs.keyword_analysis),
        render_documents(inputs.resume_text, inputs.job_description),
    )


def round_score(value: float) -> int:
    """Round half up (67.5 -> 68) and clamp to 0-100."""
    if not math.isfinite(value):
        raise StructuredOutputInvalid(f"scoring overall is not a finite number: {value!r}")
    return max(0, min(100, int(math.floor(value + 0.5))))


SCORING = StageDefinition(
    name=StageName.SCORING,
    schema=SCORING_SCHEMA,
    output_model=ScoreBreakdown,
    temperature=0.2,
    build_prompt=build_scoring_prompt,
    finalize=lambda output, inputs: output.model_copy(update={"overall": round_score(output.overall)}),
)

""" Keyword Analysis stage: JD keywords matched and missing in the resume. """

from __future__ import annotations

import logging
import re
from typing import Iterable

from agents.common_prompts import join_sections, render_documents, render_jd_context
from agents.stage import StageDefinition, StageInputs
from core.models import KeywordAnalysis, StageName
from core.schema import OutputSchema, array_of, string

logger = logging.getLogger(__name__)


KEYWORD_SCHEMA = OutputSchema(
    fields={
        "matchingKeywords": array_of(string(), "JD keywords that already appear in the resume."),
        "missingKeywords": array_of(string(), "JD keywords that do not appear in the resume."),
        "suggestions": array_of(string(), "3-5 concise, actionable suggestions. Never suggest fabricating experience."),
    },
    required=frozenset({"matchingKeywords", "missingKeywords", "suggestions"}),
)

KEYWORD_INSTRUCTIONS = (
    "You are the Keyword Analyzer agent. Compare the Resume against the Job Description. "
    "Return matched/missing keywords and 3-5 concise suggestions."
)


def build_keyword_prompt(inputs: StageInputs) -> str:
    return join_sections(
        KEYWORD_INSTRUCTIONS,
        render_jd_context(inputs.jd_analysis),
        render_documents(inputs.resume_text, inputs.job_description),
    )


def _dedupe(words: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for word in words:
        cleaned = word.strip()
        key = cleaned.casefold()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        out.append(cleaned)
    return out


def _occurs_in(word: str, text: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(word)}(?!\w)", text) is not None


def reconcile_keywords(analysis: KeywordAnalysis, resume_text: str) -> KeywordAnalysis:
    """Make the matching/missing lists disjoint and duplicate-free.

    A keyword reported on both sides is kept as matching only when it actually
    occurs in the resume text.
    """
    matching = _dedupe(analysis.matching_keywords)
    missing = _dedupe(analysis.missing_keywords)
    resume = resume_text.casefold()
    both = {w.casefold() for w in matching} & {w.casefold() for w in missing}
    if both:
        logger.info("keyword.reconcile overlap=%d", len(both))
        in_resume = {key for key in both if _occurs_in(key, resume)}
        matching = [w for w in matching if w.casefold() not in both or w.casefold() in in_resume]
        missing = [w for w in missing if w.casefold() not in in_resume]
    return analysis.model_copy(
        update={
            "matching_keywords": matching,
            "missing_keywords": missing,
            "suggestions": [s.strip() for s in analysis.suggestions if s.strip()],
        }
    )


KEYWORD_ANALYSIS = StageDefinition(
    name=StageName.KEYWORD_ANALYSIS,
    schema=KEYWORD_SCHEMA,
    output_model=KeywordAnalysis,
    temperature=0.2,
    build_prompt=build_keyword_prompt,
    finalize=lambda output, inputs: reconcile_keywords(output, inputs.resume_text),
)

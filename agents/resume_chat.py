""" Follow-up chat about an analysis, grounded in its results. """

from __future__ import annotations

from dataclasses import dataclass, field
import datetime
import logging
from typing import Optional, Sequence

from agents.common_prompts import format_letter_date
from core.config import get_default_model
from core.llm_client import AsyncLLMClient
from core.models import ChatMessage, PipelineResult

logger = logging.getLogger(__name__)


CONTEXT_TEMPLATE = """CURRENT DATE: {today}

CONTEXT ANALYSIS:
- Original Resume ATS Score: {score}/100
- Alignment Summary: {summary}
- Matching Keywords from Original: {matching}
- Missing Keywords from Original: {missing}
- Improvement Suggestions:
- {suggestions}

OPTIMIZED RESUME (AI-Generated Improved Version):
{optimized}

ORIGINAL RESUME (User's Current Version):
{resume_text}

JOB DESCRIPTION:
{jd_text}

IMPORTANT INSTRUCTIONS:
1. The ATS score of {score}/100 applies ONLY to the ORIGINAL resume.
2. The OPTIMIZED resume has been rewritten to address the missing keywords and gaps.
3. When asked to compare, score, or analyze the optimized resume against the job description, you MUST:
   a) Perform a fresh ATS analysis of the OPTIMIZED resume against the job description
   b) Count how many keywords from the job description appear in the optimized resume
   c) Evaluate alignment with job requirements, skills, and experience
   d) Provide a NEW ATS score (0-100) for the optimized resume with detailed justification
   e) Compare this new score to the original score of {score}/100
   f) Explain specifically which improvements (added keywords, better alignment, etc.) led to the score change
4. Your scoring should follow these criteria:
   - Keyword match rate (40%): How many JD keywords appear in the resume
   - Skills alignment (30%): How well skills match the requirements
   - Experience relevance (20%): How relevant is the experience to the role
   - Format & clarity (10%): ATS-friendly formatting and clear presentation
5. If the user asks you to modify their resume, respond with your explanation followed by "UPDATED_RESUME:" and then the complete updated resume text.
6. Always be specific and reference actual content from the resumes and job description."""

ASSISTANT_INSTRUCTIONS = (
    "You are an expert resume assistant. Continue the conversation below and provide a helpful, "
    "concise reply that uses the analysis context above when relevant."
)

UPDATED_RESUME_MARKER = "UPDATED_RESUME:"


def build_context(
    analysis: PipelineResult,
    resume_text: str,
    jd_text: str,
    today: datetime.date | None = None,
) -> str:
    scoring = analysis.scoring.output
    keywords = analysis.keyword_analysis.output
    optimiser = analysis.optimiser.output
    score = scoring.overall if scoring is not None else "N/A"
    return CONTEXT_TEMPLATE.format(
        today=format_letter_date(today),
        score=score,
        summary=scoring.alignment_notes if scoring is not None else "Not available",
        matching=", ".join(keywords.matching_keywords) if keywords and keywords.matching_keywords else "None",
        missing=", ".join(keywords.missing_keywords) if keywords and keywords.missing_keywords else "None",
        suggestions="\n- ".join(keywords.suggestions) if keywords and keywords.suggestions else "None",
        optimized=optimiser.markdown if optimiser is not None else "",
        resume_text=resume_text,
        jd_text=jd_text,
    )


def build_chat_prompt(
    messages: Sequence[ChatMessage],
    analysis: Optional[PipelineResult] = None,
    resume_text: str = "",
    jd_text: str = "",
    today: datetime.date | None = None,
) -> str:
    prefix = build_context(analysis, resume_text, jd_text, today) if analysis is not None else ""
    conversation = "\n\n".join(f"{m.role.upper()}: {m.content}" for m in messages)
    return f"{prefix}\n\n{ASSISTANT_INSTRUCTIONS}\n\n{conversation}\n\nASSISTANT:"


def split_updated_resume(reply: str) -> tuple[str, Optional[str]]:
    """Split a reply into (explanation, updated resume or None)."""
    head, sep, tail = reply.partition(UPDATED_RESUME_MARKER)
    if not sep:
        return reply.strip(), None
    return head.strip(), tail.strip() or None


@dataclass(slots=True)
class ResumeChatAgent:
    """Free-text assistant for questions about an analysis."""

    llm: AsyncLLMClient
    model: str = field(default_factory=get_default_model)
    temperature: float = 0.4

    async def reply(
        self,
        messages: Sequence[ChatMessage],
        analysis: Optional[PipelineResult] = None,
        resume_text: str = "",
        jd_text: str = "",
        *,
        req_id: str | None = None,
    ) -> str:
        if not messages:
            raise ValueError("chat needs at least one message")
        prompt = build_chat_prompt(messages, analysis, resume_text, jd_text)
        logger.info("chat.reply messages=%d with_analysis=%s", len(messages), analysis is not None)
        extra = {"req_id": req_id} if req_id else {}
        text = await self.llm.chat(
            messages=[{"role": "user", "content": prompt}],
            model=self.model,
            temperature=self.temperature,
            **extra,
        )
        return (text or "").strip()

"""Cover letters: three styled variations in one call, or a single formal letter."""

from __future__ import annotations

from dataclasses import dataclass
import datetime
import logging
from typing import Optional
import uuid

from pydantic import ValidationError

from agents.common_prompts import format_letter_date, join_sections
from agents.stage import StageDefinition, StageInputs
from core.errors import StructuredOutputInvalid
from core.models import CoverLetterDraft, CoverLetterVersion, StageName, WireModel
from core.schema import OutputSchema, array_of, object_of, string
from core.stage_runner import now_ms
from core.structured import StructuredGenerationClient

logger = logging.getLogger(__name__)

# Prompt-side truncation; long resumes push letters past one page.
MAX_CHARS = 3000


@dataclass(frozen=True, slots=True)
class LetterStyle:
    name: str
    prompt: str


STYLES: tuple[LetterStyle, ...] = (
    LetterStyle(
        "Professional & Direct",
        "Adopt a standard, polished professional tone. Focus on clearly matching skills to the "
        "job requirements. Be concise and formal.",
    ),
    LetterStyle(
        "Achievement Focused",
        "Adopt a confident, results-oriented tone. Highlight specific metrics, achievements, and "
        "the rapid impact the candidate can make. Be bold.",
    ),
    LetterStyle(
        "Passionate & Cultural",
        "Adopt a softer, narrative tone. Focus on the candidate's passion for the mission, cultural "
        "fit, and personal connection to the industry. Be engaging.",
    ),
)


class CoverLetterError(RuntimeError):
    """Base error for cover letter generation."""


class CoverLetterInvalidResponse(StructuredOutputInvalid, CoverLetterError):
    """Raised when the variations payload has the wrong shape or count."""


# ==== Variations (one call, three letters) ====

LETTER_SCHEMA = OutputSchema(
    fields={
        "style": string("The style name this letter was written in."),
        "markdown": string("The full letter as markdown, paragraphs separated by blank lines."),
    },
    required=frozenset({"style", "markdown"}),
)

VARIATIONS_SCHEMA = OutputSchema(
    fields={
        "letters": array_of(object_of(LETTER_SCHEMA), "Exactly three letters, one per style, in the order given."),
        "jobTitle": string("Job title from the job description."),
        "company": string("Company name from the job description."),
    },
    required=frozenset({"letters"}),
)


class LetterDraft(WireModel):
    style: str
    markdown: str


class VariationsDraft(WireModel):
    letters: list[LetterDraft]
    job_title: Optional[str] = None
    company: Optional[str] = None


VARIATIONS_SCHEMA.check_model(VariationsDraft)
LETTER_SCHEMA.check_model(LetterDraft)

LETTER_REQUIREMENTS = """REQUIREMENTS:
1. **Format**: Standard Business Letter.
   - **Header**: Candidate Name (Pascal Case, e.g. "John Doe"), Email, Phone. Do NOT include Portfolio or LinkedIn links.
   - **Date**: {today}.
   - **Recipient**: Hiring Manager or specific name (from JD), Company Name.
   - **Salutation**: "Dear [Hiring Manager's Name/Team],"
   - **Body**: 3-4 distinct paragraphs.
   - **Sign-off**: "Sincerely," followed by Candidate Name.
2. **Length**: STRICTLY UNDER 300 WORDS. Must fit on a single page.
3. **Content**:
   - Analyze the Resume and match it to the top 3 hard skills in the JD.
   - Do not use placeholders like "[Company Name]" if you can find the name. If unknown, use "Hiring Manager".
   - Do not invent facts.
4. **Formatting**: Use double newlines between sections and paragraphs. Do NOT produce a single block of text."""


def build_variations_prompt(resume_text: str, job_description: str, today: datetime.date | None = None) -> str:
    styles = "\n".join(f"{idx}. {style.name}: {style.prompt}" for idx, style in enumerate(STYLES, start=1))
    return join_sections(
        "You are an expert career coach and professional writer.\n"
        f"Task: Write {len(STYLES)} cover letters for a candidate based on their Resume and a Job Description, "
        "one for each style below, in this order.",
        f"STYLES:\n{styles}",
        LETTER_REQUIREMENTS.format(today=format_letter_date(today)),
        f"RESUME:\n{resume_text[:MAX_CHARS]}",
        f"JOB DESCRIPTION:\n{job_description[:MAX_CHARS]}",
    )


def to_versions(draft: VariationsDraft, *, created_at: int | None = None) -> list[CoverLetterVersion]:
    """Check the count and content of the letters and stamp each with an id."""
    if len(draft.letters) != len(STYLES):
        raise CoverLetterInvalidResponse(
            f"Expected {len(STYLES)} cover letters, got {len(draft.letters)}"
        )
    stamp = created_at if created_at is not None else now_ms()
    versions: list[CoverLetterVersion] = []
    for idx, letter in enumerate(draft.letters):
        markdown = letter.markdown.strip()
        if not markdown:
            raise CoverLetterInvalidResponse(f"Cover letter {idx + 1} is empty")
        versions.append(
            CoverLetterVersion(
                id=str(uuid.uuid4()),
                markdown=markdown,
                style=letter.style.strip() or STYLES[idx].name,
                created_at=stamp,
                job_title=draft.job_title,
                company=draft.company,
            )
        )
    return versions


@dataclass(slots=True)
class CoverLetterAgent:
    """Generate the three styled cover letter variations in a single request."""

    client: StructuredGenerationClient
    temperature: float = 0.7

    async def generate_variations(
        self,
        resume_text: str,
        job_description: str,
        *,
        today: datetime.date | None = None,
        req_id: str | None = None,
    ) -> list[CoverLetterVersion]:
        prompt = build_variations_prompt(resume_text, job_description, today)
        extra = {"req_id": req_id} if req_id else {}
        data = await self.client.generate_structured(prompt, VARIATIONS_SCHEMA, self.temperature, **extra)
        try:
            draft = VariationsDraft.model_validate(data)
        except ValidationError as e:
            raise CoverLetterInvalidResponse(f"Validation failed: {e}") from e
        versions = to_versions(draft)
        logger.info("cover_letter.variations count=%d company=%s", len(versions), draft.company)
        return versions


# ==== Single letter (runs as the coverLetter stage) ====

COVER_LETTER_SCHEMA = OutputSchema(
    fields={"markdown": string("The full cover letter as markdown.")},
    required=frozenset({"markdown"}),
)

SINGLE_LETTER_PROMPT = """You are an expert Cover Letter Writer. Write a professional cover letter for the candidate based on their Resume and the Job Description.

JOB DESCRIPTION:
{job_description}

RESUME:
{resume_text}

REQUIREMENTS:
1. **Format**: Standard Business Letter.
   - **Header**: Candidate Name, Email, Phone, LinkedIn/Portfolio (extract from resume).
   - **Date**: {today}.
   - **Recipient**: Hiring Manager or specific name (from JD), Company Name.
   - **Salutation**: "Dear [Hiring Manager's Name/Team],"
   - **Body**: 3-4 distinct paragraphs.
   - **Sign-off**: "Sincerely," followed by Candidate Name.
2. **Tone**: Professional, enthusiastic, and confident.
3. **Content**:
   - **Intro**: Value proposition and role interest.
   - **Body**: Connect specific resume achievements to JD requirements.
   - **Conclusion**: Call to action (interview request).
   - Do not invent facts.
4. **Formatting**: Use double newlines between paragraphs. Do NOT produce one single block of text. Output in Markdown."""


def build_cover_letter_prompt(inputs: StageInputs) -> str:
    return SINGLE_LETTER_PROMPT.format(
        job_description=inputs.job_description,
        resume_text=inputs.resume_text,
        today=format_letter_date(),
    )


COVER_LETTER = StageDefinition(
    name=StageName.COVER_LETTER,
    schema=COVER_LETTER_SCHEMA,
    output_model=CoverLetterDraft,
    temperature=0.4,
    build_prompt=build_cover_letter_prompt,
)

""" Resume Optimizer stage: rewrites the resume toward the JD without fabricating. """

from __future__ import annotations

from agents.common_prompts import (
    join_sections,
    render_documents,
    render_jd_context,
    render_keyword_context,
)
from agents.stage import StageDefinition, StageInputs
from core.models import OptimizedResumeDraft, StageName
from core.schema import OutputSchema, string


OPTIMISER_SCHEMA = OutputSchema(
    fields={
        "markdown": string("The full optimized resume as clean, ATS-friendly markdown."),
        "rationale": string("Brief explanation of what changed and why."),
    },
    required=frozenset({"markdown", "rationale"}),
)

OPTIMISER_INSTRUCTIONS = """You are an expert Resume Optimizer. Rewrite the resume to align with the Job Description.

RULES:
1. Analyze the Job Description to identify key missing skills/keywords yourself.
2. Rewrite the resume to incorporate these missing elements naturally.
3. Use standard, clean Markdown formatting. No tables or columns.
4. Do NOT fabricate experience. Only weave in keywords the resume can truthfully support.
5. Return the full optimized resume markdown and a brief rationale.

FORMATTING RULES (CRITICAL):
- Use "##" for Section Headers (e.g., ## EXPERIENCE). Always add a blank line after.
- For EXPERIENCE entries, use this EXACT structure:
  **Company Name** | Date
  **Job Title**
  * Bullet point...
  (Ensure Job Title is on a NEW LINE below Company)

- For EDUCATION entries, use this EXACT structure:
  **University Name** | Date
  **Degree**
  (Ensure Degree is on a NEW LINE below University)

- Do NOT merge Company and Job Title on the same line."""


def build_optimiser_prompt(inputs: StageInputs) -> str:
    return join_sections(
        OPTIMISER_INSTRUCTIONS,
        render_jd_context(inputs.jd_analysis),
        render_keyword_context(inputs.keyword_analysis),
        render_documents(inputs.resume_text, inputs.job_description),
    )


OPTIMISER = StageDefinition(
    name=StageName.OPTIMISER,
    schema=OPTIMISER_SCHEMA,
    output_model=OptimizedResumeDraft,
    temperature=0.25,
    build_prompt=build_optimiser_prompt,
)

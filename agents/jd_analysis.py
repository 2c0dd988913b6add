""" Job Description Analysis stage (sequential topology only). """

from __future__ import annotations

from agents.common_prompts import join_sections
from agents.stage import StageDefinition, StageInputs
from core.models import JDAnalysis, StageName
from core.schema import OutputSchema, array_of, string


JD_SCHEMA = OutputSchema(
    fields={
        "keywords": array_of(string(), "ATS keywords a recruiter would search for."),
        "skills": array_of(string(), "Hard and soft skills explicitly required or clearly implied."),
        "title": string("Role title, if stated."),
        "summary": string("One or two sentence summary of the role."),
        "seniority": string("Seniority level, e.g. junior, mid, senior, staff."),
    },
    required=frozenset({"keywords", "skills"}),
)

JD_INSTRUCTIONS = """You are a precise Job Description Analysis agent.
You receive one job description as plain text.

Guidelines:
- keywords = the terms an ATS would match on (tools, technologies, domains, certifications).
- skills = core technical and domain skills explicitly required or clearly implied.
- Infer title and seniority from the text when possible; leave them out otherwise.
- Do NOT invent requirements that are not in the text."""


def build_jd_prompt(inputs: StageInputs) -> str:
    return join_sections(JD_INSTRUCTIONS, f"JOB DESCRIPTION:\n{inputs.job_description}")


JD_ANALYSIS = StageDefinition(
    name=StageName.JD_ANALYSIS,
    schema=JD_SCHEMA,
    output_model=JDAnalysis,
    temperature=0.2,
    build_prompt=build_jd_prompt,
)

"""Shared prompt fragments for pipeline stages."""

from __future__ import annotations

import datetime

from core.models import JDAnalysis, KeywordAnalysis


def render_documents(resume_text: str, job_description: str) -> str:
    """The JD-then-resume block every analysis prompt ends with."""
    return f"JOB DESCRIPTION:\n{job_description}\n\nRESUME:\n{resume_text}"


def render_jd_context(jd: JDAnalysis | None) -> str:
    if jd is None:
        return ""
    lines = ["JD ANALYSIS (from an earlier stage):"]
    if jd.title:
        lines.append(f"- Title: {jd.title}")
    if jd.seniority:
        lines.append(f"- Seniority: {jd.seniority}")
    if jd.summary:
        lines.append(f"- Summary: {jd.summary}")
    lines.append(f"- Keywords: {', '.join(jd.keywords) or 'None'}")
    lines.append(f"- Skills: {', '.join(jd.skills) or 'None'}")
    return "\n".join(lines)


def render_keyword_context(keywords: KeywordAnalysis | None) -> str:
    if keywords is None:
        return ""
    return "\n".join(
        [
            "KEYWORD ANALYSIS (from an earlier stage):",
            f"- Matching: {', '.join(keywords.matching_keywords) or 'None'}",
            f"- Missing: {', '.join(keywords.missing_keywords) or 'None'}",
        ]
    )


def join_sections(*sections: str) -> str:
    """Join non-empty prompt sections with blank lines."""
    return "\n\n".join(s.strip("\n") for s in sections if s and s.strip())


def format_letter_date(today: datetime.date | None = None) -> str:
    """'Month D, YYYY', e.g. 'March 5, 2026'."""
    today = today or datetime.date.today()
    return f"{today:%B} {today.day}, {today.year}"

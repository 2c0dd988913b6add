import datetime

import pytest

from agents.cover_letter_agent import (
    COVER_LETTER_SCHEMA,
    MAX_CHARS,
    STYLES,
    VARIATIONS_SCHEMA,
    CoverLetterAgent,
    CoverLetterInvalidResponse,
    LetterDraft,
    VariationsDraft,
    build_variations_prompt,
    to_versions,
)
from core.models import CoverLetter, CoverLetterVariations, StageName, StageStatus
from core.pipeline_orchestrator import PipelineOrchestrator

RESUME = "Jane Doe\njane@example.com\nBackend engineer, Python and SQL, 6 years"
JD = "Acme Corp is hiring a Senior Backend Engineer (Python, SQL, Kubernetes)"


def _letters(n: int = 3, style: str | None = None) -> dict:
    return {
        "letters": [
            {"style": style if style is not None else s.name, "markdown": f"Dear Hiring Manager,\n\nLetter {i}."}
            for i, s in enumerate(STYLES[:n])
        ]
        + [{"style": "Extra", "markdown": "Another."} for _ in range(max(0, n - len(STYLES)))],
        "jobTitle": "Senior Backend Engineer",
        "company": "Acme Corp",
    }


class FakeClient:
    def __init__(self, response=None, exc: Exception | None = None):
        self.response = response
        self.exc = exc
        self.calls: list[dict] = []

    async def generate_structured(self, prompt, schema, temperature, *, req_id=None):
        self.calls.append({"prompt": prompt, "schema": schema, "temperature": temperature, "req_id": req_id})
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.mark.asyncio
async def test_variations_come_from_one_call_with_distinct_ids():
    client = FakeClient(_letters())
    orch = PipelineOrchestrator(client=client)

    result = await orch.generate_cover_letter_variations(RESUME, JD, "sess-1")

    assert len(client.calls) == 1
    assert client.calls[0]["schema"] is VARIATIONS_SCHEMA
    assert client.calls[0]["temperature"] == 0.7
    assert result.status == "completed"
    assert result.error is None
    assert len(result.outputs) == 3
    assert len({v.id for v in result.outputs}) == 3
    assert [v.style for v in result.outputs] == [s.name for s in STYLES]
    assert all(v.markdown for v in result.outputs)
    assert all(v.company == "Acme Corp" for v in result.outputs)
    assert len({v.created_at for v in result.outputs}) == 1


@pytest.mark.asyncio
async def test_blank_style_falls_back_to_requested_style():
    client = FakeClient(_letters(style="  "))
    versions = await CoverLetterAgent(client=client).generate_variations(RESUME, JD)
    assert [v.style for v in versions] == [s.name for s in STYLES]


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [2, 4])
async def test_wrong_letter_count_is_a_failed_result(count):
    orch = PipelineOrchestrator(client=FakeClient(_letters(count)))
    result = await orch.generate_cover_letter_variations(RESUME, JD, "s")
    assert result.status == "failed"
    assert result.outputs == []
    assert f"got {count}" in result.error


@pytest.mark.asyncio
async def test_client_error_is_a_failed_result():
    orch = PipelineOrchestrator(client=FakeClient(exc=RuntimeError("quota exceeded")))
    result = await orch.generate_cover_letter_variations(RESUME, JD, "s")
    assert result == CoverLetterVariations(status="failed", outputs=[], error="quota exceeded")


@pytest.mark.asyncio
async def test_blank_inputs_make_no_call():
    client = FakeClient(_letters())
    result = await PipelineOrchestrator(client=client).generate_cover_letter_variations("", JD, "s")
    assert result.status == "failed"
    assert client.calls == []


def test_empty_letter_is_rejected():
    draft = VariationsDraft(
        letters=[LetterDraft(style=s.name, markdown="ok" if i else "   ") for i, s in enumerate(STYLES)]
    )
    with pytest.raises(CoverLetterInvalidResponse, match="Cover letter 1 is empty"):
        to_versions(draft)


def test_variations_prompt_truncates_and_dates():
    long_resume = "R" * (MAX_CHARS + 500)
    prompt = build_variations_prompt(long_resume, JD, today=datetime.date(2026, 3, 5))
    assert "R" * MAX_CHARS in prompt
    assert "R" * (MAX_CHARS + 1) not in prompt
    assert "March 5, 2026" in prompt
    for style in STYLES:
        assert style.name in prompt


def test_cover_letter_selection():
    versions = to_versions(VariationsDraft.model_validate(_letters()), created_at=1)
    letter = CoverLetter.from_variations(CoverLetterVariations(status="completed", outputs=versions))
    assert letter.markdown == ""
    assert letter.company == "Acme Corp"

    picked = letter.select(versions[1].id)
    assert picked.selected_id == versions[1].id
    assert picked.markdown == versions[1].markdown
    assert letter.selected_id is None

    with pytest.raises(KeyError):
        letter.select("missing")


def test_failed_variations_cannot_seed_a_letter():
    with pytest.raises(ValueError):
        CoverLetter.from_variations(CoverLetterVariations(status="failed", error="boom"))


@pytest.mark.asyncio
async def test_single_cover_letter_runs_as_a_stage():
    client = FakeClient({"markdown": "Dear Hiring Manager,\n\nHello."})
    stage = await PipelineOrchestrator(client=client).generate_cover_letter(RESUME, JD, "s")

    assert stage.name is StageName.COVER_LETTER
    assert stage.status is StageStatus.COMPLETED
    assert stage.output.markdown.startswith("Dear Hiring Manager")
    call = client.calls[0]
    assert call["schema"] is COVER_LETTER_SCHEMA
    assert call["temperature"] == 0.4
    assert f"JOB DESCRIPTION:\n{JD}" in call["prompt"]


@pytest.mark.asyncio
async def test_single_cover_letter_failure_is_recorded():
    stage = await PipelineOrchestrator(client=FakeClient(exc=RuntimeError("down"))).generate_cover_letter(RESUME, JD, "s")
    assert stage.status is StageStatus.FAILED
    assert stage.error == "down"

import datetime

import pytest

from agents.resume_chat import ResumeChatAgent, build_chat_prompt, split_updated_resume
from core.models import (
    ChatMessage,
    KeywordAnalysis,
    OptimizedResumeDraft,
    PipelineResult,
    ScoreBreakdown,
    StageName,
    StageStatus,
    stage_type,
)


def _completed(name: StageName, output):
    return stage_type(name)(name=name, status=StageStatus.COMPLETED, started_at=1, finished_at=2, output=output)


def _analysis() -> PipelineResult:
    result = PipelineResult.seed("s", "c")
    result = result.with_stage(
        _completed(
            StageName.KEYWORD_ANALYSIS,
            KeywordAnalysis(
                matching_keywords=["Python"],
                missing_keywords=["Kubernetes"],
                suggestions=["Quantify API latency work", "Name your SQL engines"],
            ),
        )
    )
    result = result.with_stage(
        _completed(
            StageName.SCORING,
            ScoreBreakdown(overall=67, alignment_notes="Solid backend fit", matched_keywords=["Python"], missing_keywords=["Kubernetes"]),
        )
    )
    return result.with_stage(
        _completed(StageName.OPTIMISER, OptimizedResumeDraft(markdown="## SUMMARY\nOptimized", rationale="r"))
    )


class FakeLLM:
    def __init__(self, response: str):
        self.response = response
        self.calls: list[dict] = []

    async def chat(self, messages, model, temperature=0.0, **kwargs):
        self.calls.append({"messages": messages, "model": model, "temperature": temperature, "kwargs": kwargs})
        return self.response


def test_prompt_carries_analysis_context_and_conversation():
    messages = [
        ChatMessage(role="user", content="How do I close the gap?"),
        ChatMessage(role="assistant", content="Add Kubernetes if you used it."),
        ChatMessage(role="user", content="Score the optimized version"),
    ]
    prompt = build_chat_prompt(messages, _analysis(), "my resume", "the jd", today=datetime.date(2026, 10, 19))

    assert prompt.startswith("CURRENT DATE: October 19, 2026")
    assert "Original Resume ATS Score: 67/100" in prompt
    assert "Missing Keywords from Original: Kubernetes" in prompt
    assert "- Quantify API latency work\n- Name your SQL engines" in prompt
    assert "## SUMMARY\nOptimized" in prompt
    assert "USER: How do I close the gap?\n\nASSISTANT: Add Kubernetes if you used it." in prompt
    assert prompt.endswith("USER: Score the optimized version\n\nASSISTANT:")


def test_prompt_without_settled_stages_uses_placeholders():
    prompt = build_chat_prompt([ChatMessage(role="user", content="hi")], PipelineResult.seed("s", "c"))
    assert "ATS Score: N/A/100" in prompt
    assert "Alignment Summary: Not available" in prompt
    assert "Matching Keywords from Original: None" in prompt


def test_prompt_without_analysis_is_just_the_conversation():
    prompt = build_chat_prompt([ChatMessage(role="user", content="hi")])
    assert "CONTEXT ANALYSIS" not in prompt
    assert prompt.strip().endswith("USER: hi\n\nASSISTANT:")


@pytest.mark.parametrize(
    "reply,expected",
    [
        ("Looks good.", ("Looks good.", None)),
        ("Here you go.\nUPDATED_RESUME:\n# Jane Doe\n", ("Here you go.", "# Jane Doe")),
        ("Nothing after.\nUPDATED_RESUME:   ", ("Nothing after.", None)),
    ],
)
def test_split_updated_resume(reply, expected):
    assert split_updated_resume(reply) == expected


@pytest.mark.asyncio
async def test_agent_sends_one_user_message():
    llm = FakeLLM("  Add a Kubernetes bullet.  ")
    agent = ResumeChatAgent(llm=llm, model="test-model")

    out = await agent.reply([ChatMessage(role="user", content="help")], _analysis(), "resume", "jd", req_id="r-9")

    assert out == "Add a Kubernetes bullet."
    call = llm.calls[0]
    assert call["model"] == "test-model"
    assert call["temperature"] == 0.4
    assert call["kwargs"] == {"req_id": "r-9"}
    assert len(call["messages"]) == 1
    assert call["messages"][0]["role"] == "user"


@pytest.mark.asyncio
async def test_agent_rejects_empty_conversation():
    with pytest.raises(ValueError):
        await ResumeChatAgent(llm=FakeLLM("x"), model="m").reply([])

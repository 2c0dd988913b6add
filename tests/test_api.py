import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from agents.ats_scoring import SCORING_SCHEMA
from agents.cover_letter_agent import STYLES, VARIATIONS_SCHEMA
from agents.keyword_analysis import KEYWORD_SCHEMA
from agents.resume_chat import ResumeChatAgent
from api.pipeline import router
from core.errors import ProviderError
from core.pipeline_orchestrator import PipelineOrchestrator

BODY = {
    "resumeText": "Backend engineer with Python and SQL",
    "jobDescription": "Senior Backend Engineer: Python, SQL, Kubernetes",
    "sessionId": "sess-42",
}


class FakeStructuredClient:
    async def generate_structured(self, prompt, schema, temperature, *, req_id=None):
        if schema is KEYWORD_SCHEMA:
            return {"matchingKeywords": ["Python", "SQL"], "missingKeywords": ["Kubernetes"], "suggestions": ["s"]}
        if schema is SCORING_SCHEMA:
            return {"overall": 81.6, "alignmentNotes": "n", "matchedKeywords": ["Python"], "missingKeywords": ["Kubernetes"]}
        if schema is VARIATIONS_SCHEMA:
            return {"letters": [{"style": s.name, "markdown": f"Letter {s.name}"} for s in STYLES], "company": "Acme"}
        return {"markdown": "## EXPERIENCE", "rationale": "r"}


class FakeLLM:
    async def chat(self, messages, model, temperature=0.0, **kwargs):
        return "Added a bullet.\nUPDATED_RESUME:\n# Updated"


@pytest.fixture
def client() -> TestClient:
    app = FastAPI()
    app.state.orchestrator = PipelineOrchestrator(client=FakeStructuredClient())
    app.state.chat_agent = ResumeChatAgent(llm=FakeLLM(), model="test-model")
    app.include_router(router)
    return TestClient(app)


def test_analyze_returns_camel_case_result(client):
    resp = client.post("/analyze", json=BODY)
    assert resp.status_code == 200
    data = resp.json()
    assert data["sessionId"] == "sess-42"
    assert data["correlationId"]
    assert data["keywordAnalysis"]["output"]["missingKeywords"] == ["Kubernetes"]
    assert data["scoring"]["output"]["overall"] == 82
    assert data["formatter"]["output"]["markdown"] == "## EXPERIENCE"


def test_analyze_keywords_leaves_other_stages_pending(client):
    data = client.post("/analyze/keywords", json=BODY).json()
    assert data["keywordAnalysis"]["status"] == "completed"
    assert data["scoring"]["status"] == "pending"


def test_analyze_score(client):
    data = client.post("/analyze/score", json=BODY).json()
    assert data["scoring"]["status"] == "completed"
    assert data["optimiser"]["status"] == "pending"


def test_blank_resume_fails_stages_not_request(client):
    data = client.post("/analyze", json={**BODY, "resumeText": "  "}).json()
    assert data["keywordAnalysis"]["status"] == "failed"
    assert data["keywordAnalysis"]["errorKind"] == "input"


def test_stream_emits_progress_then_result(client):
    resp = client.post("/analyze/stream", params={"mode": "score"}, json=BODY)
    assert resp.status_code == 200
    lines = [json.loads(line) for line in resp.text.splitlines() if line.strip()]
    assert [line["type"] for line in lines] == ["progress", "progress", "result"]
    assert lines[-1]["data"]["scoring"]["output"]["overall"] == 82


def test_cover_letters(client):
    data = client.post("/cover-letters", json=BODY).json()
    assert data["status"] == "completed"
    assert [v["style"] for v in data["outputs"]] == [s.name for s in STYLES]
    assert all("createdAt" in v for v in data["outputs"])


def test_single_cover_letter(client):
    data = client.post("/cover-letter", json=BODY).json()
    assert data["name"] == "coverLetter"
    assert data["status"] == "completed"


def test_chat_splits_updated_resume(client):
    body = {"messages": [{"role": "user", "content": "Add Kubernetes"}], "resumeText": "r", "jobDescription": "j"}
    data = client.post("/chat", json=body).json()
    assert data == {"reply": "Added a bullet.", "updatedResume": "# Updated"}


def test_missing_fields_are_rejected(client):
    assert client.post("/analyze", json={"resumeText": "x"}).status_code == 422


def test_select_cover_letter_version(client):
    variations = client.post("/cover-letters", json=BODY).json()
    chosen = variations["outputs"][2]

    resp = client.post("/cover-letters/select", json={"variations": variations, "versionId": chosen["id"]})

    assert resp.status_code == 200
    letter = resp.json()
    assert letter["selectedId"] == chosen["id"]
    assert letter["markdown"] == chosen["markdown"]
    assert letter["company"] == "Acme"
    assert len(letter["versions"]) == 3


def test_select_unknown_version_is_404(client):
    variations = client.post("/cover-letters", json=BODY).json()
    resp = client.post("/cover-letters/select", json={"variations": variations, "versionId": "nope"})
    assert resp.status_code == 404


def test_select_from_failed_variations_is_400(client):
    failed = {"status": "failed", "outputs": [], "error": "boom"}
    resp = client.post("/cover-letters/select", json={"variations": failed, "versionId": "x"})
    assert resp.status_code == 400


def test_chat_rejects_empty_messages(client):
    assert client.post("/chat", json={"messages": []}).status_code == 400


def test_chat_provider_failure_maps_to_502():
    class DownLLM:
        async def chat(self, messages, model, temperature=0.0, **kwargs):
            raise ProviderError("model overloaded")

    app = FastAPI()
    app.state.chat_agent = ResumeChatAgent(llm=DownLLM(), model="m")
    app.include_router(router)

    resp = TestClient(app).post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})

    assert resp.status_code == 502
    assert resp.json()["detail"] == "model overloaded"

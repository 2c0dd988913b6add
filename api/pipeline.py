"""FastAPI router exposing the analysis pipeline.

Endpoints:
  POST /analyze             full analysis (keyword + scoring + optimiser)
  POST /analyze/keywords    keyword analysis only
  POST /analyze/score       keyword analysis + scoring
  POST /analyze/stream      NDJSON: one line per progress snapshot, then the result
  POST /cover-letters       three styled cover letter variations
  POST /cover-letter        one formal cover letter (coverLetter stage)
  POST /cover-letters/select  keep one of the variations as the cover letter
  POST /chat                follow-up chat about an analysis (502/504 on provider failure)

Bodies and responses use camelCase field names.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from agents.resume_chat import ResumeChatAgent, split_updated_resume
from core.errors import classify_error, error_message
from core.models import ChatMessage, CoverLetter, CoverLetterVariations, PipelineResult, WireModel
from core.pipeline_orchestrator import AnalysisMode, PipelineOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


class AnalyzeRequest(WireModel):
    resume_text: str
    job_description: str
    session_id: Optional[str] = None
    correlation_id: Optional[str] = None


class CoverLetterRequest(WireModel):
    resume_text: str
    job_description: str
    session_id: Optional[str] = None


class ChatRequest(WireModel):
    messages: list[ChatMessage]
    analysis: Optional[PipelineResult] = None
    resume_text: str = ""
    job_description: str = ""


class SelectCoverLetterRequest(WireModel):
    variations: CoverLetterVariations
    version_id: str


class ChatResponse(WireModel):
    reply: str
    updated_resume: Optional[str] = None


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return request.app.state.orchestrator


def get_chat_agent(request: Request) -> ResumeChatAgent:
    return request.app.state.chat_agent


def _ids(req: AnalyzeRequest) -> tuple[str, str]:
    return req.session_id or str(uuid.uuid4()), req.correlation_id or str(uuid.uuid4())


def _dump(model: WireModel) -> dict:
    return model.model_dump(mode="json", by_alias=True)


async def _analyze(orchestrator: PipelineOrchestrator, mode: AnalysisMode, req: AnalyzeRequest) -> dict:
    session_id, correlation_id = _ids(req)
    result = await orchestrator.analyze(mode, req.resume_text, req.job_description, session_id, correlation_id)
    return _dump(result)


@router.post("/analyze")
async def analyze(req: AnalyzeRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)) -> dict:
    return await _analyze(orchestrator, AnalysisMode.FULL, req)


@router.post("/analyze/keywords")
async def analyze_keywords(req: AnalyzeRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)) -> dict:
    return await _analyze(orchestrator, AnalysisMode.KEYWORDS, req)


@router.post("/analyze/score")
async def analyze_score(req: AnalyzeRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)) -> dict:
    return await _analyze(orchestrator, AnalysisMode.SCORE, req)


@router.post("/analyze/stream")
async def analyze_stream(
    req: AnalyzeRequest,
    mode: AnalysisMode = AnalysisMode.FULL,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    session_id, correlation_id = _ids(req)

    async def _lines() -> AsyncIterator[str]:
        previous: PipelineResult | None = None
        stream = orchestrator.stream_analysis(mode, req.resume_text, req.job_description, session_id, correlation_id)
        async for snapshot in stream:
            if previous is not None:
                yield json.dumps({"type": "progress", "data": _dump(previous)}) + "\n"
            previous = snapshot
        if previous is not None:
            yield json.dumps({"type": "result", "data": _dump(previous)}) + "\n"

    return StreamingResponse(_lines(), media_type="application/x-ndjson")


@router.post("/cover-letters")
async def cover_letters(req: CoverLetterRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)) -> dict:
    session_id = req.session_id or str(uuid.uuid4())
    variations = await orchestrator.generate_cover_letter_variations(req.resume_text, req.job_description, session_id)
    return _dump(variations)


@router.post("/cover-letter")
async def cover_letter(req: CoverLetterRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)) -> dict:
    session_id = req.session_id or str(uuid.uuid4())
    stage = await orchestrator.generate_cover_letter(req.resume_text, req.job_description, session_id)
    return _dump(stage)


@router.post("/cover-letters/select")
async def select_cover_letter(req: SelectCoverLetterRequest) -> dict:
    try:
        letter = CoverLetter.from_variations(req.variations)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        return _dump(letter.select(req.version_id))
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Unknown cover letter version") from exc


@router.post("/chat")
async def chat(req: ChatRequest, agent: ResumeChatAgent = Depends(get_chat_agent)) -> dict:
    if not req.messages:
        raise HTTPException(status_code=400, detail="messages must not be empty")
    try:
        text = await agent.reply(req.messages, req.analysis, req.resume_text, req.job_description)
    except Exception as exc:
        kind = classify_error(exc)
        if kind == "unknown":
            raise
        logger.warning("chat.failed kind=%s error=%s", kind, error_message(exc))
        status = 504 if kind == "timeout" else 502
        raise HTTPException(status_code=status, detail=error_message(exc)) from exc
    explanation, updated = split_updated_resume(text)
    return _dump(ChatResponse(reply=explanation, updated_resume=updated))

# api/app.py
"""HTTP surface for the analysis pipeline.

Run:
  uvicorn api.app:app --reload
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from agents.resume_chat import ResumeChatAgent
from api.pipeline import router as pipeline_router
from core.llm_factory import configured_provider, get_structured_client
from core.obs import Span, bind_log_context, default_obs_logger
from core.pipeline_orchestrator import PipelineOrchestrator
from core.settings import get_app_settings

SETTINGS = get_app_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger = default_obs_logger(SETTINGS.service_name)
    app.state.logger = logger

    # Pipeline stages and chat share one provider client.
    client = get_structured_client(logger=logger)
    orchestrator = PipelineOrchestrator.from_settings(client, obs=logger)
    app.state.orchestrator = orchestrator
    app.state.chat_agent = ResumeChatAgent(llm=client.llm, model=client.model)

    logger.info(
        "service.start",
        service=SETTINGS.service_name,
        provider=configured_provider(),
        model=client.model,
        topology=orchestrator.topology,
        stage_timeout=orchestrator.stage_timeout,
    )
    try:
        yield
    finally:
        logger.info("service.stop", service=SETTINGS.service_name)


app = FastAPI(
    title="ATS Resume Analysis API",
    version=SETTINGS.app_version,
    description="Keyword analysis, ATS scoring and resume optimisation, plus cover letters and chat",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind a request id for the duration of the request and echo it back."""
    req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.req_id = req_id

    with bind_log_context(req_id=req_id):
        with Span(app.state.logger, "http.request", {"method": request.method, "path": request.url.path}):
            response: Response = await call_next(request)
        response.headers["x-request-id"] = req_id
        app.state.logger.info("http.response", status_code=response.status_code, path=request.url.path)
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.cors_allowlist(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["meta"])
async def root(request: Request) -> dict[str, str | None]:
    return {
        "service": SETTINGS.service_name,
        "env": SETTINGS.app_env,
        "version": app.version,
        "request_id": getattr(request.state, "req_id", None),
    }


@app.get("/healthz", tags=["meta"])
async def healthz(request: Request) -> dict[str, str]:
    orchestrator: PipelineOrchestrator = request.app.state.orchestrator
    return {"status": "ok", "topology": orchestrator.topology}


app.include_router(pipeline_router, tags=["pipeline"])

"""
FastAPI app: /ask runs the calculator agent on one question and returns the answer with its trace.
Production: run IDs, structured logging, bounded concurrency, deadlines, safe error responses.
Serve with: uvicorn calc_agent.main:app
"""
import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from calc_agent.config import get_settings
from calc_agent.errors import (
    AgentError,
    MalformedResponseError,
    ModelCallError,
    RunCancelledError,
    StepLimitExceededError,
)
from calc_agent.llm_client import has_llm_configured
from calc_agent.logging_config import configure_logging, get_logger, run_id_ctx
from calc_agent.models import AskRequest, AskResponse, KnownModel, ModelInfo
from calc_agent.reasoning.agent import AgentLoop

logger = get_logger(__name__)

# Bounded concurrency: limit in-flight agent runs
_concurrency_semaphore: asyncio.Semaphore | None = None

_ERROR_STATUS: dict[type[AgentError], int] = {
    ModelCallError: 502,
    MalformedResponseError: 422,
    StepLimitExceededError: 422,
    RunCancelledError: 504,
}


def _get_semaphore() -> asyncio.Semaphore:
    global _concurrency_semaphore
    if _concurrency_semaphore is None:
        _concurrency_semaphore = asyncio.Semaphore(get_settings().max_concurrent_runs)
    return _concurrency_semaphore


AgentFactory = Callable[[AskRequest], AgentLoop]


def get_agent_factory() -> AgentFactory:
    """Build an AgentLoop per request; overridden in tests."""
    settings = get_settings()

    def factory(req: AskRequest) -> AgentLoop:
        return AgentLoop(settings=settings, model=req.model, max_steps=req.max_steps)

    return factory


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and validate config on startup."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("startup", extra={"log_level": settings.log_level, "model": settings.model_name})
    if not has_llm_configured(settings):
        logger.warning("LLM not configured (set OPENAI_API_KEY or GROQ_API_KEY); /ask will return 503")
    yield
    logger.info("shutdown")


app = FastAPI(
    title="Calculator Agent",
    description="Ask a question; the agent uses a calculator and answers with a step trace.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def run_id_middleware(request: Request, call_next):
    """Assign a run_id to each request for tracing. No PII in the ID."""
    rid = request.headers.get("X-Request-ID")
    if not rid or not rid.strip():
        rid = str(uuid.uuid4())[:8]
    run_id_ctx.set(rid)
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled errors; log with run_id, return 503 without leaking internals."""
    rid = run_id_ctx.get() or ""
    logger.exception("unhandled_exception", extra={"run_id": rid})
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable.", "run_id": rid},
    )


def _error_response(exc: AgentError, model: str) -> JSONResponse:
    trace = list(exc.conversation.messages) if exc.conversation is not None else []
    body = AskResponse(
        model=model,
        steps=sum(1 for m in trace if m.role == "assistant"),
        trace=trace,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=_ERROR_STATUS.get(type(exc), 503), content=body.model_dump(mode="json"))


@app.post("/ask", response_model=AskResponse)
async def ask(req: AskRequest, agent_factory: AgentFactory = Depends(get_agent_factory)):
    """Run the agent loop until it answers or fails; return answer + trace."""
    if not has_llm_configured():
        logger.warning("ask_rejected_no_llm_key")
        raise HTTPException(status_code=503, detail="Service misconfigured: set OPENAI_API_KEY or GROQ_API_KEY.")

    sem = _get_semaphore()
    if sem.locked():
        logger.warning("ask_rejected_concurrency_limit")
        raise HTTPException(status_code=503, detail="Too many concurrent runs; try again shortly.")

    async with sem:
        agent = agent_factory(req)
        t0 = time.perf_counter()
        try:
            result = await agent.run(req.question)
        except AgentError as e:
            return _error_response(e, agent.model)
        logger.info(
            "run_done",
            extra={"steps": len(result.steps), "duration_ms": round((time.perf_counter() - t0) * 1000, 2)},
        )
    return AskResponse(
        answer=result.answer,
        model=result.model,
        steps=len(result.steps),
        trace=list(result.conversation.messages),
    )


@app.get("/models", response_model=list[ModelInfo])
def models():
    """Catalogue of models the agent is usually run with."""
    return [ModelInfo(id=m.id, description=m.description) for m in KnownModel]


@app.get("/health")
def health():
    """Liveness: is the process up."""
    return {"status": "ok"}


@app.get("/ready")
def ready():
    """Readiness: can we serve traffic (API key set, evaluator working)."""
    from calc_agent.health import check_ready
    ok, details = check_ready()
    if ok:
        return {"status": "ready", "checks": details}
    return JSONResponse(status_code=503, content={"status": "not_ready", "checks": details})

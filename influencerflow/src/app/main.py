"""FastAPI backend for the InfluencerFlow chat agent."""

from __future__ import annotations

import logging
import re
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routes import chat as chat_routes
from .. import config
from ..engine import llm
from ..logging_config import request_id_var, setup_logging
from ..services.conversation_store import ConversationStore
from ..services.discovery import DiscoveryClient
from ..services.email import EmailSender

logger = logging.getLogger(__name__)


def missing_settings() -> list[str]:
    """Settings the chat API cannot work without, logged once at startup."""
    missing = []
    if not config.LLM_API_KEY:
        missing.append("LLM_API_KEY")
    if not config.DISCOVERY_MOCKED and not config.DISCOVERY_API_KEY:
        missing.append("DISCOVERY_API_KEY")
    if missing:
        logger.error("Chat API environment validation failed missing=%s", ",".join(missing))
    else:
        logger.info("Chat API environment validation passed")
    return missing


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    missing_settings()
    limits = httpx.Limits(
        max_connections=max(1, config.LLM_MAX_CONCURRENCY),
        max_keepalive_connections=max(1, config.LLM_MAX_CONCURRENCY),
    )
    llm_client = httpx.AsyncClient(timeout=httpx.Timeout(config.LLM_TIMEOUT_SECONDS), limits=limits)
    llm.set_client(llm_client)
    # Discovery and email share one client; both are plain JSON-over-HTTPS APIs.
    api_client = httpx.AsyncClient(timeout=httpx.Timeout(config.DISCOVERY_TIMEOUT_SECONDS))

    store = ConversationStore()
    store.load()
    app.state.conversation_store = store
    app.state.discovery = DiscoveryClient(api_client)
    app.state.email_sender = EmailSender(api_client)
    if config.ALLOW_NO_AUTH and config.ENV == "production":
        logger.warning("ALLOW_NO_AUTH=true in production; requests are not authenticated")
    if config.DISCOVERY_MOCKED:
        logger.warning("Creator discovery is mocked (DISCOVERY_MOCKED=true)")
    try:
        yield
    finally:
        await store.close()
        llm.set_client(None)
        await llm_client.aclose()
        await api_client.aclose()


app = FastAPI(title="InfluencerFlow Chat API", lifespan=lifespan)

_cors_origins = config.cors_allow_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=False if _cors_origins == ["*"] else True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _safe_detail(detail: object) -> str:
    if isinstance(detail, str):
        return detail
    return "Request failed"


def _maybe_error_code(detail: str) -> str | None:
    if re.fullmatch(r"[a-z0-9_]+", detail or ""):
        return detail
    return None


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "InfluencerFlow Chat API"}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    detail = _safe_detail(exc.detail)
    payload: dict[str, object] = {"detail": detail, "request_id": request_id}
    code = _maybe_error_code(detail)
    if code:
        payload["error_code"] = code
    logger.info("HTTPException %s request_id=%s detail=%s", exc.status_code, request_id, detail)
    resp = JSONResponse(status_code=exc.status_code, content=payload)
    resp.headers["X-Request-ID"] = request_id
    return resp


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    logger.exception("Unhandled exception request_id=%s", request_id)
    resp = JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": request_id, "error_code": "internal_server_error"},
    )
    resp.headers["X-Request-ID"] = request_id
    return resp


app.include_router(chat_routes.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)

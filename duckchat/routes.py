import json
import time
from collections.abc import AsyncIterator

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from . import __version__
from .deps import get_registry
from .errors import bad_gateway, bad_request, not_found, service_unavailable
from .exceptions import (
    DuckChatError,
    RetryExhausted,
    SessionNotFound,
    TokenAcquisitionFailed,
    UnsupportedModel,
    UpstreamError,
)
from .log_sanitizer import sanitize_headers_for_log
from .logging_config import logger
from .models import MODEL_CATALOG, Model, resolve_model
from .registry import SessionRegistry
from .schemas import (
    ChatRequest,
    ChatResponse,
    ClearResponse,
    HealthResponse,
    ModelsResponse,
    StreamChunk,
)
from .session import ChatSession
from .settings import settings

SERVICE_NAME = "DuckDuckGo Chat API"

router = APIRouter(prefix="/api/v1", tags=["chat"])


def _resolve_requested_model(name: str | None) -> Model | None:
    if name is None:
        return None
    try:
        return resolve_model(name)
    except UnsupportedModel as exc:
        raise bad_request(str(exc)) from exc


async def _open_session(
    registry: SessionRegistry, payload: ChatRequest
) -> tuple[str, ChatSession]:
    model = _resolve_requested_model(payload.model)
    try:
        return await registry.get_or_create(payload.session_id, model)
    except TokenAcquisitionFailed as exc:
        raise service_unavailable("unable to create chat session") from exc


def _turn_error(exc: DuckChatError) -> HTTPException:
    """
    Map a failed turn onto the HTTP error returned to the caller.
    """
    if isinstance(exc, TokenAcquisitionFailed):
        return service_unavailable(str(exc))
    if isinstance(exc, (UpstreamError, RetryExhausted)):
        return bad_gateway(
            str(exc),
            details={"upstream_status": exc.status_code, "upstream_body": exc.body[:1000]},
        )
    return bad_gateway(str(exc))


def _encode_sse(event: str, chunk: StreamChunk) -> bytes:
    data = json.dumps(chunk.model_dump(exclude_none=True), ensure_ascii=False)
    return f"event: {event}\ndata: {data}\n\n".encode("utf-8")


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        service=SERVICE_NAME,
        version=__version__,
        timestamp=str(int(time.time() * 1000)),
    )


@router.get("/models", response_model=ModelsResponse)
async def list_models() -> ModelsResponse:
    return ModelsResponse(models=MODEL_CATALOG, count=len(MODEL_CATALOG))


@router.post("/chat/completions", response_model=ChatResponse)
async def chat_completions(
    payload: ChatRequest = Body(...),
    registry: SessionRegistry = Depends(get_registry),
) -> ChatResponse:
    session_id, session = await _open_session(registry, payload)
    try:
        answer = await session.complete(payload.message)
    except DuckChatError as exc:
        logger.warning("chat turn failed for session %s: %s", session_id, exc)
        raise _turn_error(exc) from exc
    return ChatResponse(message=answer, model=session.model.value, session_id=session_id)


@router.post("/chat/stream")
async def chat_stream(
    payload: ChatRequest = Body(...),
    registry: SessionRegistry = Depends(get_registry),
) -> StreamingResponse:
    session_id, session = await _open_session(registry, payload)

    async def _iterator() -> AsyncIterator[bytes]:
        try:
            async for fragment in session.send(payload.message):
                yield _encode_sse("chunk", StreamChunk(chunk=fragment, session_id=session_id))
        except DuckChatError as exc:
            logger.warning("streamed turn failed for session %s: %s", session_id, exc)
            yield _encode_sse(
                "error", StreamChunk(done=True, session_id=session_id, error=str(exc))
            )
            return
        yield _encode_sse("done", StreamChunk(done=True, session_id=session_id))

    return StreamingResponse(
        _iterator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.delete("/chat/clear", response_model=ClearResponse)
async def clear_chat(
    session_id: str | None = Query(default=None),
    registry: SessionRegistry = Depends(get_registry),
) -> ClearResponse:
    if not session_id:
        raise bad_request("session_id is required")
    try:
        await registry.clear(session_id)
    except SessionNotFound as exc:
        raise not_found(f"Session '{session_id}' not found") from exc
    return ClearResponse(session_id=session_id)


def create_app(registry: SessionRegistry | None = None) -> FastAPI:
    app = FastAPI(title=SERVICE_NAME, version=__version__)
    if registry is None:
        registry = SessionRegistry(default_model=resolve_model(settings.default_model))
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.include_router(router)

    @app.on_event("shutdown")
    async def _close_sessions() -> None:
        await app.state.registry.aclose()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client_host = request.client.host if request.client else "-"
        logger.info(
            "HTTP %s %s from %s, headers=%s",
            request.method,
            request.url.path,
            client_host,
            sanitize_headers_for_log(request.headers),
        )
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error while processing %s %s",
                request.method,
                request.url.path,
            )
            raise
        logger.info(
            "HTTP %s %s -> %s", request.method, request.url.path, response.status_code
        )
        return response

    @app.get("/")
    async def root() -> dict:
        return {
            "name": SERVICE_NAME,
            "version": __version__,
            "description": "Minimal gateway to the DuckDuckGo AI chat",
            "endpoints": {
                "health": "GET /api/v1/health",
                "models": "GET /api/v1/models",
                "chat": "POST /api/v1/chat/completions",
                "chat_stream": "POST /api/v1/chat/stream",
                "clear": "DELETE /api/v1/chat/clear",
            },
        }

    return app


__all__ = ["create_app", "router"]

"""FastAPI entrypoint for the solver proxy."""

import json
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx
import uvicorn
from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from solver_proxy.config import Settings, settings as default_settings
from solver_proxy.ops.http import build_client
from solver_proxy.ops.logging import alog_event, short_hash
from solver_proxy.ops.metrics import (
    inc_proxy_error,
    inc_proxy_requests,
    metrics_content_type,
    render_metrics,
)
from solver_proxy.proxy.cache import CacheStore
from solver_proxy.proxy.errors import RelayError, RequestBodyError
from solver_proxy.proxy.relay import (
    CHAT_ROUTE,
    VISION_ROUTE,
    ProxyRelay,
    RelayState,
    StreamRelay,
)
from solver_proxy.schemas import (
    ErrorResponse,
    SelfTestResponse,
    StatusResponse,
)

VERSION = "1.0.0"

_PRIVACY_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Solver Privacy Policy</title>
    <style>
        body {{ font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto; padding: 20px; line-height: 1.6; }}
        h1 {{ color: #333; }}
        h2 {{ color: #666; }}
    </style>
</head>
<body>
    <h1>Privacy Policy</h1>
    <p>Last updated: {updated}</p>

    <h2>What We Collect</h2>
    <p>The extension captures a screenshot of a coding problem page when you click the capture
    button. No personal information or browsing history is collected.</p>

    <h2>How We Use Your Data</h2>
    <ul>
        <li>Screenshots are sent to this server for text extraction using Google Vision API</li>
        <li>Extracted text is sent to OpenAI for problem analysis and solution generation</li>
        <li>All processing happens in real-time during your session</li>
    </ul>

    <h2>Data Storage</h2>
    <p>Screenshots, extracted text, and generated solutions are not stored permanently.
    Responses are held in server memory for at most {ttl_min} minutes to avoid repeated
    calls and are discarded when the server restarts.</p>

    <h2>Third-Party Services</h2>
    <p>Google Vision API and OpenAI API process requests under their own privacy policies.</p>
</body>
</html>
"""

router = APIRouter()


def _resolve_request_id(request: Request) -> str:
    return request.headers.get("x-request-id") or uuid.uuid4().hex


def _relay(request: Request) -> ProxyRelay:
    return request.app.state.relay


def _error_response(exc: RelayError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message).model_dump(),
    )


async def _read_json_body(request: Request, limit: int) -> Any:
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise RequestBodyError("Request body too large", status_code=413)
    raw = await request.body()
    if len(raw) > limit:
        raise RequestBodyError("Request body too large", status_code=413)
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise RequestBodyError(f"Invalid JSON body: {exc}") from exc


async def _log_request_start(request_id: str, state: RelayState) -> None:
    await alog_event(
        {
            "type": "proxy_request_start",
            "request_id": request_id,
            "route": state.route,
        }
    )


async def _log_request_end(request_id: str, state: RelayState, status_code: int) -> None:
    await alog_event(
        {
            "type": "proxy_request_end",
            "request_id": request_id,
            "route": state.route,
            "status_code": status_code,
            "total_sec": time.time() - state.started,
            "upstream_sec": state.upstream_sec,
            "cache_hit": state.cache_hit,
            "streamed": state.streamed,
            "key_hash": state.fingerprint[:12],
        }
    )


async def _record_relay_error(request_id: str, state: RelayState, exc: RelayError) -> None:
    inc_proxy_error(state.route, exc.reason)
    await alog_event(
        {
            "type": "upstream_error" if exc.reason == "upstream_error" else "proxy_error",
            "request_id": request_id,
            "route": state.route,
            "status_code": exc.status_code,
            "reason": exc.reason,
            "detail_hash": short_hash(exc.message),
            "detail_len": len(exc.message),
        }
    )


async def _finish_stream(request_id: str, state: RelayState, stream: StreamRelay) -> None:
    await stream.aclose()
    if stream.error:
        inc_proxy_error(state.route, "stream_interrupted")
    await alog_event(
        {
            "type": "stream_end",
            "request_id": request_id,
            "route": state.route,
            "chunks": stream.chunks_relayed,
            "bytes": stream.bytes_relayed,
            "error": stream.error,
        }
    )
    await _log_request_end(request_id, state, stream.status_code)


async def _run_route(
    request: Request,
    route: str,
    handler: Callable[[ProxyRelay, Any, RelayState], Awaitable[Any]],
) -> Response:
    request_id = _resolve_request_id(request)
    state = RelayState(started=time.time(), route=route)
    inc_proxy_requests(route)
    await _log_request_start(request_id, state)

    status_code = 200
    streaming = False
    try:
        payload = await _read_json_body(request, request.app.state.settings.MAX_BODY_BYTES)
        result = await handler(_relay(request), payload, state)
        if isinstance(result, StreamRelay):
            streaming = True
            return StreamingResponse(
                result,
                status_code=result.status_code,
                media_type=result.media_type,
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
                background=BackgroundTask(_finish_stream, request_id, state, result),
            )
        return JSONResponse(content=result)
    except RelayError as exc:
        status_code = exc.status_code
        await _record_relay_error(request_id, state, exc)
        return _error_response(exc)
    except Exception as exc:
        status_code = 500
        inc_proxy_error(route, type(exc).__name__)
        await alog_event(
            {
                "type": "proxy_error",
                "request_id": request_id,
                "route": route,
                "status_code": 500,
                "error_type": type(exc).__name__,
            }
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="Internal server error").model_dump(),
        )
    finally:
        if not streaming:
            await _log_request_end(request_id, state, status_code)


async def _annotate(relay: ProxyRelay, payload: Any, state: RelayState) -> Any:
    return await relay.annotate_image(payload, state)


async def _complete(relay: ProxyRelay, payload: Any, state: RelayState) -> Any:
    return await relay.chat_completion(payload, state)


@router.get("/", response_model=StatusResponse)
def root() -> StatusResponse:
    return StatusResponse(status="Solver proxy is running", version=VERSION)


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/test", response_model=SelfTestResponse)
def self_test(request: Request) -> SelfTestResponse:
    cfg: Settings = request.app.state.settings
    return SelfTestResponse(
        status="Server is working!",
        timestamp=datetime.now(timezone.utc).isoformat(),
        env={
            "hasGoogleKey": bool(cfg.GOOGLE_VISION_API_KEY),
            "hasOpenAIKey": bool(cfg.OPENAI_API_KEY),
        },
        cache=request.app.state.cache.stats(),
    )


@router.get("/metrics")
def metrics() -> Response:
    return Response(content=render_metrics(), media_type=metrics_content_type())


@router.get("/privacy", response_class=HTMLResponse)
def privacy(request: Request) -> HTMLResponse:
    ttl_min = int(request.app.state.cache.ttl_sec // 60)
    updated = datetime.now(timezone.utc).strftime("%a %b %d %Y")
    return HTMLResponse(_PRIVACY_HTML.format(updated=updated, ttl_min=ttl_min))


@router.post("/api/vision", responses={500: {"model": ErrorResponse}})
async def vision(request: Request) -> Response:
    return await _run_route(request, VISION_ROUTE, _annotate)


@router.post("/api/openai", responses={500: {"model": ErrorResponse}})
async def chat_completions(request: Request) -> Response:
    return await _run_route(request, CHAT_ROUTE, _complete)


async def startup_report(cfg: Settings, cache: CacheStore) -> None:
    await alog_event(
        {
            "type": "proxy_start",
            "port": cfg.API_PORT,
            "vision_key_configured": bool(cfg.GOOGLE_VISION_API_KEY),
            "openai_key_configured": bool(cfg.OPENAI_API_KEY),
            "cache_enabled": cfg.ENABLE_CACHE,
            **cache.stats(),
        }
    )


def create_app(
    cfg: Settings | None = None,
    cache: CacheStore | None = None,
    client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the app; a passed-in client stays owned by the caller."""
    cfg = cfg or default_settings
    cache = cache or CacheStore(ttl_sec=cfg.CACHE_TTL_SEC, max_size=cfg.CACHE_MAX_SIZE)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        upstream = client or build_client(cfg)
        app.state.relay = ProxyRelay(cfg, cache, upstream)
        await startup_report(cfg, cache)
        try:
            yield
        finally:
            if client is None:
                await upstream.aclose()

    app = FastAPI(title="Solver Proxy", version=VERSION, lifespan=lifespan)
    app.state.settings = cfg
    app.state.cache = cache
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=cfg.CORS_ALLOW_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    app.include_router(router)
    return app


app = create_app()


def main() -> None:
    uvicorn.run(
        "solver_proxy.__main__:app",
        host=default_settings.API_HOST,
        port=default_settings.API_PORT,
        reload=False,
    )


if __name__ == "__main__":
    main()

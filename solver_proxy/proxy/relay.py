"""Cache-aware relay to the image-annotation and chat-completion services."""

import time
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx
from pydantic import ValidationError

from solver_proxy.config import Settings
from solver_proxy.ops.http import open_stream, post_json
from solver_proxy.ops.metrics import (
    inc_cache_hits,
    inc_cache_misses,
    inc_stream_relays,
    observe_upstream_latency,
    timer,
)
from solver_proxy.proxy.cache import CacheStore, compute_key
from solver_proxy.proxy.errors import (
    ConfigurationError,
    RequestBodyError,
    TransportError,
    UpstreamError,
)
from solver_proxy.schemas import ChatCompletionRequest

VISION_ROUTE = "vision"
CHAT_ROUTE = "openai"


@dataclass
class RelayState:
    started: float
    route: str = ""
    fingerprint: str = ""
    cache_hit: bool = False
    streamed: bool = False
    upstream_sec: float = 0.0


class StreamRelay:
    """Async iterator over the decoded body bytes of an open upstream response.

    The upstream response is closed when the body is exhausted, when the
    upstream connection fails, or when ``aclose`` is called because the
    caller went away. Nothing read here is cached.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.bytes_relayed = 0
        self.chunks_relayed = 0
        self.error: str | None = None
        self.closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def media_type(self) -> str:
        content_type = self._response.headers.get("content-type", "")
        return content_type.split(";")[0].strip() or "text/event-stream"

    @property
    def upstream_closed(self) -> bool:
        return self._response.is_closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._relay()

    async def _relay(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                self.bytes_relayed += len(chunk)
                self.chunks_relayed += 1
                yield chunk
        except httpx.HTTPError as exc:
            # Ending the body closes the caller's stream; headers are already sent.
            self.error = f"{type(exc).__name__}: {exc}"
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._response.aclose()


class ProxyRelay:
    def __init__(
        self,
        settings: Settings,
        cache: CacheStore,
        client: httpx.AsyncClient,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.client = client

    async def annotate_image(self, payload: Any, state: RelayState | None = None) -> Any:
        state = state or RelayState(started=time.time())
        state.route = VISION_ROUTE
        api_key = self.settings.GOOGLE_VISION_API_KEY
        if not api_key:
            raise ConfigurationError("Google Vision API key not configured")

        key = compute_key(payload)
        cached = self._lookup(key, state)
        if cached is not None:
            return cached

        response = await self._post(
            state,
            self.settings.VISION_API_URL,
            payload,
            params={"key": api_key},
        )
        data = _decode_json(response)
        self._store(key, data)
        return data

    async def chat_completion(
        self, payload: Any, state: RelayState | None = None
    ) -> Any | StreamRelay:
        """Return the parsed completion, or a StreamRelay when ``stream`` is set.

        Only non-streaming calls touch the cache, keyed on messages and model.
        """
        state = state or RelayState(started=time.time())
        state.route = CHAT_ROUTE
        api_key = self.settings.OPENAI_API_KEY
        if not api_key:
            raise ConfigurationError("OpenAI API key not configured")
        payload = validate_chat_payload(payload)

        headers = {"Authorization": f"Bearer {api_key}"}
        if payload.get("stream"):
            state.streamed = True
            return await self._open_stream(state, self.settings.OPENAI_API_URL, payload, headers)

        key = chat_cache_key(payload)
        cached = self._lookup(key, state)
        if cached is not None:
            return cached

        response = await self._post(state, self.settings.OPENAI_API_URL, payload, headers=headers)
        data = _decode_json(response)
        self._store(key, data)
        return data

    def _lookup(self, key: str, state: RelayState) -> Any | None:
        state.fingerprint = key
        if not self.settings.ENABLE_CACHE:
            return None
        cached = self.cache.get(key)
        if cached is None:
            inc_cache_misses(state.route)
            return None
        state.cache_hit = True
        inc_cache_hits(state.route)
        return cached

    def _store(self, key: str, data: Any) -> None:
        if self.settings.ENABLE_CACHE:
            self.cache.put(key, data)

    async def _post(
        self,
        state: RelayState,
        url: str,
        payload: Any,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            with timer() as elapsed:
                response = await post_json(
                    self.client, url, payload, headers=headers, params=params
                )
            state.upstream_sec = elapsed()
            observe_upstream_latency(state.route, state.upstream_sec)
        except httpx.HTTPError as exc:
            raise TransportError(f"Upstream request failed: {exc}") from exc
        if not response.is_success:
            raise UpstreamError(response.status_code, response.text)
        return response

    async def _open_stream(
        self,
        state: RelayState,
        url: str,
        payload: dict,
        headers: dict[str, str],
    ) -> StreamRelay:
        try:
            with timer() as elapsed:
                response = await open_stream(self.client, url, payload, headers=headers)
            state.upstream_sec = elapsed()
            observe_upstream_latency(state.route, state.upstream_sec)
        except httpx.HTTPError as exc:
            raise TransportError(f"Upstream request failed: {exc}") from exc

        if not response.is_success:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError as exc:
                raise TransportError(f"Upstream request failed: {exc}") from exc
            finally:
                await response.aclose()
            raise UpstreamError(response.status_code, body)

        inc_stream_relays()
        return StreamRelay(response)


def validate_chat_payload(payload: Any) -> dict:
    """Check the body's shape; the caller's dict is forwarded as-is."""
    if not isinstance(payload, dict):
        raise RequestBodyError("Request body must be a JSON object")
    try:
        ChatCompletionRequest.model_validate(payload)
    except ValidationError as exc:
        raise RequestBodyError(
            f"Invalid chat completion request: {exc.error_count()} validation error(s)"
        ) from exc
    return payload


def chat_cache_key(payload: dict) -> str:
    return compute_key({"messages": payload.get("messages"), "model": payload.get("model")})


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(f"Upstream returned invalid JSON: {exc}") from exc

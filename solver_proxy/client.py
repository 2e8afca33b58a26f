"""Async client for the proxy, as used by the extension-side tooling."""

from typing import Any, AsyncIterator

import httpx

from solver_proxy.proxy.sse import aiter_content

DEFAULT_PROXY_URL = "http://localhost:3001"


class ProxyClientError(Exception):
    def __init__(self, status_code: int, error: Any) -> None:
        super().__init__(f"Proxy Server Error: {status_code} - {error}")
        self.status_code = status_code
        self.error = error


def vision_request(image_b64: str) -> dict:
    """Text-detection request body for a base64 screenshot."""
    return {
        "requests": [
            {
                "image": {"content": image_b64},
                "features": [{"type": "TEXT_DETECTION", "maxResults": 1}],
            }
        ]
    }


def detected_text(result: dict) -> str:
    responses = result.get("responses") or [{}]
    annotations = responses[0].get("textAnnotations") or [{}]
    return annotations[0].get("description", "") or ""


def _error_from(response: httpx.Response) -> ProxyClientError:
    try:
        data = response.json()
    except ValueError:
        data = None
    error = data.get("error", response.text) if isinstance(data, dict) else response.text
    return ProxyClientError(response.status_code, error)


class ProxyClient:
    def __init__(
        self,
        base_url: str = DEFAULT_PROXY_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=None)
        self._owns_client = client is None

    async def __aenter__(self) -> "ProxyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def annotate_image(self, payload: dict) -> dict:
        response = await self._client.post(f"{self.base_url}/api/vision", json=payload)
        if not response.is_success:
            raise _error_from(response)
        return response.json()

    async def complete(self, payload: dict) -> dict:
        body = {**payload, "stream": False}
        response = await self._client.post(f"{self.base_url}/api/openai", json=body)
        if not response.is_success:
            raise _error_from(response)
        return response.json()

    async def stream_completion(self, payload: dict) -> AsyncIterator[str]:
        """Yield content fragments; malformed frames are skipped."""
        body = {**payload, "stream": True}
        async with self._client.stream(
            "POST", f"{self.base_url}/api/openai", json=body
        ) as response:
            if not response.is_success:
                await response.aread()
                raise _error_from(response)
            async for text in aiter_content(response.aiter_lines()):
                yield text

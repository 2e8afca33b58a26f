import httpx

from solver_proxy.config import Settings


def build_client(settings: Settings) -> httpx.AsyncClient:
    """Shared upstream client; no timeout unless UPSTREAM_TIMEOUT_SEC is set."""
    return httpx.AsyncClient(timeout=settings.UPSTREAM_TIMEOUT_SEC)


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: object,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
) -> httpx.Response:
    """POST JSON and read the whole body. No retries."""
    return await client.post(url, json=payload, headers=headers, params=params)


async def open_stream(
    client: httpx.AsyncClient,
    url: str,
    payload: object,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """POST JSON and return once headers arrive; the caller must close the response."""
    request = client.build_request("POST", url, json=payload, headers=headers)
    return await client.send(request, stream=True)

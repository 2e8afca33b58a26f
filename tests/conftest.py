from pathlib import Path
import json
import sys

import httpx
import pytest

# Ensure tests can import project modules from this repo layout.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from solver_proxy.config import Settings, settings  # noqa: E402
from solver_proxy.proxy.cache import CacheStore  # noqa: E402

VISION_URL = "https://vision.test/v1/images:annotate"
CHAT_URL = "https://chat.test/v1/chat/completions"


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, sec: float) -> None:
        self.now += sec


async def _chunked_body(chunks: list[bytes], fail_after: int | None):
    for index, chunk in enumerate(chunks):
        if index == fail_after:
            raise httpx.ReadError("connection reset")
        yield chunk


class Upstream:
    """Scripted upstream services that record every request they receive."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []

    def queue(self, status_code: int = 200, **kwargs) -> None:
        self.responses.append(httpx.Response(status_code, **kwargs))

    def queue_stream(
        self,
        frames: list[str],
        status_code: int = 200,
        fail_after: int | None = None,
    ) -> None:
        chunks = [f"data: {frame}\n\n".encode("utf-8") for frame in frames]
        self.queue_chunks(chunks, status_code, fail_after=fail_after)

    def queue_chunks(
        self,
        chunks: list[bytes],
        status_code: int = 200,
        fail_after: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Queue a body delivered one chunk at a time.

        With ``fail_after`` set, the connection drops after that many chunks.
        """
        self.queue(
            status_code,
            content=_chunked_body(chunks, fail_after),
            headers={"content-type": "text/event-stream", **(headers or {})},
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(599, text="no scripted response")
        return self.responses.pop(0)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def body(self, index: int = -1):
        return json.loads(self.requests[index].content)


def make_settings(**overrides) -> Settings:
    values = {
        "GOOGLE_VISION_API_KEY": "vision-key",
        "OPENAI_API_KEY": "openai-key",
        "VISION_API_URL": VISION_URL,
        "OPENAI_API_URL": CHAT_URL,
        "ENABLE_CACHE": True,
        "CORS_ALLOW_ORIGIN_REGEX": ".*",
    }
    values.update(overrides)
    return Settings(**values)


def chat_frame(content: str) -> str:
    return json.dumps({"choices": [{"index": 0, "delta": {"content": content}}]})


@pytest.fixture(autouse=True)
def event_log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "EVENT_LOG_DIR", str(tmp_path / "runs"))
    return tmp_path / "runs"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheStore(ttl_sec=3600, max_size=1000, clock=clock)


@pytest.fixture
def upstream():
    return Upstream()

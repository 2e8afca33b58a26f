"""Parsing for the chat-completion ``text/event-stream`` wire format.

Each frame is a ``data: <json>`` line; the stream ends with ``data: [DONE]``.
Incremental text sits at ``choices[0].delta.content``.
"""

import json
from typing import AsyncIterable, AsyncIterator

DATA_PREFIX = "data:"
DONE = "[DONE]"


def parse_frame(line: str) -> dict | str | None:
    """Return the decoded frame, ``DONE``, or None for lines to skip."""
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):].strip()
    if data == DONE:
        return DONE
    try:
        frame = json.loads(data)
    except json.JSONDecodeError:
        return None
    return frame if isinstance(frame, dict) else None


def content_delta(frame: dict) -> str:
    choices = frame.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


async def aiter_content(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield content fragments until ``[DONE]`` or the end of input."""
    async for line in lines:
        frame = parse_frame(line)
        if frame is None:
            continue
        if frame == DONE:
            return
        text = content_delta(frame)
        if text:
            yield text

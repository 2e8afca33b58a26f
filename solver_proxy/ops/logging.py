import hashlib
import json
import time
import uuid
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from solver_proxy.config import settings


def _runs_dir() -> Path:
    path = Path(settings.EVENT_LOG_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def short_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


def log_event(event: dict) -> None:
    event.setdefault("event_id", uuid.uuid4().hex)
    event["ts"] = time.time()
    with (_runs_dir() / "events.jsonl").open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False, separators=(",", ":")) + "\n")


async def alog_event(event: dict) -> None:
    await run_in_threadpool(log_event, event)

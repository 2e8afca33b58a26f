"""Runtime configuration loaded from environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()


def _is_true(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


class Settings:
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("PORT", os.getenv("API_PORT", "3001")))

    GOOGLE_VISION_API_KEY = os.getenv("GOOGLE_VISION_API_KEY", "").strip()
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
    VISION_API_URL = os.getenv(
        "VISION_API_URL", "https://vision.googleapis.com/v1/images:annotate"
    )
    OPENAI_API_URL = os.getenv(
        "OPENAI_API_URL", "https://api.openai.com/v1/chat/completions"
    )
    UPSTREAM_TIMEOUT_SEC = _optional_float("UPSTREAM_TIMEOUT_SEC")

    ENABLE_CACHE = _is_true("ENABLE_CACHE")
    CACHE_TTL_SEC = float(os.getenv("CACHE_TTL_SEC", "3600"))
    CACHE_MAX_SIZE = int(os.getenv("CACHE_MAX_SIZE", "1000"))

    EVENT_LOG_DIR = os.getenv("EVENT_LOG_DIR", "data/runs")
    CORS_ALLOW_ORIGIN_REGEX = os.getenv("CORS_ALLOW_ORIGIN_REGEX", ".*")
    MAX_BODY_BYTES = int(os.getenv("MAX_BODY_BYTES", str(10 * 1024 * 1024)))

    def __init__(self, **overrides) -> None:
        for name, value in overrides.items():
            if not hasattr(type(self), name):
                raise AttributeError(f"Unknown setting: {name}")
            setattr(self, name, value)


settings = Settings()

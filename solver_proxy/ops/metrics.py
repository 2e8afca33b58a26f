import time
from contextlib import contextmanager

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


PROXY_REQUESTS_TOTAL = Counter(
    "proxy_requests_total",
    "Total number of proxied requests",
    ["route"],
)
PROXY_ERRORS_TOTAL = Counter(
    "proxy_errors_total",
    "Total number of failed proxied requests",
    ["route", "reason"],
)
CACHE_HITS_TOTAL = Counter("cache_hits_total", "Total number of cache hits", ["route"])
CACHE_MISSES_TOTAL = Counter(
    "cache_misses_total",
    "Total number of cache misses",
    ["route"],
)
CACHE_EVICTIONS_TOTAL = Counter(
    "cache_evictions_total",
    "Total number of entries evicted at capacity",
)
STREAM_RELAYS_TOTAL = Counter(
    "stream_relays_total",
    "Total number of streamed chat responses relayed",
)

UPSTREAM_LATENCY_SECONDS = Histogram(
    "upstream_seconds",
    "Upstream call latency in seconds",
    ["route"],
)

CACHE_ENTRIES = Gauge("cache_entries", "Number of entries currently cached")


@contextmanager
def timer():
    start = time.time()
    yield lambda: time.time() - start


def observe_upstream_latency(route: str, sec: float) -> None:
    UPSTREAM_LATENCY_SECONDS.labels(route=route).observe(sec)


def inc_proxy_requests(route: str) -> None:
    PROXY_REQUESTS_TOTAL.labels(route=route).inc()


def inc_proxy_error(route: str, reason: str) -> None:
    PROXY_ERRORS_TOTAL.labels(route=route, reason=reason).inc()


def inc_cache_hits(route: str) -> None:
    CACHE_HITS_TOTAL.labels(route=route).inc()


def inc_cache_misses(route: str) -> None:
    CACHE_MISSES_TOTAL.labels(route=route).inc()


def inc_cache_evictions() -> None:
    CACHE_EVICTIONS_TOTAL.inc()


def inc_stream_relays() -> None:
    STREAM_RELAYS_TOTAL.inc()


def set_cache_entries(count: int) -> None:
    CACHE_ENTRIES.set(max(0, count))


def render_metrics() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

from __future__ import annotations

"""Prometheus metrics for the Nexus API.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters for AI gateway failures and provisioning steps.
"""

import time
from typing import Callable, Awaitable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

# Histogram buckets chosen for web latencies (seconds)
REQUEST_LATENCY = Histogram(
    "nexus_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

AI_GATEWAY_ERRORS = Counter(
    "nexus_ai_gateway_errors_total",
    "Model backend failures by caller-visible reason",
    labelnames=("reason",),
)

PROVISIONING_STEPS = Counter(
    "nexus_provisioning_steps_total",
    "Organization provisioning steps by kind and outcome",
    labelnames=("kind", "status"),
)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths (e.g., /organizations/{id}) to a coarse label.

    Keeps the first segment, or the first two under /api and /ai.
    """
    if not path:
        return "/"
    segs = [s for s in path.split("?")[0].split("/") if s]
    if not segs:
        return "/"
    if segs[0] in ("api", "ai") and len(segs) > 1:
        return "/" + "/".join(segs[:2])
    return "/" + segs[0]


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Avoid observing the metrics endpoint itself
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        REQUEST_LATENCY.labels(
            method=request.method,
            path=sanitize_path(request.url.path),
            status=str(response.status_code),
        ).observe(elapsed)
        return response

    return middleware

# backend/app/observability.py
"""Logging setup, Prometheus metrics and the ASGI middleware that records them."""
import logging
import os
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

HTTP_REQUESTS = Counter(
    "gantt_http_requests_total",
    "HTTP requests handled",
    ["method", "path", "status"],
)
HTTP_LATENCY = Histogram(
    "gantt_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path"],
)
LLM_ATTEMPTS = Counter(
    "gantt_llm_attempts_total",
    "Completion attempts by provider and outcome",
    ["provider", "outcome"],
)

_configured = False


def setup_logging(level: str = LOG_LEVEL) -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
    logging.getLogger("uvicorn.error").setLevel(getattr(logging, level, logging.INFO))
    _configured = True


def record_llm_attempt(provider: str, outcome: str) -> None:
    LLM_ATTEMPTS.labels(provider=provider, outcome=outcome).inc()


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            # label by route template, not raw path
            route = request.scope.get("route")
            path = getattr(route, "path", None) or "unmatched"
            HTTP_REQUESTS.labels(method=request.method, path=path, status=str(status)).inc()
            HTTP_LATENCY.labels(method=request.method, path=path).observe(time.perf_counter() - started)

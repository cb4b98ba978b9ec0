"""
Prometheus Metrics

Exposes:
  - http_requests_total                 (counter)
  - http_request_duration_seconds       (histogram)
  - http_requests_in_progress           (gauge)
  - domain_verification_checks_total    (counter, by outcome)
  - domain_status_transitions_total     (counter, by lifecycle event)
  - host_routing_decisions_total        (counter, by action)
  - app_info                            (info)
"""

import re
import time

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings

# ── HTTP metrics ──
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of in-progress requests",
    ["method"],
)
APP_INFO = Info("app", "Application metadata")

# ── Domain metrics ──
VERIFICATION_CHECKS = Counter(
    "domain_verification_checks_total",
    "DNS verification checks by outcome",
    ["outcome", "source"],
)
STATUS_TRANSITIONS = Counter(
    "domain_status_transitions_total",
    "Custom domain lifecycle transitions",
    ["event", "to_status"],
)
ROUTING_DECISIONS = Counter(
    "host_routing_decisions_total",
    "Host-based routing decisions",
    ["kind", "action"],
)

_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")


def _normalize_path(path: str) -> str:
    """Collapse ids and profile usernames to prevent cardinality explosion."""
    path = _UUID_RE.sub("{id}", path)
    path = re.sub(r"/\d+", "/{id}", path)
    first = path.strip("/").split("/", 1)[0]
    if first and first not in settings.reserved_paths:
        return "/{username}"
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        method = request.method
        path = _normalize_path(request.url.path)

        # Skip metrics endpoint itself
        if path == "/metrics":
            return await call_next(request)

        REQUESTS_IN_PROGRESS.labels(method=method).inc()
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            REQUEST_COUNT.labels(method=method, endpoint=path, status="500").inc()
            REQUEST_DURATION.labels(method=method, endpoint=path).observe(
                time.perf_counter() - start
            )
            REQUESTS_IN_PROGRESS.labels(method=method).dec()
            raise

        elapsed = time.perf_counter() - start
        REQUEST_COUNT.labels(method=method, endpoint=path, status=str(response.status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=path).observe(elapsed)
        REQUESTS_IN_PROGRESS.labels(method=method).dec()

        return response


def metrics_endpoint(request: Request) -> Response:
    """Expose /metrics for Prometheus scraping."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def set_app_info(version: str = "1.0.0", env: str = "development") -> None:
    """Set application info metric."""
    APP_INFO.info({"version": version, "environment": env})

"""Prometheus metrics for the HTTP layer and the consistency engine."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "path"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "path", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "path", "status"),
)
ENGINE_WRITES = Counter(
    "engine_writes_total",
    "Writes accepted and committed by the consistency engine.",
    labelnames=("operation",),
)
ENGINE_REJECTIONS = Counter(
    "engine_rejections_total",
    "Writes rejected by the consistency engine, by error kind.",
    labelnames=("operation", "kind"),
)
ENGINE_WRITE_SECONDS = Histogram(
    "engine_write_seconds",
    "Duration of engine write units, lock acquisition included.",
    labelnames=("operation",),
)
COST_LINES_RECOMPUTED = Counter(
    "engine_cost_lines_recomputed_total",
    "Cost lines whose derived amounts changed after a budget rate or currency change.",
)
PAYMENT_ORDER_BOOKINGS = Counter(
    "payment_order_bookings_total",
    "Payment order lock transitions.",
    labelnames=("transition",),
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        route = request.scope.get("route")
        path = getattr(route, "path", None) or request.url.path
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            route = request.scope.get("route")
            path = getattr(route, "path", None) or path
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(method=method, path=path, status=status).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(method=method, path=path, status="500").inc()
            raise
        finally:
            latency = time.perf_counter() - start_time
            REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(latency)
            REQUEST_COUNTER.labels(method=method, path=path, status=status).inc()


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


def record_engine_write(operation: str, duration: float | None = None) -> None:
    ENGINE_WRITES.labels(operation=operation).inc()
    if duration is not None:
        ENGINE_WRITE_SECONDS.labels(operation=operation).observe(duration)


def record_engine_rejection(operation: str, kind: str) -> None:
    ENGINE_REJECTIONS.labels(operation=operation, kind=kind).inc()


def record_recomputed_lines(count: int) -> None:
    if count:
        COST_LINES_RECOMPUTED.inc(count)


def record_booking_transition(transition: str) -> None:
    """``transition`` is ``booked`` or ``reversed``."""
    PAYMENT_ORDER_BOOKINGS.labels(transition=transition).inc()


__all__ = [
    "COST_LINES_RECOMPUTED",
    "ENGINE_REJECTIONS",
    "ENGINE_WRITES",
    "ENGINE_WRITE_SECONDS",
    "PAYMENT_ORDER_BOOKINGS",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "metrics_endpoint",
    "metrics_router",
    "record_booking_transition",
    "record_engine_rejection",
    "record_engine_write",
    "record_recomputed_lines",
]

"""Observability utilities."""

from .audit import ACTOR_HEADER, REQUEST_ID_HEADER, RequestLogMiddleware, RequestLogRecord
from .metrics import (
    COST_LINES_RECOMPUTED,
    ENGINE_REJECTIONS,
    ENGINE_WRITE_SECONDS,
    ENGINE_WRITES,
    PAYMENT_ORDER_BOOKINGS,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    PrometheusMiddleware,
    metrics_router,
    record_booking_transition,
    record_engine_rejection,
    record_engine_write,
    record_recomputed_lines,
)
from .tracing import (
    engine_span,
    initialise_tracing,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    mark_rejected,
)

__all__ = [
    "ACTOR_HEADER",
    "COST_LINES_RECOMPUTED",
    "ENGINE_REJECTIONS",
    "ENGINE_WRITES",
    "ENGINE_WRITE_SECONDS",
    "PAYMENT_ORDER_BOOKINGS",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_ID_HEADER",
    "REQUEST_LATENCY_SECONDS",
    "RequestLogMiddleware",
    "RequestLogRecord",
    "engine_span",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "mark_rejected",
    "metrics_router",
    "record_booking_transition",
    "record_engine_rejection",
    "record_engine_write",
    "record_recomputed_lines",
]

from __future__ import annotations

import json
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from opentelemetry import trace
from opentelemetry.trace import StatusCode

from relief_finance.obs import (
    ENGINE_REJECTIONS,
    ENGINE_WRITE_SECONDS,
    ENGINE_WRITES,
    PAYMENT_ORDER_BOOKINGS,
    PrometheusMiddleware,
    RequestLogMiddleware,
    engine_span,
    initialise_tracing,
    mark_rejected,
    metrics_router,
    record_booking_transition,
    record_engine_rejection,
    record_engine_write,
)


def _sample_value(counter, name: str, labels: dict[str, str]) -> float:
    family = next(iter(counter.collect()))
    for sample in family.samples:
        if sample.name == name and sample.labels == labels:
            return sample.value
    return 0.0


def test_metrics_endpoint_exposes_counters() -> None:
    app = FastAPI()
    app.add_middleware(PrometheusMiddleware)
    app.include_router(metrics_router)

    client = TestClient(app)
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text


def test_engine_counters_track_writes_and_rejections() -> None:
    write_labels = {"operation": "unit-test.write"}
    reject_labels = {"operation": "unit-test.write", "kind": "CapExceeded"}
    writes_before = _sample_value(ENGINE_WRITES, "engine_writes_total", write_labels)
    rejections_before = _sample_value(ENGINE_REJECTIONS, "engine_rejections_total", reject_labels)

    record_engine_write("unit-test.write", 0.25)
    record_engine_rejection("unit-test.write", "CapExceeded")

    assert _sample_value(ENGINE_WRITES, "engine_writes_total", write_labels) == writes_before + 1
    assert _sample_value(ENGINE_REJECTIONS, "engine_rejections_total", reject_labels) == rejections_before + 1
    assert _sample_value(ENGINE_WRITE_SECONDS, "engine_write_seconds_count", write_labels) >= 1


def test_booking_transitions_are_counted() -> None:
    labels = {"transition": "reversed"}
    before = _sample_value(PAYMENT_ORDER_BOOKINGS, "payment_order_bookings_total", labels)

    record_booking_transition("reversed")

    assert _sample_value(PAYMENT_ORDER_BOOKINGS, "payment_order_bookings_total", labels) == before + 1


def test_request_log_middleware_echoes_request_id(caplog: pytest.LogCaptureFixture) -> None:
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware, logger=logging.getLogger("tests.audit"))

    @app.get("/ping")
    def ping() -> dict[str, str]:
        return {"status": "ok"}

    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="tests.audit"):
        response = client.get("/ping", headers={"X-Request-ID": "req-42", "X-Actor": "ops@example.org"})

    assert response.headers["X-Request-ID"] == "req-42"
    records = [json.loads(record.getMessage()) for record in caplog.records if record.name == "tests.audit"]
    assert records[-1]["request_id"] == "req-42"
    assert records[-1]["actor"] == "ops@example.org"
    assert records[-1]["status"] == 200


def test_request_log_middleware_mints_request_id() -> None:
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware)

    @app.get("/ping")
    def ping() -> dict[str, str]:
        return {"status": "ok"}

    response = TestClient(app).get("/ping")
    assert len(response.headers["X-Request-ID"]) == 32


def test_engine_span_sets_attributes_and_skips_none() -> None:
    initialise_tracing(service_name="unit-test-service", instrument_logging=False)

    with engine_span("engine.unit-test", entity="Budget", entity_id=None) as span:
        assert span.get_span_context().trace_id == trace.get_current_span().get_span_context().trace_id
        attributes = getattr(span, "attributes", {}) or {}
        assert attributes.get("entity") == "Budget"
        assert "entity_id" not in attributes


def test_rejected_engine_span_is_marked_as_error() -> None:
    initialise_tracing(service_name="unit-test-service", instrument_logging=False)

    with engine_span("engine.unit-test", entity="CostAllocation") as span:
        mark_rejected(span, kind="CapExceeded", rule="transaction_cap")
        attributes = getattr(span, "attributes", {}) or {}

    assert attributes.get("engine.error_kind") == "CapExceeded"
    assert attributes.get("engine.rule") == "transaction_cap"
    assert span.status.status_code is StatusCode.ERROR

"""FastAPI application entrypoint."""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import Response

from relief_finance.api.errors import to_http_exception
from relief_finance.api.routes import register_routes
from relief_finance.core.config import Settings, get_settings
from relief_finance.core.logging import configure_logging
from relief_finance.obs import (
    PrometheusMiddleware,
    RequestLogMiddleware,
    initialise_tracing,
    instrument_fastapi_app,
    metrics_router,
)
from relief_finance.services.errors import ConsistencyError


async def consistency_error_handler(request: Request, exc: ConsistencyError) -> Response:
    """Rejections raised outside a route body, e.g. from a dependency."""
    return await http_exception_handler(request, to_http_exception(exc))


def create_application(settings: Settings | None = None) -> FastAPI:
    """Application factory used by ASGI servers and tests."""
    settings = settings or get_settings()
    configure_logging(settings.logging_config_path)

    if settings.enable_tracing:
        initialise_tracing(service_name=settings.app_name, endpoint=settings.otel_exporter_endpoint)

    application = FastAPI(
        title=settings.app_name,
        version=settings.version,
        description="Keeps budgets, funding allocations and payment orders consistent.",
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
    )

    application.add_middleware(RequestLogMiddleware)
    if settings.enable_metrics:
        application.add_middleware(PrometheusMiddleware)
        application.include_router(metrics_router)
    register_routes(application)
    application.add_exception_handler(ConsistencyError, consistency_error_handler)

    if settings.enable_tracing:
        instrument_fastapi_app(application)

    return application


app = create_application()

"""Structured request logging middleware."""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-ID"
ACTOR_HEADER = "X-Actor"


@dataclass(slots=True)
class RequestLogRecord:
    """One line of the request log."""

    timestamp: str
    request_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    actor: str | None
    project_id: str | None
    ip_address: str | None

    def to_json(self) -> str:
        payload = asdict(self)
        payload["duration_ms"] = round(self.duration_ms, 2)
        return json.dumps(payload, default=str)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and emits one JSON record per request on the ``audit`` logger."""

    def __init__(self, app: ASGIApp, *, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self._logger = logger or logging.getLogger("audit")

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        response = await call_next(request)

        record = RequestLogRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=(time.perf_counter() - start) * 1000,
            actor=request.headers.get(ACTOR_HEADER),
            project_id=getattr(request.state, "project_id", None),
            ip_address=request.client.host if request.client else None,
        )
        self._logger.info(record.to_json())

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = ["ACTOR_HEADER", "REQUEST_ID_HEADER", "RequestLogMiddleware", "RequestLogRecord"]

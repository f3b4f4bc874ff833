"""Translate engine rejections into HTTP responses."""
from __future__ import annotations

from fastapi import HTTPException, status

from relief_finance.services.errors import ConsistencyError, ErrorKind

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_DELETED: status.HTTP_404_NOT_FOUND,
    ErrorKind.ORDER_LOCKED: status.HTTP_409_CONFLICT,
    ErrorKind.CONCURRENT_MODIFICATION: status.HTTP_409_CONFLICT,
    ErrorKind.REVERSAL_NOT_PERMITTED: status.HTTP_409_CONFLICT,
}


def to_http_exception(error: ConsistencyError) -> HTTPException:
    """Every other kind is a rule violation on the submitted payload and maps to 422."""

    status_code = _STATUS_BY_KIND.get(error.kind, status.HTTP_422_UNPROCESSABLE_ENTITY)
    return HTTPException(status_code=status_code, detail=error.to_dict())


__all__ = ["to_http_exception"]

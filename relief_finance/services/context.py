"""Caller context and write operation kinds passed explicitly into the engine."""
from __future__ import annotations

import enum
from dataclasses import dataclass


class WriteOp(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Who is writing, and under which request. Never read from ambient state."""

    actor: str | None = None
    request_id: str | None = None


SYSTEM_CONTEXT = RequestContext(actor="system")


__all__ = ["RequestContext", "SYSTEM_CONTEXT", "WriteOp"]

from __future__ import annotations

import uuid
from contextvars import ContextVar

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")

HEADER = "X-Request-ID"


def current_correlation_id() -> str:
    """Return the ambient correlation id, minting one if none is set."""
    return correlation_id_ctx.get() or uuid.uuid4().hex

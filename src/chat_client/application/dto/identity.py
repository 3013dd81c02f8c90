from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated user as confirmed by the realtime backend."""

    id: int
    name: str

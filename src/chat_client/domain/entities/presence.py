from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PresenceEntry:
    user_id: int
    name: str
    is_online: bool = True

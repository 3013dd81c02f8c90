from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.entities.presence import PresenceEntry


@dataclass(frozen=True, slots=True)
class PresenceSnapshot:
    entries: tuple[PresenceEntry, ...]

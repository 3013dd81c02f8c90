from __future__ import annotations

from dataclasses import dataclass

from chat_client.application.dto.identity import Identity


@dataclass(frozen=True, slots=True)
class IdentityConfirmed:
    identity: Identity

from __future__ import annotations

from typing import Protocol

from chat_client.application.dto.credential import Credential


class CredentialStore(Protocol):
    """Holds the access/refresh pair. Both tokens are written and cleared together."""

    async def load(self) -> Credential | None: ...
    async def save(self, credential: Credential) -> None: ...
    async def clear(self) -> None: ...

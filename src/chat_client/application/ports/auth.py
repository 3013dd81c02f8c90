from __future__ import annotations

from typing import Protocol

from chat_client.application.dto.credential import Credential


class TokenIssuer(Protocol):
    async def login(self, email: str, password: str) -> Credential: ...

    async def refresh(self, credential: Credential) -> Credential:
        """Exchange ``credential.refresh_token`` for a new access token."""
        ...

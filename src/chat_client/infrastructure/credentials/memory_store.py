from __future__ import annotations

from chat_client.application.dto.credential import Credential


class InMemoryCredentialStore:
    """Process-local credential store. Implements application.ports.credential_store.CredentialStore."""

    def __init__(self, credential: Credential | None = None) -> None:
        self._credential = credential

    async def load(self) -> Credential | None:
        return self._credential

    async def save(self, credential: Credential) -> None:
        self._credential = credential

    async def clear(self) -> None:
        self._credential = None

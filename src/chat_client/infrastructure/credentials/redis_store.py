"""Redis-backed credential store: survives process restarts."""
from __future__ import annotations

import logging

import redis.asyncio as aioredis

from chat_client.application.dto.credential import Credential

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "token"
REFRESH_TOKEN_KEY = "refresh_token"


class RedisCredentialStore:
    """Implements application.ports.credential_store.CredentialStore.

    Both tokens are written and deleted inside one MULTI/EXEC so a reader
    never sees one token without the other.
    """

    def __init__(self, redis: aioredis.Redis, prefix: str = "") -> None:
        self._redis = redis
        self._access_key = f"{prefix}{ACCESS_TOKEN_KEY}"
        self._refresh_key = f"{prefix}{REFRESH_TOKEN_KEY}"

    async def load(self) -> Credential | None:
        access, refresh = await self._redis.mget(self._access_key, self._refresh_key)
        if not access or not refresh:
            return None
        return Credential(access_token=_text(access), refresh_token=_text(refresh))

    async def save(self, credential: Credential) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.mset({
                self._access_key: credential.access_token,
                self._refresh_key: credential.refresh_token,
            })
            await pipe.execute()
        logger.debug("Credential persisted under %s", self._access_key)

    async def clear(self) -> None:
        await self._redis.delete(self._access_key, self._refresh_key)
        logger.debug("Credential cleared from %s", self._access_key)


def _text(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value

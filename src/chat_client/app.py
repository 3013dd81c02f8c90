"""Composition root: one ChatClient per logical user session."""
from __future__ import annotations

import logging
from typing import Any

import httpx
import redis.asyncio as aioredis

from chat_client.application.exceptions import SessionClosedError
from chat_client.application.ports.credential_store import CredentialStore
from chat_client.application.ports.transport import RealtimeTransport
from chat_client.config import Settings, settings as default_settings
from chat_client.domain.value_objects.enums import OutboundEvent
from chat_client.infrastructure.credentials.memory_store import InMemoryCredentialStore
from chat_client.infrastructure.credentials.redis_store import RedisCredentialStore
from chat_client.infrastructure.http.auth_api import AuthApi
from chat_client.infrastructure.http.request_gateway import RequestGateway
from chat_client.infrastructure.ws.protocol import PrivateMessageOut
from chat_client.infrastructure.ws.socketio_transport import SocketIOTransport
from chat_client.services.message_stream import ChatState, MessageStream
from chat_client.services.realtime_session import RealtimeSession
from chat_client.services.refresh_coordinator import RefreshCoordinator
from chat_client.services.session_signals import SessionSignals

logger = logging.getLogger(__name__)


def build_credential_store(settings: Settings) -> CredentialStore:
    if settings.CREDENTIAL_STORE == "redis":
        redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        return RedisCredentialStore(redis, prefix=settings.CREDENTIAL_KEY_PREFIX)
    return InMemoryCredentialStore()


class ChatClient:
    """Wires credential store, refresh coordinator, REST gateway, realtime
    session and message stream together.

    Every collaborator is owned by this instance, so several independent
    clients can live in one process.
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        *,
        store: CredentialStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        transport: RealtimeTransport | None = None,
    ) -> None:
        self.settings = settings
        self.store = store if store is not None else build_credential_store(settings)
        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(
            base_url=settings.API_URL,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
        )
        self.signals = SessionSignals()
        self.auth = AuthApi(self.http)
        self.coordinator = RefreshCoordinator(
            self.store,
            self.auth,
            self.signals,
            timeout=settings.REFRESH_TIMEOUT_SECONDS,
        )
        self.gateway = RequestGateway(self.http, self.store, self.coordinator, self.signals)
        self.realtime = RealtimeSession(
            transport or SocketIOTransport(
                settings.REALTIME_URL,
                socketio_path=settings.SOCKETIO_PATH,
                timeout=settings.CONNECT_TIMEOUT_SECONDS,
            ),
            self.store,
            self.coordinator,
            self.signals,
            settings,
        )
        self.stream = MessageStream()
        self.realtime.on_event(self.stream.dispatch)
        self.signals.on_terminated(self._on_terminated)

    @property
    def state(self) -> ChatState:
        return self.stream.state

    async def login(self, email: str, password: str) -> None:
        """Raises LoginFailed when the backend rejects the credentials."""
        if self.signals.terminated:
            raise SessionClosedError("session terminated; start a new client")
        credential = await self.auth.login(email, password)
        await self.store.save(credential)

    async def connect(self) -> None:
        if self.signals.terminated:
            raise SessionClosedError("session terminated; start a new client")
        await self.realtime.connect()

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self.gateway.send(method, path, **kwargs)

    async def load_public_history(self) -> None:
        await self.realtime.send(OutboundEvent.LOAD_MESSAGES.value)

    async def load_private_history(self, user_id: int) -> None:
        self.stream.expect_private_history(user_id)
        await self.realtime.send(OutboundEvent.LOAD_PRIVATE_MESSAGES.value, user_id)

    async def send_public(self, body: str) -> None:
        await self.realtime.send(OutboundEvent.PUBLIC_MESSAGE.value, body)

    async def send_private(self, user_id: int, body: str) -> None:
        payload = PrivateMessageOut(target_user_id=user_id, body=body)
        await self.realtime.send(
            OutboundEvent.PRIVATE_MESSAGE.value, payload.model_dump(by_alias=True),
        )

    async def typing(self, user_id: int | None = None) -> None:
        await self.realtime.send(OutboundEvent.TYPING.value, user_id)

    async def logout(self) -> None:
        """Clear credentials, reject queued refresh callers and close realtime."""
        await self.store.clear()
        await self.signals.terminate("logout")

    async def aclose(self) -> None:
        """Release connections. Stored credentials survive for the next client."""
        await self.coordinator.abort(SessionClosedError("client closed"))
        await self.realtime.close()
        self.stream.reset()
        if self._owns_http:
            await self.http.aclose()

    async def _on_terminated(self, reason: str) -> None:
        self.stream.reset()

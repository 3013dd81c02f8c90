"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from chat_client.application.dto.credential import Credential
from chat_client.application.exceptions import (
    HandshakeRejected,
    RefreshFailed,
    TransportError,
)
from chat_client.application.ports.transport import OnInboundEvent, OnTransportDrop
from chat_client.config import Settings
from chat_client.domain.entities.message import Message
from chat_client.domain.value_objects.ids import PUBLIC_CONVERSATION, ConversationId
from chat_client.infrastructure.credentials.memory_store import InMemoryCredentialStore
from chat_client.services.session_signals import SessionSignals

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        API_URL="http://backend.test",
        REALTIME_URL="http://backend.test",
        REFRESH_TIMEOUT_SECONDS=1.0,
        CONNECT_TIMEOUT_SECONDS=1.0,
        RECONNECT_BASE_DELAY_SECONDS=0.0,
        RECONNECT_MAX_DELAY_SECONDS=0.0,
        RECONNECT_MAX_ATTEMPTS=3,
        CREDENTIAL_STORE="memory",
    )


@pytest.fixture
def credential() -> Credential:
    return Credential(access_token="access-0", refresh_token="refresh-0")


@pytest.fixture
def store(credential) -> InMemoryCredentialStore:
    return InMemoryCredentialStore(credential)


@pytest.fixture
def signals() -> SessionSignals:
    return SessionSignals()


def make_message(
    *,
    message_id: int = 1,
    seconds: int = 0,
    sender_id: int = 2,
    sender_name: str = "B",
    body: str = "hello",
    conversation_id: ConversationId = PUBLIC_CONVERSATION,
) -> Message:
    return Message(
        id=message_id,
        sender_id=sender_id,
        sender_name=sender_name,
        body=body,
        timestamp=EPOCH + timedelta(seconds=seconds),
        conversation_id=conversation_id,
    )


def wire_message(
    *,
    message_id: int = 1,
    seconds: int = 0,
    sender_id: int = 2,
    sender_name: str = "B",
    body: str = "hello",
    receiver_id: int | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": message_id,
        "senderId": sender_id,
        "senderName": sender_name,
        "body": body,
        "createdAt": (EPOCH + timedelta(seconds=seconds)).isoformat(),
    }
    if receiver_id is not None:
        data["receiverId"] = receiver_id
    return data


async def settle(predicate: Callable[[], bool], rounds: int = 200) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@dataclass
class FakeIssuer:
    """In-memory TokenIssuer. ``hold`` parks refresh exchanges until ``release()``."""

    hold: bool = False
    fail: bool = False
    refresh_calls: int = 0
    _gate: asyncio.Event = field(default_factory=asyncio.Event)

    def release(self) -> None:
        self._gate.set()

    async def login(self, email: str, password: str) -> Credential:
        return Credential(access_token="access-0", refresh_token="refresh-0")

    async def refresh(self, credential: Credential) -> Credential:
        self.refresh_calls += 1
        n = self.refresh_calls
        if self.hold:
            await self._gate.wait()
        if self.fail:
            raise RefreshFailed("refresh token rejected")
        return credential.rotated(f"access-{n}")


@dataclass
class FakeTransport:
    """In-memory RealtimeTransport.

    ``tokens`` records every token presented at connect time, ``emitted``
    every outbound event. ``hold()`` parks the next handshakes until
    ``release()``.
    """

    tokens: list[str] = field(default_factory=list)
    emitted: list[tuple[str, Any]] = field(default_factory=list)
    reject_tokens: set[str] = field(default_factory=set)
    fail_connects: int = 0
    connected: bool = False
    on_emit: Callable[[str, Any], None] | None = None
    on_connect: Callable[[str], None] | None = None
    _gate: asyncio.Event | None = None
    _on_event: OnInboundEvent | None = None
    _on_drop: OnTransportDrop | None = None

    def bind(self, on_event: OnInboundEvent, on_drop: OnTransportDrop) -> None:
        self._on_event = on_event
        self._on_drop = on_drop

    def hold(self) -> None:
        self._gate = asyncio.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()
            self._gate = None

    async def connect(self, token: str) -> None:
        self.tokens.append(token)
        if self._gate is not None:
            await self._gate.wait()
        if token in self.reject_tokens:
            raise HandshakeRejected("unauthorized")
        if self.fail_connects:
            self.fail_connects -= 1
            raise TransportError("connection refused")
        self.connected = True
        if self.on_connect is not None:
            self.on_connect(token)

    async def disconnect(self) -> None:
        self.connected = False

    async def emit(self, event: str, data: Any = None) -> None:
        if not self.connected:
            raise TransportError("not connected")
        self.emitted.append((event, data))
        if self.on_emit is not None:
            self.on_emit(event, data)

    def push(self, event: str, data: Any = None) -> None:
        assert self._on_event is not None
        self._on_event(event, data)

    async def drop(self) -> None:
        self.connected = False
        assert self._on_drop is not None
        await self._on_drop()


@dataclass
class _FakePipeline:
    _redis: FakeRedis
    _ops: list[dict[str, str]] = field(default_factory=list)

    async def __aenter__(self) -> _FakePipeline:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self._ops.clear()

    def mset(self, mapping: dict[str, str]) -> None:
        self._ops.append(mapping)

    async def execute(self) -> list[bool]:
        for mapping in self._ops:
            self._redis.data.update(mapping)
        return [True] * len(self._ops)


@dataclass
class FakeRedis:
    """Just enough of redis.asyncio.Redis for the credential store."""

    data: dict[str, str] = field(default_factory=dict)
    transactions: int = 0

    async def mget(self, *keys: str) -> list[str | None]:
        return [self.data.get(k) for k in keys]

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        if transaction:
            self.transactions += 1
        return _FakePipeline(self)

    async def delete(self, *keys: str) -> int:
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

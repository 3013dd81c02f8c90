"""Realtime connection lifecycle and credential currency."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Callable

from chat_client.application.dto.credential import Credential
from chat_client.application.exceptions import (
    AuthExpired,
    ClientError,
    HandshakeRejected,
    RefreshFailed,
    SessionClosedError,
    TransportError,
)
from chat_client.application.ports.credential_store import CredentialStore
from chat_client.application.ports.transport import OnInboundEvent, RealtimeTransport
from chat_client.config import Settings, settings as default_settings
from chat_client.domain.value_objects.enums import ConnectionState, OutboundEvent
from chat_client.services.refresh_coordinator import RefreshCoordinator
from chat_client.services.session_signals import SessionSignals

logger = logging.getLogger(__name__)

StateListener = Callable[[ConnectionState], None]

_IN_HANDSHAKE = (ConnectionState.CONNECTING, ConnectionState.REAUTHENTICATING)


class RealtimeSession:
    """Owns one logical realtime connection.

    The connection is authenticated with the stored access token at connect
    time and reopened with the new one whenever the credential rotates.
    Sends issued while not authenticated are buffered and flushed in order
    once the handshake completes; they are discarded only on close.
    Inbound events are passed through untouched to the registered handler.
    """

    def __init__(
        self,
        transport: RealtimeTransport,
        store: CredentialStore,
        coordinator: RefreshCoordinator,
        signals: SessionSignals,
        settings: Settings = default_settings,
    ) -> None:
        self._transport = transport
        self._store = store
        self._coordinator = coordinator
        self._settings = settings
        self._state = ConnectionState.DISCONNECTED
        self._buffer: deque[tuple[str, Any]] = deque()
        self._listeners: list[StateListener] = []
        self._event_handler: OnInboundEvent | None = None
        self._task: asyncio.Task[None] | None = None
        self._token_in_use: str | None = None
        self._rotation_pending = False

        transport.bind(self._on_inbound, self._on_drop)
        signals.on_rotated(self._on_rotated)
        signals.on_terminated(self._on_terminated)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def on_event(self, handler: OnInboundEvent) -> None:
        self._event_handler = handler

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    async def connect(self) -> None:
        """Connect and authenticate; returns once the session is authenticated.

        Raises TransportError when reconnect attempts are exhausted and
        SessionClosedError if the session is closed meanwhile.
        """
        if self._state is ConnectionState.CLOSED:
            raise SessionClosedError("realtime session is closed")
        if self._state is ConnectionState.AUTHENTICATED:
            return
        task = self._task
        if task is None or task.done():
            task = self._spawn(ConnectionState.CONNECTING)
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise SessionClosedError("realtime session closed while connecting") from None
            raise

    async def send(self, event: str, data: Any = None) -> None:
        """Emit an outbound event, buffering it if the session is not authenticated."""
        if self._state is ConnectionState.CLOSED:
            raise SessionClosedError(f"cannot send {event!r}: session closed")
        if self._state is ConnectionState.AUTHENTICATED and not self._buffer:
            try:
                await self._transport.emit(event, data)
                return
            except TransportError:
                logger.info("Emit of %r failed, buffering until reconnect", event)
        self._buffer.append((event, data))

    async def close(self) -> None:
        """Tear down the connection for good. Buffered sends are discarded."""
        if self._state is ConnectionState.CLOSED:
            return
        self._set_state(ConnectionState.CLOSED)
        dropped = len(self._buffer)
        self._buffer.clear()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        await self._transport.disconnect()
        logger.info("Realtime session closed (%d buffered sends discarded)", dropped)

    def _spawn(self, entering: ConnectionState) -> asyncio.Task[None]:
        task = asyncio.create_task(self._establish(entering), name=f"realtime-{entering}")
        task.add_done_callback(self._on_task_done)
        self._task = task
        return task

    async def _establish(self, entering: ConnectionState) -> None:
        attempt = 0
        refreshed_for_handshake = False
        while True:
            self._set_state(entering)
            if entering is ConnectionState.REAUTHENTICATING:
                await self._transport.disconnect()

            credential = await self._store.load()
            if credential is None:
                self._set_state(ConnectionState.DISCONNECTED)
                raise AuthExpired("no stored credential for realtime handshake")
            token = credential.access_token
            self._rotation_pending = False

            try:
                await asyncio.wait_for(
                    self._transport.connect(token),
                    timeout=self._settings.CONNECT_TIMEOUT_SECONDS,
                )
            except HandshakeRejected:
                if refreshed_for_handshake:
                    self._set_state(ConnectionState.DISCONNECTED)
                    raise
                refreshed_for_handshake = True
                logger.info("Realtime handshake rejected, refreshing credential")
                try:
                    await self._coordinator.ensure_fresh(token)
                except (RefreshFailed, SessionClosedError):
                    # termination signal closes the session
                    return
                continue
            except (TransportError, TimeoutError) as exc:
                if self._state is ConnectionState.CLOSED:
                    return
                await self._transport.disconnect()
                self._set_state(ConnectionState.DISCONNECTED)
                if attempt >= self._settings.RECONNECT_MAX_ATTEMPTS:
                    raise TransportError(
                        f"realtime reconnect gave up after {attempt} attempt(s)"
                    ) from exc
                delay = self._settings.reconnect_delay(attempt)
                attempt += 1
                logger.warning(
                    "Realtime connect failed (%r), retry %d/%d in %.2fs",
                    exc, attempt, self._settings.RECONNECT_MAX_ATTEMPTS, delay,
                )
                await asyncio.sleep(delay)
                entering = ConnectionState.CONNECTING
                continue

            if self._rotation_pending:
                latest = await self._store.load()
                if latest is not None and latest.access_token != token:
                    logger.info("Credential rotated during handshake, reconnecting once more")
                    entering = ConnectionState.REAUTHENTICATING
                    continue
            self._token_in_use = token
            self._set_state(ConnectionState.AUTHENTICATED)
            await self._on_authenticated()
            return

    async def _on_authenticated(self) -> None:
        try:
            await self._transport.emit(OutboundEvent.LOAD_MESSAGES.value)
        except TransportError:
            logger.info("Initial snapshot request failed, waiting for reconnect")
            return
        await self._flush()

    async def _flush(self) -> None:
        flushed = 0
        while self._buffer and self._state is ConnectionState.AUTHENTICATED:
            event, data = self._buffer[0]
            try:
                await self._transport.emit(event, data)
            except TransportError:
                logger.info("Flush interrupted with %d send(s) still buffered", len(self._buffer))
                return
            self._buffer.popleft()
            flushed += 1
        if flushed:
            logger.debug("Flushed %d buffered send(s)", flushed)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, ClientError):
            logger.error("Realtime session disconnected: %s", exc.detail)
        elif exc is not None:
            logger.error("Realtime connection task crashed", exc_info=exc)

    def _on_inbound(self, event: str, data: Any) -> None:
        if self._event_handler is not None:
            self._event_handler(event, data)

    async def _on_drop(self) -> None:
        if self._state is not ConnectionState.AUTHENTICATED:
            return
        logger.warning("Realtime transport dropped, reconnecting")
        self._set_state(ConnectionState.DISCONNECTED)
        self._spawn(ConnectionState.CONNECTING)

    async def _on_rotated(self, credential: Credential) -> None:
        if self._state is ConnectionState.AUTHENTICATED:
            if credential.access_token == self._token_in_use:
                return
            self._set_state(ConnectionState.REAUTHENTICATING)
            self._spawn(ConnectionState.REAUTHENTICATING)
        elif self._state in _IN_HANDSHAKE:
            self._rotation_pending = True

    async def _on_terminated(self, reason: str) -> None:
        await self.close()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        logger.info("Realtime state %s -> %s", previous, state)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Realtime state listener failed")

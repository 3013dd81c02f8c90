"""Socket.IO realtime transport."""
from __future__ import annotations

import logging
from typing import Any

import socketio
from socketio.exceptions import ConnectionError as SioConnectionError, SocketIOError

from chat_client.application.exceptions import HandshakeRejected, TransportError
from chat_client.application.ports.transport import OnInboundEvent, OnTransportDrop

logger = logging.getLogger(__name__)

_REJECTION_MARKERS = ("unauthorized", "jwt")


class SocketIOTransport:
    """Implements application.ports.transport.RealtimeTransport.

    A fresh ``socketio.AsyncClient`` is built per connection with the
    library's own reconnection disabled; reconnect policy belongs to
    RealtimeSession.
    """

    def __init__(self, url: str, *, socketio_path: str = "socket.io", timeout: float = 10.0) -> None:
        self._url = url
        self._socketio_path = socketio_path
        self._timeout = timeout
        self._sio: socketio.AsyncClient | None = None
        self._on_event: OnInboundEvent | None = None
        self._on_drop: OnTransportDrop | None = None
        self._closing = False
        self._connect_error: Any = None

    def bind(self, on_event: OnInboundEvent, on_drop: OnTransportDrop) -> None:
        self._on_event = on_event
        self._on_drop = on_drop

    async def connect(self, token: str) -> None:
        await self.disconnect()
        sio = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self._register(sio)
        self._sio = sio
        self._closing = False
        self._connect_error = None
        try:
            await sio.connect(
                self._url,
                auth={"token": token},
                socketio_path=self._socketio_path,
                transports=["websocket"],
                wait_timeout=self._timeout,
            )
        except SioConnectionError as exc:
            self._sio = None
            rejection = rejection_reason(self._connect_error)
            if rejection is not None:
                raise HandshakeRejected(rejection) from exc
            raise TransportError(f"connect to {self._url} failed: {exc}") from exc
        logger.debug("Socket.IO connected to %s (sid=%s)", self._url, sio.sid)

    async def disconnect(self) -> None:
        sio, self._sio = self._sio, None
        if sio is None:
            return
        self._closing = True
        try:
            await sio.disconnect()
        except Exception:
            logger.debug("Socket.IO disconnect raised", exc_info=True)

    async def emit(self, event: str, data: Any = None) -> None:
        if self._sio is None or not self._sio.connected:
            raise TransportError(f"cannot emit {event!r}: not connected")
        try:
            await self._sio.emit(event, data)
        except SocketIOError as exc:
            raise TransportError(f"emit {event!r} failed: {exc}") from exc

    def _register(self, sio: socketio.AsyncClient) -> None:
        async def _on_any(event: str, data: Any = None) -> None:
            if self._on_event is not None:
                self._on_event(event, data)

        async def _on_connect_error(data: Any = None) -> None:
            self._connect_error = data
            logger.debug("Socket.IO connect_error: %r", data)

        async def _on_disconnect(*_args: Any) -> None:
            if self._closing or sio is not self._sio:
                return
            self._sio = None
            logger.info("Socket.IO connection to %s dropped", self._url)
            if self._on_drop is not None:
                await self._on_drop()

        sio.on("*", _on_any)
        sio.on("connect_error", _on_connect_error)
        sio.on("disconnect", _on_disconnect)


def rejection_reason(data: Any) -> str | None:
    """Server-side auth refusal carried by a ``connect_error`` payload, if any.

    Only the server's own message is inspected; client-side failure text
    includes the URL and says nothing about the credential.
    """
    if isinstance(data, dict):
        data = data.get("message")
    if not isinstance(data, str):
        return None
    if any(marker in data.lower() for marker in _REJECTION_MARKERS):
        return data
    return None

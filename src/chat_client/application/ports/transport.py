from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol

OnInboundEvent = Callable[[str, Any], None]
OnTransportDrop = Callable[[], Coroutine[Any, Any, None]]


class RealtimeTransport(Protocol):
    """One physical realtime connection, authenticated at connect time."""

    def bind(self, on_event: OnInboundEvent, on_drop: OnTransportDrop) -> None: ...

    async def connect(self, token: str) -> None:
        """Open and authenticate. Returns once the handshake is confirmed.

        Raises HandshakeRejected when the token is refused and TransportError
        for any other failure.
        """
        ...

    async def disconnect(self) -> None: ...
    async def emit(self, event: str, data: Any = None) -> None: ...

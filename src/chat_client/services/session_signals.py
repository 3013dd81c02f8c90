"""Session-wide notifications shared by the REST and realtime halves."""
from __future__ import annotations

import logging
from typing import Any, Callable, Coroutine

from chat_client.application.dto.credential import Credential

logger = logging.getLogger(__name__)

OnRotated = Callable[[Credential], Coroutine[Any, Any, None]]
OnTerminated = Callable[[str], Coroutine[Any, Any, None]]


class SessionSignals:
    """Fan-out of "credential rotated" and "session terminated".

    Termination fires at most once per session, so every component that
    notices a fatal auth failure may raise it.
    """

    def __init__(self) -> None:
        self._on_rotated: list[OnRotated] = []
        self._on_terminated: list[OnTerminated] = []
        self._terminated = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    def on_rotated(self, callback: OnRotated) -> None:
        self._on_rotated.append(callback)

    def on_terminated(self, callback: OnTerminated) -> None:
        self._on_terminated.append(callback)

    async def credential_rotated(self, credential: Credential) -> None:
        for callback in list(self._on_rotated):
            try:
                await callback(credential)
            except Exception:
                logger.exception("credential_rotated listener failed")

    async def terminate(self, reason: str) -> None:
        if self._terminated:
            return
        self._terminated = True
        logger.warning("Session terminated: %s", reason)
        for callback in list(self._on_terminated):
            try:
                await callback(reason)
            except Exception:
                logger.exception("session_terminated listener failed")

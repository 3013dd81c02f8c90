"""Single-flight credential refresh."""
from __future__ import annotations

import asyncio
import logging

from chat_client.application.dto.credential import Credential
from chat_client.application.exceptions import (
    ClientError,
    RefreshFailed,
    SessionClosedError,
)
from chat_client.application.ports.auth import TokenIssuer
from chat_client.application.ports.credential_store import CredentialStore
from chat_client.services.session_signals import SessionSignals

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """Ensures at most one refresh exchange is in flight.

    Every caller that observes an authorization failure goes through
    ``ensure_fresh``; the first one starts the exchange, the rest park a
    result slot in ``_pending`` and are released together when it settles.
    Constructed once per client and shared by RequestGateway and
    RealtimeSession.
    """

    def __init__(
        self,
        store: CredentialStore,
        issuer: TokenIssuer,
        signals: SessionSignals,
        *,
        timeout: float,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._signals = signals
        self._timeout = timeout
        self._task: asyncio.Task[None] | None = None
        self._pending: list[tuple[str | None, asyncio.Future[Credential]]] = []
        self._generation = 0
        self._background: set[asyncio.Task[None]] = set()
        signals.on_terminated(self._on_terminated)

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def ensure_fresh(self, failed_access_token: str | None) -> Credential:
        """Return a credential newer than ``failed_access_token``.

        Raises RefreshFailed if the exchange is rejected, errors or times out,
        and whatever ``abort`` was given if the session ends while waiting.
        """
        # claim the in-flight state before the first await
        if self._task is None:
            self._start()
        slot: asyncio.Future[Credential] = asyncio.get_running_loop().create_future()
        self._pending.append((failed_access_token, slot))
        return await slot

    async def abort(self, error: ClientError) -> None:
        """Reject every queued caller. An exchange on the wire is left to finish, unobserved."""
        self._generation += 1
        self._task = None
        self._settle(error=error)

    def _start(self) -> None:
        task = asyncio.create_task(self._refresh(self._generation), name="credential-refresh")
        self._task = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh(self, generation: int) -> None:
        try:
            current = await self._store.load()
            if generation != self._generation:
                return
            if current is not None and self._serve_superseded(current):
                logger.debug("Presented token already superseded, skipping refresh")
                self._task = None
                return
            if current is None:
                raise RefreshFailed("no stored credential to refresh")
            logger.info("Credential refresh started")
            credential = await asyncio.wait_for(
                self._issuer.refresh(current), timeout=self._timeout,
            )
            if generation != self._generation:
                logger.info("Discarding refresh result for an ended session")
                return
            await self._store.save(credential)
        except Exception as exc:
            if generation != self._generation:
                logger.info("Refresh for an ended session failed, ignoring: %r", exc)
                return
            if isinstance(exc, RefreshFailed):
                error = exc
            elif isinstance(exc, TimeoutError):
                error = RefreshFailed(f"refresh timed out after {self._timeout:.1f}s")
            else:
                error = RefreshFailed(f"refresh exchange failed: {exc!r}")
            await self._fail(error, generation)
            return

        if generation != self._generation:
            return
        self._task = None
        self._settle(credential=credential)
        logger.info("Credential refreshed")
        await self._signals.credential_rotated(credential)

    def _serve_superseded(self, current: Credential) -> bool:
        """Resolve callers whose failed token is older than ``current``.

        Returns True when nobody is left waiting for an exchange.
        """
        waiting: list[tuple[str | None, asyncio.Future[Credential]]] = []
        for failed, slot in self._pending:
            if failed is not None and failed != current.access_token:
                if not slot.done():
                    slot.set_result(current)
            else:
                waiting.append((failed, slot))
        self._pending = waiting
        return not waiting

    async def _fail(self, error: RefreshFailed, generation: int) -> None:
        logger.warning("Credential refresh failed: %s", error.detail)
        try:
            await self._store.clear()
        except Exception:
            logger.exception("Clearing credentials after a failed refresh raised")
        finally:
            if generation == self._generation:
                self._task = None
                self._settle(error=error)
        if generation == self._generation:
            await self._signals.terminate("refresh_failed")

    def _settle(
        self,
        *,
        credential: Credential | None = None,
        error: BaseException | None = None,
    ) -> None:
        pending, self._pending = self._pending, []
        for _, slot in pending:
            if slot.done():
                continue
            if error is not None:
                slot.set_exception(error)
            else:
                slot.set_result(credential)

    async def _on_terminated(self, reason: str) -> None:
        if self._pending or self._task is not None:
            await self.abort(SessionClosedError(f"session terminated: {reason}"))

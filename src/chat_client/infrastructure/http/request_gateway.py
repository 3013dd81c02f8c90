"""Authenticated REST calls with refresh-and-replay on 401."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from chat_client.application.exceptions import AuthExpired, RefreshFailed
from chat_client.application.ports.credential_store import CredentialStore
from chat_client.infrastructure.http.correlation_id import (
    HEADER,
    correlation_id_ctx,
    current_correlation_id,
)
from chat_client.services.refresh_coordinator import RefreshCoordinator
from chat_client.services.session_signals import SessionSignals

logger = logging.getLogger(__name__)


class RequestGateway:
    """Wraps every outbound API call.

    Attaches the current access token; on a 401 it asks the coordinator for
    a fresh credential and replays the same call exactly once. Statuses other
    than 401 are handed back untouched.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: CredentialStore,
        coordinator: RefreshCoordinator,
        signals: SessionSignals,
    ) -> None:
        self._client = client
        self._store = store
        self._coordinator = coordinator
        self._signals = signals

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        credential = await self._store.load()
        if credential is None:
            raise AuthExpired("not authenticated")

        cid = current_correlation_id()
        ctx_token = correlation_id_ctx.set(cid)
        try:
            token = credential.access_token
            resp = await self._dispatch(method, path, token, json, params, headers)
            if resp.status_code != httpx.codes.UNAUTHORIZED:
                return resp

            logger.info("%s %s unauthorized, refreshing (request_id=%s)", method, path, cid)
            try:
                fresh = await self._coordinator.ensure_fresh(token)
            except RefreshFailed:
                await self._signals.terminate("refresh_failed")
                raise

            resp = await self._dispatch(method, path, fresh.access_token, json, params, headers)
            if resp.status_code == httpx.codes.UNAUTHORIZED:
                raise AuthExpired(f"{method} {path} rejected after credential refresh")
            return resp
        finally:
            correlation_id_ctx.reset(ctx_token)

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> httpx.Response:
        return await self.send("GET", path, params=params)

    async def post(self, path: str, *, json: Any = None) -> httpx.Response:
        return await self.send("POST", path, json=json)

    async def _dispatch(
        self,
        method: str,
        path: str,
        token: str,
        json: Any,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        request_headers = dict(headers or {})
        request_headers["Authorization"] = f"Bearer {token}"
        request_headers[HEADER] = correlation_id_ctx.get()
        return await self._client.request(
            method, path, json=json, params=params, headers=request_headers,
        )

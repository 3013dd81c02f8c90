"""Login and refresh exchanges against the auth endpoints."""
from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from chat_client.application.dto.credential import Credential
from chat_client.application.exceptions import LoginFailed, RefreshFailed
from chat_client.infrastructure.http.schemas import (
    LoginRequest,
    RefreshRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"
REFRESH_PATH = "/auth/refresh"


class AuthApi:
    """Implements application.ports.auth.TokenIssuer.

    Talks to the backend directly, never through RequestGateway, so a
    refresh can not recurse into another refresh.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def login(self, email: str, password: str) -> Credential:
        body = LoginRequest(email=email, password=password)
        try:
            resp = await self._client.post(LOGIN_PATH, json=body.model_dump())
        except httpx.HTTPError as exc:
            raise LoginFailed(f"login request failed: {exc!r}") from exc
        if resp.status_code >= 400:
            raise LoginFailed(f"login rejected with status {resp.status_code}")
        tokens = _parse_tokens(resp, LoginFailed)
        if not tokens.refresh_token:
            raise LoginFailed("login response carried no refresh_token")
        logger.info("Logged in as %s", email)
        return Credential(access_token=tokens.access_token, refresh_token=tokens.refresh_token)

    async def refresh(self, credential: Credential) -> Credential:
        body = RefreshRequest(refresh_token=credential.refresh_token)
        try:
            resp = await self._client.post(REFRESH_PATH, json=body.model_dump())
        except httpx.HTTPError as exc:
            raise RefreshFailed(f"refresh request failed: {exc!r}") from exc
        if resp.status_code >= 400:
            raise RefreshFailed(f"refresh rejected with status {resp.status_code}")
        tokens = _parse_tokens(resp, RefreshFailed)
        return credential.rotated(tokens.access_token, tokens.refresh_token)


def _parse_tokens(
    resp: httpx.Response,
    error: type[LoginFailed] | type[RefreshFailed],
) -> TokenResponse:
    try:
        return TokenResponse.model_validate_json(resp.content)
    except ValidationError as exc:
        raise error(f"malformed token response: {exc.error_count()} error(s)") from exc

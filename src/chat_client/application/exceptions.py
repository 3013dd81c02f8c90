from __future__ import annotations


class ClientError(Exception):
    """Base client error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class LoginFailed(ClientError):
    pass


class AuthExpired(ClientError):
    """A call was rejected again after its single refresh-and-retry."""


class RefreshFailed(ClientError):
    """The refresh exchange was rejected or errored. Fatal for the session."""


class SessionClosedError(ClientError):
    pass


class TransportError(ClientError):
    """Realtime connection failed or dropped without a credential cause."""


class HandshakeRejected(TransportError):
    """The realtime backend refused the presented access token."""


class ProtocolError(ClientError):
    """Inbound event with an unknown tag or a malformed payload."""

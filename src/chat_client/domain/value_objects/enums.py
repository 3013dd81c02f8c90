from __future__ import annotations

from enum import StrEnum


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    REAUTHENTICATING = "reauthenticating"
    CLOSED = "closed"


class InboundEvent(StrEnum):
    ME = "me"
    ONLINE_USERS = "online-users"
    LOAD_MESSAGES = "load-messages"
    PRIVATE_HISTORY = "private-history"
    PUBLIC_MESSAGE = "public-message"
    PRIVATE_MESSAGE = "private-message"
    TYPING = "typing"


class OutboundEvent(StrEnum):
    LOAD_MESSAGES = "load-messages"
    LOAD_PRIVATE_MESSAGES = "load-private-messages"
    PUBLIC_MESSAGE = "public-message"
    PRIVATE_MESSAGE = "private-message"
    TYPING = "typing"

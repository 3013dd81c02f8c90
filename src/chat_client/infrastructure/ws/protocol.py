"""Realtime wire payloads and their mapping onto stream events."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from chat_client.application.dto.identity import Identity
from chat_client.application.exceptions import ProtocolError
from chat_client.domain.entities.message import Message
from chat_client.domain.entities.presence import PresenceEntry
from chat_client.domain.value_objects.ids import ConversationId


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class WireUser(WireModel):
    id: int
    name: str


class WireMessage(WireModel):
    """Server → Client message object."""

    id: int
    sender_id: int
    sender_name: str = ""
    body: str = Field(validation_alias=AliasChoices("body", "content", "message"))
    created_at: datetime = Field(validation_alias=AliasChoices("createdAt", "created_at", "timestamp"))
    receiver_id: int | None = None

    def counterpart(self, me: int | None) -> int:
        """User id of the other side of a private message."""
        if me is not None and self.sender_id == me:
            if self.receiver_id is None:
                raise ProtocolError(f"private message {self.id} from self has no receiverId")
            return self.receiver_id
        return self.sender_id

    def to_domain(self, conversation_id: ConversationId) -> Message:
        return Message(
            id=self.id,
            sender_id=self.sender_id,
            sender_name=self.sender_name,
            body=self.body,
            timestamp=_aware(self.created_at),
            conversation_id=conversation_id,
        )


class PrivateMessageOut(WireModel):
    """Client → Server private message."""

    target_user_id: int
    body: str


def _aware(value: datetime) -> datetime:
    # naive timestamps are UTC on the wire
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


_messages = TypeAdapter(list[WireMessage])
_users = TypeAdapter(list[WireUser])


def parse_identity(payload: Any) -> Identity:
    user = _validate(WireUser.model_validate, payload, "me")
    return Identity(id=user.id, name=user.name)


def parse_users(payload: Any) -> tuple[PresenceEntry, ...]:
    users = _validate(_users.validate_python, payload, "online-users")
    return tuple(PresenceEntry(user_id=u.id, name=u.name, is_online=True) for u in users)


def parse_message(payload: Any, event: str) -> WireMessage:
    return _validate(WireMessage.model_validate, payload, event)


def parse_messages(payload: Any, event: str) -> list[WireMessage]:
    return _validate(_messages.validate_python, payload, event)


def parse_user_id(payload: Any, event: str) -> int:
    if isinstance(payload, dict):
        payload = payload.get("userId", payload.get("user_id"))
    if isinstance(payload, bool) or not isinstance(payload, (int, str)):
        raise ProtocolError(f"{event}: expected a user id, got {type(payload).__name__}")
    try:
        return int(payload)
    except ValueError as exc:
        raise ProtocolError(f"{event}: invalid user id {payload!r}") from exc


def _validate(fn: Any, payload: Any, event: str) -> Any:
    try:
        return fn(payload)
    except ValidationError as exc:
        raise ProtocolError(f"{event}: malformed payload ({exc.error_count()} error(s))") from exc

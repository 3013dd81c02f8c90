"""Fold realtime events into per-conversation message state and presence."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Mapping, TypeAlias

from chat_client.application.dto.identity import Identity
from chat_client.application.exceptions import ProtocolError
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.presence import PresenceEntry
from chat_client.domain.events.identity_confirmed import IdentityConfirmed
from chat_client.domain.events.message_arrived import MessageArrived
from chat_client.domain.events.presence_snapshot import PresenceSnapshot
from chat_client.domain.events.snapshot_loaded import SnapshotLoaded
from chat_client.domain.events.typing_signal import TypingSignal
from chat_client.domain.value_objects.enums import InboundEvent
from chat_client.domain.value_objects.ids import PUBLIC_CONVERSATION, ConversationId
from chat_client.infrastructure.ws import protocol

logger = logging.getLogger(__name__)

StreamEvent: TypeAlias = (
    IdentityConfirmed | SnapshotLoaded | MessageArrived | PresenceSnapshot | TypingSignal
)

def _empty() -> Mapping[Any, Any]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class ChatState:
    me: Identity | None = None
    conversations: Mapping[ConversationId, Conversation] = field(default_factory=_empty)
    presence: Mapping[int, PresenceEntry] = field(default_factory=_empty)

    def conversation(self, conversation_id: ConversationId) -> Conversation:
        existing = self.conversations.get(conversation_id)
        return existing if existing is not None else Conversation(id=conversation_id)

    @property
    def public(self) -> Conversation:
        return self.conversation(PUBLIC_CONVERSATION)


def reduce(state: ChatState, event: StreamEvent) -> ChatState:
    """Pure transition: ``(state, event) -> state``."""
    match event:
        case IdentityConfirmed(identity=identity):
            return replace(state, me=identity)
        case SnapshotLoaded(conversation_id=cid, messages=messages):
            return _with_conversation(state, Conversation.from_snapshot(cid, messages))
        case MessageArrived(message=message):
            current = state.conversation(message.conversation_id)
            updated = current.with_message(message)
            if updated is current and message.conversation_id in state.conversations:
                return state
            return _with_conversation(state, updated)
        case PresenceSnapshot(entries=entries):
            return replace(state, presence=MappingProxyType({e.user_id: e for e in entries}))
        case TypingSignal():
            # transient, never stored
            return state
        case _:
            raise ProtocolError(f"unhandled stream event {type(event).__name__}")


def _with_conversation(state: ChatState, conversation: Conversation) -> ChatState:
    conversations = dict(state.conversations)
    conversations[conversation.id] = conversation
    return replace(state, conversations=MappingProxyType(conversations))


StateListener = Callable[[ChatState], None]
TypingListener = Callable[[int], None]


class MessageStream:
    """Holds the current ChatState and feeds it raw realtime events.

    Malformed or unknown events are logged and dropped; they never touch
    conversations other than the one they address.
    """

    def __init__(self) -> None:
        self._state = ChatState()
        self._pending_private: deque[int] = deque()
        self._listeners: list[StateListener] = []
        self._typing_listeners: list[TypingListener] = []

    @property
    def state(self) -> ChatState:
        return self._state

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def on_typing(self, listener: TypingListener) -> None:
        self._typing_listeners.append(listener)

    def expect_private_history(self, target_user_id: int) -> None:
        """Record an outstanding ``load-private-messages`` request."""
        self._pending_private.append(target_user_id)

    def reset(self) -> None:
        self._state = ChatState()
        self._pending_private.clear()
        self._notify()

    def dispatch(self, event_name: str, payload: Any) -> None:
        try:
            event = self.decode(event_name, payload)
        except ProtocolError as exc:
            logger.warning("Dropping inbound event %r: %s", event_name, exc.detail)
            return
        if event is None:
            return
        self.apply(event)

    def apply(self, event: StreamEvent) -> None:
        new_state = reduce(self._state, event)
        if isinstance(event, TypingSignal):
            self._notify_typing(event.user_id)
        if new_state is not self._state:
            self._state = new_state
            self._notify()

    def decode(self, event_name: str, payload: Any) -> StreamEvent | None:
        """Map a wire event onto a StreamEvent; ``None`` for lifecycle signals."""
        try:
            kind = InboundEvent(event_name)
        except ValueError:
            if event_name in ("connect", "disconnect", "connect_error"):
                return None
            raise ProtocolError(f"unknown event {event_name!r}") from None

        me = self._state.me.id if self._state.me else None
        match kind:
            case InboundEvent.ME:
                return IdentityConfirmed(protocol.parse_identity(payload))
            case InboundEvent.ONLINE_USERS:
                return PresenceSnapshot(protocol.parse_users(payload))
            case InboundEvent.LOAD_MESSAGES:
                wire = protocol.parse_messages(payload, event_name)
                return SnapshotLoaded(
                    PUBLIC_CONVERSATION,
                    tuple(m.to_domain(PUBLIC_CONVERSATION) for m in wire),
                )
            case InboundEvent.PRIVATE_HISTORY:
                wire = protocol.parse_messages(payload, event_name)
                if self._pending_private:
                    cid = self._pending_private.popleft()
                elif wire:
                    cid = wire[0].counterpart(me)
                else:
                    raise ProtocolError("private-history with no pending request and no messages")
                return SnapshotLoaded(cid, tuple(m.to_domain(cid) for m in wire))
            case InboundEvent.PUBLIC_MESSAGE:
                wire_msg = protocol.parse_message(payload, event_name)
                return MessageArrived(wire_msg.to_domain(PUBLIC_CONVERSATION))
            case InboundEvent.PRIVATE_MESSAGE:
                wire_msg = protocol.parse_message(payload, event_name)
                return MessageArrived(wire_msg.to_domain(wire_msg.counterpart(me)))
            case InboundEvent.TYPING:
                return TypingSignal(protocol.parse_user_id(payload, event_name))
        raise ProtocolError(f"unhandled event {event_name!r}")

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("Chat state listener failed")

    def _notify_typing(self, user_id: int) -> None:
        for listener in list(self._typing_listeners):
            try:
                listener(user_id)
            except Exception:
                logger.exception("Typing listener failed")

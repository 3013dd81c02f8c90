from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Iterable

from chat_client.domain.entities.message import Message
from chat_client.domain.value_objects.ids import ConversationId


@dataclass(frozen=True, slots=True)
class Conversation:
    """An ordered, duplicate-free message thread.

    ``messages`` is always sorted by ``(timestamp, id)``; arrival order is
    never trusted because snapshots and live delivery interleave.
    """

    id: ConversationId
    messages: tuple[Message, ...] = ()
    _ids: frozenset[int] = field(default=frozenset(), repr=False, compare=False)

    @classmethod
    def from_snapshot(cls, conversation_id: ConversationId, messages: Iterable[Message]) -> Conversation:
        unique: dict[int, Message] = {}
        for msg in messages:
            unique.setdefault(msg.id, msg)
        ordered = tuple(sorted(unique.values(), key=lambda m: m.sort_key))
        return cls(id=conversation_id, messages=ordered, _ids=frozenset(unique))

    def with_message(self, message: Message) -> Conversation:
        """Return a copy with ``message`` inserted in order; unchanged if its id is known."""
        if message.id in self._ids:
            return self
        pos = bisect.bisect_right(self.messages, message.sort_key, key=lambda m: m.sort_key)
        messages = self.messages[:pos] + (message,) + self.messages[pos:]
        return Conversation(id=self.id, messages=messages, _ids=self._ids | {message.id})

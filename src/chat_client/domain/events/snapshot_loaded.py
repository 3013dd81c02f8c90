from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.entities.message import Message
from chat_client.domain.value_objects.ids import ConversationId


@dataclass(frozen=True, slots=True)
class SnapshotLoaded:
    conversation_id: ConversationId
    messages: tuple[Message, ...]

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_client.domain.value_objects.ids import ConversationId


@dataclass(frozen=True, slots=True)
class Message:
    id: int
    sender_id: int
    sender_name: str
    body: str
    timestamp: datetime
    conversation_id: ConversationId

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return self.timestamp, self.id

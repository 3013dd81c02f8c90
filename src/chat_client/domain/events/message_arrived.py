from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class MessageArrived:
    message: Message

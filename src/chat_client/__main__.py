"""Entrypoint: python -m chat_client"""
from __future__ import annotations

import asyncio
import logging

from chat_client.app import ChatClient
from chat_client.application.exceptions import ClientError
from chat_client.config import settings
from chat_client.domain.value_objects.enums import ConnectionState
from chat_client.services.message_stream import ChatState

logger = logging.getLogger("chat_client")


async def run() -> int:
    if not settings.CHAT_EMAIL or not settings.CHAT_PASSWORD:
        logger.error("CHAT_EMAIL and CHAT_PASSWORD must be set")
        return 2

    client = ChatClient(settings)
    seen: set[int] = set()

    def _on_state(state: ChatState) -> None:
        for msg in state.public.messages:
            if msg.id not in seen:
                seen.add(msg.id)
                logger.info("[%s] %s: %s", msg.timestamp.isoformat(), msg.sender_name, msg.body)

    def _on_connection(state: ConnectionState) -> None:
        logger.info("connection: %s", state)

    client.stream.subscribe(_on_state)
    client.stream.on_typing(lambda user_id: logger.debug("user %d is typing", user_id))
    client.realtime.add_state_listener(_on_connection)

    try:
        await client.login(settings.CHAT_EMAIL, settings.CHAT_PASSWORD)
        await client.connect()
        while client.realtime.state is not ConnectionState.CLOSED:
            await asyncio.sleep(1.0)
    except ClientError as exc:
        logger.error("%s: %s", type(exc).__name__, exc.detail)
        return 1
    finally:
        await client.aclose()
    return 0


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        raise SystemExit(asyncio.run(run()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

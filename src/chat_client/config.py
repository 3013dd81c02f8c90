from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_URL: str = "http://localhost:3000"
    REALTIME_URL: str = "http://localhost:3000"
    SOCKETIO_PATH: str = "socket.io"

    REQUEST_TIMEOUT_SECONDS: float = 10.0
    REFRESH_TIMEOUT_SECONDS: float = 10.0
    CONNECT_TIMEOUT_SECONDS: float = 10.0

    RECONNECT_BASE_DELAY_SECONDS: float = 0.5
    RECONNECT_MAX_DELAY_SECONDS: float = 30.0
    RECONNECT_MAX_ATTEMPTS: int = 5

    CREDENTIAL_STORE: Literal["memory", "redis"] = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    CREDENTIAL_KEY_PREFIX: str = "chat_client:"

    LOG_LEVEL: str = "INFO"

    CHAT_EMAIL: str | None = None
    CHAT_PASSWORD: str | None = None

    def reconnect_delay(self, attempt: int) -> float:
        """Exponential backoff for the given zero-based reconnect attempt."""
        return min(
            self.RECONNECT_BASE_DELAY_SECONDS * (2 ** attempt),
            self.RECONNECT_MAX_DELAY_SECONDS,
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()

from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_ECHO: bool = False

    # upper bound for one persistence step; expiry is reported as transient
    PERSISTENCE_TIMEOUT_SECONDS: float = 5.0

    # "last N messages fetched on load"
    HISTORY_LIMIT: int = 100

    REDIS_URL: str = "redis://localhost:6379/0"

    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    WS_HEARTBEAT_SECONDS: int = 30

    FANOUT_BACKEND: Literal["local", "redis"] = "local"
    REDIS_PUBSUB_CHANNEL: str = "messaging.fanout"

    CLIENT_STREAM_PREFIX: str = "chat"
    CLIENT_STREAM_MAXLEN: int = 1000
    CLIENT_STREAM_BLOCK_MS: int = 5000
    CLIENT_RECONNECT_SECONDS: float = 5.0

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]

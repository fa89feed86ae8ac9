from __future__ import annotations

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

    REDIS_URL: str = "redis://localhost:6379/0"

    CORS_ORIGINS: list[str] = ["*"]

    WS_HEARTBEAT_SECONDS: int = 30

    REDIS_PUBSUB_CHANNEL: str = "chat.fanout"
    REDIS_NOTIFY_CHANNEL: str = "chat.notifications"

    BLOB_CHUNK_SIZE: int = 255 * 1024
    BLOB_UPLOAD_TIMEOUT_SECONDS: float = 60.0
    BLOB_DOWNLOAD_TIMEOUT_SECONDS: float = 30.0

    MAX_UPLOAD_FILES: int = 10
    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024

    LOCAL_UPLOAD_DIR: str = "uploads"
    PUBLIC_BASE_URL: str = ""

    UNSEEN_NOTIFY_INTERVAL_SECONDS: float = 300.0
    UNSEEN_NOTIFY_THROTTLE_SECONDS: float = 3600.0

    ORPHAN_BLOB_GRACE_SECONDS: int = 24 * 3600

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def file_url_prefix(self) -> str:
        return f"{self.PUBLIC_BASE_URL.rstrip('/')}/file"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]

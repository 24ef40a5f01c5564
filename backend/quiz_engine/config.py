from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    LOG_LEVEL: str = "INFO"
    # Finished rooms stay queryable for rankings this long (seconds)
    COMPLETED_ROOM_TTL_SEC: float = 300
    # How long a room waits for its host to reconnect before it is deleted
    HOST_GRACE_LOBBY_SEC: float = 300
    HOST_GRACE_ACTIVE_SEC: float = 30
    # 0 leaves advancing to the host
    RESULTS_HOLD_SEC: float = 0
    EVENT_PAGE_LIMIT: int = 200
    MONGO_URL: Optional[str] = None
    MONGO_DB: str = "quiz_engine"


@lru_cache
def get_settings() -> Settings:
    return Settings()

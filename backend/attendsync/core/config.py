from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str = "postgresql+asyncpg://attend:attend_secret@db:5432/attendsync"
    STORAGE_DATABASE_URL: str = "sqlite+aiosqlite:///./attendsync-storage.db"

    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # Remote authority used by the sync client
    REMOTE_API_URL: str = "http://localhost:8000/api/unified"
    REMOTE_API_TOKEN: str | None = None
    REMOTE_API_TIMEOUT_SEC: float = 10.0
    SYNC_INTERVAL_SECONDS: int = 30

    # Cross-context transport names
    BROADCAST_CHANNEL_NAME: str = "bricks-global-sync"
    SYSTEM_EVENT_KEY: str = "bricks-system-event"

    STANDARD_WORKDAY_HOURS: float = 8.0
    DEFAULT_HOURLY_RATE: float = 15.0

    # Placeholder attendance for today when a fresh snapshot has none
    SAMPLE_ATTENDANCE_ENABLED: bool = True


settings = Settings()

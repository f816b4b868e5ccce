from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./medmatch.db"

    # Upper bound for one lifecycle transaction (seconds)
    db_operation_timeout_seconds: float = 5.0
    transient_retry_attempts: int = 1

    # Notifications: dev | webhook
    notification_mode: str = "dev"
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 5.0

    # Views
    connections_preview_limit: int = 3
    default_page_size: int = 20
    max_page_size: int = 100

    # App
    debug: bool = False
    allowed_origins: str = ""


settings = Settings()

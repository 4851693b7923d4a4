from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Nexus Flow Notifier"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:5173"
    LOG_LEVEL: str = "info"

    # Database
    DATABASE_URL: str = "sqlite:///./nexusflow.db"

    # Authentication (bearer tokens issued by the app's auth provider)
    JWT_SECRET_KEY: str = "<your-jwt-secret-key>"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = ""

    # Redis & Celery
    REDIS_PASSWORD: str = "<your-redis-password>"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Scheduling
    DEFAULT_TIMEZONE: str = "America/Sao_Paulo"
    BRIEF_GRACE_MINUTES: int = 30
    TASK_DEEP_LINK: str = "/tasks"
    BRIEF_DEEP_LINK: str = "/dashboard"
    NOTE_DEEP_LINK: str = "/notes"

    # Web Push (VAPID)
    VAPID_PUBLIC_KEY: str = ""
    VAPID_PRIVATE_KEY: str = ""
    VAPID_SUBJECT: str = "mailto:admin@example.com"
    WEBPUSH_TTL_SECONDS: int = 3600

    # Telegram Bot API
    TELEGRAM_API_URL: str = "https://api.telegram.org"

    # WhatsApp via Evolution API
    EVOLUTION_API_URL: str = "https://api.evolution-api.com"
    EVOLUTION_INSTANCE_NAME: str = ""
    WHATSAPP_SEND_DELAY_MS: int = 1200

    # Delivery limits
    HTTP_TIMEOUT_SECONDS: float = 10.0
    CHANNEL_SEND_TIMEOUT_SECONDS: float = 20.0
    NOTIFICATION_MAX_CONCURRENCY: int = 5

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()

from pathlib import Path
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

PLACEHOLDER_COLOR = "002f34"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_PATH, env_file_encoding="utf-8", extra="ignore")

    # App
    env: str = "dev"
    service_name: str = "classifieds-api"
    log_level: str = "INFO"

    # Every document lives under this namespace
    app_id: str = "default-app-id"

    # Database
    database_url: str = "sqlite+aiosqlite:///./classifieds.db"

    # Change notifications: "memory" (single process) | "redis" (pub/sub)
    change_bus: str = "memory"
    redis_url: str = "redis://localhost:6379/0"

    # Security
    session_token_pepper: SecretStr = SecretStr("IN_ENV")

    # Fernet key used to mint/verify custom sign-in tokens
    custom_token_key: SecretStr = SecretStr("IN_ENV")
    custom_token_ttl_seconds: int = 3600

    # Listings
    placeholder_image_url: str = f"https://placehold.co/600x400/{PLACEHOLDER_COLOR}/ffffff?text=OIX+Ad"

    # Favorites toggle: attempts before a write conflict is reported
    transaction_max_attempts: int = 5

    # Telemetry (exporter disabled when unset)
    otlp_endpoint: str | None = None


settings = Settings()

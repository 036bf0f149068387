from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

INTERVAL_MIN_MS = 1000
INTERVAL_MAX_MS = 10000


class Settings(BaseSettings):
    # Pocketbase
    pocketbase_url: str = "http://pocketbase:8090"
    pocketbase_admin_email: Optional[str] = None
    pocketbase_admin_password: Optional[str] = None
    store_timeout_seconds: float = 30.0

    # Generation backends
    gemini_api_key: Optional[str] = None
    ollama_host: Optional[str] = None
    ollama_api_key: Optional[str] = None
    generation_timeout_seconds: float = 60.0

    # Streaming
    default_interval_ms: int = 5000
    provider_cache_ttl_seconds: float = 30.0

    # App settings
    cors_origins: list[str] = [
        "http://localhost:8080",
        "http://127.0.0.1:8080",
        "http://localhost:5173",
    ]
    log_level: str = "INFO"

    @field_validator("pocketbase_url")
    @classmethod
    def pocketbase_url_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("POCKETBASE_URL is required and cannot be empty")
        return v

    @field_validator("default_interval_ms")
    @classmethod
    def default_interval_in_range(cls, v: int) -> int:
        if v < INTERVAL_MIN_MS or v > INTERVAL_MAX_MS:
            raise ValueError(
                f"DEFAULT_INTERVAL_MS must be between {INTERVAL_MIN_MS} and {INTERVAL_MAX_MS}"
            )
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Singleton for convenient import
settings = get_settings()

"""Application configuration."""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Development mode: when False, a backend API token is mandatory
    dev_mode: bool = True

    # Document-management backend
    backend_url: str = "http://localhost:8000/api"
    org_id: str = "default"
    api_token: str = ""
    request_timeout_seconds: float = 15.0

    # Optimistic sync: how long a local mutation waits for backend confirmation
    confirm_timeout_seconds: float = 10.0

    # Retries on connection errors (tenacity)
    retry_attempts: int = 2
    retry_wait_min_seconds: float = 0.5
    retry_wait_max_seconds: float = 5.0

    # Circuit Breaker (for the backend API)
    circuit_breaker_failure_threshold: int = 3
    circuit_breaker_cooldown_seconds: int = 30

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Logging
    log_level: str = "info"

    @model_validator(mode="after")
    def _validate_production(self) -> "Settings":
        if not self.dev_mode and not self.api_token:
            raise ValueError("API_TOKEN must be set when DEV_MODE=false")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

"""Runtime configuration read from the environment (and a local .env file)."""

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings.

    Field names map to upper-case environment variables (``GROQ_API_KEY``,
    ``JOB_DEADLINE_SECONDS``...). Provider keys decide which text-generation
    backend is used (Groq first, then Gemini, then Perplexity).
    ``redis_url`` switches the job store from the in-process map to Redis.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # API Keys
    groq_api_key: str | None = None
    gemini_api_key: str | None = None
    perplexity_api_key: str | None = None

    # Model Configuration
    groq_model: str = "llama-3.1-8b-instant"
    gemini_model: str = "gemma-3-4b-it"
    perplexity_model: str = "sonar"
    llm_timeout_seconds: float = 45.0

    # Retries
    route_max_retries: int = 2
    route_retry_base_delay: float = 1.0
    itinerary_max_retries: int = 2
    itinerary_retry_delay: float = 2.0

    # Jobs
    default_origin: str = "Aix-en-Provence"
    job_retention_seconds: int = 300
    job_deadline_seconds: float = 600.0
    redis_url: str | None = None

    # Server
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )
    log_level: str = "INFO"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


_settings: Settings | None = None


def get_settings() -> Settings:
    """Process-wide settings, read once."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

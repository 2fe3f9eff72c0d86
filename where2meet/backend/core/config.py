"""Application configuration using pydantic-settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = "sqlite:///./data/where2meet.db"

    # LLM Configuration
    llm_provider: Literal["openai", "vertex", "mock"] = "mock"
    llm_model: str = "gpt-4o"

    # OpenAI
    openai_api_key: Optional[str] = None

    # Vertex AI
    google_application_credentials: Optional[str] = None
    vertex_project: Optional[str] = None
    vertex_location: str = "us-central1"

    # Event lifecycle
    event_ttl_days: int = 30
    generation_timeout_seconds: float = 60.0
    enforce_plurality_on_finalize: bool = False

    # Links handed out to participants
    base_url: str = "http://localhost:8000"

    # Logging
    log_level: str = "INFO"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000


settings = Settings()

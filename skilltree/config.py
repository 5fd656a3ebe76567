"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./skilltree.db"

    # Text generation (any OpenAI-compatible endpoint; Groq by default)
    # GROQ_API_KEY and OPENAI_API_KEY are accepted as fallbacks
    llm_api_key: str = Field("", validation_alias=AliasChoices("llm_api_key", "groq_api_key", "openai_api_key"))
    llm_base_url: str = "https://api.groq.com/openai/v1"
    llm_model: str = "llama-3.1-8b-instant"
    llm_temperature: float = 0.7
    generation_timeout_seconds: float = 30.0

    # Progression
    tier_policy: Literal["strict", "permissive"] = "strict"

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Skill Progression Engine"
    version: str = "1.0.0"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

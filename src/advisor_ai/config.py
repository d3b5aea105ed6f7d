"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # Processing mode selected when the caller does not pick one
    # (rule_based, local_nlp or remote_llm; legacy mock/nlp/openai accepted)
    DEFAULT_AI_MODE: str = "rule_based"

    # Remote LLM backend
    OPENAI_API_KEY: str = ""
    LLM_MODEL: str = "openai/gpt-4o-mini"
    LLM_MAX_TOKENS: int = 2000
    LLM_TEMPERATURE: float = 0.3

    # Local NLP backend
    NLP_ENABLED: bool = True
    NLP_SPACY_MODEL: str = "en_core_web_sm"

    # Orchestration
    AI_FALLBACK_TO_RULE_BASED: bool = True
    AI_TIMEOUT_MS: int = 15000
    AI_MAX_RETRIES: int = 2


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()

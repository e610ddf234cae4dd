"""Application settings, CORS and AI provider configuration."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env"), env_file_encoding="utf-8", frozen=True
    )

    # App
    APP_NAME: str = "Completo"
    ENVIRONMENT: str = "development"  # development | production | test

    # Browser origins allowed to call the API; env values may be CSV or JSON
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    ALLOW_CREDENTIALS: bool = True

    # AI / LLM provider configuration
    # AI_PROVIDER selects the adapter; empty disables generation entirely.
    AI_PROVIDER: str = ""
    AI_MODEL: str = ""
    AI_BASE_URL: str = ""

    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = ""
    ANTHROPIC_BASE_URL: str = ""

    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = ""
    OPENAI_BASE_URL: str = ""

    OPENROUTER_API_KEY: str = ""
    OPENROUTER_MODEL: str = ""
    OPENROUTER_BASE_URL: str = ""

    # Generation parameters
    AI_MAX_TOKENS: int = 1500
    AI_TEMPERATURE: float = 0.7
    AI_STREAM_TIMEOUT_SECONDS: float = 120.0
    AI_CONNECT_TIMEOUT_SECONDS: float = 10.0

    # Append-only diagnostic logs (both may contain user-provided text)
    DEBUG_AI_LOG: bool = False
    AI_DEBUG_LOG_FILE: str = "ai-debug.log"
    LOG_REJECTED_PROMPTS: bool = False
    REJECTED_PROMPTS_LOG_FILE: str = "ai-prompts-rejected.log"

    # Seed files for the skill catalog and project context resolver
    SKILLS_FILE: str = ""
    PROJECTS_FILE: str = ""

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Origins may be given as a list, a JSON array or comma-separated text."""
        if isinstance(v, str):
            text = v.strip()
            if text.startswith("["):
                try:
                    v = json.loads(text)
                except json.JSONDecodeError as e:
                    raise ValueError("CORS_ORIGINS is not a valid JSON array") from e
            else:
                v = text.split(",")
        if not isinstance(v, list | tuple):
            raise ValueError("CORS_ORIGINS must be a list of origins")
        return [origin for origin in (str(item).strip() for item in v) if origin]

    @field_validator("AI_PROVIDER", mode="before")
    @classmethod
    def normalize_provider(cls, v: object) -> str:
        """Provider kinds are matched case-insensitively."""
        return str(v or "").strip().lower()

    @model_validator(mode="after")
    def _reject_wildcard_with_credentials(self) -> "Settings":
        if self.ALLOW_CREDENTIALS and "*" in self.CORS_ORIGINS:
            raise ValueError(
                "CORS_ORIGINS may not contain '*' while ALLOW_CREDENTIALS is enabled"
            )
        return self


ENV_FILES = {"development": ".env.dev", "production": ".env.prod", "test": None}


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process from the environment's dotenv file."""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    if environment not in ENV_FILES:
        raise ValueError(
            f"ENVIRONMENT must be one of {', '.join(ENV_FILES)}; got {environment!r}"
        )
    env_file = ENV_FILES[environment]
    if env_file is not None and not os.path.exists(env_file):
        env_file = None
    return Settings(_env_file=env_file)  # type: ignore[call-arg]

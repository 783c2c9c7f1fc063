from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, PostgresDsn, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CustomSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class AppSettings(CustomSettings):
    ENVIRONMENT: Literal["local", "dev", "prod"] = Field(default="local")
    LOG_LEVEL: str = Field(default="INFO")
    JSON_LOGS: bool = Field(default=True)
    CORS_ORIGINS: list[str] = Field(default=["*"])


class PgDbSettings(CustomSettings):
    POSTGRES_ENGINE: str = Field(default="postgresql+asyncpg")
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: SecretStr = Field(default="postgres")
    POSTGRES_DB: str = Field(default="nyaai")
    POSTGRES_HOST: str = Field(default="localhost")
    POSTGRES_PORT: int = Field(default=5432)
    DATABASE_URL: PostgresDsn | str = Field(default="")

    @model_validator(mode="before")
    def validate_postgres_dsn(cls, data: dict):
        if isinstance(data, dict) and not data.get("DATABASE_URL"):
            _built_uri = PostgresDsn.build(
                scheme=data.get("POSTGRES_ENGINE", "postgresql+asyncpg"),
                username=data.get("POSTGRES_USER", "postgres"),
                password=data.get("POSTGRES_PASSWORD", "postgres"),
                host=data.get("POSTGRES_HOST", "localhost"),
                port=int(data.get("POSTGRES_PORT", 5432)),
                path=data.get("POSTGRES_DB", "nyaai"),
            ).unicode_string()
            data["DATABASE_URL"] = _built_uri
        return data


class SupabaseSettings(CustomSettings):
    """Hosted auth provider used to resolve bearer tokens to user ids.

    Env vars:
    - SUPABASE_URL
    - SUPABASE_ANON_KEY
    """

    SUPABASE_URL: str = Field(default="http://localhost:54321")
    SUPABASE_ANON_KEY: SecretStr = Field(default="")
    AUTH_TIMEOUT_SECONDS: float = Field(default=10.0)


class LLMSettings(CustomSettings):
    """OpenAI-compatible completion provider (Groq by default).

    Env vars:
    - LLM_API_KEY
    - LLM_BASE_URL
    - LLM_MODEL
    - LLM_SUMMARY_MODEL
    - LLM_TIMEOUT_SECONDS
    """

    LLM_API_KEY: SecretStr = Field(default="")
    LLM_BASE_URL: str = Field(default="https://api.groq.com/openai/v1")
    LLM_MODEL: str = Field(default="llama-3.3-70b-versatile")
    LLM_SUMMARY_MODEL: str = Field(default="llama-3.3-70b-versatile")
    LLM_TIMEOUT_SECONDS: float = Field(default=60.0)


class ChatSettings(CustomSettings):
    """Conversation orchestration knobs.

    Env vars:
    - CHAT_HISTORY_LIMIT
    - CHAT_TITLE_MAX_LENGTH
    - CHAT_TURN_LOCK_TIMEOUT
    - CHAT_SUMMARY_MAX_CHARS
    """

    CHAT_HISTORY_LIMIT: int = Field(default=10, ge=0)
    CHAT_TITLE_MAX_LENGTH: int = Field(default=50, ge=4)
    CHAT_TURN_LOCK_TIMEOUT: float = Field(default=30.0, gt=0)
    CHAT_SUMMARY_MAX_CHARS: int = Field(default=15000, ge=1)


class Settings(BaseModel):
    APP: AppSettings = Field(default_factory=AppSettings)
    DATABASE: PgDbSettings = Field(default_factory=PgDbSettings)
    SUPABASE: SupabaseSettings = Field(default_factory=SupabaseSettings)
    LLM: LLMSettings = Field(default_factory=LLMSettings)
    CHAT: ChatSettings = Field(default_factory=ChatSettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()


SETTINGS = get_settings()

"""Application settings using pydantic-settings.

Loads configuration from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NOTE_SECTIONS = (
    "DEVELOPER,MARKETING,FEEDBACK,SECURITY,READABILITY,TESTS,CONTRIBUTORS,CHANGES"
)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Allow both field name and alias
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Section grammar
    # Order matters: a section ends at the marker of its canonical successor.
    note_sections: str = Field(
        default=DEFAULT_NOTE_SECTIONS,
        description="Comma-separated, ordered list of section tags emitted by the model",
    )

    # Streaming
    generation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Wall-clock limit for one note generation stream",
    )
    max_diff_chars: int = Field(
        default=50_000,
        ge=1_000,
        description="Diffs longer than this are truncated before prompting",
    )

    # LLM Configuration
    # Supports: openai, openrouter, ollama, together, groq, or custom
    llm_provider: Literal["openai", "openrouter", "ollama", "together", "groq", "custom"] = Field(
        default="openai",
        description="LLM provider (openai, openrouter, ollama, together, groq, custom)",
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="Model name (provider-specific format)",
        validation_alias=AliasChoices("llm_model", "openai_model"),
    )
    llm_temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="LLM temperature for generation",
    )
    llm_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key for the LLM provider",
        validation_alias=AliasChoices("llm_api_key", "openai_api_key", "openrouter_api_key"),
    )
    llm_base_url: str | None = Field(
        default=None,
        description="Custom base URL for OpenAI-compatible APIs",
    )

    # Remote generate-notes endpoint (optional alternative to a local LLM)
    notes_api_url: str | None = Field(
        default=None,
        description="Base URL of a service exposing POST /api/generate-notes",
    )

    # GitHub enrichment
    github_api_url: str = Field(default="https://api.github.com")
    github_token: SecretStr = Field(
        default=SecretStr(""),
        description="GitHub token (empty = unauthenticated, low rate limit)",
    )
    github_owner: str = Field(default="openai")
    github_repo: str = Field(default="openai-node")
    github_timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    @property
    def section_tags(self) -> tuple[str, ...]:
        """Configured section tags, in canonical order."""
        return tuple(tag.strip().upper() for tag in self.note_sections.split(",") if tag.strip())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()

"""Configuration models and YAML loader for the targeting pipeline."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from targeting.core.errors import ConfigurationError

# Provider name → environment variable holding its API key (None = no key needed).
PROVIDER_KEY_ENV: dict[str, str | None] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
    "ollama": None,
}


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/targeting.db"


class DirectoryConfig(BaseModel):
    """Company/contact directory (Apollo-style REST API)."""

    base_url: str = "https://api.apollo.io/v1"
    api_key_env: str = "APOLLO_API_KEY"
    timeout_seconds: float = Field(default=30.0, ge=1.0)
    contacts_per_page: int = Field(default=25, ge=1, le=100)
    companies_per_page: int = Field(default=100, ge=1, le=100)


class TaskTokens(BaseModel):
    """Output-size bounds per generation task."""

    suggestion: int = Field(default=2048, ge=64)
    ranking: int = Field(default=8192, ge=64)
    campaign: int = Field(default=4096, ge=64)


class TaskTemperatures(BaseModel):
    """Sampling temperature per task kind."""

    classification: float = Field(default=0.0, ge=0.0, le=1.0)
    ranking: float = Field(default=0.2, ge=0.0, le=1.0)
    copy_text: float = Field(default=0.7, ge=0.0, le=1.0, alias="copy")

    model_config = ConfigDict(populate_by_name=True)


class GenerationConfig(BaseModel):
    """LLM generation service settings."""

    provider: str = "anthropic"
    model: str | None = None
    api_key_env: str | None = None
    timeout_seconds: float = Field(default=60.0, ge=1.0)
    max_tokens: TaskTokens = Field(default_factory=TaskTokens)
    temperatures: TaskTemperatures = Field(default_factory=TaskTemperatures)

    @field_validator("provider")
    @classmethod
    def provider_known(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in PROVIDER_KEY_ENV:
            msg = f"provider must be one of {sorted(PROVIDER_KEY_ENV)}, got '{v}'"
            raise ValueError(msg)
        return v

    def key_env(self) -> str | None:
        """Environment variable that holds the provider key."""
        if self.api_key_env:
            return self.api_key_env
        return PROVIDER_KEY_ENV[self.provider]


class MissionConfig(BaseModel):
    """Mission pacing and sizing."""

    validation_sample_size: int = Field(default=10, ge=1, le=50)
    discovery_pages: int = Field(default=1, ge=1, le=10)
    fallback_contact_count: int = Field(default=4, ge=1)
    max_suggestions: int = Field(default=5, ge=1)
    campaign_delay_seconds: float = Field(default=1.0, ge=0.0)


class Credentials(BaseModel):
    """API keys resolved once at startup."""

    model_config = ConfigDict(frozen=True)

    directory_api_key: str | None = None
    generation_api_key: str | None = None

    def require_directory(self) -> str:
        if not self.directory_api_key:
            msg = "Directory API key is not configured"
            raise ConfigurationError(msg, reason="directory_credentials_missing")
        return self.directory_api_key


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    mission: MissionConfig = Field(default_factory=MissionConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

    def resolve_credentials(self, environ: Mapping[str, str] | None = None) -> Credentials:
        """Read directory and provider keys from the environment."""
        env: Mapping[str, str] = os.environ if environ is None else environ
        key_env = self.generation.key_env()
        return Credentials(
            directory_api_key=env.get(self.directory.api_key_env) or None,
            generation_api_key=(env.get(key_env) or None) if key_env else None,
        )

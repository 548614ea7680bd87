"""Configuration settings for the matching engine."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchingConfig(BaseSettings):
    """Matching engine configuration settings.

    All settings have sensible defaults and can be overridden via
    environment variables with `MATCHING_` prefix or a .env file.
    Per-tier sizing (result counts, AI windows, thresholds) is not
    configured here; see `jobmatch.matching.policy`.
    """

    model_config = SettingsConfigDict(
        env_prefix="MATCHING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AI scoring service
    ai_enabled: bool = Field(
        default=True,
        description="Master switch for AI scoring (False forces rule-based matching)",
    )
    llm_provider: Literal["openai", "anthropic", "openrouter", "ollama"] = Field(
        default="openai",
        description="LiteLLM provider used for scoring",
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="Model ID used for scoring",
    )
    llm_api_key: str | None = Field(
        default=None,
        description="API key for the scoring provider (falls back to provider env vars)",
    )
    llm_base_url: str | None = Field(
        default=None,
        description="Base URL for OpenAI-compatible endpoints",
    )
    llm_temperature: Annotated[float, Field(ge=0.0, le=2.0)] = Field(
        default=0.1,
        description="Sampling temperature for scoring calls",
    )
    llm_max_tokens: Annotated[int, Field(gt=0)] = Field(
        default=1500,
        description="Maximum completion tokens for one scoring call",
    )
    ai_timeout_seconds: Annotated[float, Field(gt=0.0)] = Field(
        default=12.0,
        description="Hard timeout for one scoring call",
    )

    # Circuit breaker
    ai_failure_cooldown_seconds: Annotated[float, Field(ge=0.0)] = Field(
        default=300.0,
        description="How long AI stays skipped after the failure threshold is exceeded",
    )

    # Per-user AI call budget
    ai_calls_per_user: Annotated[int, Field(gt=0)] = Field(
        default=20,
        description="Maximum AI scoring calls per user within the budget window",
    )
    ai_budget_window_seconds: Annotated[float, Field(gt=0.0)] = Field(
        default=86400.0,
        description="Sliding window for the per-user AI call budget",
    )

    # Cache
    cache_ttl_seconds: Annotated[float, Field(gt=0.0)] = Field(
        default=6 * 60 * 60,
        description="Lifetime of a cached match result",
    )
    cache_max_entries: Annotated[int, Field(gt=0)] = Field(
        default=10_000,
        description="Maximum entries held by the in-memory cache before LRU eviction",
    )

    # Diversity
    source_substitution_penalty: Annotated[int, Field(ge=0, le=100)] = Field(
        default=5,
        description="Score penalty applied to candidates swapped in for source diversity",
    )

    # Batch matching
    batch_size: Annotated[int, Field(gt=0)] = Field(
        default=10,
        description="Users matched per batch chunk",
    )
    batch_max_concurrency: Annotated[int, Field(gt=0)] = Field(
        default=4,
        description="Maximum concurrent matches inside a chunk",
    )
    batch_delay_seconds: Annotated[float, Field(ge=0.0)] = Field(
        default=1.0,
        description="Fixed pause between batch chunks (rate-limit backpressure)",
    )

    @field_validator("llm_provider", mode="before")
    @classmethod
    def normalize_llm_provider(cls, v: object) -> object:
        """Accept provider names case-insensitively."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


_matching_config: MatchingConfig | None = None


def get_matching_config() -> MatchingConfig:
    """Get the matching configuration singleton."""
    global _matching_config
    if _matching_config is None:
        _matching_config = MatchingConfig()
    return _matching_config


def reset_matching_config() -> None:
    """Reset the matching configuration singleton (useful for testing)."""
    global _matching_config
    _matching_config = None

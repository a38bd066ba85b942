"""Configuration management for the newsdesk service."""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_FILTER_RULES_PATH = Path(__file__).parent / "filter_rules.yaml"


class ModelSettings(BaseModel):
    """LLM model-specific settings."""
    temperature: float = 0.3
    max_tokens: int = 3000
    timeout_seconds: int = 60
    retry_attempts: int = 2
    backoff_factor: float = 2.0


class FilterRules(BaseModel):
    """Process-wide rule sets used by the content filters.

    Loaded once at start and handed to each filter's constructor; the
    tuples are never mutated afterwards.
    """
    model_config = ConfigDict(frozen=True)

    blocked_domains: tuple[str, ...] = ()
    international_tlds: tuple[str, ...] = ()
    international_news_sources: tuple[str, ...] = ()
    international_keywords: tuple[str, ...] = ()
    relevance_keywords: tuple[str, ...] = ()
    filterable_origins: tuple[str, ...] = ("newsletter", "newsletter_rss")

    @field_validator(
        "blocked_domains",
        "international_tlds",
        "international_news_sources",
        "international_keywords",
        "relevance_keywords",
        "filterable_origins",
        mode="before",
    )
    @classmethod
    def normalize_entries(cls, v: Any) -> tuple[str, ...]:
        """Lowercase, strip and de-duplicate entries while keeping order."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        seen: dict[str, None] = {}
        for entry in v:
            entry = str(entry).strip().lower()
            if entry:
                seen.setdefault(entry, None)
        return tuple(seen)


class Settings(BaseSettings):
    """Main application settings."""

    # ── Key-value store ────────────────────────────────────────────────────
    redis_url: str = Field("redis://localhost:6379/0", description="Key-value store URL")

    # ── LLM Configuration ──────────────────────────────────────────────────
    openai_api_key: str | None = Field(None, description="OpenAI API key for newsletter chat")
    perplexity_api_key: str | None = Field(None, description="Perplexity API key for online search")
    openai_model: str = Field("gpt-4o-mini", description="Chat model used for newsletter analysis")
    perplexity_model: str = Field(
        "llama-3.1-sonar-large-128k-online",
        description="Perplexity online model with web search"
    )
    perplexity_url: str = Field(
        "https://api.perplexity.ai/chat/completions",
        description="Perplexity chat completions endpoint"
    )
    llm: ModelSettings = Field(default_factory=ModelSettings, description="LLM settings")

    # ── Operational Mode ───────────────────────────────────────────────────
    mock: bool = Field(False, description="Use mock LLM clients")

    # ── Storage ────────────────────────────────────────────────────────────
    newsletter_ttl_seconds: int = Field(2_592_000, description="Newsletter TTL (30 days)")

    # ── Cleanup ────────────────────────────────────────────────────────────
    removal_batch_size: int = Field(100, description="Members per removal command")
    retention_window_days: int = Field(14, description="Trailing window for scoped cleanup")
    filter_rules_path: Path = Field(DEFAULT_FILTER_RULES_PATH, description="Filter rule YAML file")

    # ── Chat context ───────────────────────────────────────────────────────
    context_char_limit: int = Field(15_000, description="Per-newsletter truncation limit")

    # ── API Settings ───────────────────────────────────────────────────────
    api_port: int = Field(8000, description="HTTP API port")
    api_host: str = Field("127.0.0.1", description="API host binding")
    max_request_size_mb: int = Field(5, description="Maximum request size in MB")

    # ── Logging ────────────────────────────────────────────────────────────
    log_level: str = Field("INFO", description="Log level")
    json_logging: bool = Field(True, description="Enable JSON logging")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "newsletter_ttl_seconds",
        "removal_batch_size",
        "retention_window_days",
        "context_char_limit",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate sizes and windows are positive."""
        if v <= 0:
            raise ValueError("Value must be a positive integer")
        return v


class FilterConfig:
    """Filter rule loader."""

    def __init__(self, config_path: str | Path = DEFAULT_FILTER_RULES_PATH):
        self.config_path = Path(config_path)
        self._config: dict[str, Any] = {}
        self.load_config()

    def load_config(self) -> None:
        """Load filter rules from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Filter rules file not found: {self.config_path}")

        with open(self.config_path, encoding="utf-8") as f:
            self._config = yaml.safe_load(f) or {}

    def get_rules(self) -> FilterRules:
        """Build the immutable rule sets."""
        return FilterRules(**self._config)


# Global instances
settings = Settings()
filter_config = FilterConfig(settings.filter_rules_path)
filter_rules = filter_config.get_rules()


def get_settings() -> Settings:
    """Get application settings."""
    return settings


def get_filter_rules() -> FilterRules:
    """Get the process-wide filter rules."""
    return filter_rules


def validate_config(settings: Settings) -> bool:
    """Validate configuration completeness."""
    try:
        if not settings.mock and not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required when not in mock mode")

        rules = FilterConfig(settings.filter_rules_path).get_rules()
        if not rules.relevance_keywords:
            raise ValueError("No relevance keywords configured")
        if not rules.filterable_origins:
            raise ValueError("No filterable origins configured")

        return True

    except Exception as e:
        logger.error("Configuration validation failed: %s", e)
        return False

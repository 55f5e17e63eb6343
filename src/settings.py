"""App settings."""

from typing import Optional

from pydantic_settings import BaseSettings

from constants import LOGGING_LEVEL


class Settings(BaseSettings):
    """Runtime configuration read from the environment."""

    # API settings
    api_title: str = "Mention Completions API"
    api_version: str = "1.0.0"
    api_description: str = "Multi-model completion orchestration with @mentions"
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # Logging
    logging_level: str = LOGGING_LEVEL

    # Database settings
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "mention"

    # Provider credentials
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    perplexity_api_key: Optional[str] = None

    # Tool backends
    exa_api_key: Optional[str] = None
    mem0_api_key: Optional[str] = None
    redis_url: Optional[str] = None

    # Models
    default_model: str = "gpt-4.1-mini"
    anonymous_default_model: str = "gpt-4.1-mini"
    title_model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_retries: int = 2

    # Timeouts (seconds)
    provider_timeout: float = 120.0
    deep_think_timeout: float = 600.0
    tool_timeout: float = 30.0
    web_search_timeout: float = 20.0
    memory_search_timeout: float = 10.0
    finalization_timeout: float = 15.0

    # Generation rounds
    max_rounds: int = 6
    deep_think_max_rounds: int = 10

    # Streaming
    merger_buffer_size: int = 32

    # Web search
    web_search_cache_ttl: int = 900
    web_search_max_results: int = 10

    # Monthly usage limits
    tier_two_monthly_limit: int = 500
    tier_three_monthly_limit: int = 100
    free_tier_two_monthly_limit: int = 20

    @property
    def deep_think_round_ceiling(self) -> int:
        """Round ceiling for deep-think turns."""
        return max(self.deep_think_max_rounds * 2 + 2, 8)


settings = Settings()

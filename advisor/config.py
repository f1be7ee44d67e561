# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# All tunables for the advisor live here: LLM providers, the orchestrator's
# termination bound, market-data credentials, HTTP retry policy, and the
# tool-result cache.
#
# HOW IT WORKS:
# Pydantic Settings loads values in this priority order (highest first):
#   1. Environment variables (e.g., `MAX_VISITS=2`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from advisor.config import settings
#   print(settings.max_visits)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field has a development default so the package imports cleanly
    without a .env file. API keys default to empty strings; the components
    that need them fail at call time, not at import time.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Market Advisor Agent"
    app_version: str = "0.1.0"
    debug: bool = True
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider, Two Tiers
    # -------------------------------------------------------------------------
    # The supervisor and the final synthesis use the "smart" model
    # (llm_model). Workers only pick tools and summarise, so they run on
    # the "fast" model (llm_worker_model), which falls back to llm_model
    # when unset.
    #
    # Example configs:
    #   Claude:      provider=anthropic, model=claude-sonnet-4-6
    #   DeepSeek V3: provider=openai_compatible, base_url=https://api.deepseek.com/v1, model=deepseek-chat
    #   Groq:        provider=openai_compatible, base_url=https://api.groq.com/openai/v1,
    #                model=llama-3.3-70b-versatile, worker_model=llama-3.1-8b-instant
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_api_key: str | None = None   # Overrides provider-specific key if set
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    llm_model: str = "claude-sonnet-4-6"
    llm_worker_model: str | None = None
    llm_temperature: float = 0.7
    llm_worker_temperature: float = 0.3
    llm_supervisor_temperature: float = 0.0
    llm_max_tokens: int = 4096
    llm_worker_max_tokens: int = 2048

    # -------------------------------------------------------------------------
    # Orchestrator
    # -------------------------------------------------------------------------
    # max_visits: hard cap on worker visits per query. Once reached the
    #   supervisor is not consulted and the run proceeds to synthesis.
    # supervisor_history_tail: trailing messages shown to the supervisor.
    # parallel_tool_calls: run one visit's tool calls with asyncio.gather.
    # run_timeout_seconds: wall-clock limit applied by the HTTP endpoint.
    # -------------------------------------------------------------------------
    max_visits: int = 3
    supervisor_history_tail: int = 2
    parallel_tool_calls: bool = True
    run_timeout_seconds: float = 60.0

    # -------------------------------------------------------------------------
    # Market Data Providers
    # -------------------------------------------------------------------------
    # Twelve Data: quotes and technical indicators (free tier: 8 req/min).
    # Tavily: web search for news.
    # internal_api_base_url: the surrounding dashboard application, which
    #   serves /api/reddit and /api/market-intelligence.
    # -------------------------------------------------------------------------
    twelvedata_api_key: str = ""
    twelvedata_base_url: str = "https://api.twelvedata.com"
    tavily_api_key: str = ""
    tavily_base_url: str = "https://api.tavily.com"
    internal_api_base_url: str = "http://localhost:3000"

    # -------------------------------------------------------------------------
    # Outbound HTTP
    # -------------------------------------------------------------------------
    http_timeout_seconds: float = 10.0
    http_max_attempts: int = 3
    http_retry_wait_seconds: float = 2.0

    twelvedata_max_calls: int = 8
    twelvedata_window_seconds: float = 60.0

    # -------------------------------------------------------------------------
    # Tool Result Cache
    # -------------------------------------------------------------------------
    # "memory": per-process dict with TTL eviction (default, no infra)
    # "redis":  shared across processes; db 2 keeps it apart from anything
    #           else living on the same Redis instance
    # -------------------------------------------------------------------------
    cache_backend: str = "memory"
    cache_ttl_seconds: int = 300
    redis_url: str = "redis://localhost:6379/2"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    Use as a FastAPI dependency when an endpoint needs overridable settings:
        app.dependency_overrides[get_settings] = lambda: Settings(max_visits=1)
    """
    return Settings()


settings = Settings()

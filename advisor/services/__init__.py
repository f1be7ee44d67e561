# =============================================================================
# Services Package — Shared Infrastructure
# =============================================================================
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#     with tool calling
#   - cache.py: injected tool result cache (in-memory TTL, Redis)
#   - rate_limiter.py: outbound sliding-window request limiter
# =============================================================================

# =============================================================================
# Tools Package — External Data Collaborators
# =============================================================================
#   - base.py: Tool base class (pydantic input, error payload contract)
#   - http.py: httpx client with tenacity retries and per-host rate limits
#   - market.py: Twelve Data quotes and indicators
#   - social.py: Reddit sentiment from the dashboard API
#   - search.py: Tavily web search and market intelligence
#   - registry.py: per-asset-class tool catalogs
# =============================================================================

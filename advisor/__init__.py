# =============================================================================
# Market Advisor Agent
# =============================================================================
# A multi-agent advisor for crypto, stock and forex questions. A routing
# supervisor sends each question through specialist workers (technical,
# sentiment, research) that call market-data tools, then one synthesis
# step writes the answer. The number of specialist visits is hard-bounded.
#
# Package structure:
#   advisor/
#   ├── agents/       → supervisor, workers, tool bridge, driver loop
#   ├── api/          → FastAPI route handlers
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → LLM providers, tool cache, rate limiter
#   └── tools/        → market data, sentiment and search tools
# =============================================================================

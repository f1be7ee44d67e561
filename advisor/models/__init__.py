# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the HTTP API. Kept apart from the
# orchestrator's own state types in advisor/agents/state.py.
# =============================================================================

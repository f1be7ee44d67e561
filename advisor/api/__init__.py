# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - advise.py: POST /advise (run one advisor query), POST /advise/stream
#     (same run as server-sent progress events), GET /domains
# =============================================================================

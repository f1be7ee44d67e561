# =============================================================================
# Application Entry Point
# =============================================================================
# Run with: uvicorn advisor.main:app --reload
# =============================================================================

from __future__ import annotations

import logging

from fastapi import FastAPI

from advisor.api.advise import router as advise_router
from advisor.config import settings
from advisor.logging_config import setup_logging
from advisor.models.responses import HealthResponse

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Multi-agent market advisor: a routing supervisor sends each question "
        "to technical, sentiment and research specialists, then synthesizes "
        "one answer."
    ),
)
app.include_router(advise_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)

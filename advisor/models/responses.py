# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data going OUT of the API. The orchestrator's internal state
# (frozen messages, tool call objects) is mapped onto these models so the
# wire contract can evolve independently of the engine.
# =============================================================================

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class AdviseResponse(BaseModel):
    """Response for POST /advise."""

    answer: str = Field(description="The synthesized answer")
    domain: str = Field(description="Advisor domain that answered")
    visit_count: int = Field(description="Number of specialist visits made")
    data: dict[str, dict[str, Any]] = Field(
        description="Tool results by category, then tool name",
    )
    transitions: list[str] = Field(
        description="Orchestrator nodes entered, in order",
        examples=[["Start", "Supervisor", "Worker(Technical)", "Supervisor",
                   "FinalSynthesis", "End"]],
    )


class DomainInfo(BaseModel):
    """One entry of GET /domains."""

    name: str
    description: str
    workers: dict[str, list[str]] = Field(
        description="Worker target -> tool names bound to it",
    )


class AdvisorEvent(BaseModel):
    """
    One server-sent event of POST /advise/stream.

    "agent" events are emitted on every orchestrator node entry, then one
    "final" event carries the answer, or one "error" event ends the stream.
    """

    type: Literal["agent", "final", "error"]
    agent: str = Field(description="Node or specialist the event is about")
    status: str = Field(description="started, routing, working, synthesizing, complete or failed")
    message: str = ""
    data: dict[str, dict[str, Any]] = Field(default_factory=dict)
    visit_count: int = 0
    timestamp: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat(),
    )

# =============================================================================
# Advise API — Multi-Agent Market Question Endpoints
# =============================================================================
#
# POST /advise         builds the requested domain's orchestrator and runs
#                      one question through it.
# POST /advise/stream  same run, streamed as server-sent events: one event
#                      per orchestrator node entry, then the final answer.
# GET  /domains        lists the registered advisors and their worker bindings.
#
# FLOW:
#   1. Validate body (question + domain)
#   2. Build the domain's orchestrator via the advisor factory dependency
#   3. Run it under a wall-clock timeout
#   4. Map the final state onto AdviseResponse (or the closing SSE event)
#
# Error mapping:
#   - Unknown domain                           → 404
#   - Missing API key / configuration error    → 503
#   - Routing or synthesis failure             → 502
#   - Run exceeded run_timeout_seconds         → 504
#   - Run cancelled                            → 503
#
# The stream has already answered 200 when the run starts, so failures
# during a streamed run arrive as one "error" event instead of a status.
# Tool failures are NOT errors here: they are part of the answer's data.
#
# DESIGN DECISION: The orchestrator factory is a FastAPI dependency.
# Tests swap it through app.dependency_overrides and get a fully scripted
# advisor without patching module globals.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from contextlib import suppress

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from advisor.agents.advisors import build_orchestrator
from advisor.agents.domains import PROFILES
from advisor.agents.orchestrator import Orchestrator
from advisor.agents.state import AdvisorState
from advisor.config import settings
from advisor.exceptions import (
    RoutingClassificationFailure,
    RunCancelled,
    SynthesisFailure,
    UnknownDomainError,
)
from advisor.models.requests import AdviseRequest
from advisor.models.responses import AdviseResponse, AdvisorEvent, DomainInfo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Advisor"])

AdvisorFactory = Callable[[str], Orchestrator]

_ROUTING_NOTE_RE = re.compile(r"^\[Routing to \w+\]\s*")

# node -> (status, default message)
_NODE_STATUS: dict[str, tuple[str, str]] = {
    "Start": ("started", "Question received"),
    "Supervisor": ("routing", "Choosing the next specialist"),
    "FinalSynthesis": ("synthesizing", "Writing the final answer"),
    "End": ("complete", "Analysis complete"),
}

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_advisor_factory() -> AdvisorFactory:
    """Dependency returning the callable that builds an advisor per domain."""
    return build_orchestrator


def _build(factory: AdvisorFactory, domain: str) -> Orchestrator:
    try:
        return factory(domain)
    except UnknownDomainError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e


@router.post(
    "/advise",
    response_model=AdviseResponse,
    summary="Ask a market advisor a question",
    description=(
        "Routes the question through the domain's specialists (technical, "
        "sentiment, research), collects their tool data and returns one "
        "synthesized answer."
    ),
)
async def advise_endpoint(
    request: AdviseRequest,
    factory: AdvisorFactory = Depends(get_advisor_factory),
) -> AdviseResponse:
    logger.info(
        "Advise request: domain=%s, question='%s'",
        request.domain, request.question[:80],
    )
    orchestrator = _build(factory, request.domain)

    try:
        result = await asyncio.wait_for(
            orchestrator.run_detailed(request.question),
            timeout=settings.run_timeout_seconds,
        )
    except TimeoutError as e:
        logger.error(
            "Advisor run timed out after %.0fs", settings.run_timeout_seconds,
        )
        raise HTTPException(
            status_code=504,
            detail=f"Advisor run exceeded {settings.run_timeout_seconds:.0f}s",
        ) from e
    except RunCancelled as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except (RoutingClassificationFailure, SynthesisFailure) as e:
        logger.exception("Advisor run failed: %s", e)
        raise HTTPException(status_code=502, detail=f"LLM service error: {e}") from e

    return AdviseResponse(
        answer=result.answer,
        domain=result.domain or request.domain,
        visit_count=result.visit_count,
        data=result.state.data,
        transitions=result.transitions,
    )


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


def _latest_routing_reason(state: AdvisorState) -> str:
    """Reasoning of the supervisor's most recent routing note, if any."""
    for message in reversed(state.messages):
        if message.sender == "supervisor":
            return _ROUTING_NOTE_RE.sub("", message.content).strip()
    return ""


def node_event(node: str, state: AdvisorState) -> AdvisorEvent:
    """Describe one orchestrator node entry for the event stream."""
    if node.startswith("Worker(") and node.endswith(")"):
        agent = node[len("Worker("):-1]
        status, message = "working", f"{agent} specialist gathering data"
    else:
        agent = node
        status, message = _NODE_STATUS.get(node, ("working", "Processing"))

    # Worker and synthesis entries follow a routing decision; show its reason
    if status in ("working", "synthesizing"):
        message = _latest_routing_reason(state) or message

    return AdvisorEvent(
        type="agent",
        agent=agent,
        status=status,
        message=message,
        data=state.data,
        visit_count=state.visit_count,
    )


def format_sse(event: AdvisorEvent) -> str:
    return f"event: {event.type}\ndata: {event.model_dump_json()}\n\n"


@router.post(
    "/advise/stream",
    response_class=StreamingResponse,
    summary="Ask a market advisor a question, streaming progress",
    description=(
        "Same run as POST /advise, delivered as text/event-stream. Each "
        "orchestrator step produces an 'agent' event; the stream ends with "
        "a 'final' event holding the answer or an 'error' event."
    ),
)
async def advise_stream_endpoint(
    request: AdviseRequest,
    factory: AdvisorFactory = Depends(get_advisor_factory),
) -> StreamingResponse:
    logger.info(
        "Streamed advise request: domain=%s, question='%s'",
        request.domain, request.question[:80],
    )
    orchestrator = _build(factory, request.domain)

    queue: asyncio.Queue[str | None] = asyncio.Queue()
    cancel_event = asyncio.Event()

    def on_node(node: str, state: AdvisorState) -> None:
        queue.put_nowait(format_sse(node_event(node, state)))

    def fail(agent: str, message: str) -> None:
        queue.put_nowait(format_sse(AdvisorEvent(
            type="error", agent=agent, status="failed", message=message,
        )))

    async def runner() -> None:
        try:
            result = await asyncio.wait_for(
                orchestrator.run_detailed(
                    request.question, cancel_event=cancel_event, listener=on_node,
                ),
                timeout=settings.run_timeout_seconds,
            )
        except TimeoutError:
            logger.error(
                "Streamed advisor run timed out after %.0fs", settings.run_timeout_seconds,
            )
            fail("Orchestrator", f"Advisor run exceeded {settings.run_timeout_seconds:.0f}s")
        except RunCancelled as e:
            fail("Orchestrator", str(e))
        except RoutingClassificationFailure as e:
            logger.exception("Streamed advisor run failed: %s", e)
            fail("Supervisor", f"LLM service error: {e}")
        except SynthesisFailure as e:
            logger.exception("Streamed advisor run failed: %s", e)
            fail("FinalSynthesis", f"LLM service error: {e}")
        else:
            queue.put_nowait(format_sse(AdvisorEvent(
                type="final",
                agent="FinalSynthesis",
                status="complete",
                message=result.answer,
                data=result.state.data,
                visit_count=result.visit_count,
            )))
        finally:
            queue.put_nowait(None)

    async def event_stream():
        runner_task = asyncio.create_task(runner())
        try:
            while True:
                chunk = await queue.get()
                if chunk is None:
                    break
                yield chunk
        finally:
            # Client went away or the run ended; stop the run either way
            cancel_event.set()
            if not runner_task.done():
                runner_task.cancel()
            with suppress(asyncio.CancelledError):
                await runner_task

    return StreamingResponse(
        event_stream(), media_type="text/event-stream", headers=_SSE_HEADERS,
    )


@router.get(
    "/domains",
    response_model=list[DomainInfo],
    summary="List available advisor domains",
)
async def list_domains() -> list[DomainInfo]:
    return [
        DomainInfo(
            name=profile.name,
            description=profile.description,
            workers=profile.tool_bindings,
        )
        for profile in PROFILES.values()
    ]

"""
Advisor assembly.

Wires a DomainProfile, the domain's tool catalog and the LLM providers
into a ready-to-run Orchestrator. Every collaborator can be injected,
which is how the tests and the API build advisors without network access.
"""

from __future__ import annotations

import logging

from advisor.agents.domains import get_profile
from advisor.agents.orchestrator import AdvisorResult, Orchestrator, TransitionListener
from advisor.agents.supervisor import Supervisor
from advisor.agents.synthesis import FinalSynthesizer
from advisor.agents.workers import Worker
from advisor.config import settings
from advisor.services.cache import ToolCache
from advisor.services.llm import LLMProvider, get_llm_provider
from advisor.tools.http import MarketDataClient
from advisor.tools.registry import build_tool_catalog

logger = logging.getLogger(__name__)


def build_orchestrator(
    domain: str,
    llm: LLMProvider | None = None,
    worker_llm: LLMProvider | None = None,
    cache: ToolCache | None = None,
    http: MarketDataClient | None = None,
    max_visits: int | None = None,
    listener: TransitionListener | None = None,
) -> Orchestrator:
    """
    Build the orchestrator for one advisor domain.

    Args:
        domain: "crypto", "stock" or "forex".
        llm: Provider for supervisor routing and final synthesis.
            Defaults to the configured "smart" provider.
        worker_llm: Provider for worker reasoning steps. Defaults to the
            configured "fast" provider, or `llm` when one was given.
        cache: Tool result cache shared by this advisor's tools.
        http: HTTP client shared by this advisor's tools.
        max_visits: Override for the worker visit bound.

    Raises:
        UnknownDomainError: domain is not registered.
        ValueError: a default provider is needed but not configured.
    """
    profile = get_profile(domain)
    smart = llm or get_llm_provider("smart")
    fast = worker_llm or (llm if llm is not None else get_llm_provider("fast"))
    bound = max_visits if max_visits is not None else settings.max_visits

    catalog = build_tool_catalog(profile.name, http=http, cache=cache)
    workers = {
        spec.target: Worker(
            target=spec.target,
            category=spec.category,
            title=spec.title,
            system_prompt=spec.prompt,
            tools=[catalog[name] for name in spec.tool_names],
            llm=fast,
        )
        for spec in profile.workers
    }

    supervisor = Supervisor(
        llm=smart,
        routing_guidance=profile.routing_guidance,
        asset_label=profile.asset_label,
        max_visits=bound,
    )
    synthesizer = FinalSynthesizer(
        llm=smart,
        persona=profile.synthesis_persona,
        example=profile.synthesis_example,
    )

    logger.debug(
        "Built %s advisor: workers=%s, max_visits=%d",
        profile.name, ", ".join(t.value for t in workers), bound,
    )
    return Orchestrator(
        supervisor=supervisor,
        workers=workers,
        synthesizer=synthesizer,
        max_visits=bound,
        domain=profile.name,
        listener=listener,
    )


async def advise(domain: str, question: str, **collaborators) -> AdvisorResult:
    """Convenience entry point: build the domain's advisor and run one query."""
    orchestrator = build_orchestrator(domain, **collaborators)
    return await orchestrator.run_detailed(question)

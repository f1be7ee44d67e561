# =============================================================================
# Orchestrator — Explicit Bounded Driver Loop
# =============================================================================
#
# One run walks a fixed state machine:
#
#   Start ──▶ Supervisor ──▶ Worker(X) ──▶ Supervisor ──▶ ... ──▶ FinalSynthesis ──▶ End
#                 │                                                    ▲
#                 └──────────── Finish / visit limit ─────────────────┘
#
# Workers always hand control back to the Supervisor. Workers never go to
# End or to another worker directly. Only one node is active at a time.
#
# DESIGN DECISION: Plain async loop over a LangGraph StateGraph.
# The routing targets are a small closed set, so the whole transition
# table fits in one `while` loop. The bound and every edge are then
# testable with stub collaborators, without compiling or mocking a graph.
# The same trade-off was made for the agentic search loop.
#
# DESIGN DECISION: The loop checks the visit bound itself as well.
# The Supervisor already forces Finish at the bound, but the engine does
# not rely on any particular Supervisor: a stub that always returns a
# worker target still ends after exactly max_visits worker visits.
#
# DESIGN DECISION: Cooperative cancellation via asyncio.Event.
# The event is checked between nodes and inside the tool bridge. A
# cancelled run raises RunCancelled and never merges partial results.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from advisor.agents.state import AdvisorState, Message, Role, Target
from advisor.agents.supervisor import Supervisor
from advisor.agents.synthesis import FinalSynthesizer
from advisor.agents.workers import Worker
from advisor.exceptions import RoutingClassificationFailure, RunCancelled

logger = logging.getLogger(__name__)

TransitionListener = Callable[[str, AdvisorState], None]


@dataclass
class AdvisorResult:
    """Outcome of one orchestrated run."""

    answer: str
    state: AdvisorState
    transitions: list[str] = field(default_factory=list)
    domain: str | None = None

    @property
    def visit_count(self) -> int:
        return self.state.visit_count


class Orchestrator:
    """Drives Supervisor, Workers and Final Synthesis for one domain."""

    def __init__(
        self,
        supervisor: Supervisor,
        workers: Mapping[Target, Worker],
        synthesizer: FinalSynthesizer,
        max_visits: int | None = None,
        domain: str | None = None,
        listener: TransitionListener | None = None,
    ) -> None:
        if Target.FINISH in workers:
            raise ValueError("Finish cannot be bound to a worker")
        self.supervisor = supervisor
        self.workers = dict(workers)
        self.synthesizer = synthesizer
        self.max_visits = max_visits if max_visits is not None else supervisor.max_visits
        self.domain = domain
        self._listener = listener

    async def run(self, query: str, cancel_event: asyncio.Event | None = None) -> str:
        """Answer one question. Returns the final answer text."""
        result = await self.run_detailed(query, cancel_event=cancel_event)
        return result.answer

    async def run_detailed(
        self,
        query: str,
        cancel_event: asyncio.Event | None = None,
        listener: TransitionListener | None = None,
    ) -> AdvisorResult:
        """
        Answer one question and return the answer with the final state.

        `listener` is called on every node entry of this run only, after the
        listener given to the constructor.

        Raises:
            RoutingClassificationFailure: the supervisor could not classify.
            SynthesisFailure: the final answer could not be generated.
            RunCancelled: cancel_event was set during the run.
        """
        state = AdvisorState.start(query)
        transitions: list[str] = []
        listeners = [fn for fn in (self._listener, listener) if fn is not None]
        logger.info(
            "Starting %s advisor run: query='%s'",
            self.domain or "generic", query[:80],
        )
        self._enter("Start", state, transitions, listeners)

        while True:
            self._check_cancelled(cancel_event, "before routing")
            self._enter("Supervisor", state, transitions, listeners)
            decision = await self.supervisor.route(state)
            self._check_cancelled(cancel_event, "after routing")

            if decision.next is Target.FINISH:
                break
            if state.visit_count >= self.max_visits:
                logger.info(
                    "Visit limit reached (%d); ignoring routing to %s",
                    state.visit_count, decision.next.value,
                )
                state.next_target = Target.FINISH
                state.append_message(Message(
                    role=Role.AGENT,
                    content=(
                        f"[Routing to Finish] Visit limit reached "
                        f"({state.visit_count}/{self.max_visits}). "
                        f"Ignoring the request for {decision.next.value}."
                    ),
                    sender="supervisor",
                ))
                break

            worker = self.workers.get(decision.next)
            if worker is None:
                raise RoutingClassificationFailure(
                    f"No worker registered for target '{decision.next.value}'"
                )

            self._enter(f"Worker({decision.next.value})", state, transitions, listeners)
            await worker.visit(state, cancel_event=cancel_event)
            self._check_cancelled(cancel_event, "after worker visit")

        self._enter("FinalSynthesis", state, transitions, listeners)
        answer = await self.synthesizer.synthesize(state)
        self._enter("End", state, transitions, listeners)

        logger.info(
            "Advisor run complete: visits=%d, categories=%s",
            state.visit_count, ", ".join(sorted(state.data)) or "none",
        )
        return AdvisorResult(
            answer=answer,
            state=state,
            transitions=transitions,
            domain=self.domain,
        )

    @staticmethod
    def _enter(
        node: str,
        state: AdvisorState,
        transitions: list[str],
        listeners: list[TransitionListener],
    ) -> None:
        transitions.append(node)
        for notify in listeners:
            notify(node, state)

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None, where: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Advisor run cancelled %s", where)
            raise RunCancelled(f"Run cancelled {where}")

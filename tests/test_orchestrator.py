# =============================================================================
# Unit Tests — Orchestrator Driver Loop
# =============================================================================
#
# Drives the full Start → Supervisor ⇄ Worker → FinalSynthesis → End loop
# with scripted LLMs and in-memory tools. No API keys, no network.
#
# Covers the bound on worker visits, monotonic data accumulation,
# last-write-wins merges, graceful tool failure, the narrow / broad /
# bound-exhaustion scenarios, cancellation and fatal failures.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from advisor.agents.orchestrator import AdvisorResult, Orchestrator
from advisor.agents.state import AdvisorState, RoutingDecision, Target
from advisor.agents.supervisor import Supervisor
from advisor.agents.synthesis import FinalSynthesizer
from advisor.agents.workers import Worker
from advisor.exceptions import (
    RoutingClassificationFailure,
    RunCancelled,
    SynthesisFailure,
)
from advisor.services.llm import LLMResponse, ToolCall
from advisor.tools.base import Tool


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _reply(content: str = "", tool_calls: list[ToolCall] | None = None) -> LLMResponse:
    return LLMResponse(
        content=content, model="test-model", input_tokens=100, output_tokens=20,
        tool_calls=tool_calls or [],
    )


def _route(target: str, reasoning: str = "") -> LLMResponse:
    return _reply(f'{{"next": "{target}", "reasoning": "{reasoning}"}}')


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class _SymbolArgs(BaseModel):
    symbol: str


class ScriptedTool(Tool):
    """Returns the queued payloads in order, repeating the last one."""

    description = "Scripted test tool"
    InputModel = _SymbolArgs

    def __init__(self, name: str, *payloads: dict[str, Any]):
        super().__init__(http=None)
        self.name = name
        self._payloads = list(payloads) or [{"ok": True}]
        self.calls = 0

    async def _run(self, params: _SymbolArgs) -> dict[str, Any]:
        payload = self._payloads[min(self.calls, len(self._payloads) - 1)]
        self.calls += 1
        return dict(payload)


class AlwaysTechnical:
    """Supervisor stand-in that ignores the bound and never says Finish."""

    def __init__(self, max_visits: int = 3):
        self.max_visits = max_visits
        self.calls = 0

    async def route(self, state: AdvisorState) -> RoutingDecision:
        self.calls += 1
        state.next_target = Target.TECHNICAL
        return RoutingDecision(next=Target.TECHNICAL, reasoning="again")


def _worker(target: Target, category: str, tool: Tool, llm=None) -> Worker:
    if llm is None:
        llm = AsyncMock()
        llm.complete.return_value = _reply(
            tool_calls=[ToolCall(tool.name, {"symbol": "BTC/USD"})],
        )
    return Worker(
        target=target,
        category=category,
        title=f"{category.title()} Analyst",
        system_prompt=f"You are the {category} specialist.",
        tools=[tool],
        llm=llm,
    )


def _synthesizer(answer: str = "Bitcoin is trading at $42,350.") -> tuple[FinalSynthesizer, AsyncMock]:
    llm = AsyncMock()
    llm.complete.return_value = _reply(answer)
    return FinalSynthesizer(llm=llm, persona="You are an expert Crypto Advisor."), llm


def _orchestrator(supervisor, workers, synthesizer=None, max_visits=3, listener=None):
    if synthesizer is None:
        synthesizer, _ = _synthesizer()
    return Orchestrator(
        supervisor=supervisor,
        workers={w.target: w for w in workers},
        synthesizer=synthesizer,
        max_visits=max_visits,
        domain="crypto",
        listener=listener,
    )


def _supervisor(*replies: LLMResponse, max_visits: int = 3) -> tuple[Supervisor, AsyncMock]:
    llm = AsyncMock()
    llm.complete.side_effect = list(replies)
    return Supervisor(llm=llm, routing_guidance="guidance", max_visits=max_visits), llm


# ---------------------------------------------------------------------------
# Test: Scenarios
# ---------------------------------------------------------------------------


class TestNarrowQuery:
    """"What is the price of BTC?" → Technical once → Finish."""

    def test_single_technical_visit(self):
        price = ScriptedTool("get_crypto_price", {"symbol": "BTC/USD", "price": 42350.0})
        supervisor, sup_llm = _supervisor(
            _route("Technical", "price query"),
            _route("Finish", "price answered"),
        )
        synthesizer, synth_llm = _synthesizer()
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", price)],
            synthesizer,
        )

        result = _run(orchestrator.run_detailed("What is the price of BTC?"))

        assert isinstance(result, AdvisorResult)
        assert result.visit_count == 1
        assert result.transitions == [
            "Start", "Supervisor", "Worker(Technical)", "Supervisor",
            "FinalSynthesis", "End",
        ]
        assert "42,350" in result.answer
        assert result.state.data["technical"]["get_crypto_price"]["price"] == 42350.0
        assert result.state.next_target is Target.FINISH
        assert sup_llm.complete.call_count == 2
        # Second routing call saw the fetched price
        assert "42350.0" in sup_llm.complete.call_args_list[1].kwargs["system"]
        # Synthesis saw it too
        assert "42350.0" in synth_llm.complete.call_args.kwargs["system"]

    def test_run_returns_answer_text(self):
        price = ScriptedTool("get_crypto_price", {"price": 42350.0})
        supervisor, _ = _supervisor(_route("Technical"), _route("Finish"))
        orchestrator = _orchestrator(supervisor, [_worker(Target.TECHNICAL, "technical", price)])
        assert _run(orchestrator.run("What is the price of BTC?")) == (
            "Bitcoin is trading at $42,350."
        )


class TestBroadQuery:
    """"Analyze TSLA" → Technical, Sentiment → Finish."""

    def test_every_worker_contributes(self):
        quote = ScriptedTool("get_stock_quote", {"symbol": "TSLA", "price": 248.5})
        reddit = ScriptedTool("get_reddit_sentiment", {"bullish_percent": 62})
        supervisor, _ = _supervisor(
            _route("Technical", "start with price"),
            _route("Sentiment", "check retail mood"),
            _route("Finish", "enough"),
        )
        synthesizer, synth_llm = _synthesizer("TSLA trades at $248.50 with 62% bullish mentions.")
        orchestrator = _orchestrator(
            supervisor,
            [
                _worker(Target.TECHNICAL, "technical", quote),
                _worker(Target.SENTIMENT, "sentiment", reddit),
            ],
            synthesizer,
        )

        result = _run(orchestrator.run_detailed("Analyze TSLA"))

        assert result.visit_count == 2
        assert set(result.state.data) == {"technical", "sentiment"}
        prompt = synth_llm.complete.call_args.kwargs["system"]
        assert "248.5" in prompt
        assert "62" in prompt
        assert result.transitions.count("Supervisor") == 3


class TestBoundExhaustion:
    """Classifier always picks Technical → exactly three visits, then synthesis."""

    def test_classifier_stuck_on_technical(self):
        tool = ScriptedTool("get_crypto_price", {"price": 1.0})
        supervisor, sup_llm = _supervisor(*[_route("Technical", "more")] * 5)
        orchestrator = _orchestrator(supervisor, [_worker(Target.TECHNICAL, "technical", tool)])

        result = _run(orchestrator.run_detailed("Analyze BTC"))

        assert result.visit_count == 3
        assert result.transitions.count("Worker(Technical)") == 3
        assert result.transitions[-2:] == ["FinalSynthesis", "End"]
        # The fourth routing step is forced without a classifier call
        assert sup_llm.complete.call_count == 3
        assert result.state.messages[-2].content.startswith("[Routing to Finish]")

    def test_engine_enforces_bound_without_supervisor_help(self):
        tool = ScriptedTool("get_crypto_price", {"price": 1.0})
        stub = AlwaysTechnical()
        orchestrator = _orchestrator(stub, [_worker(Target.TECHNICAL, "technical", tool)])

        result = _run(orchestrator.run_detailed("Analyze BTC"))

        assert result.visit_count == 3
        assert tool.calls == 3
        assert stub.calls == 4
        assert result.state.next_target is Target.FINISH

    def test_engine_override_is_noted_in_conversation(self):
        tool = ScriptedTool("get_crypto_price", {"price": 1.0})
        orchestrator = _orchestrator(AlwaysTechnical(), [_worker(Target.TECHNICAL, "technical", tool)])

        result = _run(orchestrator.run_detailed("Analyze BTC"))

        note = result.state.messages[-2]
        assert note.sender == "supervisor"
        assert note.content.startswith("[Routing to Finish] Visit limit reached (3/3)")
        assert "Technical" in note.content

    @pytest.mark.parametrize("max_visits", [0, 1, 2, 5])
    def test_visit_count_within_bound_at_synthesis(self, max_visits):
        seen: dict[str, int] = {}

        def listener(node: str, state: AdvisorState) -> None:
            if node == "FinalSynthesis":
                seen["visits"] = state.visit_count

        tool = ScriptedTool("get_crypto_price", {"price": 1.0})
        orchestrator = _orchestrator(
            AlwaysTechnical(max_visits=max_visits),
            [_worker(Target.TECHNICAL, "technical", tool)],
            max_visits=max_visits,
            listener=listener,
        )

        _run(orchestrator.run("Analyze BTC"))

        assert seen["visits"] == max_visits

    def test_zero_budget_goes_straight_to_synthesis(self):
        supervisor, sup_llm = _supervisor(max_visits=0)
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price"))],
            max_visits=0,
        )

        result = _run(orchestrator.run_detailed("What is the price of BTC?"))

        assert result.transitions == ["Start", "Supervisor", "FinalSynthesis", "End"]
        sup_llm.complete.assert_not_called()


# ---------------------------------------------------------------------------
# Test: State properties across a run
# ---------------------------------------------------------------------------


class TestAccumulation:
    def test_data_keys_never_shrink(self):
        snapshots: list[set[tuple[str, str]]] = []
        visits: list[int] = []

        def listener(node: str, state: AdvisorState) -> None:
            snapshots.append(state.data_keys())
            visits.append(state.visit_count)

        supervisor, _ = _supervisor(
            _route("Technical"), _route("Research"), _route("Technical"),
        )
        orchestrator = _orchestrator(
            supervisor,
            [
                _worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price")),
                _worker(Target.RESEARCH, "research", ScriptedTool("web_search")),
            ],
            listener=listener,
        )

        _run(orchestrator.run("Analyze BTC"))

        for earlier, later in zip(snapshots, snapshots[1:]):
            assert earlier <= later
        assert visits == sorted(visits)
        assert snapshots[-1] == {("technical", "get_crypto_price"), ("research", "web_search")}

    def test_same_tool_twice_keeps_second_payload(self):
        tool = ScriptedTool("get_crypto_price", {"price": 100.0}, {"price": 101.5})
        supervisor, _ = _supervisor(_route("Technical"), _route("Technical"), _route("Finish"))
        orchestrator = _orchestrator(supervisor, [_worker(Target.TECHNICAL, "technical", tool)])

        result = _run(orchestrator.run_detailed("BTC now vs a moment ago?"))

        assert result.state.data["technical"]["get_crypto_price"] == {"price": 101.5}

    def test_messages_only_grow(self):
        lengths: list[int] = []
        supervisor, _ = _supervisor(_route("Technical"), _route("Finish"))
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price"))],
            listener=lambda node, state: lengths.append(len(state.messages)),
        )

        result = _run(orchestrator.run_detailed("q"))

        assert lengths == sorted(lengths)
        assert result.state.messages[0].content == "q"
        assert result.state.messages[-1].sender == "final"

    def test_worker_commentary_reaches_synthesis(self):
        commentary_llm = AsyncMock()
        commentary_llm.complete.return_value = _reply("COMMENTARY: RSI is overbought at 78")
        supervisor, _ = _supervisor(_route("Technical"), _route("Finish"))
        synthesizer, synth_llm = _synthesizer()
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price"), commentary_llm)],
            synthesizer,
        )

        result = _run(orchestrator.run_detailed("Analyze BTC"))

        assert result.state.data == {}
        messages = synth_llm.complete.call_args.kwargs["messages"]
        assert len(messages) == 1
        assert messages[0]["role"] == "user"
        assert messages[0]["content"].startswith("Analyze BTC")
        assert "COMMENTARY: RSI is overbought at 78" in messages[0]["content"]

    def test_worker_failure_note_reaches_synthesis(self):
        failing_llm = AsyncMock()
        failing_llm.complete.side_effect = RuntimeError("timeout")
        supervisor, _ = _supervisor(_route("Technical"), _route("Finish"))
        synthesizer, synth_llm = _synthesizer()
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price"), failing_llm)],
            synthesizer,
        )

        _run(orchestrator.run("Analyze BTC"))

        content = synth_llm.complete.call_args.kwargs["messages"][0]["content"]
        assert "[Technical Analyst] Analysis unavailable: timeout" in content


# ---------------------------------------------------------------------------
# Test: Failures
# ---------------------------------------------------------------------------


class BrokenTool(Tool):
    name = "get_reddit_sentiment"
    description = "Always returns an error payload"
    InputModel = _SymbolArgs

    def __init__(self):
        super().__init__(http=None)

    async def invoke(self, arguments):
        return {"error": "x"}

    async def _run(self, params):
        raise AssertionError("not reached")


class TestGracefulToolFailure:
    def test_error_payload_kept_and_run_completes(self):
        supervisor, _ = _supervisor(_route("Sentiment"), _route("Finish"))
        synthesizer, synth_llm = _synthesizer("Sentiment data is currently unavailable.")
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.SENTIMENT, "sentiment", BrokenTool())],
            synthesizer,
        )

        result = _run(orchestrator.run_detailed("What does Reddit think of BTC?"))

        assert result.state.data["sentiment"]["get_reddit_sentiment"] == {"error": "x"}
        assert "sentiment.get_reddit_sentiment" in synth_llm.complete.call_args.kwargs["system"]

    def test_worker_llm_failure_does_not_abort(self):
        failing_llm = AsyncMock()
        failing_llm.complete.side_effect = RuntimeError("timeout")
        supervisor, _ = _supervisor(_route("Technical"), _route("Finish"))
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price"), failing_llm)],
        )

        result = _run(orchestrator.run_detailed("q"))

        assert result.visit_count == 1
        assert result.state.data == {}


class TestFatalFailures:
    def test_routing_failure_propagates(self):
        supervisor, _ = _supervisor(_reply("not json at all"))
        synthesizer, synth_llm = _synthesizer()
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price"))],
            synthesizer,
        )

        with pytest.raises(RoutingClassificationFailure):
            _run(orchestrator.run("q"))
        synth_llm.complete.assert_not_called()

    def test_unbound_target_is_routing_failure(self):
        supervisor, _ = _supervisor(_route("Research"))
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price"))],
        )
        with pytest.raises(RoutingClassificationFailure) as exc:
            _run(orchestrator.run("q"))
        assert "Research" in str(exc.value)

    def test_synthesis_failure_propagates(self):
        supervisor, _ = _supervisor(_route("Finish"))
        llm = AsyncMock()
        llm.complete.side_effect = RuntimeError("model overloaded")
        orchestrator = _orchestrator(
            supervisor, [], FinalSynthesizer(llm=llm, persona="p"),
        )
        with pytest.raises(SynthesisFailure):
            _run(orchestrator.run("q"))

    def test_empty_synthesis_is_failure(self):
        supervisor, _ = _supervisor(_route("Finish"))
        synthesizer, _ = _synthesizer("   ")
        orchestrator = _orchestrator(supervisor, [], synthesizer)
        with pytest.raises(SynthesisFailure):
            _run(orchestrator.run("q"))

    def test_finish_cannot_be_bound(self):
        synthesizer, _ = _synthesizer()
        with pytest.raises(ValueError):
            Orchestrator(
                supervisor=AlwaysTechnical(),
                workers={Target.FINISH: object()},
                synthesizer=synthesizer,
            )


class TestCancellation:
    def test_cancelled_before_start(self):
        supervisor, sup_llm = _supervisor(_route("Technical"))
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", ScriptedTool("get_crypto_price"))],
        )
        event = asyncio.Event()
        event.set()

        with pytest.raises(RunCancelled):
            _run(orchestrator.run("q", cancel_event=event))
        sup_llm.complete.assert_not_called()

    def test_cancelled_during_worker_skips_merge(self):
        event = asyncio.Event()
        tool = ScriptedTool("get_crypto_price", {"price": 1.0})
        states: list[AdvisorState] = []

        def listener(node: str, state: AdvisorState) -> None:
            states.append(state)
            if node == "Worker(Technical)":
                event.set()

        supervisor, _ = _supervisor(_route("Technical"), _route("Finish"))
        synthesizer, synth_llm = _synthesizer()
        orchestrator = _orchestrator(
            supervisor,
            [_worker(Target.TECHNICAL, "technical", tool)],
            synthesizer,
            listener=listener,
        )

        with pytest.raises(RunCancelled):
            _run(orchestrator.run("q", cancel_event=event))
        assert tool.calls == 0
        assert states[-1].data == {}
        synth_llm.complete.assert_not_called()

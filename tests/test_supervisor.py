# =============================================================================
# Unit Tests — Supervisor Routing
# =============================================================================
#
# Strict decode of classifier output, forced finish at the visit bound
# (without a classifier call) and the routing note appended to state.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from advisor.agents.state import AdvisorState, Role, Target, ToolResult
from advisor.agents.supervisor import Supervisor, parse_routing_decision
from advisor.exceptions import RoutingClassificationFailure, RoutingParseError
from advisor.services.llm import LLMResponse


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _reply(content: str) -> LLMResponse:
    return LLMResponse(content=content, model="test-model", input_tokens=50, output_tokens=10)


def _supervisor(llm, max_visits=3) -> Supervisor:
    return Supervisor(
        llm=llm,
        routing_guidance="Technical: prices\nSentiment: mood\nResearch: news",
        asset_label="crypto",
        max_visits=max_visits,
        history_tail=2,
        temperature=0.0,
    )


# ---------------------------------------------------------------------------
# Test: parse_routing_decision
# ---------------------------------------------------------------------------


class TestParseRoutingDecision:
    def test_plain_json(self):
        decision = parse_routing_decision('{"next": "Technical", "reasoning": "price query"}')
        assert decision.next is Target.TECHNICAL
        assert decision.reasoning == "price query"

    def test_markdown_fenced_json(self):
        text = '```json\n{"next": "Finish", "reasoning": "done"}\n```'
        assert parse_routing_decision(text).next is Target.FINISH

    def test_json_embedded_in_prose(self):
        text = 'Sure. {"next": "Research", "reasoning": "needs news"} Hope that helps.'
        assert parse_routing_decision(text).next is Target.RESEARCH

    def test_out_of_enum_target_rejected(self):
        with pytest.raises(RoutingParseError) as exc:
            parse_routing_decision('{"next": "TechnicalAnalyst", "reasoning": "x"}')
        assert "TechnicalAnalyst" in str(exc.value)

    def test_lowercase_target_rejected(self):
        with pytest.raises(RoutingParseError):
            parse_routing_decision('{"next": "finish"}')

    def test_no_json_rejected(self):
        with pytest.raises(RoutingParseError) as exc:
            parse_routing_decision("I think the technical analyst should go next.")
        assert exc.value.raw.startswith("I think")

    def test_json_array_rejected(self):
        with pytest.raises(RoutingParseError):
            parse_routing_decision('["Technical"]')

    def test_parse_error_is_classification_failure(self):
        assert issubclass(RoutingParseError, RoutingClassificationFailure)


# ---------------------------------------------------------------------------
# Test: Supervisor.route
# ---------------------------------------------------------------------------


class TestRoute:
    def test_routes_to_classified_target(self):
        llm = AsyncMock()
        llm.complete.return_value = _reply('{"next": "Technical", "reasoning": "price query"}')
        state = AdvisorState.start("What is the price of BTC?")

        decision = _run(_supervisor(llm).route(state))

        assert decision.next is Target.TECHNICAL
        assert state.next_target is Target.TECHNICAL
        llm.complete.assert_called_once()

    def test_appends_routing_note(self):
        llm = AsyncMock()
        llm.complete.return_value = _reply('{"next": "Sentiment", "reasoning": "community mood"}')
        state = AdvisorState.start("What does Reddit think of ETH?")

        _run(_supervisor(llm).route(state))

        note = state.messages[-1]
        assert note.role is Role.AGENT
        assert note.sender == "supervisor"
        assert note.content == "[Routing to Sentiment] community mood"

    def test_forced_finish_skips_classifier(self):
        llm = AsyncMock()
        state = AdvisorState.start("Analyze BTC")
        for _ in range(3):
            state.record_visit()

        decision = _run(_supervisor(llm, max_visits=3).route(state))

        assert decision.next is Target.FINISH
        assert state.next_target is Target.FINISH
        llm.complete.assert_not_called()
        assert state.messages[-1].content.startswith("[Routing to Finish]")

    def test_below_bound_still_classifies(self):
        llm = AsyncMock()
        llm.complete.return_value = _reply('{"next": "Finish", "reasoning": "answered"}')
        state = AdvisorState.start("Analyze BTC")
        state.record_visit()
        state.record_visit()

        decision = _run(_supervisor(llm, max_visits=3).route(state))

        assert decision.next is Target.FINISH
        llm.complete.assert_called_once()

    def test_invalid_output_raises_and_leaves_state(self):
        llm = AsyncMock()
        llm.complete.return_value = _reply('{"next": "Oracle", "reasoning": "?"}')
        state = AdvisorState.start("q")

        with pytest.raises(RoutingParseError):
            _run(_supervisor(llm).route(state))
        assert state.next_target is None
        assert len(state.messages) == 1

    def test_classifier_call_failure_raises(self):
        llm = AsyncMock()
        llm.complete.side_effect = RuntimeError("overloaded")
        state = AdvisorState.start("q")

        with pytest.raises(RoutingClassificationFailure) as exc:
            _run(_supervisor(llm).route(state))
        assert "overloaded" in str(exc.value)


class TestPrompt:
    def test_prompt_carries_data_tail_and_visits(self):
        llm = AsyncMock()
        llm.complete.return_value = _reply('{"next": "Finish", "reasoning": "ok"}')
        state = AdvisorState.start("What is the price of BTC?")
        state.merge_results("technical", [ToolResult("get_crypto_price", {"price": 42350.0})])
        state.record_visit()

        _run(_supervisor(llm).route(state))

        kwargs = llm.complete.call_args.kwargs
        assert "42350.0" in kwargs["system"]
        assert "1 specialist visits made. Maximum is 3" in kwargs["system"]
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"] == [
            {"role": "user", "content": "What is the price of BTC?"},
        ]

    def test_output_format_lists_every_target(self):
        prompt = _supervisor(AsyncMock()).build_prompt(AdvisorState.start("q"))
        payload = prompt.split("### OUTPUT FORMAT", 1)[1]
        for target in Target:
            assert target.value in payload
        # The format example must itself be valid JSON apart from the placeholder.
        example = payload[payload.index("{"):payload.rindex("}") + 1]
        assert json.loads(example)["reasoning"] == "Brief explanation of why"

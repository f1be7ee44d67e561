# =============================================================================
# Supervisor — Routing with a Strict Closed-Enum Decision
# =============================================================================
#
# Each supervisor visit produces exactly one RoutingDecision:
#
#   1. BOUND CHECK — visit_count >= max_visits forces Finish. The classifier
#      is not called at all once the budget is spent.
#   2. CLASSIFY    — otherwise the smart model sees the collected data, the
#      last few messages and the visit count, and answers with JSON
#      {"next": ..., "reasoning": ...}.
#   3. DECODE      — the JSON is validated against the Target enum. Any
#      failure (call error, no JSON, unknown target) is a
#      RoutingClassificationFailure. There is no fallback target: a
#      broken classifier should fail the query loudly, not quietly
#      produce an answer from the wrong specialist.
#   4. RECORD      — next_target is set and one routing note is appended
#      to the conversation.
#
# DESIGN DECISION: Markdown-fenced JSON is accepted. Models routinely wrap
# JSON in ```json fences even when told not to; unwrapping the fence is
# format tolerance, while the value itself is still validated strictly.
# =============================================================================

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from advisor.agents.state import AdvisorState, Message, Role, RoutingDecision, Target
from advisor.config import settings
from advisor.exceptions import RoutingClassificationFailure, RoutingParseError
from advisor.services.llm import LLMProvider

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?(.*?)```", re.DOTALL)

_OUTPUT_FORMAT = """### OUTPUT FORMAT
Respond with ONLY valid JSON (no markdown, no explanation):
{{"next": "<one of: {targets}>", "reasoning": "Brief explanation of why"}}"""


def parse_routing_decision(text: str) -> RoutingDecision:
    """
    Decode classifier output into a RoutingDecision.

    Raises:
        RoutingParseError: no JSON object found, or `next` is not one of
            the Target values.
    """
    payload = _extract_json_object(text)
    if payload is None:
        raise RoutingParseError("Classifier output is not a JSON object", raw=text)
    try:
        return RoutingDecision.model_validate(payload)
    except ValidationError as e:
        raise RoutingParseError(
            f"Classifier returned an invalid routing decision: {payload.get('next')!r}",
            raw=text,
        ) from e


def _extract_json_object(text: str) -> dict | None:
    candidates = [text.strip()]
    match = _FENCE_RE.search(text)
    if match:
        candidates.append(match.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            decoded = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(decoded, dict):
            return decoded
    return None


class Supervisor:
    """Routes the run to the next worker or to Finish."""

    def __init__(
        self,
        llm: LLMProvider,
        routing_guidance: str,
        asset_label: str = "market",
        max_visits: int | None = None,
        history_tail: int | None = None,
        temperature: float | None = None,
    ) -> None:
        self._llm = llm
        self.routing_guidance = routing_guidance
        self.asset_label = asset_label
        self.max_visits = max_visits if max_visits is not None else settings.max_visits
        self.history_tail = (
            history_tail if history_tail is not None else settings.supervisor_history_tail
        )
        self._temperature = (
            temperature if temperature is not None else settings.llm_supervisor_temperature
        )

    def build_prompt(self, state: AdvisorState) -> str:
        recent = "\n".join(m.content for m in state.tail(self.history_tail)) or "(none)"
        targets = ", ".join(t.value for t in Target)
        return (
            f"You are a routing supervisor for a {self.asset_label} advisory system.\n"
            "Your ONLY job is to pick the specialist who should act next, or Finish.\n"
            "You CANNOT answer questions directly. You CANNOT execute tools.\n\n"
            f"{self.routing_guidance}\n\n"
            "### ROUTING RULES\n"
            "1. For a simple price query: call Technical ONCE, then Finish\n"
            "2. For a single indicator query: call Technical ONCE, then Finish\n"
            "3. For open-ended analysis requests (\"Analyze X\"): call 2-3 relevant "
            "specialists, then Finish\n"
            "4. ALWAYS choose Finish if the collected data already answers the question\n"
            f"5. {state.visit_count} specialist visits made. Maximum is {self.max_visits}. "
            "If two or more visits were made, strongly prefer Finish\n\n"
            f"### DATA COLLECTED SO FAR\n{state.data_json()}\n\n"
            f"### RECENT TEAM MESSAGES\n{recent}\n\n"
            + _OUTPUT_FORMAT.format(targets=targets)
        )

    async def route(self, state: AdvisorState) -> RoutingDecision:
        if state.visit_count >= self.max_visits:
            decision = RoutingDecision(
                next=Target.FINISH,
                reasoning=(
                    f"Visit limit reached ({state.visit_count}/{self.max_visits}). "
                    "Proceeding with the data collected."
                ),
            )
            logger.info(
                "[Supervisor] Maximum visits reached (%d). Forcing Finish.",
                state.visit_count,
            )
        else:
            decision = await self._classify(state)
            logger.info(
                "[Supervisor] Routing to %s - %s (visits: %d)",
                decision.next.value, decision.reasoning, state.visit_count,
            )

        state.next_target = decision.next
        state.append_message(Message(
            role=Role.AGENT,
            content=f"[Routing to {decision.next.value}] {decision.reasoning}".rstrip(),
            sender="supervisor",
        ))
        return decision

    async def _classify(self, state: AdvisorState) -> RoutingDecision:
        try:
            response = await self._llm.complete(
                messages=[{"role": "user", "content": state.query}],
                system=self.build_prompt(state),
                temperature=self._temperature,
                max_tokens=256,
            )
        except Exception as e:
            raise RoutingClassificationFailure(f"Routing classifier call failed: {e}") from e

        try:
            return parse_routing_decision(response.content)
        except RoutingParseError as e:
            logger.error("[Supervisor] %s. Raw output: %s", e, e.raw[:200])
            raise

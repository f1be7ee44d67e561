# =============================================================================
# Worker Agents — One Reasoning Step + Tool Calls per Visit
# =============================================================================
#
# A Worker is a specialist role (Technical / Sentiment / Research) bound at
# construction time to a fixed set of tools. Each visit:
#
#   1. REASON  — one LLM call over the conversation so far, offered only
#                the worker's own tools
#   2. EXECUTE — if the model requested tool calls, the ToolBridge runs
#                them and every ToolResult is merged into
#                state.data[category]
#   3. NOTE    — if no tools were requested, the model's text is appended
#                to the conversation as commentary
#   4. COUNT   — visit_count += 1, on every path
#
# Control always returns to the supervisor. A worker never raises for tool
# problems (they are error payloads in data) or for a failed reasoning call
# (the failure is noted in the conversation and the visit still counts).
# Only cancellation escapes.
#
# DESIGN DECISION: Charge one visit even when no tool was called. The
# termination bound depends on it: a worker that keeps chatting without
# fetching anything must still use up the budget.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from advisor.agents.bridge import ToolBridge
from advisor.agents.state import AdvisorState, Message, Role, Target
from advisor.config import settings
from advisor.services.llm import LLMProvider
from advisor.tools.base import Tool

logger = logging.getLogger(__name__)


class Worker:
    """A specialist bound to a fixed, non-overlapping subset of tools."""

    def __init__(
        self,
        target: Target,
        category: str,
        title: str,
        system_prompt: str,
        tools: Sequence[Tool],
        llm: LLMProvider,
        temperature: float | None = None,
        max_tokens: int | None = None,
        parallel_tool_calls: bool | None = None,
    ) -> None:
        if target is Target.FINISH:
            raise ValueError("Finish is not a worker target")
        self.target = target
        self.category = category
        self.title = title
        self.system_prompt = system_prompt
        self._llm = llm
        self._temperature = (
            temperature if temperature is not None else settings.llm_worker_temperature
        )
        self._max_tokens = max_tokens or settings.llm_worker_max_tokens
        self._bridge = ToolBridge(tools, parallel=parallel_tool_calls)
        self._tool_specs = [tool.spec() for tool in tools]

    @property
    def capabilities(self) -> tuple[str, ...]:
        return self._bridge.tool_names

    async def visit(
        self,
        state: AdvisorState,
        cancel_event: asyncio.Event | None = None,
    ) -> AdvisorState:
        """Run one reasoning step, execute requested tools, and count the visit."""
        try:
            response = await self._llm.complete(
                messages=state.transcript(),
                system=self.system_prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                tools=self._tool_specs,
            )
        except Exception as e:
            logger.warning("[%s] Reasoning step failed: %s", self.title, e)
            state.append_message(Message(
                role=Role.AGENT,
                content=f"[{self.title}] Analysis unavailable: {e}",
                sender=self.category,
            ))
            state.record_visit()
            return state

        if response.tool_calls:
            logger.info(
                "[%s] Requested %d tool call(s): %s",
                self.title, len(response.tool_calls),
                ", ".join(call.name for call in response.tool_calls),
            )
            state.append_message(Message(
                role=Role.AGENT,
                content=response.content or (
                    f"[{self.title}] Fetched "
                    + ", ".join(call.name for call in response.tool_calls)
                ),
                tool_calls=tuple(response.tool_calls),
                sender=self.category,
            ))
            results = await self._bridge.invoke(response.tool_calls, cancel_event=cancel_event)
            state.merge_results(self.category, results)
        else:
            logger.info("[%s] No tools called; recording commentary", self.title)
            state.append_message(Message(
                role=Role.AGENT,
                content=response.content,
                sender=self.category,
            ))

        state.record_visit()
        return state

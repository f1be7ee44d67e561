"""
Tool invocation bridge.

Executes the tool calls requested by one worker reasoning step and
normalises each outcome into a ToolResult. Nothing raised by a tool
escapes: unknown tools, validation problems and unexpected exceptions all
become ``{"error": ...}`` payloads. Caching, retries and rate limiting
belong to the tools themselves.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence

from advisor.agents.state import ToolResult
from advisor.config import settings
from advisor.exceptions import RunCancelled
from advisor.services.llm import ToolCall
from advisor.tools.base import Tool

logger = logging.getLogger(__name__)


class ToolBridge:
    def __init__(self, tools: Iterable[Tool], parallel: bool | None = None) -> None:
        self._tools: dict[str, Tool] = {tool.name: tool for tool in tools}
        self.parallel = settings.parallel_tool_calls if parallel is None else parallel

    @property
    def tool_names(self) -> tuple[str, ...]:
        return tuple(self._tools)

    @property
    def tools(self) -> Mapping[str, Tool]:
        return self._tools

    async def invoke(
        self,
        tool_calls: Sequence[ToolCall],
        cancel_event: asyncio.Event | None = None,
    ) -> list[ToolResult]:
        """
        Run every requested call and return results in request order.

        Calls carry no ordering dependency on one another, so by default
        they run concurrently. Result order always matches request order,
        which makes duplicate tool names overwrite in call order when
        merged into state.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelled("Run cancelled before tool execution")

        if self.parallel and len(tool_calls) > 1:
            results = list(await asyncio.gather(
                *(self._invoke_one(call) for call in tool_calls)
            ))
        else:
            results = []
            for call in tool_calls:
                if cancel_event is not None and cancel_event.is_set():
                    raise RunCancelled("Run cancelled during tool execution")
                results.append(await self._invoke_one(call))

        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelled("Run cancelled after tool execution")
        return results

    async def _invoke_one(self, call: ToolCall) -> ToolResult:
        tool = self._tools.get(call.name)
        if tool is None:
            logger.warning(
                "Requested tool '%s' is not available (have: %s)",
                call.name, ", ".join(self._tools),
            )
            return ToolResult(call.name, {"error": f"Unknown tool '{call.name}'"})

        try:
            payload = await tool.invoke(call.arguments)
        except Exception as e:
            logger.warning("Tool %s raised: %s", call.name, e)
            return ToolResult(call.name, {"error": str(e) or e.__class__.__name__})

        if not isinstance(payload, Mapping):
            return ToolResult(call.name, {"result": payload})
        if "error" in payload:
            logger.info("Tool %s returned error payload: %s", call.name, payload["error"])
        return ToolResult(call.name, dict(payload))

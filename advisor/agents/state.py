# =============================================================================
# Advisor State — The Per-Query Accumulator
# =============================================================================
#
# One AdvisorState is created per user query and threaded through every
# node of the run: supervisor, workers, final synthesis. It is never shared
# between queries and simply goes out of scope when the run ends.
#
# Update rules (enforced by the methods below, not by callers):
#   messages     append-only; Message objects are frozen
#   data         category -> {tool name -> last result}; merges are a
#                shallow union per category, repeated tool names overwrite
#                (last write wins), categories never interfere
#   next_target  the supervisor's latest decision (None before the first)
#   visit_count  +1 per completed worker visit, never decreases
#
# DESIGN DECISION: Plain mutable dataclass, not a LangGraph reducer
# schema. The driver loop is explicit and single-threaded per run, so
# nodes mutate the state through these methods and return it.
# =============================================================================

from __future__ import annotations

import enum
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict

from advisor.services.llm import ToolCall


class Role(str, enum.Enum):
    USER = "user"
    AGENT = "agent"


class Target(str, enum.Enum):
    """Closed set of routing targets the supervisor may choose."""

    TECHNICAL = "Technical"
    SENTIMENT = "Sentiment"
    RESEARCH = "Research"
    FINISH = "Finish"


WORKER_TARGETS: tuple[Target, ...] = (Target.TECHNICAL, Target.SENTIMENT, Target.RESEARCH)


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    sender: str | None = None  # "supervisor", a worker category, or "final"


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call: a JSON-shaped payload or {"error": ...}."""

    tool_name: str
    payload: dict[str, Any]

    @property
    def is_error(self) -> bool:
        return "error" in self.payload


class RoutingDecision(BaseModel):
    """
    One supervisor classification.

    `next` only accepts the exact Target values; anything else fails
    validation and surfaces as a RoutingParseError.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    next: Target
    reasoning: str = ""


@dataclass
class AdvisorState:
    messages: list[Message] = field(default_factory=list)
    data: dict[str, dict[str, Any]] = field(default_factory=dict)
    next_target: Target | None = None
    visit_count: int = 0

    @classmethod
    def start(cls, query: str) -> AdvisorState:
        state = cls()
        state.append_message(Message(role=Role.USER, content=query))
        return state

    @property
    def query(self) -> str:
        """The user's question (first user message)."""
        for message in self.messages:
            if message.role is Role.USER:
                return message.content
        return ""

    def append_message(self, message: Message) -> None:
        self.messages.append(message)

    def merge_results(self, category: str, results: Iterable[ToolResult]) -> None:
        """Fold tool results into data[category], in order, last write wins."""
        bucket = self.data.setdefault(category, {})
        for result in results:
            bucket[result.tool_name] = result.payload

    def record_visit(self) -> None:
        self.visit_count += 1

    def data_keys(self) -> set[tuple[str, str]]:
        return {
            (category, tool_name)
            for category, results in self.data.items()
            for tool_name in results
        }

    def tail(self, count: int) -> list[Message]:
        if count <= 0:
            return []
        return self.messages[-count:]

    def transcript(self) -> list[dict[str, str]]:
        """
        Render the run so far as a single user turn for an LLM call.

        Team notes are folded into the user message rather than sent as
        assistant turns, so every provider sees a conversation that starts
        and ends with the user.
        """
        notes = [
            f"- {m.content}" for m in self.messages
            if m.role is Role.AGENT and m.content
        ]
        content = self.query
        if notes:
            content += "\n\nNotes from the advisory team so far:\n" + "\n".join(notes)
        return [{"role": "user", "content": content}]

    def data_json(self) -> str:
        return json.dumps(self.data, indent=2, default=str)

    def snapshot(self) -> dict[str, Any]:
        """JSON-friendly view used by the API response."""
        return {
            "messages": [
                {
                    "role": m.role.value,
                    "content": m.content,
                    "sender": m.sender,
                    "tool_calls": [
                        {"name": c.name, "arguments": c.arguments} for c in m.tool_calls
                    ],
                }
                for m in self.messages
            ],
            "data": self.data,
            "next_target": self.next_target.value if self.next_target else None,
            "visit_count": self.visit_count,
        }

# =============================================================================
# Final Synthesis — The Single User-Facing Answer
# =============================================================================
#
# Terminal step of every run. Takes the complete data map plus the whole
# conversation (question, routing notes, worker commentary and failure
# notes) and asks the smart model for one natural-language answer.
#
# The prompt forbids meta-commentary ("Based on the data provided...",
# "Let me analyze...") and any mention of routing, specialists or agents:
# the user should read market analysis, not a description of the pipeline.
# Tool results that came back as {"error": ...} are pointed out so the
# answer says the data point was unavailable instead of inventing one.
#
# Failure here is not recoverable: call errors and empty answers raise
# SynthesisFailure, which fails the whole query.
# =============================================================================

from __future__ import annotations

import logging

from advisor.agents.state import AdvisorState, Message, Role
from advisor.config import settings
from advisor.exceptions import SynthesisFailure
from advisor.services.llm import LLMProvider

logger = logging.getLogger(__name__)


class FinalSynthesizer:
    def __init__(
        self,
        llm: LLMProvider,
        persona: str,
        example: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._llm = llm
        self.persona = persona
        self.example = example
        self._temperature = temperature if temperature is not None else settings.llm_temperature
        self._max_tokens = max_tokens or settings.llm_max_tokens

    def build_prompt(self, state: AdvisorState) -> str:
        unavailable = sorted(
            f"{category}.{tool}"
            for category, results in state.data.items()
            for tool, payload in results.items()
            if isinstance(payload, dict) and "error" in payload
        )
        sections = [
            self.persona,
            f"Available market data:\n{state.data_json()}",
            (
                "CRITICAL INSTRUCTIONS:\n"
                "1. Start IMMEDIATELY with your analysis - NO preamble, NO meta-commentary\n"
                "2. Include specific numbers, prices, and percentages\n"
                "3. Write naturally, synthesizing the data into insights\n"
                "4. Never mention specialists, agents, tools, routing, or how the data "
                "was gathered\n"
                "5. If a data point is marked with an error, say briefly that it is "
                "currently unavailable; never invent a value for it\n\n"
                "STRICTLY FORBIDDEN openings: \"Let me analyze...\", "
                "\"Based on the data provided...\", \"Looking at the information...\", "
                "\"Here's my analysis...\"\n\n"
                "STRUCTURE:\n"
                "- Begin directly with market insight\n"
                "- Weave in specific numbers with interpretation\n"
                "- Use ## headers for sections on longer answers\n"
                "- End with an actionable perspective"
            ),
        ]
        if unavailable:
            sections.append("Unavailable data points: " + ", ".join(unavailable))
        if self.example:
            sections.append(f"Example of the expected tone:\n{self.example}")
        return "\n\n".join(sections)

    async def synthesize(self, state: AdvisorState) -> str:
        logger.info(
            "[FinalSynthesis] Categories with data: %s",
            ", ".join(sorted(state.data)) or "none",
        )
        try:
            response = await self._llm.complete(
                messages=state.transcript(),
                system=self.build_prompt(state),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception as e:
            logger.exception("[FinalSynthesis] Answer generation failed")
            raise SynthesisFailure(f"Final answer generation failed: {e}") from e

        answer = (response.content or "").strip()
        if not answer:
            raise SynthesisFailure("Final answer generation returned no text")

        state.append_message(Message(role=Role.AGENT, content=answer, sender="final"))
        return answer

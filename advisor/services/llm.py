# =============================================================================
# Multi-Provider LLM Abstraction — Pluggable AI Backend with Tool Calling
# =============================================================================
#
# Provides a common interface for LLM completions, with concrete
# implementations for Anthropic (Claude) and OpenAI-compatible APIs
# (DeepSeek, Qwen, Groq, OpenAI).
#
# Workers need native tool calling: they hand the provider a list of
# ToolSpec objects and get back ToolCall objects. Each provider translates
# both directions to its own wire format:
#   - Anthropic: tools=[{name, description, input_schema}], "tool_use" blocks
#   - OpenAI:    tools=[{type: function, function: {...}}], message.tool_calls
#                whose arguments arrive as a JSON string
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Tests drive the orchestrator with scripted fakes that only implement
# `complete()`; nothing has to inherit from a base class.
#
# DESIGN DECISION: Two tiers, one factory.
# get_llm_provider("smart") serves the supervisor and final synthesis,
# get_llm_provider("fast") serves the workers. Each role is a lazy
# singleton.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   ├── OpenAICompatibleProvider — Any OpenAI-compatible API
#   ├── get_llm_provider()       — Per-role singleton factory, reads config
#   └── create_provider_from_id() — Non-singleton factory
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from advisor.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolSpec:
    """Provider-neutral description of a tool offered to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Normalises the different response formats (Anthropic vs OpenAI)
    into a single structure that downstream code can consume.
    """

    content: str           # The generated text ("" when only tools were called)
    model: str             # Model identifier (e.g., "claude-sonnet-4-6")
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response
    tool_calls: list[ToolCall] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Protocol defining the LLM provider interface.

    Both Anthropic and OpenAI-compatible implementations must provide
    the `complete()` method. Checked statically by mypy.
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[ToolSpec] | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation messages as dicts with "role" and "content".
                Roles: "user", "assistant" (no "system" — use the system param).
            system: System prompt for the LLM.
            temperature: Override sampling temperature (default from config).
            max_tokens: Override max output tokens (default from config).
            tools: Tools the model may call. None or [] disables tool use.

        Returns:
            LLMResponse with generated text, requested tool calls, and usage.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system".
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )
        self._max_tokens = max_tokens or settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[ToolSpec] | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": (
                temperature if temperature is not None else self._temperature
            ),
        }

        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = [
                {
                    "name": spec.name,
                    "description": spec.description,
                    "input_schema": spec.input_schema,
                }
                for spec in tools
            ]

        response = await self._client.messages.create(**kwargs)

        # Text and tool_use blocks can be interleaved
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    name=block.name,
                    arguments=dict(block.input or {}),
                    id=block.id,
                ))

        return LLMResponse(
            content="\n".join(text_parts),
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            tool_calls=tool_calls,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (DeepSeek, Qwen, Groq, etc.)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that follows the OpenAI spec.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.groq.com/openai/v1
        LLM_API_KEY=your-key
        LLM_MODEL=llama-3.3-70b-versatile
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )
        self._max_tokens = max_tokens or settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[ToolSpec] | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        # OpenAI: system prompt goes as the first message
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        kwargs: dict = {
            "model": self._model,
            "messages": all_messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": (
                temperature if temperature is not None else self._temperature
            ),
        }
        if tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": spec.name,
                        "description": spec.description,
                        "parameters": spec.input_schema,
                    },
                }
                for spec in tools
            ]

        response = await self._client.chat.completions.create(**kwargs)

        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                name=call.function.name,
                arguments=_decode_arguments(call.function.arguments),
                id=call.id,
            )
            for call in (message.tool_calls or [])
        ]

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        return LLMResponse(
            content=message.content or "",
            model=response.model or self._model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            tool_calls=tool_calls,
        )


def _decode_arguments(raw: str | None) -> dict[str, Any]:
    """
    Decode an OpenAI function-call argument string.

    Undecodable arguments become an empty dict; the tool's own input
    validation then reports the problem as an error payload.
    """
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding undecodable tool arguments: %s", raw[:200])
        return {}
    return decoded if isinstance(decoded, dict) else {}


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_ROLES = {"smart", "fast"}

# Lazy per-role singletons — avoid re-creating clients on every request
_providers: dict[str, AnthropicProvider | OpenAICompatibleProvider] = {}


def get_llm_provider(
    role: str = "smart",
) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Factory that returns the configured LLM provider for a role.

    - "smart": supervisor routing and final synthesis (llm_model)
    - "fast": worker reasoning steps (llm_worker_model, else llm_model)

    Reads `llm_provider` from settings to pick the implementation.
    """
    if role not in _ROLES:
        raise ValueError(f"Unknown LLM role '{role}'. Expected one of {sorted(_ROLES)}")

    provider = _providers.get(role)
    if provider is None:
        if role == "fast":
            model = settings.llm_worker_model or settings.llm_model
            temperature = settings.llm_worker_temperature
            max_tokens = settings.llm_worker_max_tokens
        else:
            model = settings.llm_model
            temperature = settings.llm_temperature
            max_tokens = settings.llm_max_tokens

        if settings.llm_provider == "openai_compatible":
            provider = OpenAICompatibleProvider(
                model=model, temperature=temperature, max_tokens=max_tokens,
            )
        else:
            provider = AnthropicProvider(
                model=model, temperature=temperature, max_tokens=max_tokens,
            )
        _providers[role] = provider
    return provider


# ---------------------------------------------------------------------------
# Non-Singleton Factory
# ---------------------------------------------------------------------------
# Builds a fresh provider from an id string, e.g. to run one advisor with
# a different model than the configured default.
# ---------------------------------------------------------------------------


_KNOWN_PROVIDER_TYPES = {"anthropic", "openai_compatible"}


def _parse_provider_id(
    provider_id: str,
) -> tuple[str, str, str | None]:
    """
    Parse a provider_id string into (provider_type, model, base_url).

    Formats supported:
        "anthropic/claude-sonnet-4-6"
            → ("anthropic", "claude-sonnet-4-6", None)
        "openai_compatible/llama-3.1-8b-instant@https://api.groq.com/openai/v1"
            → ("openai_compatible", "llama-3.1-8b-instant",
               "https://api.groq.com/openai/v1")

    Raises:
        ValueError: If the format is unrecognisable or provider type unknown.
    """
    if "/" not in provider_id:
        raise ValueError(
            f"Invalid provider_id '{provider_id}'. "
            "Expected format: 'provider_type/model' or "
            "'provider_type/model@base_url'"
        )

    provider_type, rest = provider_id.split("/", 1)

    base_url: str | None = None
    if "@" in rest:
        model, base_url = rest.split("@", 1)
    else:
        model = rest

    if provider_type not in _KNOWN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider type '{provider_type}'. "
            f"Supported types: {sorted(_KNOWN_PROVIDER_TYPES)}"
        )

    return provider_type, model, base_url


def create_provider_from_id(
    provider_id: str,
    api_key: str | None = None,
) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Create a fresh, non-singleton LLM provider from a provider ID string.

    Raises:
        ValueError: If provider_id is invalid or API key is missing.
    """
    provider_type, model, base_url = _parse_provider_id(provider_id)

    if provider_type == "anthropic":
        return AnthropicProvider(api_key=api_key, model=model)

    return OpenAICompatibleProvider(
        api_key=api_key, model=model, base_url=base_url,
    )

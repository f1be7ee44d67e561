from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from advisor.exceptions import ToolFetchError
from advisor.services.cache import ToolCache, make_cache_key
from advisor.services.llm import ToolSpec
from advisor.tools.http import MarketDataClient

logger = logging.getLogger(__name__)


class Tool(ABC):
    """Base class for market-data tools using pydantic models for validation.

    Subclasses declare ``name``, ``description`` and ``InputModel`` and
    implement ``_run``. ``invoke`` never raises for expected failures: bad
    arguments and ``ToolFetchError`` come back as ``{"error": ...}`` payloads
    carrying whatever identifying context the tool adds via ``_error_context``.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    InputModel: ClassVar[type[BaseModel]]

    def __init__(self, http: MarketDataClient, cache: ToolCache | None = None) -> None:
        self.http = http
        self.cache = cache

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            input_schema=self.InputModel.model_json_schema(),
        )

    async def invoke(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        try:
            params = self.InputModel.model_validate(dict(arguments))
        except ValidationError as e:
            logger.warning("Invalid arguments for %s: %s", self.name, e)
            return {"error": f"Invalid arguments for {self.name}: {_summarise(e)}"}

        try:
            return await self._run(params)
        except ToolFetchError as e:
            logger.warning("Tool %s failed: %s", self.name, e)
            return {"error": str(e), **self._error_context(params)}

    @abstractmethod
    async def _run(self, params: BaseModel) -> dict[str, Any]:
        ...

    def _error_context(self, params: BaseModel) -> dict[str, Any]:
        return {}

    async def _cached(self, key_parts: tuple[str, ...]) -> dict[str, Any] | None:
        if self.cache is None:
            return None
        payload = await self.cache.get(make_cache_key(self.name, *key_parts))
        if payload is None:
            return None
        return {**payload, "cached": True}

    async def _store(self, key_parts: tuple[str, ...], payload: dict[str, Any]) -> None:
        if self.cache is not None:
            await self.cache.set(make_cache_key(self.name, *key_parts), payload)


def _summarise(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def base_currency(symbol: str) -> str:
    """Normalise a pair symbol to its base asset ("BTC/USD" -> "BTC")."""
    return symbol.split("/")[0].strip().upper()


def to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int(value: Any) -> int | None:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


__all__ = ["Tool", "base_currency", "to_float", "to_int"]

"""Social sentiment tool backed by the dashboard's Reddit analysis endpoint."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from advisor.config import settings
from advisor.services.cache import ToolCache
from advisor.tools.base import Tool, base_currency, to_float, to_int
from advisor.tools.http import MarketDataClient


class SentimentInput(BaseModel):
    symbol: str = Field(
        ...,
        min_length=1,
        description=(
            "Asset symbol (e.g., 'BTC/USD', 'TSLA', 'EUR/USD'). "
            "Pairs are normalized to their base asset."
        ),
    )


class RedditSentimentTool(Tool):
    name = "get_reddit_sentiment"
    description = (
        "Analyzes social sentiment from Reddit trading communities for a specific "
        "asset. Returns bullish/bearish percentages, post count, and overall "
        "sentiment. Use this for community sentiment, social trends, or FOMO/FUD."
    )
    InputModel = SentimentInput

    def __init__(
        self,
        http: MarketDataClient,
        cache: ToolCache | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(http, cache)
        self.base_url = (base_url or settings.internal_api_base_url).rstrip("/")

    async def _run(self, params: SentimentInput) -> dict[str, Any]:
        symbol = base_currency(params.symbol)
        cached = await self._cached((symbol,))
        if cached is not None:
            return cached

        data = await self.http.get_json(f"{self.base_url}/api/reddit", params={"symbol": symbol})
        data = data if isinstance(data, dict) else {}
        result = {
            "symbol": symbol,
            "bullish_percentage": to_float(data.get("bullish_percentage")) or 0.0,
            "bearish_percentage": to_float(data.get("bearish_percentage")) or 0.0,
            "neutral_percentage": to_float(data.get("neutral_percentage")) or 0.0,
            "total_posts": to_int(data.get("total_posts")) or 0,
            "overall_sentiment": data.get("overall_sentiment") or "neutral",
            "confidence": data.get("confidence") or "low",
            "analysis": data.get("analysis") or "No detailed analysis available",
        }
        await self._store((symbol,), result)
        return result

    def _error_context(self, params: SentimentInput) -> dict[str, Any]:
        return {"symbol": base_currency(params.symbol)}

"""Research tools: Tavily web search and the dashboard's market-intelligence feed."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Literal

from pydantic import BaseModel, Field

from advisor.config import settings
from advisor.exceptions import ToolFetchError
from advisor.services.cache import ToolCache
from advisor.tools.base import Tool, base_currency
from advisor.tools.http import MarketDataClient

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 5
SNIPPET_LENGTH = 200
INTELLIGENCE_TIMEOUT_SECONDS = 30.0


class SearchInput(BaseModel):
    query: str = Field(..., min_length=2, description="Search query for market news and updates")


class WebSearchTool(Tool):
    """Tavily search restricted to a per-asset-class list of news domains."""

    name = "web_search"
    description = (
        "Searches the web for recent market news, articles, and updates. Use this "
        "to find earnings, regulatory changes, analyst ratings, or market events."
    )
    InputModel = SearchInput

    def __init__(
        self,
        http: MarketDataClient,
        cache: ToolCache | None = None,
        include_domains: Sequence[str] = (),
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(http, cache)
        self.include_domains = list(include_domains)
        self.api_key = api_key if api_key is not None else settings.tavily_api_key
        self.base_url = (base_url or settings.tavily_base_url).rstrip("/")

    async def _run(self, params: SearchInput) -> dict[str, Any]:
        if not self.api_key:
            raise ToolFetchError("TAVILY_API_KEY not configured")

        body: dict[str, Any] = {
            "api_key": self.api_key,
            "query": params.query,
            "search_depth": "advanced",
            "max_results": MAX_SEARCH_RESULTS,
            "include_answer": True,
            "include_raw_content": False,
        }
        if self.include_domains:
            body["include_domains"] = self.include_domains

        data = await self.http.post_json(f"{self.base_url}/search", body)
        if not isinstance(data, dict):
            raise ToolFetchError("Malformed search response")

        results = []
        for item in (data.get("results") or [])[:MAX_SEARCH_RESULTS]:
            content = item.get("content") or ""
            if len(content) > SNIPPET_LENGTH:
                content = content[:SNIPPET_LENGTH] + "..."
            results.append({
                "title": item.get("title"),
                "url": item.get("url"),
                "content": content,
            })

        return {
            "query": params.query,
            "answer": data.get("answer") or "",
            "results": results,
        }

    def _error_context(self, params: SearchInput) -> dict[str, Any]:
        return {"query": params.query}


class IntelligenceInput(BaseModel):
    symbol: str = Field(..., min_length=1, description="Asset symbol (e.g., 'BTC/USD', 'TSLA')")
    type: Literal["comprehensive", "alerts", "news"] = Field(
        default="comprehensive",
        description=(
            "'comprehensive' (full analysis), 'alerts' (urgent warnings), "
            "'news' (recent updates)"
        ),
    )


class MarketIntelligenceTool(Tool):
    name = "get_market_intelligence"
    description = (
        "Fetches market intelligence for an asset including recent news, "
        "regulatory updates, geopolitical events, market alerts, and macro "
        "analysis. Use this for broader market context and external factors."
    )
    InputModel = IntelligenceInput

    def __init__(
        self,
        http: MarketDataClient,
        cache: ToolCache | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(http, cache)
        self.base_url = (base_url or settings.internal_api_base_url).rstrip("/")

    async def _run(self, params: IntelligenceInput) -> dict[str, Any]:
        symbol = base_currency(params.symbol)
        key = (params.type, symbol)
        cached = await self._cached(key)
        if cached is not None:
            return cached

        data = await self.http.get_json(
            f"{self.base_url}/api/market-intelligence",
            params={"symbol": symbol, "type": params.type},
            timeout=INTELLIGENCE_TIMEOUT_SECONDS,
        )
        data = data if isinstance(data, dict) else {}
        result = {
            "symbol": symbol,
            "type": params.type,
            "analysis": data.get("synthesizedAnalysis") or data.get("analysis") or "",
            "alerts": data.get("alerts") or [],
            "news_count": len(data.get("results") or []),
        }
        await self._store(key, result)
        return result

    def _error_context(self, params: IntelligenceInput) -> dict[str, Any]:
        return {"symbol": base_currency(params.symbol), "type": params.type}

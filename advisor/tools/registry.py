"""Per-asset-class tool catalogs."""
from __future__ import annotations

import logging

from advisor.exceptions import UnknownDomainError
from advisor.services.cache import ToolCache, get_tool_cache
from advisor.tools.base import Tool
from advisor.tools.http import MarketDataClient, get_market_data_client
from advisor.tools.market import (
    CryptoPriceTool,
    ForexIndicatorsTool,
    ForexQuoteTool,
    StockIndicatorsTool,
    StockQuoteTool,
    TechnicalIndicatorsTool,
)
from advisor.tools.search import MarketIntelligenceTool, WebSearchTool
from advisor.tools.social import RedditSentimentTool

logger = logging.getLogger(__name__)

_TECHNICAL_TOOLS: dict[str, tuple[type[Tool], ...]] = {
    "crypto": (CryptoPriceTool, TechnicalIndicatorsTool),
    "stock": (StockQuoteTool, StockIndicatorsTool),
    "forex": (ForexQuoteTool, ForexIndicatorsTool),
}

NEWS_DOMAINS: dict[str, tuple[str, ...]] = {
    "crypto": (
        "coindesk.com", "cointelegraph.com", "decrypt.co",
        "bloomberg.com", "reuters.com", "forbes.com",
    ),
    "stock": (
        "reuters.com", "bloomberg.com", "cnbc.com",
        "marketwatch.com", "wsj.com", "finance.yahoo.com",
    ),
    "forex": (
        "fxstreet.com", "forexlive.com", "dailyfx.com",
        "reuters.com", "bloomberg.com",
    ),
}


def build_tool_catalog(
    asset_class: str,
    http: MarketDataClient | None = None,
    cache: ToolCache | None = None,
) -> dict[str, Tool]:
    """
    Instantiate every tool available to one asset class, keyed by tool name.

    All tools share the given HTTP client and cache; missing collaborators
    fall back to the process-wide instances.
    """
    if asset_class not in _TECHNICAL_TOOLS:
        raise UnknownDomainError(f"No tools registered for '{asset_class}'")

    http = http or get_market_data_client()
    cache = cache if cache is not None else get_tool_cache()

    tools: list[Tool] = [cls(http, cache) for cls in _TECHNICAL_TOOLS[asset_class]]
    tools.append(RedditSentimentTool(http, cache))
    tools.append(WebSearchTool(http, cache, include_domains=NEWS_DOMAINS[asset_class]))
    tools.append(MarketIntelligenceTool(http, cache))

    catalog = {tool.name: tool for tool in tools}
    logger.debug("Tool catalog for %s: %s", asset_class, sorted(catalog))
    return catalog

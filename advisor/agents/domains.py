# =============================================================================
# Domain Profiles — Crypto / Stock / Forex Advisors
# =============================================================================
#
# The orchestrator engine is asset-class agnostic. A DomainProfile supplies
# everything that differs between advisors:
#
#   - which tools each worker is bound to (non-overlapping per domain)
#   - the worker role prompts
#   - the supervisor's routing guidance
#   - the analyst persona used for the final answer
#
# Adding an asset class means adding a profile here and a technical tool
# pair in tools/registry.py. The state machine is never re-derived.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass

from advisor.agents.state import Target
from advisor.exceptions import UnknownDomainError


@dataclass(frozen=True)
class WorkerSpec:
    target: Target
    category: str
    title: str
    prompt: str
    tool_names: tuple[str, ...]


@dataclass(frozen=True)
class DomainProfile:
    name: str
    asset_label: str
    description: str
    workers: tuple[WorkerSpec, ...]
    routing_guidance: str
    synthesis_persona: str
    synthesis_example: str = ""

    def worker_spec(self, target: Target) -> WorkerSpec:
        for spec in self.workers:
            if spec.target is target:
                return spec
        raise KeyError(target)

    @property
    def tool_bindings(self) -> dict[str, list[str]]:
        return {spec.target.value: list(spec.tool_names) for spec in self.workers}


_SENTIMENT_TOOLS = ("get_reddit_sentiment",)
_RESEARCH_TOOLS = ("web_search", "get_market_intelligence")


def _routing_guidance(technical: str, sentiment: str, research: str) -> str:
    return (
        "### SPECIALISTS\n"
        f"Technical: choose for {technical}\n"
        f"Sentiment: choose for {sentiment}\n"
        f"Research: choose for {research}\n"
        "Finish: choose when the collected data answers the question and no "
        "further tool calls are needed"
    )


CRYPTO = DomainProfile(
    name="crypto",
    asset_label="crypto",
    description="Cryptocurrency advisor (prices, indicators, Reddit mood, crypto news)",
    workers=(
        WorkerSpec(
            target=Target.TECHNICAL,
            category="technical",
            title="Technical Analyst",
            prompt=(
                "You are a Technical Analyst specialist for cryptocurrencies.\n\n"
                "Your tools:\n"
                "- get_crypto_price: real-time price, volume and change data\n"
                "- get_technical_indicators: RSI, MACD, EMA, BBANDS, ATR, OBV, ADX and more\n\n"
                "Use your tools to gather the technical data the question needs, then "
                "summarise your findings briefly.\n"
                "Focus on: price action, momentum, trends, volatility, key levels."
            ),
            tool_names=("get_crypto_price", "get_technical_indicators"),
        ),
        WorkerSpec(
            target=Target.SENTIMENT,
            category="sentiment",
            title="Sentiment Analyst",
            prompt=(
                "You are a Sentiment Analyst specialist for cryptocurrencies.\n\n"
                "Your tools:\n"
                "- get_reddit_sentiment: Reddit community sentiment (bullish/bearish %, "
                "overall mood)\n\n"
                "Gather sentiment data for the requested coin and describe how the "
                "community perceives it.\n"
                "Focus on: bullish/bearish balance, FOMO/FUD, community confidence."
            ),
            tool_names=_SENTIMENT_TOOLS,
        ),
        WorkerSpec(
            target=Target.RESEARCH,
            category="research",
            title="Market Researcher",
            prompt=(
                "You are a Market Researcher specialist for cryptocurrencies.\n\n"
                "Your tools:\n"
                "- web_search: crypto news, regulatory updates, market events\n"
                "- get_market_intelligence: market analysis, alerts, geopolitical factors\n\n"
                "Research the context and external factors affecting the coin, then "
                "summarise the key points.\n"
                "Focus on: recent news, regulation, macro factors, alerts, adoption."
            ),
            tool_names=_RESEARCH_TOOLS,
        ),
    ),
    routing_guidance=_routing_guidance(
        technical="price queries, indicators (RSI, MACD, EMA), chart levels, trading signals",
        sentiment="Reddit and community mood, FOMO/FUD, social trends",
        research="news, regulation, geopolitics, macro context, broader market analysis",
    ),
    synthesis_persona=(
        "You are an expert Crypto Advisor delivering professional market analysis."
    ),
    synthesis_example=(
        "Bitcoin is trading at $42,350 (up 3.2% in 24h), holding above the $42,000 "
        "support level. The RSI at 58 indicates neutral-to-bullish momentum."
    ),
)

STOCK = DomainProfile(
    name="stock",
    asset_label="stock market",
    description="Equity advisor (quotes, indicator pack, Reddit mood, financial news)",
    workers=(
        WorkerSpec(
            target=Target.TECHNICAL,
            category="technical",
            title="Technical Analyst",
            prompt=(
                "You are a Technical Analyst specialist for stocks.\n\n"
                "Your tools:\n"
                "- get_stock_quote: real-time quote, OHLC, volume and daily change\n"
                "- get_stock_indicators: RSI, MACD, EMA20/50, Bollinger Bands, ATR, ADX\n\n"
                "Use your tools to gather the technical picture for the ticker, then "
                "summarise your findings briefly.\n"
                "Focus on: price action, momentum, trend strength, volatility, key levels."
            ),
            tool_names=("get_stock_quote", "get_stock_indicators"),
        ),
        WorkerSpec(
            target=Target.SENTIMENT,
            category="sentiment",
            title="Sentiment Analyst",
            prompt=(
                "You are a Sentiment Analyst specialist for stocks.\n\n"
                "Your tools:\n"
                "- get_reddit_sentiment: retail investor sentiment from Reddit\n\n"
                "Gather sentiment data for the ticker and describe how retail "
                "investors perceive it.\n"
                "Focus on: bullish/bearish balance, retail conviction, hype versus fear."
            ),
            tool_names=_SENTIMENT_TOOLS,
        ),
        WorkerSpec(
            target=Target.RESEARCH,
            category="research",
            title="Market Researcher",
            prompt=(
                "You are a Market Researcher specialist for stocks.\n\n"
                "Your tools:\n"
                "- web_search: company news, earnings, analyst ratings\n"
                "- get_market_intelligence: market analysis, alerts, macro factors\n\n"
                "Research the company and its market context, then summarise the key "
                "points.\n"
                "Focus on: earnings, guidance, analyst actions, sector and macro news."
            ),
            tool_names=_RESEARCH_TOOLS,
        ),
    ),
    routing_guidance=_routing_guidance(
        technical="stock quotes, indicators (RSI, MACD, moving averages), trend strength",
        sentiment="retail investor mood, Reddit discussion, hype or fear",
        research="earnings, company news, analyst ratings, sector and macro context",
    ),
    synthesis_persona=(
        "You are an expert Stock Advisor delivering professional equity analysis."
    ),
    synthesis_example=(
        "Tesla trades at $248.50 (down 1.4% today) with the 20-day EMA at $252 "
        "acting as near-term resistance. ADX at 31 confirms a strong trend."
    ),
)

FOREX = DomainProfile(
    name="forex",
    asset_label="forex",
    description="Currency pair advisor (exchange rates, indicators, trader mood, macro news)",
    workers=(
        WorkerSpec(
            target=Target.TECHNICAL,
            category="technical",
            title="Technical Analyst",
            prompt=(
                "You are a Technical Analyst for forex pairs.\n\n"
                "Your tools:\n"
                "- get_forex_quote: exchange rates and daily changes\n"
                "- get_forex_indicators: RSI, MACD, EMA, BBANDS, ATR, ADX for a pair\n\n"
                "Use your tools to gather the technical picture for the pair, then "
                "summarise your findings briefly.\n"
                "Focus on: exchange rate trends, momentum, volatility, key levels."
            ),
            tool_names=("get_forex_quote", "get_forex_indicators"),
        ),
        WorkerSpec(
            target=Target.SENTIMENT,
            category="sentiment",
            title="Sentiment Analyst",
            prompt=(
                "You are a Sentiment Analyst for forex markets.\n\n"
                "Your tools:\n"
                "- get_reddit_sentiment: forex trader sentiment and community mood\n\n"
                "Gather sentiment data for the pair's base currency and describe "
                "trader positioning.\n"
                "Focus on: bullish/bearish balance, trader confidence, market mood."
            ),
            tool_names=_SENTIMENT_TOOLS,
        ),
        WorkerSpec(
            target=Target.RESEARCH,
            category="research",
            title="Market Researcher",
            prompt=(
                "You are a Market Researcher for forex markets.\n\n"
                "Your tools:\n"
                "- web_search: forex news, central bank policy, economic releases\n"
                "- get_market_intelligence: market analysis, alerts, geopolitical factors\n\n"
                "Research the macro backdrop for the pair, then summarise the key points.\n"
                "Focus on: economic data, central bank decisions, geopolitical events."
            ),
            tool_names=_RESEARCH_TOOLS,
        ),
    ),
    routing_guidance=_routing_guidance(
        technical="exchange rates, pip moves, RSI, MACD, EMA, support/resistance",
        sentiment="trader sentiment and positioning, community mood",
        research="central banks, economic releases, geopolitics, macro context",
    ),
    synthesis_persona=(
        "You are an expert Forex Advisor delivering professional currency market analysis."
    ),
    synthesis_example=(
        "EUR/USD holds at 1.0845 (up 0.3%), just below the 50-day EMA at 1.0870. "
        "RSI at 54 leaves room in either direction ahead of the ECB decision."
    ),
)

PROFILES: dict[str, DomainProfile] = {p.name: p for p in (CRYPTO, STOCK, FOREX)}


def get_profile(domain: str) -> DomainProfile:
    """Look up a domain profile by name (case-insensitive)."""
    try:
        return PROFILES[domain.strip().lower()]
    except KeyError:
        raise UnknownDomainError(
            f"Unknown advisor domain '{domain}'. Available: {', '.join(PROFILES)}"
        ) from None

# =============================================================================
# Market Data Tools — Twelve Data Quotes & Technical Indicators
# =============================================================================
#
# Tools bound to the Technical worker of each advisor domain:
#   crypto: get_crypto_price, get_technical_indicators (one indicator/call)
#   stock:  get_stock_quote,  get_stock_indicators (fixed indicator bundle)
#   forex:  get_forex_quote,  get_forex_indicators (caller-chosen subset)
#
# Twelve Data reports many failures as HTTP 200 with a body like
# {"status": "error", "message": "..."}; those are treated the same as a
# non-2xx response.
#
# All indicators use the daily interval. Only the latest values are kept,
# which is what the synthesis prompt needs and keeps the state small.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, StringConstraints

from advisor.config import settings
from advisor.exceptions import ToolFetchError
from advisor.services.cache import ToolCache
from advisor.tools.base import Tool, to_float, to_int
from advisor.tools.http import MarketDataClient

logger = logging.getLogger(__name__)

# Per-indicator query parameters (daily interval)
INDICATOR_PARAMS: dict[str, dict[str, str]] = {
    "rsi": {"time_period": "14"},
    "ema": {"time_period": "20"},
    "macd": {"fast_period": "12", "slow_period": "26", "signal_period": "9"},
    "bbands": {"time_period": "20", "sd": "2"},
    "atr": {"time_period": "14"},
    "adx": {"time_period": "14"},
    "supertrend": {"multiplier": "3", "period": "10"},
    "obv": {},
    "stoch": {},
}

RSI_OVERBOUGHT = 70
RSI_OVERSOLD = 30
ADX_STRONG_TREND = 25


def _now() -> str:
    return datetime.now(UTC).isoformat()


# Upper-cased once at validation so requests, payloads and cache keys agree
Symbol = Annotated[str, StringConstraints(strip_whitespace=True, to_upper=True, min_length=1)]


class SymbolInput(BaseModel):
    symbol: Symbol = Field(..., description="Ticker or pair symbol")


class TwelveDataTool(Tool):
    """Shared plumbing for tools backed by the Twelve Data REST API."""

    def __init__(
        self,
        http: MarketDataClient,
        cache: ToolCache | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(http, cache)
        self.api_key = api_key if api_key is not None else settings.twelvedata_api_key
        self.base_url = (base_url or settings.twelvedata_base_url).rstrip("/")

    async def _fetch(self, endpoint: str, **params: str) -> dict[str, Any]:
        if not self.api_key:
            raise ToolFetchError("TWELVEDATA_API_KEY not configured")
        data = await self.http.get_json(
            f"{self.base_url}/{endpoint}",
            params={**params, "apikey": self.api_key},
        )
        if not isinstance(data, dict):
            raise ToolFetchError(f"Unexpected {endpoint} payload from Twelve Data")
        if data.get("status") == "error":
            raise ToolFetchError(data.get("message") or f"Twelve Data {endpoint} request failed")
        return data

    async def _fetch_indicator(self, indicator: str, symbol: str, **overrides: str) -> list[dict[str, Any]]:
        params = {"symbol": symbol, "interval": "1day", "outputsize": "10"}
        params.update(INDICATOR_PARAMS.get(indicator, {}))
        params.update(overrides)
        data = await self._fetch(indicator, **params)
        values = data.get("values") or []
        if not isinstance(values, list):
            raise ToolFetchError(f"Malformed {indicator} values for {symbol}")
        return values

    def _error_context(self, params: BaseModel) -> dict[str, Any]:
        return {"symbol": getattr(params, "symbol", None)}


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class CryptoPriceTool(TwelveDataTool):
    name = "get_crypto_price"
    description = (
        "Fetches real-time cryptocurrency price data including current price, "
        "change, change percentage, and volume. Use this for price queries. "
        "Symbols look like 'BTC/USD', 'ETH/USD'."
    )
    InputModel = SymbolInput

    async def _run(self, params: SymbolInput) -> dict[str, Any]:
        cached = await self._cached((params.symbol,))
        if cached is not None:
            return cached

        data = await self._fetch("quote", symbol=params.symbol)
        result = {
            "symbol": data.get("symbol", params.symbol),
            "name": data.get("name"),
            "price": to_float(data.get("close") or data.get("price")),
            "change": to_float(data.get("change")),
            "change_percent": to_float(data.get("percent_change")),
            "volume": to_float(data.get("volume")),
            "timestamp": data.get("datetime"),
        }
        await self._store((params.symbol,), result)
        return result


class StockQuoteTool(TwelveDataTool):
    name = "get_stock_quote"
    description = (
        "Get real-time stock quote data including current price, volume, daily "
        "change, and trading range. Use this for price queries, volume analysis, "
        "and daily performance. Example symbols: AAPL, TSLA, MSFT."
    )
    InputModel = SymbolInput

    async def _run(self, params: SymbolInput) -> dict[str, Any]:
        symbol = params.symbol
        cached = await self._cached((symbol,))
        if cached is not None:
            return cached

        data = await self._fetch("quote", symbol=symbol)
        result = {
            "symbol": data.get("symbol", symbol),
            "name": data.get("name"),
            "exchange": data.get("exchange"),
            "price": to_float(data.get("close")),
            "open": to_float(data.get("open")),
            "high": to_float(data.get("high")),
            "low": to_float(data.get("low")),
            "volume": to_int(data.get("volume")),
            "change": to_float(data.get("change")),
            "percent_change": to_float(data.get("percent_change")),
            "previous_close": to_float(data.get("previous_close")),
            "timestamp": data.get("timestamp") or data.get("datetime"),
        }
        logger.info("Fetched stock quote for %s: %s", symbol, result["price"])
        await self._store((symbol,), result)
        return result


class ForexQuoteTool(TwelveDataTool):
    name = "get_forex_quote"
    description = (
        "Get a real-time forex pair quote including exchange rate, daily range, "
        "and change. Example pairs: EUR/USD, GBP/JPY, USD/CAD."
    )
    InputModel = SymbolInput

    async def _run(self, params: SymbolInput) -> dict[str, Any]:
        cached = await self._cached((params.symbol,))
        if cached is not None:
            return cached

        data = await self._fetch("quote", symbol=params.symbol)
        result = {
            "symbol": data.get("symbol", params.symbol),
            "name": data.get("name"),
            "exchange_rate": to_float(data.get("close")),
            "open": to_float(data.get("open")),
            "high": to_float(data.get("high")),
            "low": to_float(data.get("low")),
            "change": to_float(data.get("change")),
            "percent_change": to_float(data.get("percent_change")),
            "timestamp": data.get("datetime"),
        }
        await self._store((params.symbol,), result)
        return result


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------


class IndicatorInput(BaseModel):
    symbol: Symbol = Field(..., description="Cryptocurrency symbol (e.g., 'BTC/USD')")
    indicator: Literal[
        "rsi", "macd", "ema", "bbands", "atr", "obv", "supertrend", "stoch", "adx",
    ] = Field(..., description="Technical indicator to fetch")


class TechnicalIndicatorsTool(TwelveDataTool):
    name = "get_technical_indicators"
    description = (
        "Fetches technical indicators for cryptocurrency analysis. Supports: "
        "RSI (momentum), MACD (trend), EMA (moving average), BBANDS (volatility), "
        "ATR (volatility), OBV (volume), ADX (trend strength). "
        "Use this for technical analysis queries."
    )
    InputModel = IndicatorInput

    async def _run(self, params: IndicatorInput) -> dict[str, Any]:
        key = (params.indicator, params.symbol)
        cached = await self._cached(key)
        if cached is not None:
            return cached

        values = await self._fetch_indicator(params.indicator, params.symbol)
        result = {
            "symbol": params.symbol,
            "indicator": params.indicator,
            "values": values[:3],
            "timestamp": _now(),
        }
        await self._store(key, result)
        return result

    def _error_context(self, params: IndicatorInput) -> dict[str, Any]:
        return {"symbol": params.symbol, "indicator": params.indicator}


class StockIndicatorsTool(TwelveDataTool):
    """RSI, MACD, EMA20/50, Bollinger Bands, ATR and ADX in one call.

    Each indicator is fetched separately; one failing indicator is logged
    and left out. Only a completely empty bundle is an error.
    """

    name = "get_stock_indicators"
    description = (
        "Get technical indicators for stock analysis including RSI, MACD, "
        "EMA (20/50), Bollinger Bands, ATR, and ADX. Use this for trend "
        "identification, momentum, volatility and overbought/oversold checks."
    )
    InputModel = SymbolInput

    async def _run(self, params: SymbolInput) -> dict[str, Any]:
        symbol = params.symbol
        cached = await self._cached((symbol,))
        if cached is not None:
            return cached
        if not self.api_key:
            raise ToolFetchError("TWELVEDATA_API_KEY not configured")

        indicators: dict[str, Any] = {}

        latest = await self._latest("rsi", symbol)
        if latest is not None:
            rsi = to_float(latest.get("rsi"))
            indicators["rsi"] = {"value": rsi, "interpretation": _interpret_rsi(rsi)}

        latest = await self._latest("macd", symbol)
        if latest is not None:
            indicators["macd"] = {
                "macd": to_float(latest.get("macd")),
                "signal": to_float(latest.get("macd_signal")),
                "histogram": to_float(latest.get("macd_hist")),
            }

        for period in ("20", "50"):
            latest = await self._latest("ema", symbol, time_period=period)
            if latest is not None:
                indicators[f"ema{period}"] = to_float(latest.get("ema"))

        latest = await self._latest("bbands", symbol)
        if latest is not None:
            indicators["bbands"] = {
                "upper": to_float(latest.get("upper_band")),
                "middle": to_float(latest.get("middle_band")),
                "lower": to_float(latest.get("lower_band")),
            }

        latest = await self._latest("atr", symbol)
        if latest is not None:
            indicators["atr"] = to_float(latest.get("atr"))

        latest = await self._latest("adx", symbol)
        if latest is not None:
            adx = to_float(latest.get("adx"))
            indicators["adx"] = {
                "value": adx,
                "interpretation": (
                    "strong trend" if adx is not None and adx > ADX_STRONG_TREND
                    else "weak trend"
                ),
            }

        if not indicators:
            raise ToolFetchError("No indicators data available")

        result = {"symbol": symbol, "indicators": indicators, "timestamp": _now()}
        logger.info("Fetched %d indicators for %s", len(indicators), symbol)
        await self._store((symbol,), result)
        return result

    async def _latest(self, indicator: str, symbol: str, **overrides: str) -> dict[str, Any] | None:
        try:
            values = await self._fetch_indicator(indicator, symbol, **overrides)
        except ToolFetchError as e:
            logger.warning("%s fetch failed for %s: %s", indicator.upper(), symbol, e)
            return None
        return values[0] if values else None


def _interpret_rsi(value: float | None) -> str:
    if value is None:
        return "unknown"
    if value > RSI_OVERBOUGHT:
        return "overbought"
    if value < RSI_OVERSOLD:
        return "oversold"
    return "neutral"


ForexIndicator = Literal["RSI", "MACD", "EMA", "BBANDS", "ATR", "ADX"]


class ForexIndicatorsInput(BaseModel):
    symbol: Symbol = Field(..., description="Forex pair symbol (e.g., EUR/USD)")
    indicators: list[ForexIndicator] = Field(
        ..., min_length=1, description="List of indicators to fetch",
    )


class ForexIndicatorsTool(TwelveDataTool):
    name = "get_forex_indicators"
    description = (
        "Get technical indicators for forex pair analysis. Available indicators: "
        "RSI (momentum), MACD (trend), EMA (moving average), BBANDS (volatility), "
        "ATR (volatility), ADX (trend strength)."
    )
    InputModel = ForexIndicatorsInput

    async def _run(self, params: ForexIndicatorsInput) -> dict[str, Any]:
        results: dict[str, Any] = {}
        unavailable: dict[str, str] = {}

        # Cached per indicator so overlapping requests reuse each other
        for indicator in dict.fromkeys(params.indicators):
            key = (indicator, params.symbol)
            cached = await self._cached(key)
            if cached is not None:
                results[indicator] = cached
                continue
            try:
                values = await self._fetch_indicator(indicator.lower(), params.symbol)
            except ToolFetchError as e:
                unavailable[indicator] = str(e)
                continue
            entry = {"values": values[:3]}
            await self._store(key, entry)
            results[indicator] = entry

        if not results:
            raise ToolFetchError(
                "Failed to fetch indicators: "
                + "; ".join(f"{k}: {v}" for k, v in unavailable.items())
            )

        payload: dict[str, Any] = {
            "symbol": params.symbol,
            "indicators": results,
            "timestamp": _now(),
        }
        if unavailable:
            payload["unavailable"] = unavailable
        return payload

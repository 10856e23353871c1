"""Market data fetching (CoinGecko public API) and market-list helpers."""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests

from safecrypto.config.constants import (
    CHART_RANGES,
    COINGECKO_ASSET_IDS,
    FALLBACK_CHART_DAYS,
    HTTP_TIMEOUT,
    MARKET_DATA_URL,
    MARKETS_ORDER,
    MARKETS_PER_PAGE,
    VS_CURRENCY,
)
from safecrypto.models.core import MarketQuote, PricePoint
from safecrypto.models.errors import InvalidInput, SourceUnavailable

logger = logging.getLogger(__name__)

# CoinGecko caps /coins/markets at 250 rows per page
MAX_IDS_PER_REQUEST = 250

_SYMBOLS_BY_ID = {coin_id: symbol.lower() for symbol, coin_id in COINGECKO_ASSET_IDS.items()}


def ledger_coin_ids(trades: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """Lower-cased coin name and id -> market id, from trades that carry an asset_id."""
    known: Dict[str, str] = {}
    for t in trades:
        coin_id = (t.get("asset_id") or "").strip()
        if not coin_id or coin_id.upper() == "USD":
            continue
        known.setdefault(coin_id.lower(), coin_id)
        name = (t.get("asset_name") or "").strip().lower()
        if name:
            known.setdefault(name, coin_id)
    return known


def resolve_coin_id(key: str, known: Optional[Dict[str, str]] = None) -> str:
    """
    Map a holdings key ("BTC", "Bitcoin", "bitcoin", "Avalanche 2") to a CoinGecko id.

    The ledger mapping from ledger_coin_ids wins, since names and ids often
    differ ("Avalanche" is avalanche-2). Then known ticker symbols go through
    COINGECKO_ASSET_IDS; anything else is lower-cased with spaces turned into dashes.
    """
    k = (key or "").strip()
    if known and k.lower() in known:
        return known[k.lower()]
    if k.upper() in COINGECKO_ASSET_IDS:
        return COINGECKO_ASSET_IDS[k.upper()]
    return "-".join(k.lower().split())


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def parse_market_quote(raw: Dict[str, Any]) -> MarketQuote:
    """Normalise one /coins/markets row. Raises SourceUnavailable if it has no id."""
    if not isinstance(raw, dict) or not raw.get("id"):
        raise SourceUnavailable(f"malformed market row: {raw!r}", source="market-data")
    sparkline = (raw.get("sparkline_in_7d") or {}).get("price") or []
    change = raw.get("price_change_percentage_24h")
    if change is None:
        change = raw.get("price_change_percentage_24h_in_currency")
    return {
        "id": str(raw["id"]),
        "name": str(raw.get("name") or raw["id"]),
        "symbol": str(raw.get("symbol") or ""),
        "current_price": _float(raw.get("current_price")),
        "change_24h_pct": _float(change),
        "sparkline": [_float(p) for p in sparkline if p is not None],
        "market_cap": _float(raw.get("market_cap")),
    }


def quote_from_series(asset_id: str, points: List[PricePoint]) -> Optional[MarketQuote]:
    """
    Build a quote from a historical series (oldest first).

    The last point is the current price; 24h change is measured against the
    first point. Returns None for an empty series.
    """
    if not points:
        return None
    first = points[0]["price"]
    last = points[-1]["price"]
    change = ((last - first) / first * 100.0) if first > 0 else 0.0
    return {
        "id": asset_id,
        "name": asset_id,
        "symbol": _SYMBOLS_BY_ID.get(asset_id, ""),
        "current_price": last,
        "change_24h_pct": change,
        "sparkline": [p["price"] for p in points],
    }


def group_by_month(points: List[PricePoint]) -> List[PricePoint]:
    """Average a series into calendar-month buckets (UTC), stamped on the 1st of the month."""
    buckets: "OrderedDict[tuple, List[float]]" = OrderedDict()
    for p in sorted(points, key=lambda x: x["ts"]):
        d = datetime.fromtimestamp(p["ts"] / 1000.0, tz=timezone.utc)
        buckets.setdefault((d.year, d.month), []).append(p["price"])
    grouped: List[PricePoint] = []
    for (year, month), prices in buckets.items():
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        grouped.append({"ts": int(start.timestamp() * 1000), "price": sum(prices) / len(prices)})
    return grouped


def summarize_markets(quotes: List[MarketQuote]) -> Dict[str, float]:
    """Total market cap and mean 24h % change across a market list (zeros when empty)."""
    total_cap = sum(q.get("market_cap") or 0.0 for q in quotes)
    avg_change = sum(q.get("change_24h_pct") or 0.0 for q in quotes) / (len(quotes) or 1)
    return {"total_market_cap": total_cap, "avg_change_24h_pct": avg_change}


def search_quotes(quotes: List[MarketQuote], query: str) -> List[MarketQuote]:
    """Case-insensitive substring filter over name and symbol. Blank query returns everything."""
    q = (query or "").strip().lower()
    if not q:
        return list(quotes)
    return [
        c for c in quotes
        if q in (c.get("name") or "").lower() or q in (c.get("symbol") or "").lower()
    ]


class MarketDataClient:
    """MarketPriceSource backed by the unauthenticated CoinGecko API."""

    def __init__(
        self,
        base_url: str = MARKET_DATA_URL,
        timeout: float = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _get(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise SourceUnavailable(f"GET {path} failed: {e}", source="market-data") from e
        except ValueError as e:
            raise SourceUnavailable(f"GET {path} returned invalid JSON", source="market-data") from e

    def _markets(self, params: Dict[str, Any]) -> List[MarketQuote]:
        query = {
            "vs_currency": VS_CURRENCY,
            "order": MARKETS_ORDER,
            "page": 1,
            "sparkline": "true",
            "price_change_percentage": "24h",
        }
        query.update(params)
        data = self._get("/coins/markets", query)
        if not isinstance(data, list):
            raise SourceUnavailable("/coins/markets did not return a list", source="market-data")
        return [parse_market_quote(row) for row in data]

    def get_quotes(self, asset_ids: Iterable[str]) -> Dict[str, MarketQuote]:
        """
        Batch quote lookup by CoinGecko id.

        Unknown ids are simply missing from the result; a failed request
        raises SourceUnavailable.
        """
        ids = sorted({resolve_coin_id(a) for a in asset_ids if a})
        quotes: Dict[str, MarketQuote] = {}
        for start in range(0, len(ids), MAX_IDS_PER_REQUEST):
            chunk = ids[start:start + MAX_IDS_PER_REQUEST]
            for quote in self._markets({"ids": ",".join(chunk), "per_page": len(chunk)}):
                quotes[quote["id"]] = quote
        logger.debug("Batch quotes: %d requested, %d returned", len(ids), len(quotes))
        return quotes

    def get_top_markets(self, per_page: int = MARKETS_PER_PAGE, page: int = 1) -> List[MarketQuote]:
        """Market list ranked by market cap."""
        return self._markets({"per_page": per_page, "page": page})

    def get_market_chart(self, asset_id: str, days: int, interval: Optional[str] = None) -> List[PricePoint]:
        """Historical USD price series for one asset, oldest first."""
        params: Dict[str, Any] = {"vs_currency": VS_CURRENCY, "days": days}
        if interval:
            params["interval"] = interval
        data = self._get(f"/coins/{resolve_coin_id(asset_id)}/market_chart", params)
        prices = data.get("prices") if isinstance(data, dict) else None
        if prices is None:
            raise SourceUnavailable("market_chart response has no prices", source="market-data")
        points: List[PricePoint] = []
        for row in prices:
            try:
                points.append({"ts": int(row[0]), "price": float(row[1])})
            except (TypeError, ValueError, IndexError):
                continue
        points.sort(key=lambda p: p["ts"])
        return points

    def get_quote(self, asset_id: str) -> Optional[MarketQuote]:
        """
        Single-asset lookup used as the fallback for ids missing from a batch.

        Returns None when the series is empty; raises SourceUnavailable when
        the request fails (including 404 for ids CoinGecko does not know).
        """
        coin_id = resolve_coin_id(asset_id)
        return quote_from_series(coin_id, self.get_market_chart(coin_id, FALLBACK_CHART_DAYS))

    def get_price_history(self, asset_id: str, range_label: str) -> List[PricePoint]:
        """Series for a chart range: 1M daily points, 6M/1Y monthly averages."""
        if range_label not in CHART_RANGES:
            raise InvalidInput(f"unknown range {range_label!r}; expected one of {sorted(CHART_RANGES)}")
        days, months = CHART_RANGES[range_label]
        points = self.get_market_chart(asset_id, days, interval="daily")
        if months is None:
            return points
        return group_by_month(points)[-months:]

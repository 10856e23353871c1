"""Portfolio and per-asset valuation math (pure functions)."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from safecrypto.config.constants import EPSILON, STATUS_COMPLETED
from safecrypto.models.core import EnrichedHolding, MarketQuote, PortfolioTotals, TradeRecord

PRICE_BATCH = "batch"
PRICE_FALLBACK = "fallback"
PRICE_UNAVAILABLE = "unavailable"


def asset_aliases(key: str, coin_id: str, quote: Optional[MarketQuote] = None) -> Set[str]:
    """Lower-cased names a trade may use to refer to a held asset."""
    aliases = {(key or "").strip().lower(), coin_id.lower()}
    if quote:
        aliases.add((quote.get("name") or "").lower())
    aliases.discard("")
    return aliases


def trades_for_asset(trades: Iterable[TradeRecord], aliases: Set[str]) -> List[TradeRecord]:
    """Trades whose asset id or asset name matches one of the aliases."""
    return [
        t for t in trades
        if (t.get("asset_id") or "").lower() in aliases or (t.get("asset_name") or "").lower() in aliases
    ]


def summarize_trades(trades: Iterable[TradeRecord]) -> Dict[str, float]:
    """
    Sum completed BUY and SELL quantities and totals.

    Pending/Failed trades and cash movements are ignored. The sums do not
    depend on input order.
    """
    bought_qty = bought_total = sold_qty = sold_total = 0.0
    for t in trades:
        if t.get("status") != STATUS_COMPLETED:
            continue
        if t.get("kind") == "BUY":
            bought_qty += t.get("quantity") or 0.0
            bought_total += t.get("total") or 0.0
        elif t.get("kind") == "SELL":
            sold_qty += t.get("quantity") or 0.0
            sold_total += t.get("total") or 0.0
    return {
        "bought_qty": bought_qty,
        "bought_total": bought_total,
        "sold_qty": sold_qty,
        "sold_total": sold_total,
    }


def calculate_cost_basis_average(trades: Iterable[TradeRecord]) -> Tuple[float, float, float]:
    """
    Average-cost basis recomputed from the full trade history.

    Every sale is valued against the current average buy price, not the
    average at the time of the sale.

    Returns:
        Tuple of (avg_buy_price, invested_capital, realized_pl).
    """
    s = summarize_trades(trades)
    avg_buy_price = s["bought_total"] / s["bought_qty"] if s["bought_qty"] > 0 else 0.0
    realized_pl = s["sold_total"] - s["sold_qty"] * avg_buy_price
    invested_capital = s["bought_total"] - s["sold_total"]
    return avg_buy_price, invested_capital, realized_pl


def value_holding(
    asset_id: str,
    quantity: float,
    trades: Iterable[TradeRecord],
    quote: Optional[MarketQuote],
    price_source: str,
    name: Optional[str] = None,
    symbol: str = "",
) -> EnrichedHolding:
    """Value one held asset. quantity comes from the snapshot, never from the trades."""
    avg_buy_price, invested_capital, realized_pl = calculate_cost_basis_average(trades)
    unavailable = quote is None or price_source == PRICE_UNAVAILABLE
    price = 0.0 if unavailable else max(quote.get("current_price") or 0.0, 0.0)
    market_value = quantity * price
    unrealized_pl = market_value - quantity * avg_buy_price
    return {
        "asset_id": asset_id,
        "name": (quote or {}).get("name") or name or asset_id,
        "symbol": ((quote or {}).get("symbol") or symbol or "").upper(),
        "quantity": quantity,
        "current_price": price,
        "market_value": market_value,
        "avg_buy_price": avg_buy_price,
        "invested_capital": invested_capital,
        "unrealized_pl": unrealized_pl,
        "realized_pl": realized_pl,
        "total_pl": realized_pl + unrealized_pl,
        "allocation_pct": 0.0,
        "change_24h_pct": 0.0 if unavailable else (quote.get("change_24h_pct") or 0.0),
        "sparkline": [] if unavailable else list(quote.get("sparkline") or []),
        "price_source": PRICE_UNAVAILABLE if unavailable else price_source,
        "price_unavailable": unavailable,
    }


def compute_totals(holdings: Iterable[EnrichedHolding]) -> PortfolioTotals:
    totals: PortfolioTotals = {
        "total_value": 0.0,
        "total_invested": 0.0,
        "total_unrealized_pl": 0.0,
        "total_realized_pl": 0.0,
        "total_pl": 0.0,
    }
    for h in holdings:
        totals["total_value"] += h["market_value"]
        totals["total_invested"] += h["invested_capital"]
        totals["total_unrealized_pl"] += h["unrealized_pl"]
        totals["total_realized_pl"] += h["realized_pl"]
        totals["total_pl"] += h["total_pl"]
    return totals


def apply_allocation(holdings: List[EnrichedHolding], total_value: float) -> None:
    """Set allocation_pct in place; all zero when the portfolio is worth nothing."""
    for h in holdings:
        h["allocation_pct"] = (h["market_value"] / total_value * 100.0) if total_value > EPSILON else 0.0


def compute_portfolio_metrics(
    positions: List[Tuple[str, float, Optional[MarketQuote], str]],
    trades: List[TradeRecord],
    coin_ids: Optional[Dict[str, str]] = None,
) -> Tuple[List[EnrichedHolding], PortfolioTotals]:
    """
    Build enriched holdings and aggregate totals.

    Snapshot keys that resolve to the same market id ("Bitcoin" and "BTC")
    are merged into one holding: quantities add up and the ledger is
    matched once against the union of their aliases.

    Args:
        positions: (snapshot key, snapshot quantity, resolved quote or None,
            price source) per held asset. Non-positive quantities are dropped.
        trades: The user's full ledger, in any order.
        coin_ids: Optional snapshot key -> market id mapping used for trade
            matching and as the emitted asset_id.

    Returns:
        (holdings sorted by market value descending, totals).
    """
    coin_ids = coin_ids or {}
    merged: Dict[str, Dict] = {}
    for key, quantity, quote, price_source in positions:
        if quantity is None or quantity <= 0:
            continue
        coin_id = (quote or {}).get("id") or coin_ids.get(key) or key
        entry = merged.setdefault(
            coin_id,
            {"name": key, "quantity": 0.0, "quote": None, "source": PRICE_UNAVAILABLE, "aliases": set()},
        )
        entry["quantity"] += quantity
        entry["aliases"] |= asset_aliases(key, coin_id, quote)
        if entry["quote"] is None and quote is not None and price_source != PRICE_UNAVAILABLE:
            entry["quote"], entry["source"] = quote, price_source

    holdings: List[EnrichedHolding] = []
    for coin_id, entry in merged.items():
        asset_trades = trades_for_asset(trades, entry["aliases"])
        holdings.append(value_holding(
            coin_id, entry["quantity"], asset_trades, entry["quote"], entry["source"], name=entry["name"],
        ))

    holdings.sort(key=lambda h: (-h["market_value"], h["asset_id"]))
    totals = compute_totals(holdings)
    apply_allocation(holdings, totals["total_value"])
    return holdings, totals

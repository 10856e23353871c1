"""Shared presentation utilities: value colours, number formatting, display rows."""

from __future__ import annotations

from typing import Dict, List, Optional

from safecrypto.config.constants import STATUS_ERROR, STATUS_LOADING
from safecrypto.models.core import EnrichedHolding, ReconciliationResult, RefreshState
from safecrypto.theming.style import (
    ALLOCATION_COLORS,
    COLOR_LOSS,
    COLOR_NEUTRAL,
    COLOR_PROFIT,
    EMPTY_PORTFOLIO_TEXT,
    ERROR_TEXT,
    LOADING_TEXT,
    PRICE_UNAVAILABLE_TEXT,
)


def color_for_value(value: Optional[float]) -> str:
    """
    Return the display colour for a numeric value (P&L, 24h change, amount).

    Returns:
        COLOR_PROFIT if value > 0, COLOR_LOSS if value < 0,
        COLOR_NEUTRAL if value is None, not numeric, or zero.
    """
    if value is None:
        return COLOR_NEUTRAL
    try:
        v = float(value)
    except (TypeError, ValueError):
        return COLOR_NEUTRAL
    if abs(v) < 1e-9:
        return COLOR_NEUTRAL
    return COLOR_PROFIT if v > 0 else COLOR_LOSS


def format_usd(value: Optional[float]) -> str:
    """$1,234.56 style; negatives as -$12.00; None as "-"."""
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_pct(value: Optional[float], signed: bool = True) -> str:
    if value is None:
        return "-"
    return f"{value:+.2f}%" if signed else f"{value:.2f}%"


def format_quantity(value: float) -> str:
    """Up to 8 decimals, trailing zeros removed."""
    text = f"{value:.8f}".rstrip("0").rstrip(".")
    return text or "0"


def holding_row(h: EnrichedHolding, index: int = 0) -> Dict[str, str]:
    """One display row; unpriced holdings show a marker instead of price and value."""
    unavailable = h["price_unavailable"]
    return {
        "asset": f"{h['name']} ({h['symbol']})" if h["symbol"] else h["name"],
        "quantity": format_quantity(h["quantity"]),
        "price": PRICE_UNAVAILABLE_TEXT if unavailable else format_usd(h["current_price"]),
        "value": PRICE_UNAVAILABLE_TEXT if unavailable else format_usd(h["market_value"]),
        "avg_buy": format_usd(h["avg_buy_price"]),
        "pl": format_usd(h["total_pl"]),
        "pl_color": color_for_value(h["total_pl"]),
        "change_24h": format_pct(h["change_24h_pct"]),
        "change_color": color_for_value(h["change_24h_pct"]),
        "allocation": format_pct(h["allocation_pct"], signed=False),
        "slice_color": ALLOCATION_COLORS[index % len(ALLOCATION_COLORS)],
    }


def holding_rows(result: ReconciliationResult) -> List[Dict[str, str]]:
    return [holding_row(h, i) for i, h in enumerate(result["holdings"])]


def totals_summary(result: ReconciliationResult) -> Dict[str, str]:
    t = result["totals"]
    return {
        "total_value": format_usd(t["total_value"]),
        "total_invested": format_usd(t["total_invested"]),
        "unrealized_pl": format_usd(t["total_unrealized_pl"]),
        "realized_pl": format_usd(t["total_realized_pl"]),
        "total_pl": format_usd(t["total_pl"]),
        "total_pl_color": color_for_value(t["total_pl"]),
    }


def status_message(state: RefreshState) -> Optional[str]:
    """Banner text for the current cycle; None when there is data to show without a banner."""
    result = state["result"]
    if state["status"] == STATUS_LOADING and result is None:
        return LOADING_TEXT
    if state["status"] == STATUS_ERROR:
        return ERROR_TEXT if result is None else f"{ERROR_TEXT} Showing last update."
    if result is not None and not result["holdings"]:
        return EMPTY_PORTFOLIO_TEXT
    return None


def render_table(result: ReconciliationResult) -> str:
    """Plain-text table of holdings plus totals, used by the console dashboard."""
    columns = [
        ("asset", "Asset"), ("quantity", "Qty"), ("price", "Price"), ("value", "Value"),
        ("avg_buy", "Avg buy"), ("pl", "P/L"), ("change_24h", "24h"), ("allocation", "Alloc"),
    ]
    rows = holding_rows(result)
    widths = {
        key: max([len(title)] + [len(r[key]) for r in rows]) for key, title in columns
    }
    lines = ["  ".join(title.ljust(widths[key]) for key, title in columns)]
    for r in rows:
        lines.append("  ".join(r[key].ljust(widths[key]) for key, _ in columns))
    s = totals_summary(result)
    lines.append("")
    lines.append(
        f"Total value {s['total_value']}  invested {s['total_invested']}  "
        f"unrealized {s['unrealized_pl']}  realized {s['realized_pl']}  total P/L {s['total_pl']}"
    )
    if result["partial"] is not None:
        lines.append(str(result["partial"]))
    return "\n".join(lines)

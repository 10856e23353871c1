"""Typed structures for ledger, market, and valuation data (for documentation and API)."""

from __future__ import annotations

from typing import Dict, List, Optional, TypedDict

from safecrypto.models.errors import PartialPriceData


class TradeRecord(TypedDict):
    """One immutable ledger entry, normalised from the backend trade payload."""

    id: Optional[str]
    email: str
    asset_id: str
    asset_name: str
    kind: str  # BUY, SELL, DEPOSIT, WITHDRAW
    quantity: float
    unit_price: float
    total: float
    status: str  # Completed, Pending, Failed
    timestamp: str


class MarketQuote(TypedDict, total=False):
    """Per-asset market data as returned by the market data source."""

    id: str
    name: str
    symbol: str
    current_price: float
    change_24h_pct: float
    sparkline: List[float]
    market_cap: float


class PricePoint(TypedDict):
    """One point of a historical price series (ts in epoch milliseconds)."""

    ts: int
    price: float


class WalletRecord(TypedDict):
    email: str
    balance_usd: float


class EnrichedHolding(TypedDict):
    """Valuation of one held asset; recomputed every cycle, never persisted."""

    asset_id: str
    name: str
    symbol: str
    quantity: float
    current_price: float
    market_value: float
    avg_buy_price: float
    invested_capital: float
    unrealized_pl: float
    realized_pl: float
    total_pl: float
    allocation_pct: float
    change_24h_pct: float
    sparkline: List[float]
    price_source: str  # batch, fallback, unavailable
    price_unavailable: bool


class PortfolioTotals(TypedDict):
    total_value: float
    total_invested: float
    total_unrealized_pl: float
    total_realized_pl: float
    total_pl: float


class ReconciliationResult(TypedDict):
    """Output of one reconciliation cycle."""

    email: str
    holdings: List[EnrichedHolding]
    totals: PortfolioTotals
    partial: Optional[PartialPriceData]
    as_of: str


HoldingsSnapshot = Dict[str, float]


class RefreshState(TypedDict):
    """What the presentation layer sees for one consumer: status plus the last good result."""

    status: str  # loading, error, ready
    result: Optional[ReconciliationResult]
    error: Optional[str]
    cycles: int
    updated_at: Optional[str]

"""Trading and cash actions: validate, append to the ledger, then write the backend balance.

The backend wallet balance is the only cash source of truth; it is read
before each action and written after, never recomputed from trade totals.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from safecrypto.config.constants import EPSILON, HISTORY_FILTERS, STATUS_COMPLETED, TRADE_KINDS_COIN
from safecrypto.models.core import MarketQuote, TradeRecord
from safecrypto.models.errors import InvalidInput, NotFound
from safecrypto.services.pricing import resolve_coin_id

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def validate_positive(value, label: str = "quantity") -> float:
    """Return value as a float > 0, or raise InvalidInput."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"Enter a valid {label}") from None
    if not v > 0 or v == float("inf"):
        raise InvalidInput(f"Enter a valid {label}")
    return v


def _held_quantity(snapshot: dict, quote: MarketQuote) -> float:
    aliases = {quote["id"].lower(), (quote.get("name") or "").lower(), (quote.get("symbol") or "").lower()}
    held = 0.0
    for key, qty in snapshot.items():
        if key.lower() in aliases or resolve_coin_id(key) == quote["id"]:
            held += float(qty or 0.0)
    return held


# Locale strings the dashboard screens wrote before the backend stored ISO dates
_DISPLAY_TIMESTAMP_FORMATS = ("%m/%d/%Y, %I:%M:%S %p", "%m/%d/%Y, %H:%M:%S", "%m/%d/%Y")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO 8601 or M/D/YYYY, h:mm:ss AM/PM as an aware UTC datetime; None if unparseable."""
    text = (value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
        for fmt in _DISPLAY_TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def filter_trades(trades: Iterable[TradeRecord], status: str = "All") -> List[TradeRecord]:
    """Trade history for display: optionally one status only, newest first.

    Timestamps are compared as dates, not strings; unparseable ones go last.
    """
    if status not in HISTORY_FILTERS:
        raise InvalidInput(f"unknown status filter {status!r}")
    selected = [t for t in trades if status == "All" or t.get("status") == status]

    def newest_first(t: TradeRecord):
        parsed = parse_timestamp(t.get("timestamp"))
        return (parsed is None, -parsed.timestamp() if parsed else 0.0)

    return sorted(selected, key=newest_first)


class TradingService:
    """Places BUY/SELL/DEPOSIT/WITHDRAW actions through a BackendClient."""

    def __init__(self, backend) -> None:
        self.backend = backend

    def _record(
        self,
        email: str,
        kind: str,
        total: float,
        quote: Optional[MarketQuote] = None,
        quantity: float = 0.0,
    ) -> TradeRecord:
        return {
            "id": None,
            "email": email,
            "asset_id": quote["id"] if quote else "USD",
            "asset_name": quote.get("name", quote["id"]) if quote else "USD",
            "kind": kind,
            "quantity": quantity,
            "unit_price": (quote.get("current_price") or 0.0) if quote else 1.0,
            "total": total,
            "status": STATUS_COMPLETED,
            "timestamp": _now(),
        }

    def trade(self, email: str, quote: MarketQuote, kind: str, quantity) -> TradeRecord:
        """
        Buy or sell `quantity` of an asset at the quote's current price.

        Raises InvalidInput for a non-positive quantity, an unpriced quote,
        insufficient funds (BUY) or insufficient holdings (SELL).
        """
        kind = (kind or "").upper()
        if kind not in TRADE_KINDS_COIN:
            raise InvalidInput(f"unknown trade kind {kind!r}")
        qty = validate_positive(quantity)
        price = quote.get("current_price") or 0.0
        if price <= 0:
            raise InvalidInput(f"No price available for {quote.get('name', quote['id'])}")
        total = price * qty

        wallet = self.backend.get_wallet(email)
        balance = wallet["balance_usd"]
        if kind == "BUY":
            if balance + EPSILON < total:
                raise InvalidInput("Insufficient funds!")
            new_balance = balance - total
        else:
            try:
                snapshot = self.backend.get_holdings_snapshot(email)
            except NotFound:
                snapshot = {}
            if _held_quantity(snapshot, quote) + EPSILON < qty:
                raise InvalidInput(f"Insufficient {quote.get('symbol', '').upper() or quote['id']} holdings")
            new_balance = balance + total

        record = self._record(email, kind, total, quote=quote, quantity=qty)
        self.backend.post_trade(record)
        self.backend.update_portfolio(record)
        self.backend.update_wallet(email, new_balance)
        logger.info("%s %s %.8g %s @ %.2f (total %.2f)", email, kind, qty, quote["id"], price, total)
        return record

    def buy(self, email: str, quote: MarketQuote, quantity) -> TradeRecord:
        return self.trade(email, quote, "BUY", quantity)

    def sell(self, email: str, quote: MarketQuote, quantity) -> TradeRecord:
        return self.trade(email, quote, "SELL", quantity)

    def deposit(self, email: str, amount) -> TradeRecord:
        """Add USD to the wallet and record a DEPOSIT entry."""
        value = validate_positive(amount, "amount")
        balance = self.backend.get_wallet(email)["balance_usd"]
        record = self._record(email, "DEPOSIT", value)
        self.backend.post_trade(record)
        self.backend.update_wallet(email, balance + value)
        logger.info("%s DEPOSIT %.2f", email, value)
        return record

    def withdraw(self, email: str, amount) -> TradeRecord:
        """Take USD out of the wallet; the balance may not go negative."""
        value = validate_positive(amount, "amount")
        balance = self.backend.get_wallet(email)["balance_usd"]
        if balance + EPSILON < value:
            raise InvalidInput("Insufficient funds!")
        record = self._record(email, "WITHDRAW", value)
        self.backend.post_trade(record)
        self.backend.update_wallet(email, balance - value)
        logger.info("%s WITHDRAW %.2f", email, value)
        return record

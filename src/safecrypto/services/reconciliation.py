"""Reconciliation engine: merges holdings snapshot, trade ledger, and market quotes."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from safecrypto.models.core import HoldingsSnapshot, MarketQuote, ReconciliationResult, TradeRecord
from safecrypto.models.errors import NotFound, PartialPriceData, SourceUnavailable
from safecrypto.services.metrics import (
    PRICE_BATCH,
    PRICE_FALLBACK,
    PRICE_UNAVAILABLE,
    compute_portfolio_metrics,
)
from safecrypto.services.pricing import ledger_coin_ids, resolve_coin_id

logger = logging.getLogger(__name__)


def match_batch_quote(batch: Dict[str, MarketQuote], key: str, coin_id: str) -> Optional[MarketQuote]:
    """Find the batch quote for a snapshot key by id, then by name or symbol (case-insensitive)."""
    if coin_id in batch:
        return batch[coin_id]
    k = (key or "").strip().lower()
    for quote in batch.values():
        if k and k in ((quote.get("name") or "").lower(), (quote.get("symbol") or "").lower()):
            return quote
    return None


class ReconciliationEngine:
    """
    Produces enriched per-asset valuations and portfolio totals for one user.

    ledger must provide get_holdings_snapshot(email) and get_trades(email);
    prices must provide get_quotes(ids) and get_quote(id). Fetches run on a
    small thread pool: snapshot and trades together, then the batch quote.
    Snapshot keys are resolved to market ids through the ledger first, so the
    quote request has to wait for the trades.
    """

    def __init__(self, ledger, prices, max_workers: int = 4) -> None:
        self.ledger = ledger
        self.prices = prices
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reconcile")

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "ReconciliationEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _fetch_snapshot(self, email: str) -> HoldingsSnapshot:
        try:
            return self.ledger.get_holdings_snapshot(email)
        except NotFound:
            logger.debug("No portfolio record for %s; treating as empty", email)
            return {}

    def _fetch_trades(self, email: str) -> List[TradeRecord]:
        try:
            return list(self.ledger.get_trades(email))
        except NotFound:
            return []

    def _fetch_all(
        self, email: str
    ) -> Tuple[HoldingsSnapshot, List[TradeRecord], Dict[str, str], Dict[str, MarketQuote]]:
        pending: List[Future] = []
        snapshot_f = self._pool.submit(self._fetch_snapshot, email)
        trades_f = self._pool.submit(self._fetch_trades, email)
        pending.extend([snapshot_f, trades_f])
        try:
            snapshot = {k: q for k, q in snapshot_f.result().items() if q is not None and q > 0}
            trades = trades_f.result()
            known = ledger_coin_ids(trades)
            coin_ids = {k: resolve_coin_id(k, known) for k in snapshot}
            batch: Dict[str, MarketQuote] = {}
            if coin_ids:
                quotes_f = self._pool.submit(self.prices.get_quotes, set(coin_ids.values()))
                pending.append(quotes_f)
                batch = quotes_f.result()
        except BaseException:
            for f in pending:
                f.cancel()
            raise
        return snapshot, trades, coin_ids, batch

    def _resolve_prices(
        self, coin_ids: Dict[str, str], batch: Dict[str, MarketQuote]
    ) -> Dict[str, Tuple[Optional[MarketQuote], str]]:
        """Batch quote, else single-asset lookup (once per market id), else unavailable."""
        resolved: Dict[str, Tuple[Optional[MarketQuote], str]] = {}
        fallbacks: Dict[str, Future] = {}
        for key, coin_id in coin_ids.items():
            quote = match_batch_quote(batch, key, coin_id)
            if quote is not None:
                resolved[key] = (quote, PRICE_BATCH)
            elif coin_id not in fallbacks:
                fallbacks[coin_id] = self._pool.submit(self.prices.get_quote, coin_id)

        found: Dict[str, Tuple[Optional[MarketQuote], str]] = {}
        for coin_id, future in fallbacks.items():
            try:
                quote = future.result()
            except SourceUnavailable as e:
                logger.warning("Fallback price lookup failed for %s: %s", coin_id, e)
                quote = None
            found[coin_id] = (quote, PRICE_FALLBACK) if quote is not None else (None, PRICE_UNAVAILABLE)
        for key, coin_id in coin_ids.items():
            if key not in resolved:
                resolved[key] = found[coin_id]
        return resolved

    def reconcile(self, email: str) -> ReconciliationResult:
        """
        Run one reconciliation cycle for a user.

        Raises SourceUnavailable if the snapshot, trade, or batch quote fetch
        fails; no partial result is produced in that case. Assets that cannot
        be priced are emitted with a zero price and reported in result["partial"].
        """
        snapshot, trades, coin_ids, batch = self._fetch_all(email)
        resolved = self._resolve_prices(coin_ids, batch)

        positions = [(key, qty, resolved[key][0], resolved[key][1]) for key, qty in snapshot.items()]
        holdings, totals = compute_portfolio_metrics(positions, trades, coin_ids=coin_ids)

        unpriced = [h["asset_id"] for h in holdings if h["price_unavailable"]]
        for asset_id in unpriced:
            logger.warning("Price unavailable for %s; valued at 0", asset_id)
        logger.debug(
            "Reconciled %s: %d holdings, %d trades, total value %.2f",
            email, len(holdings), len(trades), totals["total_value"],
        )
        return {
            "email": email,
            "holdings": holdings,
            "totals": totals,
            "partial": PartialPriceData(unpriced) if unpriced else None,
            "as_of": datetime.now(timezone.utc).isoformat(),
        }

"""Application bootstrap and core API entrypoints for the SafeCrypto dashboard.

Provides a small core API (build_services, load_portfolio, list_trades,
start_refresh) for use by a presentation layer or scripts, plus a console
dashboard that prints the valuation table on every refresh cycle.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, List, Optional, Tuple

from safecrypto.config.constants import STATUS_LOADING
from safecrypto.config.settings import Settings, load_settings, setup_logger
from safecrypto.models.core import ReconciliationResult, RefreshState, TradeRecord
from safecrypto.models.errors import DashboardError
from safecrypto.services.backend import BackendClient
from safecrypto.services.pricing import MarketDataClient
from safecrypto.services.reconciliation import ReconciliationEngine
from safecrypto.services.scheduler import RefreshScheduler
from safecrypto.services.trading import filter_trades
from safecrypto.ui.utils import render_table, status_message

logger = logging.getLogger(__name__)


def build_services(
    settings: Optional[Settings] = None,
) -> Tuple[BackendClient, MarketDataClient, ReconciliationEngine]:
    """Wire the backend client, market data client, and engine from settings."""
    settings = settings or load_settings()
    backend = BackendClient(settings.backend_url, token=settings.token, timeout=settings.http_timeout)
    market = MarketDataClient(settings.market_data_url, timeout=settings.http_timeout)
    return backend, market, ReconciliationEngine(backend, market)


def load_portfolio(email: str, settings: Optional[Settings] = None) -> ReconciliationResult:
    """Run a single reconciliation cycle. Raises SourceUnavailable on fetch failure.

    Args:
        email: Owner key of the portfolio and trade ledger.
        settings: Optional settings; defaults to load_settings().

    Returns:
        Dict with keys: email, holdings, totals, partial, as_of.
    """
    _, _, engine = build_services(settings)
    with engine:
        return engine.reconcile(email)


def list_trades(email: str, status: str = "All", settings: Optional[Settings] = None) -> List[TradeRecord]:
    """Trade history for a user, newest first, optionally filtered by status."""
    settings = settings or load_settings()
    backend = BackendClient(settings.backend_url, token=settings.token, timeout=settings.http_timeout)
    return filter_trades(backend.get_trades(email), status)


def start_refresh(
    email: str,
    on_update: Callable[[RefreshState], None],
    view: str = "portfolio",
    settings: Optional[Settings] = None,
) -> RefreshScheduler:
    """Start polling for a consuming view.

    When the view goes away, call stop() on the returned scheduler and close() on scheduler.engine.
    """
    settings = settings or load_settings()
    _, _, engine = build_services(settings)
    scheduler = RefreshScheduler(engine, email, interval=settings.refresh_interval(view), on_update=on_update)
    scheduler.start()
    return scheduler


def _print_state(state: RefreshState) -> None:
    message = status_message(state)
    if state["result"] is not None and state["status"] != STATUS_LOADING:
        print(render_table(state["result"]))
    if message:
        print(message)
    print(flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    """Console dashboard: print the portfolio valuation once or on every refresh."""
    parser = argparse.ArgumentParser(prog="safecrypto", description="Portfolio valuation dashboard")
    parser.add_argument("--email", required=True, help="portfolio owner")
    parser.add_argument("--view", default="portfolio", help="view whose refresh interval to use")
    parser.add_argument("--interval", type=float, default=None, help="override refresh interval (seconds)")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = parser.parse_args(argv)

    settings = load_settings()
    setup_logger(level=settings.log_level)

    if args.once:
        try:
            result = load_portfolio(args.email, settings)
        except DashboardError as e:
            logger.error("Reconciliation failed: %s", e)
            return 1
        print(render_table(result))
        return 0

    _, _, engine = build_services(settings)
    interval = args.interval or settings.refresh_interval(args.view)
    scheduler = RefreshScheduler(engine, args.email, interval=interval, on_update=_print_state)
    try:
        scheduler.start()
        while not scheduler.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        engine.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Pytest configuration: src on path, plus in-memory ledger and price sources."""

import sys
from pathlib import Path

import pytest

_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.is_dir() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from safecrypto.models.errors import NotFound, SourceUnavailable  # noqa: E402


def make_trade(kind, quantity, price, asset="bitcoin", status="Completed", total=None, ts="2024-01-01T00:00:00"):
    return {
        "id": None,
        "email": "a@example.com",
        "asset_id": asset,
        "asset_name": asset.capitalize(),
        "kind": kind,
        "quantity": quantity,
        "unit_price": price,
        "total": quantity * price if total is None else total,
        "status": status,
        "timestamp": ts,
    }


def make_quote(coin_id, price, name=None, symbol=None, change=1.5):
    return {
        "id": coin_id,
        "name": name or coin_id.capitalize(),
        "symbol": symbol or coin_id[:3],
        "current_price": price,
        "change_24h_pct": change,
        "sparkline": [price * 0.9, price],
        "market_cap": price * 1000,
    }


class FakeLedger:
    def __init__(self, snapshot=None, trades=None, fail=False):
        self.snapshot = snapshot
        self.trades = trades or []
        self.fail = fail
        self.calls = 0

    def get_holdings_snapshot(self, email):
        self.calls += 1
        if self.fail:
            raise SourceUnavailable("backend down", source="ledger")
        if self.snapshot is None:
            raise NotFound("no portfolio")
        return dict(self.snapshot)

    def get_trades(self, email):
        if self.fail:
            raise SourceUnavailable("backend down", source="ledger")
        return list(self.trades)


class FakePrices:
    def __init__(self, batch=None, single=None, fail_batch=False, fail_single=False):
        self.batch = batch or {}
        self.single = single or {}
        self.fail_batch = fail_batch
        self.fail_single = fail_single
        self.requested = []
        self.single_requested = []

    def get_quotes(self, ids):
        self.requested.append(set(ids))
        if self.fail_batch:
            raise SourceUnavailable("market data down", source="market-data")
        return {i: q for i, q in self.batch.items() if i in ids}

    def get_quote(self, asset_id):
        self.single_requested.append(asset_id)
        if self.fail_single:
            raise SourceUnavailable("404", source="market-data")
        return self.single.get(asset_id)


@pytest.fixture
def trade():
    return make_trade


@pytest.fixture
def quote():
    return make_quote

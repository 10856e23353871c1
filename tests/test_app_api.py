"""Tests for settings loading and the app entry points."""

import pytest

from conftest import FakeLedger, FakePrices, make_quote, make_trade
from safecrypto import app
from safecrypto.config.settings import load_settings
from safecrypto.services.reconciliation import ReconciliationEngine


def test_settings_defaults(monkeypatch) -> None:
    for name in ("SAFECRYPTO_BACKEND_URL", "SAFECRYPTO_TOKEN", "SAFECRYPTO_HTTP_TIMEOUT", "SAFECRYPTO_REFRESH_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    s = load_settings()
    assert s.backend_url == "http://localhost:8080"
    assert s.token is None
    assert s.http_timeout == 15.0
    assert s.refresh_interval("portfolio") == 10.0
    assert s.refresh_interval("markets") == 30.0
    assert s.refresh_interval("unknown-view") == 10.0


def test_settings_from_env(monkeypatch) -> None:
    monkeypatch.setenv("SAFECRYPTO_BACKEND_URL", "https://api.example/")
    monkeypatch.setenv("SAFECRYPTO_TOKEN", "  ")
    monkeypatch.setenv("SAFECRYPTO_HTTP_TIMEOUT", "not-a-number")
    monkeypatch.setenv("SAFECRYPTO_REFRESH_SECONDS", "5")
    s = load_settings()
    assert s.backend_url == "https://api.example"
    assert s.token is None
    assert s.http_timeout == 15.0
    assert s.refresh_interval("overview") == 5.0


@pytest.fixture
def fake_services(monkeypatch):
    ledger = FakeLedger(snapshot={"bitcoin": 1}, trades=[make_trade("BUY", 1, 100)])
    prices = FakePrices(batch={"bitcoin": make_quote("bitcoin", 150, symbol="btc")})

    def _build(settings=None):
        return ledger, prices, ReconciliationEngine(ledger, prices)

    monkeypatch.setattr(app, "build_services", _build)
    return ledger, prices


def test_load_portfolio(fake_services) -> None:
    result = app.load_portfolio("a@example.com")
    assert result["holdings"][0]["unrealized_pl"] == pytest.approx(50)


def test_main_once_prints_table(fake_services, capsys) -> None:
    assert app.main(["--email", "a@example.com", "--once"]) == 0
    out = capsys.readouterr().out
    assert "Bitcoin (BTC)" in out
    assert "$150.00" in out


def test_main_once_reports_failure(monkeypatch) -> None:
    ledger = FakeLedger(fail=True)

    def _build(settings=None):
        return ledger, FakePrices(), ReconciliationEngine(ledger, FakePrices())

    monkeypatch.setattr(app, "build_services", _build)
    assert app.main(["--email", "a@example.com", "--once"]) == 1

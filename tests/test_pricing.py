"""Tests for the CoinGecko market data client and market-list helpers."""

from datetime import datetime, timezone
from unittest import mock

import pytest
import requests

from safecrypto.models.errors import InvalidInput, SourceUnavailable
from safecrypto.services.pricing import (
    MarketDataClient,
    group_by_month,
    ledger_coin_ids,
    parse_market_quote,
    resolve_coin_id,
    search_quotes,
    summarize_markets,
)


def _response(payload, status=200):
    resp = mock.Mock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    else:
        resp.raise_for_status.return_value = None
    return resp


def _ms(year, month, day):
    return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp() * 1000)


MARKET_ROW = {
    "id": "bitcoin",
    "name": "Bitcoin",
    "symbol": "btc",
    "current_price": 65000.5,
    "price_change_percentage_24h": -1.25,
    "market_cap": 1.2e12,
    "sparkline_in_7d": {"price": [64000, 64500, None, 65000]},
}


def test_resolve_coin_id() -> None:
    assert resolve_coin_id("BTC") == "bitcoin"
    assert resolve_coin_id("eth") == "ethereum"
    assert resolve_coin_id("Bitcoin") == "bitcoin"
    assert resolve_coin_id(" Shiba Inu ") == "shiba-inu"


def test_resolve_coin_id_prefers_ledger_pairs() -> None:
    known = ledger_coin_ids([
        {"asset_id": "avalanche-2", "asset_name": "Avalanche"},
        {"asset_id": "USD", "asset_name": "US Dollar"},
        {"asset_id": "", "asset_name": "Mystery"},
    ])
    assert known == {"avalanche-2": "avalanche-2", "avalanche": "avalanche-2"}
    assert resolve_coin_id("Avalanche", known) == "avalanche-2"
    assert resolve_coin_id("avalanche", known) == "avalanche-2"
    assert resolve_coin_id("Avalanche") == "avalanche"
    assert resolve_coin_id("BTC", known) == "bitcoin"


def test_parse_market_quote() -> None:
    q = parse_market_quote(MARKET_ROW)
    assert q["id"] == "bitcoin"
    assert q["current_price"] == 65000.5
    assert q["change_24h_pct"] == -1.25
    assert q["sparkline"] == [64000, 64500, 65000]


def test_parse_market_quote_null_price() -> None:
    q = parse_market_quote({"id": "newcoin", "current_price": None})
    assert q["current_price"] == 0.0
    assert q["name"] == "newcoin"
    assert q["sparkline"] == []


def test_parse_market_quote_rejects_missing_id() -> None:
    with pytest.raises(SourceUnavailable):
        parse_market_quote({"name": "No Id"})


def test_get_quotes_batches_by_id() -> None:
    session = mock.Mock()
    session.get.return_value = _response([MARKET_ROW])
    client = MarketDataClient("https://md.example/api/v3/", session=session)

    quotes = client.get_quotes({"BTC", "bitcoin", "unknown-coin"})

    assert set(quotes) == {"bitcoin"}
    url = session.get.call_args.args[0]
    params = session.get.call_args.kwargs["params"]
    assert url == "https://md.example/api/v3/coins/markets"
    assert params["ids"] == "bitcoin,unknown-coin"
    assert params["vs_currency"] == "usd"
    assert params["sparkline"] == "true"


def test_get_quotes_empty_makes_no_request() -> None:
    session = mock.Mock()
    assert MarketDataClient(session=session).get_quotes(set()) == {}
    session.get.assert_not_called()


def test_network_error_becomes_source_unavailable() -> None:
    session = mock.Mock()
    session.get.side_effect = requests.ConnectionError("no route")
    with pytest.raises(SourceUnavailable) as exc:
        MarketDataClient(session=session).get_quotes({"bitcoin"})
    assert exc.value.source == "market-data"


def test_http_error_becomes_source_unavailable() -> None:
    session = mock.Mock()
    session.get.return_value = _response({}, status=429)
    with pytest.raises(SourceUnavailable):
        MarketDataClient(session=session).get_top_markets()


def test_get_quote_from_market_chart() -> None:
    session = mock.Mock()
    session.get.return_value = _response({"prices": [[2000, 110.0], [1000, 100.0]]})
    q = MarketDataClient(session=session).get_quote("SOL")

    assert session.get.call_args.args[0].endswith("/coins/solana/market_chart")
    assert q["id"] == "solana"
    assert q["symbol"] == "sol"
    assert q["current_price"] == 110.0
    assert q["change_24h_pct"] == pytest.approx(10.0)
    assert q["sparkline"] == [100.0, 110.0]


def test_get_quote_empty_series_is_none() -> None:
    session = mock.Mock()
    session.get.return_value = _response({"prices": []})
    assert MarketDataClient(session=session).get_quote("ghost") is None


def test_group_by_month_averages() -> None:
    points = [
        {"ts": _ms(2024, 2, 1), "price": 30.0},
        {"ts": _ms(2024, 1, 5), "price": 10.0},
        {"ts": _ms(2024, 1, 20), "price": 20.0},
    ]
    grouped = group_by_month(points)
    assert grouped == [
        {"ts": _ms(2024, 1, 1), "price": 15.0},
        {"ts": _ms(2024, 2, 1), "price": 30.0},
    ]


def test_price_history_ranges() -> None:
    session = mock.Mock()
    prices = [[_ms(2024, m, 1), float(m)] for m in range(1, 13)] + [[_ms(2024, 12, 15), 14.0]]
    session.get.return_value = _response({"prices": prices})
    client = MarketDataClient(session=session)

    six = client.get_price_history("bitcoin", "6M")
    assert session.get.call_args.kwargs["params"]["days"] == 180
    assert len(six) == 6
    assert six[-1]["price"] == pytest.approx(13.0)

    month = client.get_price_history("bitcoin", "1M")
    assert len(month) == 13

    with pytest.raises(InvalidInput):
        client.get_price_history("bitcoin", "5D")


def test_summarize_and_search() -> None:
    quotes = [
        parse_market_quote(MARKET_ROW),
        parse_market_quote({"id": "ethereum", "name": "Ethereum", "symbol": "eth",
                            "market_cap": 4e11, "price_change_percentage_24h": 3.25}),
    ]
    summary = summarize_markets(quotes)
    assert summary["total_market_cap"] == pytest.approx(1.6e12)
    assert summary["avg_change_24h_pct"] == pytest.approx(1.0)
    assert summarize_markets([]) == {"total_market_cap": 0.0, "avg_change_24h_pct": 0.0}

    assert [q["id"] for q in search_quotes(quotes, "ETH")] == ["ethereum"]
    assert [q["id"] for q in search_quotes(quotes, "coin")] == ["bitcoin"]
    assert len(search_quotes(quotes, "  ")) == 2

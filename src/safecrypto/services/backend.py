"""Application backend client: holdings snapshot, trade ledger, and wallet (bearer-token auth)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from safecrypto.config.constants import BACKEND_URL, HTTP_TIMEOUT, STATUS_COMPLETED, TRADE_KINDS
from safecrypto.models.core import HoldingsSnapshot, TradeRecord, WalletRecord
from safecrypto.models.errors import NotFound, SourceUnavailable

logger = logging.getLogger(__name__)


def _float(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def parse_trade(raw: Dict[str, Any]) -> TradeRecord:
    """
    Normalise a backend trade payload into a TradeRecord.

    Accepts both the backend field names (coinId, coinName, type, price, date)
    and the TradeRecord names. Missing status means Completed, which is what
    every trading screen wrote.
    """
    if not isinstance(raw, dict):
        raise SourceUnavailable(f"malformed trade: {raw!r}", source="ledger")
    kind = str(raw.get("type") or raw.get("kind") or "").upper()
    if kind not in TRADE_KINDS:
        raise SourceUnavailable(f"unknown trade kind {kind!r}", source="ledger")
    quantity = _float(raw.get("quantity"))
    unit_price = _float(raw.get("price", raw.get("unit_price")))
    total = raw.get("total")
    return {
        "id": str(raw["id"]) if raw.get("id") is not None else None,
        "email": str(raw.get("email") or ""),
        "asset_id": str(raw.get("coinId") or raw.get("asset_id") or ""),
        "asset_name": str(raw.get("coinName") or raw.get("asset_name") or ""),
        "kind": kind,
        "quantity": quantity,
        "unit_price": unit_price,
        "total": _float(total) if total is not None else quantity * unit_price,
        "status": str(raw.get("status") or STATUS_COMPLETED),
        "timestamp": str(raw.get("date") or raw.get("timestamp") or ""),
    }


def trade_payload(trade: TradeRecord) -> Dict[str, Any]:
    """Backend JSON body for POST /trades and /portfolio/update."""
    return {
        "email": trade["email"],
        "coinId": trade["asset_id"],
        "coinName": trade["asset_name"],
        "type": trade["kind"],
        "quantity": trade["quantity"],
        "price": trade["unit_price"],
        "total": trade["total"],
        "status": trade["status"],
        "date": trade["timestamp"],
    }


class BackendClient:
    """LedgerSource plus the wallet/trade write endpoints of the application backend."""

    def __init__(
        self,
        base_url: str = BACKEND_URL,
        token: Optional[str] = None,
        timeout: float = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self.token = token

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, source: str, body: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method, url, json=body, headers=self._headers(), timeout=self.timeout
            )
            if response.status_code == 404:
                raise NotFound(f"{method} {path}: not found")
            response.raise_for_status()
            if not response.content:
                return None
            return response.json()
        except requests.RequestException as e:
            raise SourceUnavailable(f"{method} {path} failed: {e}", source=source) from e
        except ValueError as e:
            raise SourceUnavailable(f"{method} {path} returned invalid JSON", source=source) from e

    def get_holdings_snapshot(self, email: str) -> HoldingsSnapshot:
        """Authoritative per-asset quantities. Raises NotFound if the user has no portfolio."""
        data = self._request("GET", f"/portfolio/{quote(email)}", source="ledger")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise SourceUnavailable("portfolio response is not a mapping", source="ledger")
        return {str(k): _float(v) for k, v in data.items()}

    def get_trades(self, email: str) -> List[TradeRecord]:
        """Full trade ledger for a user, in whatever order the backend returns it."""
        data = self._request("GET", f"/trades/{quote(email)}", source="ledger")
        if data is None:
            return []
        if not isinstance(data, list):
            raise SourceUnavailable("trades response is not a list", source="ledger")
        return [parse_trade(row) for row in data]

    def get_wallet(self, email: str) -> WalletRecord:
        data = self._request("GET", f"/wallet/{quote(email)}", source="wallet") or {}
        if not isinstance(data, dict):
            raise SourceUnavailable("wallet response is not a mapping", source="wallet")
        return {"email": email, "balance_usd": _float(data.get("balanceUsd"))}

    def update_wallet(self, email: str, balance_usd: float) -> None:
        self._request("POST", "/wallet/update", source="wallet", body={"email": email, "balanceUsd": balance_usd})

    def post_trade(self, trade: TradeRecord) -> None:
        """Append a ledger entry."""
        self._request("POST", "/trades", source="ledger", body=trade_payload(trade))

    def update_portfolio(self, trade: TradeRecord) -> None:
        """Apply a BUY/SELL to the backend holdings snapshot."""
        self._request("POST", "/portfolio/update", source="ledger", body=trade_payload(trade))

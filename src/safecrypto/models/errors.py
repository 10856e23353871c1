"""Error taxonomy shared by the data sources, the engine, and trading actions."""

from __future__ import annotations

from typing import Iterable, Optional


class DashboardError(Exception):
    """Base class for all SafeCrypto errors; none of them is fatal to the process."""


class SourceUnavailable(DashboardError):
    """A backend or market-data call failed, or returned an unusable payload."""

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class NotFound(DashboardError):
    """The backend has no record for the requested key (HTTP 404)."""


class PartialPriceData(DashboardError):
    """Some held assets could not be priced even after the single-asset fallback.

    Attached to a cycle result rather than raised; the affected holdings
    carry a zero price and the price-unavailable flag.
    """

    def __init__(self, asset_ids: Iterable[str]) -> None:
        self.asset_ids = sorted(asset_ids)
        super().__init__(f"price unavailable for: {', '.join(self.asset_ids)}")


class InvalidInput(DashboardError, ValueError):
    """Consumer input rejected before it reaches the backend or the engine."""

"""Environment-driven settings and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from safecrypto.config.constants import (
    BACKEND_URL,
    DEFAULT_VIEW,
    HTTP_TIMEOUT,
    LOG_FORMAT,
    MARKET_DATA_URL,
    REFRESH_INTERVALS,
)


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    s = str(v).strip()
    return s if s != "" else default


def _float_env(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        return float(default)
    return value if value > 0 else float(default)


@dataclass(frozen=True)
class Settings:
    backend_url: str = BACKEND_URL
    market_data_url: str = MARKET_DATA_URL
    token: Optional[str] = None
    http_timeout: float = HTTP_TIMEOUT
    refresh_intervals: Dict[str, float] = field(default_factory=lambda: dict(REFRESH_INTERVALS))
    log_level: str = "INFO"

    def refresh_interval(self, view: str = DEFAULT_VIEW) -> float:
        """Polling interval in seconds for a consuming view (unknown views use the portfolio one)."""
        return self.refresh_intervals.get(view, self.refresh_intervals[DEFAULT_VIEW])


def load_settings() -> Settings:
    """
    Build Settings from SAFECRYPTO_* environment variables.

    Blank or invalid values fall back to the constants defaults. A single
    SAFECRYPTO_REFRESH_SECONDS overrides the interval of every view.
    """
    intervals = dict(REFRESH_INTERVALS)
    if _env("SAFECRYPTO_REFRESH_SECONDS") is not None:
        override = _float_env("SAFECRYPTO_REFRESH_SECONDS", REFRESH_INTERVALS[DEFAULT_VIEW])
        intervals = {view: override for view in intervals}
    return Settings(
        backend_url=(_env("SAFECRYPTO_BACKEND_URL", BACKEND_URL) or BACKEND_URL).rstrip("/"),
        market_data_url=(_env("SAFECRYPTO_MARKET_DATA_URL", MARKET_DATA_URL) or MARKET_DATA_URL).rstrip("/"),
        token=_env("SAFECRYPTO_TOKEN"),
        http_timeout=_float_env("SAFECRYPTO_HTTP_TIMEOUT", HTTP_TIMEOUT),
        refresh_intervals=intervals,
        log_level=(_env("SAFECRYPTO_LOG_LEVEL", "INFO") or "INFO").upper(),
    )


def setup_logger(name: str = "safecrypto", level: int | str = logging.INFO) -> logging.Logger:
    """Attach a single console handler to the package logger (idempotent)."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)
    return logger

"""Centralized colours and number formats for rendering dashboard values."""

from __future__ import annotations

COLOR_PROFIT = "#10b981"  # Green
COLOR_LOSS = "#ef4444"    # Red
COLOR_NEUTRAL = "#888888"  # Gray for descriptors and zero values

# Allocation chart slice colours, cycled in holding order
ALLOCATION_COLORS = ["#f8c400", "#10b981", "#ef4444", "#3b82f6", "#a855f7"]

PRICE_UNAVAILABLE_TEXT = "price unavailable"
EMPTY_PORTFOLIO_TEXT = "No holdings yet. Start trading to build your portfolio."
LOADING_TEXT = "Loading portfolio..."
ERROR_TEXT = "Failed to load portfolio data."

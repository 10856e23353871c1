"""Presentation adapter: turns engine output into display-ready values (no GUI deps)."""

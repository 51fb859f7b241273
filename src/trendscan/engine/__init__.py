"""Backtesting and multi-series scanning."""

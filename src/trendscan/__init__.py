"""Trendline, channel and chart-pattern scanning with forward backtests."""

__version__ = "0.1.0"

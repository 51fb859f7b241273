"""Trade simulation and result statistics."""

from .metrics import PROFIT_FACTOR_CAP, compute_performance_metrics, sanitize_float, summarize_results
from .simulator import analyze_breakout_within_period, calculate_candles_to_target, run_backtest, simulate_trade

__all__ = [
    "simulate_trade",
    "run_backtest",
    "calculate_candles_to_target",
    "analyze_breakout_within_period",
    "summarize_results",
    "compute_performance_metrics",
    "sanitize_float",
    "PROFIT_FACTOR_CAP",
]

"""Core module exports."""

from .config import (
    DEFAULT_CONFIG,
    AnalysisConfig,
    BacktestConfig,
    BreakoutConfig,
    ChannelConfig,
    PatternDetectionConfig,
    PatternValidationConfig,
    ScanConfig,
    TrendlineConfig,
)
from .models import (
    BacktestResult,
    BacktestSummary,
    BreakoutValidation,
    Candle,
    Channel,
    ChannelBreakout,
    ChannelKind,
    DiagonalGeometry,
    Direction,
    EmaGeometry,
    ExitReason,
    HorizontalGeometry,
    LineGeometry,
    MultiTimeframeTrendlines,
    PatternEvent,
    PatternSignal,
    PatternValidation,
    PerformanceMetrics,
    PeriodBreakout,
    ScoreContribution,
    StructureCheck,
    SwingKind,
    SwingPoint,
    Timeframe,
    Trendline,
    TrendlineConfirmation,
    TrendlineKind,
    TrendlineSide,
    price_at_index,
)

__all__ = [
    "AnalysisConfig",
    "TrendlineConfig",
    "ChannelConfig",
    "BreakoutConfig",
    "PatternDetectionConfig",
    "PatternValidationConfig",
    "BacktestConfig",
    "ScanConfig",
    "DEFAULT_CONFIG",
    "Timeframe",
    "Direction",
    "SwingKind",
    "TrendlineKind",
    "TrendlineSide",
    "ChannelKind",
    "ExitReason",
    "Candle",
    "SwingPoint",
    "HorizontalGeometry",
    "DiagonalGeometry",
    "EmaGeometry",
    "LineGeometry",
    "price_at_index",
    "Trendline",
    "TrendlineConfirmation",
    "MultiTimeframeTrendlines",
    "Channel",
    "ChannelBreakout",
    "PatternEvent",
    "ScoreContribution",
    "StructureCheck",
    "BreakoutValidation",
    "PatternValidation",
    "PatternSignal",
    "BacktestResult",
    "BacktestSummary",
    "PerformanceMetrics",
    "PeriodBreakout",
]

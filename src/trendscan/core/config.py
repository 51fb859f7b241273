"""Analysis configuration: every tunable used by detection, scoring and backtesting."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from trendscan.config.settings import Settings, get_settings


class TrendlineConfig(BaseModel):
    """Trendline detection and validation parameters."""

    # Validation thresholds
    min_confirmation_touches: int = Field(default=3, ge=1)
    validation_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    strength_threshold: float = Field(default=0.6, ge=0.0, le=1.0)

    # Window
    lookback_period: int = Field(default=100, ge=7)
    ema_periods: list[int] = Field(default_factory=lambda: [7, 50, 100])

    # Touch detection
    proximity_threshold: float = Field(default=0.005, gt=0.0, le=0.1)
    use_wicks: bool = True
    volatility_adjustment: bool = True
    volatility_threshold: float = Field(default=3.0, gt=0.0)

    # Swing points
    swing_lookaround: int = Field(default=3, ge=1)
    max_swing_points: int = Field(default=60, ge=2)

    # Diagonal lines
    min_slope_angle: float = Field(default=5.0, ge=0.0, le=90.0)
    max_slope_angle: float = Field(default=45.0, ge=0.0, le=90.0)
    min_pair_gap: int = Field(default=3, ge=1)
    optimal_angle_low: float = Field(default=15.0, gt=0.0)
    optimal_angle_high: float = Field(default=30.0, gt=0.0)

    # Strength normalization caps
    touch_cap: int = Field(default=5, ge=1)
    length_cap: int = Field(default=30, ge=1)

    # Multi-timeframe confirmation
    mtf_price_tolerance: float = Field(default=0.008, gt=0.0)
    mtf_higher_weight: float = Field(default=1.5, gt=0.0)

    @field_validator("ema_periods")
    @classmethod
    def validate_ema_periods(cls, v: list[int]) -> list[int]:
        """EMA periods must be positive."""
        if any(p < 1 for p in v):
            raise ValueError("ema_periods must all be >= 1")
        return v

    @field_validator("max_slope_angle")
    @classmethod
    def validate_slope_bounds(cls, v: float, info) -> float:
        """Ensure max_slope_angle >= min_slope_angle."""
        if "min_slope_angle" in info.data and v < info.data["min_slope_angle"]:
            raise ValueError("max_slope_angle must be >= min_slope_angle")
        return v

    @property
    def min_candles(self) -> int:
        return max([self.lookback_period, *self.ema_periods])


class ChannelConfig(BaseModel):
    """Channel classification parameters."""
    min_candles: int = Field(default=7, ge=3)
    atr_period: int = Field(default=14, ge=1)
    slope_threshold: float = Field(default=0.5, ge=0.0)
    boundary_window: int = Field(default=5, ge=1)
    touch_atr_multiple: float = Field(default=0.5, gt=0.0)
    min_touches: int = Field(default=3, ge=1)
    breakout_atr_multiple: float = Field(default=0.5, gt=0.0)

    # Higher-timeframe adjustments
    match_multiplier: float = Field(default=1.5, gt=0.0)
    conflict_multiplier: float = Field(default=0.6, gt=0.0)
    established_multiplier: float = Field(default=1.25, gt=0.0)
    htf_breakout_multiplier: float = Field(default=1.5, gt=0.0)


class BreakoutConfig(BaseModel):
    """Breakout validation parameters and scoring weights."""
    require_volume_confirmation: bool = True
    min_volume_factor: float = Field(default=1.2, gt=0.0)
    require_higher_timeframe_alignment: bool = True
    confidence_threshold: float = Field(default=0.70, ge=0.0, le=1.0)

    min_candles: int = Field(default=5, ge=2)
    min_confirmation_candles: int = Field(default=1, ge=0)
    confirmation_lookback: int = Field(default=3, ge=1)
    volume_lookback: int = Field(default=10, ge=1)
    momentum_lookback: int = Field(default=5, ge=2)

    # Score weights
    base_confidence: float = 0.5
    confirmation_bonus: float = 0.15
    candlestick_bonus: float = 0.15
    volume_weight: float = 0.15
    volume_penalty: float = 0.25
    htf_weight: float = 0.25
    htf_breakout_bonus: float = 0.20
    htf_misaligned_penalty: float = 0.30
    htf_missing_penalty: float = 0.15
    momentum_weight: float = 0.20
    breakout_strength_weight: float = 0.20
    trendline_strength_weight: float = 0.15
    false_breakout_weight: float = 0.25


class PatternDetectionConfig(BaseModel):
    """Raw chart pattern detection parameters."""
    extrema_order: int = Field(default=5, ge=1)
    price_tolerance: float = Field(default=0.02, gt=0.0, le=0.2)
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    pole_bars: int = Field(default=5, ge=1)
    min_pole_move: float = Field(default=0.05, gt=0.0)
    flag_bars: int = Field(default=15, ge=5)
    parallel_tolerance: float = Field(default=0.002, gt=0.0)


class PatternValidationConfig(BaseModel):
    """Chart pattern confidence scoring parameters."""
    base_score: float = Field(default=50.0, ge=0.0, le=100.0)
    validity_threshold: float = Field(default=70.0, ge=0.0, le=100.0)
    min_candles: int = Field(default=7, ge=2)
    min_price: float = Field(default=10.0, ge=0.0)
    near_level_tolerance: float = Field(default=0.03, gt=0.0)
    false_breakout_lookback: int = Field(default=20, ge=2)
    rsi_period: int = Field(default=14, ge=2)
    atr_period: int = Field(default=14, ge=1)


class BacktestConfig(BaseModel):
    """Trade simulation parameters."""
    max_holding_period: int = Field(default=30, ge=1)
    min_forward_candles: int = Field(default=20, ge=0)
    default_stop_percent: float = Field(default=0.05, gt=0.0, lt=1.0)
    target_atr_multiple: float = Field(default=2.5, gt=0.0)
    stop_atr_multiple: float = Field(default=1.5, gt=0.0)


class ScanConfig(BaseModel):
    """Multi-series scanning parameters."""
    max_workers: int = Field(default=4, ge=1, le=64)
    use_processes: bool = False
    signal_lookback: int = Field(default=30, ge=1)


class AnalysisConfig(BaseModel):
    """Single configuration record passed into every entry point."""
    trendline: TrendlineConfig = Field(default_factory=TrendlineConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    detection: PatternDetectionConfig = Field(default_factory=PatternDetectionConfig)
    breakout: BreakoutConfig = Field(default_factory=BreakoutConfig)
    pattern: PatternValidationConfig = Field(default_factory=PatternValidationConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AnalysisConfig":
        """Build a config seeded from environment settings."""
        if settings is None:
            settings = get_settings()

        return cls(
            breakout=BreakoutConfig(confidence_threshold=settings.CONFIDENCE_THRESHOLD),
            pattern=PatternValidationConfig(validity_threshold=settings.PATTERN_VALIDITY_THRESHOLD),
            backtest=BacktestConfig(
                max_holding_period=settings.MAX_HOLDING_PERIOD,
                min_forward_candles=settings.MIN_FORWARD_CANDLES,
            ),
            scan=ScanConfig(
                max_workers=settings.SCAN_MAX_WORKERS,
                use_processes=settings.SCAN_USE_PROCESSES,
            ),
        )


DEFAULT_CONFIG = AnalysisConfig()

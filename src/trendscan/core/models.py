"""Core domain models using Pydantic."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Timeframe(str, Enum):
    """Supported candle timeframes, ordered from lowest to highest."""
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"
    W1 = "1wk"

    @property
    def rank(self) -> int:
        return list(Timeframe).index(self)


class Direction(str, Enum):
    """Signal direction."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class SwingKind(str, Enum):
    """Swing point type."""
    HIGH = "high"
    LOW = "low"


class TrendlineKind(str, Enum):
    """How a trendline's price is derived."""
    HORIZONTAL = "horizontal"
    DIAGONAL = "diagonal"
    EMA = "ema"


class TrendlineSide(str, Enum):
    """Whether price is expected to hold above or below the line."""
    SUPPORT = "support"
    RESISTANCE = "resistance"


class ChannelKind(str, Enum):
    """Channel classification by regression slope."""
    ASCENDING = "ascending"
    DESCENDING = "descending"
    HORIZONTAL = "horizontal"
    UNDEFINED = "undefined"


class ExitReason(str, Enum):
    """Why a simulated trade ended."""
    TARGET = "target"
    STOP_LOSS = "stop_loss"
    TIMEOUT = "timeout"
    INSUFFICIENT_DATA = "insufficient_data"


# =============================================================================
# Price Data
# =============================================================================


class Candle(BaseModel):
    """Single OHLCV bar."""
    model_config = ConfigDict(frozen=True)

    timestamp: Optional[datetime] = None
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class SwingPoint(BaseModel):
    """Local price extreme at a candle index."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    value: float
    kind: SwingKind


# =============================================================================
# Line Geometry
# =============================================================================


class HorizontalGeometry(BaseModel):
    """Constant price level."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["horizontal"] = "horizontal"
    level: float


class DiagonalGeometry(BaseModel):
    """Straight line through two swing points: price = slope * index + intercept."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["diagonal"] = "diagonal"
    slope: float
    intercept: float


class EmaGeometry(BaseModel):
    """Precomputed EMA values indexed by candle position."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["ema"] = "ema"
    period: int = Field(ge=1)
    offset: int = Field(default=0, ge=0)  # candle index of values[0]
    values: list[float] = Field(default_factory=list)


LineGeometry = Annotated[
    Union[HorizontalGeometry, DiagonalGeometry, EmaGeometry],
    Field(discriminator="kind"),
]


def price_at_index(geometry: LineGeometry, index: int) -> float:
    """
    Evaluate a line geometry at a candle index.

    EMA lookups are clamped to the available values so a line can still be
    projected one bar past the data it was built from.
    """
    if isinstance(geometry, HorizontalGeometry):
        return geometry.level
    if isinstance(geometry, DiagonalGeometry):
        return geometry.slope * index + geometry.intercept
    if not geometry.values:
        return 0.0
    clamped = min(max(index - geometry.offset, 0), len(geometry.values) - 1)
    return geometry.values[clamped]


# =============================================================================
# Detection Models
# =============================================================================


class Trendline(BaseModel):
    """Support or resistance line with touch statistics."""
    model_config = ConfigDict(frozen=True)

    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)
    start_price: float
    end_price: float
    kind: TrendlineKind
    side: TrendlineSide
    ema_period: Optional[int] = None
    touches: int = Field(default=0, ge=0)
    bounce_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    strength: float = Field(default=0.0, ge=0.0, le=1.0)
    active: bool = True
    angle: Optional[float] = None
    geometry: LineGeometry

    @property
    def length(self) -> int:
        return self.end_index - self.start_index

    def price_at(self, index: int) -> float:
        """Line price at a candle index."""
        return price_at_index(self.geometry, index)


class Channel(BaseModel):
    """Regression-classified price channel."""
    kind: ChannelKind = ChannelKind.UNDEFINED
    strength: float = Field(default=0.0, ge=0.0, le=1.0)
    support_level: Optional[float] = None
    resistance_level: Optional[float] = None
    established: bool = False
    touch_points: int = Field(default=0, ge=0)
    normalized_slope: float = 0.0
    atr: float = 0.0


class ChannelBreakout(BaseModel):
    """Close beyond a channel boundary."""
    breakout: bool = False
    direction: Optional[Direction] = None
    strength: float = Field(default=0.0, ge=0.0)
    higher_timeframe_breakout: bool = False


class PatternEvent(BaseModel):
    """Raw chart pattern detection, before confidence validation."""
    pattern_type: str
    start_index: int
    end_index: int
    confidence: float = Field(ge=0.0, le=1.0)
    direction: Direction
    target_price: Optional[float] = None
    stop_price: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TrendlineConfirmation(BaseModel):
    """Lower-timeframe trendlines matched on a higher timeframe."""
    is_confirmed: bool = False
    confirming: list[Trendline] = Field(default_factory=list)
    strength: float = Field(default=0.0, ge=0.0, le=1.0)


class MultiTimeframeTrendlines(BaseModel):
    """Trendlines of the highest timeframe with pairwise confirmations."""
    trendlines: list[Trendline] = Field(default_factory=list)
    confirmations: dict[str, bool] = Field(default_factory=dict)
    strength: float = Field(default=0.0, ge=0.0, le=1.0)


# =============================================================================
# Validation Models
# =============================================================================


class ScoreContribution(BaseModel):
    """One named heuristic's signed effect on a confidence score."""
    name: str
    delta: float
    rationale: str = ""
    weight: float = 1.0

    @property
    def weighted(self) -> float:
        return self.delta * self.weight


class StructureCheck(BaseModel):
    """Result of a pattern-specific structural validator."""
    is_valid: bool
    confidence: float = Field(ge=0.0, le=100.0)
    reason: str = ""


class BreakoutValidation(BaseModel):
    """Trendline breakout confidence on a 0-1 scale."""
    is_valid: bool
    confidence: float = Field(ge=0.0, le=1.0)
    contributions: list[ScoreContribution] = Field(default_factory=list)
    volume_factor: float = 0.0
    false_breakout_risk: float = Field(default=0.0, ge=0.0, le=1.0)
    higher_timeframe_breakout: bool = False


class PatternValidation(BaseModel):
    """Chart pattern confidence on a 0-100 scale."""
    is_valid: bool
    confidence: float = Field(ge=0.0, le=100.0)
    contributions: list[ScoreContribution] = Field(default_factory=list)
    channel_kind: Optional[ChannelKind] = None
    channel_strength: Optional[float] = None
    higher_timeframe_breakout: bool = False


class PatternSignal(BaseModel):
    """Scored trade setup ready for simulation."""
    symbol: str
    timeframe: str
    pattern_type: str
    direction: Direction
    entry_price: float
    target_price: float
    stop_loss: float
    confidence_score: float = Field(ge=0.0, le=100.0)
    channel_kind: Optional[ChannelKind] = None
    channel_strength: Optional[float] = None
    higher_timeframe_breakout: bool = False
    entry_index: Optional[int] = None
    entry_date: Optional[datetime] = None


# =============================================================================
# Backtest Models
# =============================================================================


class BacktestResult(BaseModel):
    """Outcome of replaying one signal over forward candles."""
    model_config = ConfigDict(frozen=True)

    symbol: str = ""
    timeframe: str = ""
    pattern_type: str = ""
    direction: Direction = Direction.BULLISH
    entry_price: float
    target_price: float
    stop_loss: float
    exit_price: float
    entry_index: Optional[int] = None
    exit_index: Optional[int] = None
    entry_date: Optional[datetime] = None
    exit_date: Optional[datetime] = None
    candles_to_breakout: int = 0
    successful: bool = False
    profit_loss: float = 0.0
    profit_loss_percent: float = 0.0
    max_drawdown_percent: float = 0.0
    risk_reward: float = 0.0
    exit_reason: ExitReason = ExitReason.INSUFFICIENT_DATA
    confidence_score: float = 0.0


class PeriodBreakout(BaseModel):
    """Whether a price level was reached within a bounded number of candles."""
    occurred: bool = False
    days_to_breakout: int = 0
    price_at_breakout: Optional[float] = None
    percent_move: Optional[float] = None


class BacktestSummary(BaseModel):
    """Aggregate statistics over a set of backtest results."""
    total_patterns: int = 0
    successful_patterns: int = 0
    failed_patterns: int = 0
    success_rate: float = 0.0
    avg_profit_loss_percent: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    risk_reward_ratio: float = 0.0
    max_profit: float = 0.0
    max_loss: float = 0.0
    max_win_streak: int = 0
    max_loss_streak: int = 0
    consistency_score: float = Field(default=0.0, ge=0.0, le=100.0)
    avg_candles_to_breakout: float = 0.0
    avg_confidence_score: float = 0.0


class PerformanceMetrics(BaseModel):
    """Trade-level performance analysis with per-group breakdowns."""
    summary: BacktestSummary = Field(default_factory=BacktestSummary)
    profit_factor: float = 0.0
    expectancy: float = 0.0
    max_drawdown_percent: float = 0.0
    avg_holding_period: float = 0.0
    target_hit_rate: float = 0.0
    stop_hit_rate: float = 0.0
    timeout_rate: float = 0.0
    by_pattern: dict[str, BacktestSummary] = Field(default_factory=dict)
    by_timeframe: dict[str, BacktestSummary] = Field(default_factory=dict)

"""Tests for settings and analysis configuration."""

import logging

import pytest
from pydantic import ValidationError

from trendscan.config import Settings, get_logger, setup_logging
from trendscan.core import AnalysisConfig, BacktestConfig, TrendlineConfig


class TestAnalysisConfig:
    """Test configuration defaults and validation."""

    def test_defaults(self):
        """Documented defaults are exposed on the config record."""
        config = AnalysisConfig()

        assert config.trendline.min_confirmation_touches == 3
        assert config.trendline.validation_threshold == 0.7
        assert config.trendline.strength_threshold == 0.6
        assert config.trendline.ema_periods == [7, 50, 100]
        assert config.breakout.confidence_threshold == 0.70
        assert config.pattern.validity_threshold == 70.0
        assert config.backtest.max_holding_period == 30
        assert config.trendline.min_candles == 100

    def test_slope_bounds_validated(self):
        """The maximum slope angle cannot sit below the minimum."""
        with pytest.raises(ValidationError):
            TrendlineConfig(min_slope_angle=30.0, max_slope_angle=10.0)

    def test_ema_periods_validated(self):
        """EMA periods must be positive."""
        with pytest.raises(ValidationError):
            TrendlineConfig(ema_periods=[7, 0])

    def test_range_checks(self):
        """Out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            BacktestConfig(max_holding_period=0)

    def test_from_settings(self):
        """Environment settings seed the matching config fields."""
        settings = Settings(
            CONFIDENCE_THRESHOLD=0.75,
            PATTERN_VALIDITY_THRESHOLD=65.0,
            MAX_HOLDING_PERIOD=15,
            MIN_FORWARD_CANDLES=5,
            SCAN_MAX_WORKERS=2,
        )

        config = AnalysisConfig.from_settings(settings)

        assert config.breakout.confidence_threshold == 0.75
        assert config.pattern.validity_threshold == 65.0
        assert config.backtest.max_holding_period == 15
        assert config.backtest.min_forward_candles == 5
        assert config.scan.max_workers == 2


class TestSettings:
    """Test environment-driven settings."""

    def test_env_prefix(self, monkeypatch):
        """Settings are read from TRENDSCAN_ variables."""
        monkeypatch.setenv("TRENDSCAN_MAX_HOLDING_PERIOD", "12")
        monkeypatch.setenv("TRENDSCAN_LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.MAX_HOLDING_PERIOD == 12
        assert settings.LOG_LEVEL == "DEBUG"

    def test_logger_namespace(self):
        """Module loggers live under the package namespace."""
        assert get_logger("engine.scanner").name == "trendscan.engine.scanner"

    def test_setup_logging(self):
        """Logging setup applies the level to the package logger."""
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        try:
            logger = setup_logging("DEBUG")

            assert logger.name == "trendscan"
            assert logger.level == logging.DEBUG
            assert get_logger("features.swings").getEffectiveLevel() == logging.DEBUG
        finally:
            root.handlers[:] = handlers
            root.setLevel(level)
            logging.getLogger("trendscan").setLevel(logging.NOTSET)

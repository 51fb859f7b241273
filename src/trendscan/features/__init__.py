"""Detection and scoring: swings, trendlines, channels, breakouts and chart patterns."""

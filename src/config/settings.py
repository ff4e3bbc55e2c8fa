"""
Configuration models using Pydantic for type-safe validation.

This module defines all configuration models for the analytics engine:
- SystemConfig: Environment, log level, API server
- VolumeProfileConfig: Bucketing, weighting, node thresholds
- OrderFlowConfig: Delta estimation, momentum, institutional activity
- MarketStructureConfig: Swing window, break reference, break history, level limits
- RiskEngineConfig: Stops, sizing, reference portfolio
"""

from enum import Enum
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Enums for Configuration
# ============================================================================

class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class WeightingMode(str, Enum):
    """Volume attribution scheme for the volume profile."""
    TYPICAL = "typical"
    OHLC = "ohlc"


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(BaseModel):
    """System-wide settings."""

    model_config = ConfigDict(use_enum_values=True)

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    log_json: bool = Field(
        default=False,
        description="Emit JSON log lines"
    )

    log_file: str = Field(
        default="",
        description="Optional log file path (empty disables file logging)"
    )

    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )

    api_port: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="API server port"
    )

    default_timeframe: str = Field(
        default="1h",
        description="Timeframe used when a request omits one"
    )

    candle_limit: int = Field(
        default=100,
        ge=20,
        le=1000,
        description="Candles fetched per symbol analysis"
    )

    report_cache_size: int = Field(
        default=64,
        ge=1,
        le=10000,
        description="Most recent symbol/timeframe reports kept in memory"
    )

    mock_series_cache_size: int = Field(
        default=64,
        ge=1,
        le=10000,
        description="Generated candle series kept by the demo source"
    )


# ============================================================================
# Volume Profile Configuration
# ============================================================================

class VolumeProfileConfig(BaseModel):
    """Volume profile analyzer settings (defaults are the detailed preset)."""

    model_config = ConfigDict(use_enum_values=True)

    bucket_count: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Number of price buckets"
    )

    weighting: WeightingMode = Field(
        default=WeightingMode.OHLC,
        description="Volume attribution scheme"
    )

    ohlc_weights: Tuple[float, float, float, float] = Field(
        default=(0.25, 0.15, 0.15, 0.45),
        description="Open/high/low/close weights for OHLC attribution"
    )

    value_area_pct: float = Field(
        default=0.70,
        gt=0.0,
        le=1.0,
        description="Fraction of volume in the value area"
    )

    hvn_threshold_pct: float = Field(
        default=3.0,
        ge=0.0,
        le=100.0,
        description="Node percentage above which a node is high volume"
    )

    lvn_threshold_pct: float = Field(
        default=0.5,
        ge=0.0,
        le=100.0,
        description="Node percentage below which a node is low volume"
    )

    hvn_list_threshold_pct: float = Field(
        default=2.5,
        ge=0.0,
        le=100.0,
        description="Node percentage above which a node is listed as high volume"
    )

    lvn_list_threshold_pct: float = Field(
        default=0.8,
        ge=0.0,
        le=100.0,
        description="Node percentage below which a node is listed as low volume"
    )

    @field_validator('ohlc_weights')
    @classmethod
    def validate_weights(cls, v):
        """Weights must be non-negative with a positive sum."""
        if any(w < 0 for w in v):
            raise ValueError("ohlc_weights must be non-negative")
        if sum(v) <= 0:
            raise ValueError("ohlc_weights must sum to a positive value")
        return v


# ============================================================================
# Order Flow Configuration
# ============================================================================

class OrderFlowConfig(BaseModel):
    """Order flow analyzer settings."""

    delta_fraction: float = Field(
        default=0.6,
        gt=0.0,
        le=1.0,
        description="Fraction of bar volume attributed to the bar direction"
    )

    min_candles: int = Field(
        default=20,
        ge=1,
        description="Minimum candles for an order flow analysis"
    )

    momentum_window: int = Field(
        default=10,
        ge=2,
        description="Samples in the CVD momentum window"
    )

    sentiment_threshold: float = Field(
        default=5.0,
        ge=0.0,
        description="Momentum magnitude (percent) for a directional sentiment"
    )

    volume_average_window: int = Field(
        default=20,
        ge=1,
        description="Bars in the volume average"
    )

    activity_lookback: int = Field(
        default=10,
        ge=1,
        description="Recent bars scanned for institutional activity"
    )

    volume_spike_multiplier: float = Field(
        default=2.0,
        gt=1.0,
        description="Volume / average ratio that flags institutional activity"
    )

    imbalance_window: int = Field(
        default=20,
        ge=1,
        description="Trailing samples for the volume imbalance"
    )

    detect_absorption: bool = Field(
        default=False,
        description="Refine activity into absorption / rejection"
    )

    @field_validator('activity_lookback')
    @classmethod
    def validate_activity_lookback(cls, v, info):
        """The volume average must cover at least the activity lookback."""
        window = info.data.get('volume_average_window')
        if window is not None and window < v:
            raise ValueError("volume_average_window must be >= activity_lookback")
        return v


# ============================================================================
# Market Structure Configuration
# ============================================================================

class MarketStructureConfig(BaseModel):
    """Market structure analyzer settings."""

    min_candles: int = Field(
        default=20,
        ge=1,
        description="Minimum candles for a structure analysis"
    )

    swing_window: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Bars on each side a swing must dominate"
    )

    range_percentile: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Index fraction of the reference bar for breaks"
    )

    max_strength: float = Field(
        default=10.0,
        gt=0.0,
        description="Cap on break strength (percent)"
    )

    max_breaks: int = Field(
        default=5,
        ge=1,
        description="Most recent breaks kept"
    )

    max_order_blocks: int = Field(
        default=5,
        ge=1,
        description="Most recent order blocks kept"
    )

    max_fair_value_gaps: int = Field(
        default=3,
        ge=1,
        description="Most recent unfilled fair value gaps kept"
    )

    max_liquidity_pools: int = Field(
        default=5,
        ge=1,
        description="Strongest unswept liquidity pools kept"
    )

    key_level_count: int = Field(
        default=3,
        ge=1,
        description="Swing support / resistance levels kept on each side of price"
    )


# ============================================================================
# Risk Engine Configuration
# ============================================================================

class ReferencePositionConfig(BaseModel):
    """An open position aggregated into portfolio risk."""

    symbol: str
    risk_percent: float = Field(ge=0.0, le=100.0)
    correlation: float = Field(ge=-1.0, le=1.0)


class RiskEngineConfig(BaseModel):
    """Risk engine settings."""

    atr_period: int = Field(
        default=14,
        ge=1,
        description="ATR period"
    )

    sr_window: int = Field(
        default=2,
        ge=1,
        description="Bars on each side for support/resistance swings"
    )

    sr_levels: int = Field(
        default=3,
        ge=1,
        description="Most recent support/resistance levels kept"
    )

    default_atr_multiplier: float = Field(
        default=2.0,
        gt=0.0,
        description="ATR multiplier when a request omits one"
    )

    default_fixed_stop_percent: float = Field(
        default=3.0,
        gt=0.0,
        le=100.0,
        description="Fixed stop percent when a request omits one"
    )

    fallback_atr_multiplier: float = Field(
        default=2.0,
        gt=0.0,
        description="ATR multiplier when no support/resistance level qualifies"
    )

    reward_risk_ratio: float = Field(
        default=2.0,
        gt=0.0,
        description="Target distance as a multiple of stop distance"
    )

    kelly_win_rate: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Assumed win rate for Kelly sizing"
    )

    recommended_size_pct: float = Field(
        default=0.03,
        ge=0.0,
        le=1.0,
        description="Cap on recommended size as fraction of equity"
    )

    max_safe_size_pct: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Maximum safe size as fraction of equity"
    )

    reference_positions: List[ReferencePositionConfig] = Field(
        default_factory=lambda: [
            ReferencePositionConfig(symbol="ETHUSDT", risk_percent=1.5, correlation=0.85),
            ReferencePositionConfig(symbol="ADAUSDT", risk_percent=1.0, correlation=0.65),
        ],
        description="Open positions aggregated with the target for portfolio risk"
    )


# ============================================================================
# Complete Application Configuration
# ============================================================================

class AppConfig(BaseModel):
    """Complete application configuration."""

    model_config = ConfigDict(use_enum_values=True)

    system: SystemConfig = Field(
        default_factory=SystemConfig,
        description="System configuration"
    )

    volume_profile: VolumeProfileConfig = Field(
        default_factory=VolumeProfileConfig,
        description="Volume profile configuration"
    )

    order_flow: OrderFlowConfig = Field(
        default_factory=OrderFlowConfig,
        description="Order flow configuration"
    )

    market_structure: MarketStructureConfig = Field(
        default_factory=MarketStructureConfig,
        description="Market structure configuration"
    )

    risk: RiskEngineConfig = Field(
        default_factory=RiskEngineConfig,
        description="Risk engine configuration"
    )

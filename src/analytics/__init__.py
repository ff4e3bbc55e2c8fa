"""
Analytics Engine - Candle-based market analytics.

Components:
- VolumeProfileAnalyzer: POC, VAH, VAL, HVN/LVN and value-area bias
- OrderFlowAnalyzer: Estimated delta, CVD, momentum, institutional activity
- MarketStructureAnalyzer: Swings, BOS and CHoCH

AnalyticsEngine (src.analytics.engine) also runs the risk engine and is
imported from its module directly.
"""

from .candles import Candle, Ticker
from .volume_profile import (
    VolumeProfileAnalyzer,
    VolumeProfile,
    VolumeNode,
    VolumeWeighting,
    NodeClassification,
    MarketBias,
    ProfileAnalysis,
)
from .order_flow import (
    OrderFlowAnalyzer,
    OrderFlowAnalysis,
    OrderFlowSample,
    InstitutionalActivity,
    ActivityType,
    Sentiment,
)
from .market_structure import (
    MarketStructureAnalyzer,
    MarketStructure,
    StructureBreak,
    Swing,
    SwingKind,
    BreakType,
    TrendDirection,
)

__all__ = [
    # Candles
    'Candle',
    'Ticker',

    # Volume profile
    'VolumeProfileAnalyzer',
    'VolumeProfile',
    'VolumeNode',
    'VolumeWeighting',
    'NodeClassification',
    'MarketBias',
    'ProfileAnalysis',

    # Order flow
    'OrderFlowAnalyzer',
    'OrderFlowAnalysis',
    'OrderFlowSample',
    'InstitutionalActivity',
    'ActivityType',
    'Sentiment',

    # Market structure
    'MarketStructureAnalyzer',
    'MarketStructure',
    'StructureBreak',
    'Swing',
    'SwingKind',
    'BreakType',
    'TrendDirection',
]

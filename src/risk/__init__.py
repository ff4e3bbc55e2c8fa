"""
Risk Engine - Position sizing and risk assessment.

Components:
- RiskEngine: Sizing, portfolio aggregation, Kelly sizing, warnings
- StopCalculator: ATR, support/resistance and stop distance
- PortfolioRiskCalculator: Correlated reference-portfolio aggregation
"""

from .engine import PortfolioRiskCalculator, RiskEngine, StopCalculator
from .models import (
    MarketRisk,
    OptimalSizing,
    PortfolioRisk,
    PositionCalculation,
    PositionSide,
    ReferencePosition,
    RiskAnalysis,
    RiskParameters,
    RiskWarning,
    StopType,
    SupportResistance,
    WarningLevel,
)

__all__ = [
    'RiskEngine',
    'StopCalculator',
    'PortfolioRiskCalculator',
    'RiskParameters',
    'RiskAnalysis',
    'PositionCalculation',
    'PortfolioRisk',
    'MarketRisk',
    'OptimalSizing',
    'RiskWarning',
    'ReferencePosition',
    'SupportResistance',
    'PositionSide',
    'StopType',
    'WarningLevel',
]

"""
Risk data models.

This module defines the input parameters and result records of the risk
engine. Every record is created per analysis call and never mutated
afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List


class PositionSide(str, Enum):
    """Position side (long or short)."""
    LONG = "long"
    SHORT = "short"


class StopType(str, Enum):
    """Stop placement policy."""
    ATR = "atr"                                # ATR x multiplier
    FIXED = "fixed"                            # Fixed percent of price
    SUPPORT_RESISTANCE = "support_resistance"  # Nearest swing level


class WarningLevel(str, Enum):
    """Risk warning severity."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass
class RiskParameters:
    """
    Risk sizing request.

    Out-of-range but well-formed values (e.g. 50x leverage or 10% risk)
    are accepted and reported as warnings by the engine. Values that make
    the arithmetic meaningless raise ValueError.
    """

    symbol: str
    equity: float
    risk_percent: float
    leverage: float = 1.0
    side: PositionSide = PositionSide.LONG
    stop_type: StopType = StopType.ATR
    atr_multiplier: Optional[float] = None
    fixed_stop_percent: Optional[float] = None

    def __post_init__(self):
        self.side = PositionSide(self.side)
        self.stop_type = StopType(self.stop_type)

        if self.equity < 0:
            raise ValueError("equity must be >= 0")
        if self.risk_percent < 0:
            raise ValueError("risk_percent must be >= 0")
        if self.leverage <= 0:
            raise ValueError("leverage must be > 0")
        if self.atr_multiplier is not None and self.atr_multiplier <= 0:
            raise ValueError("atr_multiplier must be > 0")
        if self.fixed_stop_percent is not None and self.fixed_stop_percent <= 0:
            raise ValueError("fixed_stop_percent must be > 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "equity": self.equity,
            "risk_percent": self.risk_percent,
            "leverage": self.leverage,
            "side": self.side.value,
            "stop_type": self.stop_type.value,
            "atr_multiplier": self.atr_multiplier,
            "fixed_stop_percent": self.fixed_stop_percent,
        }


@dataclass(frozen=True)
class ReferencePosition:
    """Open position the target is aggregated with for portfolio risk."""
    symbol: str
    risk_percent: float
    correlation: float


@dataclass
class SupportResistance:
    """Most recent swing levels from the risk window."""
    support: List[float] = field(default_factory=list)
    resistance: List[float] = field(default_factory=list)


@dataclass
class PositionCalculation:
    """Entry, stop, target and sizing for one trade."""

    # ========================================================================
    # Levels
    # ========================================================================
    entry_price: float
    stop_loss: float
    take_profit: float
    stop_distance: float

    # ========================================================================
    # Sizing
    # ========================================================================
    risk_amount: float
    position_size: float
    leveraged_size: float
    margin_required: float

    # ========================================================================
    # Outcome
    # ========================================================================
    max_loss: float
    max_profit: float
    risk_reward: float
    roi: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "stop_distance": self.stop_distance,
            "risk_amount": self.risk_amount,
            "position_size": self.position_size,
            "leveraged_size": self.leveraged_size,
            "margin_required": self.margin_required,
            "max_loss": self.max_loss,
            "max_profit": self.max_profit,
            "risk_reward": self.risk_reward,
            "roi": self.roi,
        }


@dataclass
class PortfolioRisk:
    """Target position aggregated with the reference positions."""
    total_risk: float
    correlated_risk: float
    diversification_ratio: float
    max_drawdown: float
    risk_adjusted_return: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_risk": self.total_risk,
            "correlated_risk": self.correlated_risk,
            "diversification_ratio": self.diversification_ratio,
            "max_drawdown": self.max_drawdown,
            "risk_adjusted_return": self.risk_adjusted_return,
        }


@dataclass
class MarketRisk:
    """Market risk sub-scores (0-100, volatility in annualized percent)."""
    volatility: float
    liquidity_risk: float
    correlation_risk: float
    leverage_risk: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volatility": self.volatility,
            "liquidity_risk": self.liquidity_risk,
            "correlation_risk": self.correlation_risk,
            "leverage_risk": self.leverage_risk,
        }


@dataclass
class OptimalSizing:
    """Kelly-based sizing."""
    kelly_percent: float
    max_safe_size: float
    recommended_size: float
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kelly_percent": self.kelly_percent,
            "max_safe_size": self.max_safe_size,
            "recommended_size": self.recommended_size,
            "confidence": self.confidence,
        }


@dataclass
class RiskWarning:
    """Graded warning with a remedy."""
    level: WarningLevel
    message: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "message": self.message,
            "recommendation": self.recommendation,
        }


@dataclass
class RiskAnalysis:
    """Complete risk engine result."""
    parameters: RiskParameters
    position: PositionCalculation
    portfolio_risk: PortfolioRisk
    market_risk: MarketRisk
    optimal_sizing: OptimalSizing
    atr: float
    levels: SupportResistance
    warnings: List[RiskWarning] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def has_warning(self, level: WarningLevel) -> bool:
        return any(w.level == level for w in self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameters": self.parameters.to_dict(),
            "position": self.position.to_dict(),
            "portfolio_risk": self.portfolio_risk.to_dict(),
            "market_risk": self.market_risk.to_dict(),
            "optimal_sizing": self.optimal_sizing.to_dict(),
            "atr": self.atr,
            "support": list(self.levels.support),
            "resistance": list(self.levels.resistance),
            "warnings": [w.to_dict() for w in self.warnings],
            "recommendations": list(self.recommendations),
        }

"""
Risk Engine for position sizing and risk assessment.

Components:
- StopCalculator: ATR, swing support/resistance and stop distance per policy
- PortfolioRiskCalculator: Aggregate the trade with correlated reference positions
- RiskEngine: Sizing, market risk scores, Kelly sizing, warnings, recommendations

The engine never raises for out-of-range parameters; it reports them as
graded warnings.
"""

import logging
from typing import List, Optional, Sequence

from src.analytics.candles import Candle, Ticker, closes, highs, lows
from src.risk.models import (
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
from src.utils.logger import get_analytics_logger
from src.utils.math_utils import PriceAnalysis, RiskMetrics, StatisticalUtils, TechnicalUtils, clamp


logger = logging.getLogger(__name__)
analytics_logger = get_analytics_logger(__name__)


ATR_PERIOD = 14
SR_WINDOW = 2
SR_LEVELS = 3
DEFAULT_ATR_MULTIPLIER = 2.0
DEFAULT_FIXED_STOP_PERCENT = 3.0
FALLBACK_ATR_MULTIPLIER = 2.0
REWARD_RISK_RATIO = 2.0

KELLY_WIN_RATE = 0.6
KELLY_CAP_PCT = 0.10
RECOMMENDED_SIZE_PCT = 0.03
MAX_SAFE_SIZE_PCT = 0.05
SIZING_CONFIDENCE = 75.0

CROSS_TERM_WEIGHT = 0.5
MIN_CORRELATED_RISK = 0.1
DRAWDOWN_MULTIPLIER = 1.5
DEFAULT_REFERENCE_POSITIONS = (
    ReferencePosition(symbol='ETHUSDT', risk_percent=1.5, correlation=0.85),
    ReferencePosition(symbol='ADAUSDT', risk_percent=1.0, correlation=0.65),
)

LOW_LIQUIDITY_VOLUME = 1_000_000
MEDIUM_LIQUIDITY_VOLUME = 10_000_000
LIQUIDITY_RISK_SCORES = (80.0, 40.0, 15.0)
CORRELATION_RISK_RATIO = 0.8
CORRELATION_RISK_SCORES = (70.0, 30.0)
LEVERAGE_RISK_FLOOR = 10.0
LEVERAGE_RISK_PER_X = 8.0

MAX_RISK_PERCENT = 5.0
MAX_LEVERAGE = 20.0
MAX_TOTAL_RISK = 15.0
MAX_LIQUIDITY_RISK = 60.0
MAX_VOLATILITY = 100.0

PREFERRED_RISK_PERCENT = 2.0
MAX_MARGIN_PCT_OF_EQUITY = 0.2
MIN_RISK_REWARD = 1.5
MIN_DIVERSIFICATION_RATIO = 0.7


# ============================================================================
# Stop Calculator
# ============================================================================

class StopCalculator:
    """
    Stop distance per policy.

    Policies:
    1. ATR - ATR x multiplier
    2. Fixed - price x percent
    3. Support/Resistance - distance to the nearest swing level on the
       protective side, 2x ATR when no level qualifies
    """

    def __init__(
        self,
        atr_period: int = ATR_PERIOD,
        sr_window: int = SR_WINDOW,
        sr_levels: int = SR_LEVELS,
        default_atr_multiplier: float = DEFAULT_ATR_MULTIPLIER,
        default_fixed_stop_percent: float = DEFAULT_FIXED_STOP_PERCENT,
        fallback_atr_multiplier: float = FALLBACK_ATR_MULTIPLIER
    ):
        self.atr_period = atr_period
        self.sr_window = sr_window
        self.sr_levels = sr_levels
        self.default_atr_multiplier = default_atr_multiplier
        self.default_fixed_stop_percent = default_fixed_stop_percent
        self.fallback_atr_multiplier = fallback_atr_multiplier
        self.logger = logging.getLogger(f"{__name__}.StopCalculator")

    def atr(self, candles: Sequence[Candle]) -> float:
        """Average True Range over the trailing period."""
        return TechnicalUtils.atr(highs(candles), lows(candles), closes(candles), self.atr_period)

    def support_resistance(self, candles: Sequence[Candle]) -> SupportResistance:
        """Swing lows (support) and highs (resistance), most recent few of each."""
        support = []
        resistance = []
        window = self.sr_window

        for i in range(window, len(candles) - window):
            current = candles[i]
            neighbours = list(candles[i - window:i]) + list(candles[i + 1:i + window + 1])

            if all(c.high < current.high for c in neighbours):
                resistance.append(current.high)
            if all(c.low > current.low for c in neighbours):
                support.append(current.low)

        return SupportResistance(
            support=support[-self.sr_levels:],
            resistance=resistance[-self.sr_levels:]
        )

    def stop_distance(
        self,
        params: RiskParameters,
        price: float,
        atr: float,
        levels: SupportResistance
    ) -> float:
        """Absolute distance from entry to stop."""
        if params.stop_type == StopType.ATR:
            multiplier = params.atr_multiplier or self.default_atr_multiplier
            return atr * multiplier

        if params.stop_type == StopType.FIXED:
            percent = params.fixed_stop_percent or self.default_fixed_stop_percent
            return price * percent / 100

        if params.side == PositionSide.LONG:
            below = [s for s in levels.support if s < price]
            if below:
                return price - max(below)
        else:
            above = [r for r in levels.resistance if r > price]
            if above:
                return min(above) - price

        self.logger.debug(
            f"No qualifying {'support' if params.side == PositionSide.LONG else 'resistance'} "
            f"for {params.symbol}, falling back to {self.fallback_atr_multiplier}x ATR"
        )
        return atr * self.fallback_atr_multiplier


# ============================================================================
# Portfolio Risk Calculator
# ============================================================================

class PortfolioRiskCalculator:
    """
    Aggregate the trade's risk with correlated reference positions.

    total_risk      = Σ risk_i
    correlated_risk = total_risk + Σ_i Σ_{j<i} risk_i * risk_j * corr_i * 0.5
    diversification = total_risk / max(correlated_risk, 0.1)
    """

    def __init__(
        self,
        reference_positions: Sequence[ReferencePosition] = DEFAULT_REFERENCE_POSITIONS,
        cross_term_weight: float = CROSS_TERM_WEIGHT,
        drawdown_multiplier: float = DRAWDOWN_MULTIPLIER
    ):
        self.reference_positions = tuple(reference_positions)
        self.cross_term_weight = cross_term_weight
        self.drawdown_multiplier = drawdown_multiplier

    def positions_for(self, params: RiskParameters) -> List[ReferencePosition]:
        """The target position (fully self-correlated) followed by the references."""
        target = ReferencePosition(
            symbol=params.symbol,
            risk_percent=params.risk_percent,
            correlation=1.0
        )
        return [target, *self.reference_positions]

    def calculate(self, params: RiskParameters, roi: float, volatility: float) -> PortfolioRisk:
        positions = self.positions_for(params)

        total_risk = sum(p.risk_percent for p in positions)
        correlated_risk = total_risk
        for i, position in enumerate(positions):
            for previous in positions[:i]:
                correlated_risk += (
                    position.risk_percent * previous.risk_percent
                    * position.correlation * self.cross_term_weight
                )

        return PortfolioRisk(
            total_risk=total_risk,
            correlated_risk=correlated_risk,
            diversification_ratio=total_risk / max(correlated_risk, MIN_CORRELATED_RISK),
            max_drawdown=total_risk * self.drawdown_multiplier,
            risk_adjusted_return=StatisticalUtils.safe_divide(roi, volatility)
        )


# ============================================================================
# Risk Engine
# ============================================================================

class RiskEngine:
    """
    Risk engine - position sizing and graded risk assessment.

    Sizing:
        risk_amount     = equity * risk_percent / 100
        position_size   = risk_amount / stop_distance
        leveraged_size  = position_size * leverage
        margin_required = leveraged_size * price / leverage
        max_profit      = reward_risk_ratio * stop_distance * position_size
        roi             = max_profit / margin_required * 100

    Warnings (never exceptions):
        risk_percent > 5 (HIGH), leverage > 20 (CRITICAL),
        total portfolio risk > 15 (HIGH), liquidity risk > 60 (MEDIUM),
        annualized volatility > 100% (HIGH)
    """

    def __init__(
        self,
        stop_calculator: Optional[StopCalculator] = None,
        portfolio_calculator: Optional[PortfolioRiskCalculator] = None,
        reward_risk_ratio: float = REWARD_RISK_RATIO,
        kelly_win_rate: float = KELLY_WIN_RATE,
        recommended_size_pct: float = RECOMMENDED_SIZE_PCT,
        max_safe_size_pct: float = MAX_SAFE_SIZE_PCT
    ):
        """
        Initialize risk engine.

        Args:
            stop_calculator: Stop policy implementation
            portfolio_calculator: Portfolio aggregation implementation
            reward_risk_ratio: Target distance as a multiple of stop distance
            kelly_win_rate: Assumed win rate for Kelly sizing
            recommended_size_pct: Cap on recommended size as fraction of equity
            max_safe_size_pct: Maximum safe size as fraction of equity
        """
        self.stop_calculator = stop_calculator or StopCalculator()
        self.portfolio_calculator = portfolio_calculator or PortfolioRiskCalculator()
        self.reward_risk_ratio = reward_risk_ratio
        self.kelly_win_rate = kelly_win_rate
        self.recommended_size_pct = recommended_size_pct
        self.max_safe_size_pct = max_safe_size_pct

        logger.info(
            f"RiskEngine initialized - reward:risk={reward_risk_ratio}:1, "
            f"kelly_win_rate={kelly_win_rate}"
        )

    @classmethod
    def from_config(cls, config) -> 'RiskEngine':
        """Build from a RiskEngineConfig."""
        stop_calculator = StopCalculator(
            atr_period=config.atr_period,
            sr_window=config.sr_window,
            sr_levels=config.sr_levels,
            default_atr_multiplier=config.default_atr_multiplier,
            default_fixed_stop_percent=config.default_fixed_stop_percent,
            fallback_atr_multiplier=config.fallback_atr_multiplier
        )
        portfolio_calculator = PortfolioRiskCalculator(
            reference_positions=[
                ReferencePosition(
                    symbol=p.symbol,
                    risk_percent=p.risk_percent,
                    correlation=p.correlation
                )
                for p in config.reference_positions
            ]
        )
        return cls(
            stop_calculator=stop_calculator,
            portfolio_calculator=portfolio_calculator,
            reward_risk_ratio=config.reward_risk_ratio,
            kelly_win_rate=config.kelly_win_rate,
            recommended_size_pct=config.recommended_size_pct,
            max_safe_size_pct=config.max_safe_size_pct
        )

    def analyze(
        self,
        params: RiskParameters,
        candles: Sequence[Candle],
        ticker: Ticker
    ) -> RiskAnalysis:
        """
        Size a trade and assess its risk.

        Args:
            params: Risk parameters for the trade
            candles: Candle window (ascending) for ATR, levels and volatility
            ticker: Latest price and 24h volume

        Returns:
            RiskAnalysis with warnings and recommendations
        """
        price = ticker.last_price
        atr = self.stop_calculator.atr(candles)
        levels = self.stop_calculator.support_resistance(candles)
        volatility = PriceAnalysis.volatility(closes(candles))

        stop_distance = self.stop_calculator.stop_distance(params, price, atr, levels)
        position = self.calculate_position(params, price, stop_distance)

        portfolio_risk = self.portfolio_calculator.calculate(params, position.roi, volatility)
        market_risk = self._market_risk(params, ticker, volatility, portfolio_risk)
        optimal_sizing = self._optimal_sizing(params, position)

        warnings = self._warnings(params, position, portfolio_risk, market_risk)
        recommendations = self._recommendations(params, position, portfolio_risk, optimal_sizing)

        for warning in warnings:
            analytics_logger.risk_alert(
                alert_type='position_risk',
                severity=warning.level.value,
                message=warning.message,
                symbol=params.symbol
            )

        logger.debug(
            f"Risk analysis for {params.symbol}: stop={position.stop_loss:.4f}, "
            f"size={position.position_size:.4f}, total_risk={portfolio_risk.total_risk:.1f}%, "
            f"warnings={len(warnings)}"
        )

        return RiskAnalysis(
            parameters=params,
            position=position,
            portfolio_risk=portfolio_risk,
            market_risk=market_risk,
            optimal_sizing=optimal_sizing,
            atr=atr,
            levels=levels,
            warnings=warnings,
            recommendations=recommendations
        )

    def calculate_position(
        self,
        params: RiskParameters,
        price: float,
        stop_distance: float
    ) -> PositionCalculation:
        """Entry/stop/target and sizing from a stop distance."""
        direction = 1 if params.side == PositionSide.LONG else -1
        stop_loss = price - direction * stop_distance
        take_profit = price + direction * stop_distance * self.reward_risk_ratio

        risk_amount = params.equity * params.risk_percent / 100
        position_size = StatisticalUtils.safe_divide(risk_amount, stop_distance)
        leveraged_size = position_size * params.leverage
        margin_required = leveraged_size * price / params.leverage
        max_profit = stop_distance * self.reward_risk_ratio * position_size
        roi = StatisticalUtils.safe_divide(max_profit, margin_required) * 100

        return PositionCalculation(
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            stop_distance=stop_distance,
            risk_amount=risk_amount,
            position_size=position_size,
            leveraged_size=leveraged_size,
            margin_required=margin_required,
            max_loss=risk_amount,
            max_profit=max_profit,
            risk_reward=self.reward_risk_ratio,
            roi=roi
        )

    def _market_risk(
        self,
        params: RiskParameters,
        ticker: Ticker,
        volatility: float,
        portfolio_risk: PortfolioRisk
    ) -> MarketRisk:
        if ticker.volume_24h < LOW_LIQUIDITY_VOLUME:
            liquidity_risk = LIQUIDITY_RISK_SCORES[0]
        elif ticker.volume_24h < MEDIUM_LIQUIDITY_VOLUME:
            liquidity_risk = LIQUIDITY_RISK_SCORES[1]
        else:
            liquidity_risk = LIQUIDITY_RISK_SCORES[2]

        if portfolio_risk.correlated_risk > portfolio_risk.total_risk * CORRELATION_RISK_RATIO:
            correlation_risk = CORRELATION_RISK_SCORES[0]
        else:
            correlation_risk = CORRELATION_RISK_SCORES[1]

        leverage_risk = max(0.0, (params.leverage - LEVERAGE_RISK_FLOOR) * LEVERAGE_RISK_PER_X)

        return MarketRisk(
            volatility=volatility,
            liquidity_risk=liquidity_risk,
            correlation_risk=correlation_risk,
            leverage_risk=leverage_risk
        )

    def _optimal_sizing(self, params: RiskParameters, position: PositionCalculation) -> OptimalSizing:
        """Kelly sizing with avg win = max profit and avg loss = max loss."""
        kelly_fraction = RiskMetrics.kelly_criterion(
            self.kelly_win_rate,
            avg_win=position.max_profit,
            avg_loss=position.max_loss
        )
        kelly_size = clamp(kelly_fraction * params.equity, 0.0, params.equity * KELLY_CAP_PCT)

        return OptimalSizing(
            kelly_percent=kelly_fraction * 100,
            max_safe_size=params.equity * self.max_safe_size_pct,
            recommended_size=min(kelly_size, params.equity * self.recommended_size_pct),
            confidence=SIZING_CONFIDENCE
        )

    def _warnings(
        self,
        params: RiskParameters,
        position: PositionCalculation,
        portfolio_risk: PortfolioRisk,
        market_risk: MarketRisk
    ) -> List[RiskWarning]:
        warnings = []

        if position.stop_distance <= 0:
            warnings.append(RiskWarning(
                level=WarningLevel.HIGH,
                message='Stop distance is zero - position cannot be sized',
                recommendation='Use a wider candle window or a fixed percent stop'
            ))

        if params.risk_percent > MAX_RISK_PERCENT:
            warnings.append(RiskWarning(
                level=WarningLevel.HIGH,
                message='Risk per trade exceeds 5% - extremely dangerous',
                recommendation='Reduce risk to 1-2% maximum per trade'
            ))

        if params.leverage > MAX_LEVERAGE:
            warnings.append(RiskWarning(
                level=WarningLevel.CRITICAL,
                message='Excessive leverage detected',
                recommendation='Use maximum 10x leverage for crypto trading'
            ))

        if portfolio_risk.total_risk > MAX_TOTAL_RISK:
            warnings.append(RiskWarning(
                level=WarningLevel.HIGH,
                message='Total portfolio risk exceeds safe limits',
                recommendation='Close some positions or reduce individual position sizes'
            ))

        if market_risk.liquidity_risk > MAX_LIQUIDITY_RISK:
            warnings.append(RiskWarning(
                level=WarningLevel.MEDIUM,
                message='Low liquidity detected - higher slippage risk',
                recommendation='Use limit orders and smaller position sizes'
            ))

        if market_risk.volatility > MAX_VOLATILITY:
            warnings.append(RiskWarning(
                level=WarningLevel.HIGH,
                message='Extremely high volatility environment',
                recommendation='Reduce position sizes and widen stop losses'
            ))

        return warnings

    def _recommendations(
        self,
        params: RiskParameters,
        position: PositionCalculation,
        portfolio_risk: PortfolioRisk,
        optimal_sizing: OptimalSizing
    ) -> List[str]:
        recommendations = []

        if params.risk_percent > PREFERRED_RISK_PERCENT:
            recommendations.append(
                'Consider reducing risk per trade to 1-2% for better long-term survival'
            )

        if position.margin_required > params.equity * MAX_MARGIN_PCT_OF_EQUITY:
            recommendations.append(
                'Position size too large relative to account - risk of margin call'
            )

        if position.risk_reward < MIN_RISK_REWARD:
            recommendations.append('Risk/Reward ratio too low - aim for minimum 1.5:1')

        if portfolio_risk.diversification_ratio < MIN_DIVERSIFICATION_RATIO:
            recommendations.append('Portfolio too concentrated - add uncorrelated assets')

        base_asset = params.symbol.replace('USDT', '')
        recommendations.append(
            f"Optimal position size based on Kelly Criterion: "
            f"{optimal_sizing.recommended_size:.2f} {base_asset}"
        )

        return recommendations


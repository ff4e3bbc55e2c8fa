"""
Order Flow Analyzer - CVD, momentum and institutional activity from candles.

Calculates:
1. Estimated per-bar volume delta (buy minus sell)
2. Cumulative Volume Delta (CVD) - running sum of delta
3. CVD momentum and sentiment
4. Institutional activity - bars with anomalous volume
5. Microstructure: absorption, liquidity level, market regime
6. CVD momentum and absorption trade signals
7. Execution risk: liquidity risk, slippage estimate, optimal trade size

Candles carry no trade-side information, so the buy/sell split is an
estimate: a fixed fraction of each bar's volume is attributed to the
direction of its body.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Sequence

from .candles import Candle
from src.utils.math_utils import StatisticalUtils, clamp

logger = logging.getLogger(__name__)


DELTA_FRACTION = 0.6
MIN_CANDLES = 20
MOMENTUM_WINDOW = 10
SENTIMENT_THRESHOLD = 5.0
VOLUME_AVERAGE_WINDOW = 20
ACTIVITY_LOOKBACK = 10
VOLUME_SPIKE_MULTIPLIER = 2.0
MAX_INTENSITY = 200.0
CONFIDENCE_PER_SIGMA = 25.0
MAX_CONFIDENCE = 95.0
IMBALANCE_WINDOW = 20

# Absorption / rejection refinement
ABSORPTION_VOLATILITY_RATIO = 0.5
ABSORPTION_VOLATILITY_WINDOW = 5
REJECTION_BODY_RATIO = 0.3
REJECTION_MIN_Z = 2.5
ABSORPTION_CONFIDENCE_BONUS = 10.0
REJECTION_CONFIDENCE_BONUS = 15.0

# Microstructure
ABSORPTION_VOLUME_RATIO = 1.5
ABSORPTION_MAX_MOVE = 0.002
HIGH_LIQUIDITY_DELTA_RATIO = 0.3
MEDIUM_LIQUIDITY_DELTA_RATIO = 0.1
VOLATILE_RANGE_STD_RATIO = 1.5
TRENDING_MOMENTUM = 15.0

# Signals
SIGNAL_MOMENTUM = 20.0
SIGNAL_ABSORPTION_PCT = 30.0
POC_LOOKBACK = 21
MAX_SIGNAL_STRENGTH = 95.0

# Execution risk (slippage in percent)
LIQUIDITY_RISK = {'high': 15.0, 'medium': 40.0, 'low': 75.0}
SLIPPAGE_PER_RISK = 0.1
OPTIMAL_SIZE_FRACTION = 0.05


class Sentiment(str, Enum):
    """CVD momentum sentiment."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class ActivityType(str, Enum):
    """Institutional activity classification."""
    ACCUMULATION = "accumulation"
    DISTRIBUTION = "distribution"
    ABSORPTION = "absorption"
    REJECTION = "rejection"


class LiquidityLevel(str, Enum):
    """Mean absolute delta relative to average volume."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MarketRegime(str, Enum):
    TRENDING = "trending"
    RANGING = "ranging"
    VOLATILE = "volatile"


class SignalDirection(str, Enum):
    LONG = "long"
    SHORT = "short"


@dataclass
class OrderFlowSample:
    """Per-bar order flow estimate."""
    timestamp: datetime
    price: float
    volume: float
    buy_volume: float
    sell_volume: float
    delta: float
    cvd: float
    vwap: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'price': self.price,
            'volume': self.volume,
            'buy_volume': self.buy_volume,
            'sell_volume': self.sell_volume,
            'delta': self.delta,
            'cvd': self.cvd,
            'vwap': self.vwap,
        }


@dataclass
class InstitutionalActivity:
    """Anomalous-volume bar."""
    timestamp: datetime
    price: float
    volume: float
    type: ActivityType
    intensity: float
    confidence: float
    description: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'price': self.price,
            'volume': self.volume,
            'type': self.type.value,
            'intensity': self.intensity,
            'confidence': self.confidence,
            'description': self.description,
        }


@dataclass
class TradeSignal:
    """Order flow trade idea with entry, stop and target."""
    name: str
    direction: SignalDirection
    strength: float
    recommendation: str
    entry: float
    stop_loss: float
    take_profit: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'direction': self.direction.value,
            'strength': self.strength,
            'recommendation': self.recommendation,
            'entry': self.entry,
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
        }


@dataclass
class OrderFlowAnalysis:
    """Order flow result."""
    samples: List[OrderFlowSample]
    momentum: float
    sentiment: Sentiment
    institutional_activity: List[InstitutionalActivity] = field(default_factory=list)
    volume_imbalance: float = 0.0
    absorption: float = 0.0  # percent of recent bars absorbing heavy volume
    liquidity_level: LiquidityLevel = LiquidityLevel.LOW
    market_regime: MarketRegime = MarketRegime.RANGING
    signals: List[TradeSignal] = field(default_factory=list)
    liquidity_risk: float = 0.0
    slippage_estimate: float = 0.0  # percent
    optimal_trade_size: float = 0.0  # base units

    @property
    def cvd(self) -> float:
        return self.samples[-1].cvd if self.samples else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'samples': [s.to_dict() for s in self.samples],
            'cvd': self.cvd,
            'momentum': self.momentum,
            'sentiment': self.sentiment.value,
            'institutional_activity': [a.to_dict() for a in self.institutional_activity],
            'volume_imbalance': self.volume_imbalance,
            'absorption': self.absorption,
            'liquidity_level': self.liquidity_level.value,
            'market_regime': self.market_regime.value,
            'signals': [s.to_dict() for s in self.signals],
            'liquidity_risk': self.liquidity_risk,
            'slippage_estimate': self.slippage_estimate,
            'optimal_trade_size': self.optimal_trade_size,
        }


class OrderFlowAnalyzer:
    """
    Order Flow Analyzer - Estimates CVD and flags institutional activity.

    CVD (Cumulative Volume Delta):
        delta = volume * sign(close - open) * 0.6
        CVD = running sum of delta
        - Rising CVD = More buying pressure
        - Falling CVD = More selling pressure

    Momentum:
        Percent change of CVD over the last 10 samples, relative to the
        CVD at the start of that window (1 substituted for a zero start).
        - Momentum > +5 = Bullish
        - Momentum < -5 = Bearish

    Institutional Activity:
        Among the last 10 bars, any bar whose volume exceeds 2x the
        20-bar average volume.

    Microstructure (last 20 samples, against the window's average volume):
        - Absorption: percent of bars on >1.5x volume moving under 0.2%
        - Liquidity: mean |delta| above 30% of average volume is HIGH,
          above 10% MEDIUM, else LOW
        - Regime: VOLATILE when bar-to-bar moves are erratic (std > 1.5x
          mean), TRENDING when |momentum| > 15, else RANGING

    Signals:
        - Momentum > 20 above VWAP: long; momentum < -20 below VWAP: short
        - Absorption > 30% with the latest activity absorbing or
          accumulating: long
    """

    def __init__(
        self,
        delta_fraction: float = DELTA_FRACTION,
        min_candles: int = MIN_CANDLES,
        momentum_window: int = MOMENTUM_WINDOW,
        sentiment_threshold: float = SENTIMENT_THRESHOLD,
        volume_average_window: int = VOLUME_AVERAGE_WINDOW,
        activity_lookback: int = ACTIVITY_LOOKBACK,
        volume_spike_multiplier: float = VOLUME_SPIKE_MULTIPLIER,
        imbalance_window: int = IMBALANCE_WINDOW,
        detect_absorption: bool = False
    ):
        """
        Initialize Order Flow Analyzer.

        Args:
            delta_fraction: Fraction of bar volume attributed to its direction
            min_candles: Minimum candles for a meaningful analysis
            momentum_window: Number of trailing samples for CVD momentum
            sentiment_threshold: Momentum magnitude for bullish/bearish
            volume_average_window: Bars in the trailing average volume
            activity_lookback: Most recent bars checked for volume spikes
            volume_spike_multiplier: Spike threshold as a multiple of average
            imbalance_window: Trailing samples for the volume imbalance
            detect_absorption: Refine spikes into absorption/rejection
        """
        self.delta_fraction = delta_fraction
        self.min_candles = min_candles
        self.momentum_window = momentum_window
        self.sentiment_threshold = sentiment_threshold
        self.volume_average_window = volume_average_window
        self.activity_lookback = activity_lookback
        self.volume_spike_multiplier = volume_spike_multiplier
        self.imbalance_window = imbalance_window
        self.detect_absorption = detect_absorption

        logger.info(
            f"OrderFlowAnalyzer initialized - "
            f"delta_fraction={delta_fraction}, "
            f"spike_multiplier={volume_spike_multiplier}x"
        )

    @classmethod
    def from_config(cls, config) -> 'OrderFlowAnalyzer':
        """Build from an OrderFlowConfig."""
        return cls(
            delta_fraction=config.delta_fraction,
            min_candles=config.min_candles,
            momentum_window=config.momentum_window,
            sentiment_threshold=config.sentiment_threshold,
            volume_average_window=config.volume_average_window,
            activity_lookback=config.activity_lookback,
            volume_spike_multiplier=config.volume_spike_multiplier,
            imbalance_window=config.imbalance_window,
            detect_absorption=config.detect_absorption
        )

    def analyze(self, candles: Sequence[Candle]) -> OrderFlowAnalysis:
        """
        Run the full order flow analysis.

        Args:
            candles: Candles ordered by ascending timestamp

        Returns:
            OrderFlowAnalysis; neutral and empty below min_candles
        """
        if len(candles) < self.min_candles:
            logger.debug(
                f"Order flow skipped: need {self.min_candles} candles, got {len(candles)}"
            )
            return OrderFlowAnalysis(samples=[], momentum=0.0, sentiment=Sentiment.NEUTRAL)

        samples = self.calculate_cvd(candles)
        momentum = self.calculate_momentum(samples)
        sentiment = self.classify_sentiment(momentum)
        activity = self.detect_institutional_activity(candles)
        imbalance = self._volume_imbalance(samples)

        recent = samples[-self.imbalance_window:]
        avg_volume = StatisticalUtils.mean([c.volume for c in candles])
        absorption = self.calculate_absorption(recent, avg_volume)
        liquidity = self.classify_liquidity(recent, avg_volume)
        regime = self.classify_regime(recent, momentum)
        signals = self.generate_signals(candles, samples, momentum, absorption, activity)
        liquidity_risk = LIQUIDITY_RISK[liquidity.value]

        logger.debug(
            f"Order flow: CVD={samples[-1].cvd:.2f}, momentum={momentum:.1f}% "
            f"({sentiment.value}), regime={regime.value}, liquidity={liquidity.value}, "
            f"institutional events={len(activity)}, signals={len(signals)}"
        )

        return OrderFlowAnalysis(
            samples=samples,
            momentum=momentum,
            sentiment=sentiment,
            institutional_activity=activity,
            volume_imbalance=imbalance,
            absorption=absorption,
            liquidity_level=liquidity,
            market_regime=regime,
            signals=signals,
            liquidity_risk=liquidity_risk,
            slippage_estimate=liquidity_risk / 100 * SLIPPAGE_PER_RISK,
            optimal_trade_size=avg_volume * OPTIMAL_SIZE_FRACTION
        )

    def estimate_delta(self, candle: Candle) -> float:
        """Signed buy-minus-sell estimate for one bar; 0 for a doji."""
        direction = (candle.close > candle.open) - (candle.close < candle.open)
        return candle.volume * direction * self.delta_fraction

    def calculate_cvd(self, candles: Sequence[Candle]) -> List[OrderFlowSample]:
        """
        Per-bar delta, running CVD and running VWAP.

        CVD = Σ delta
        """
        samples = []
        cumulative_delta = 0.0
        cumulative_volume = 0.0
        vwap_numerator = 0.0

        for candle in candles:
            delta = self.estimate_delta(candle)
            cumulative_delta += delta

            buy_volume = (candle.volume + delta) / 2
            sell_volume = candle.volume - buy_volume

            cumulative_volume += candle.volume
            vwap_numerator += candle.typical_price * candle.volume
            vwap = StatisticalUtils.safe_divide(
                vwap_numerator, cumulative_volume, default=candle.typical_price
            )

            samples.append(OrderFlowSample(
                timestamp=candle.timestamp,
                price=candle.close,
                volume=candle.volume,
                buy_volume=buy_volume,
                sell_volume=sell_volume,
                delta=delta,
                cvd=cumulative_delta,
                vwap=vwap
            ))

        return samples

    def calculate_momentum(self, samples: Sequence[OrderFlowSample]) -> float:
        """Percent change of CVD over the trailing momentum window."""
        recent = samples[-self.momentum_window:]
        if len(recent) < 2:
            return 0.0

        start_cvd = recent[0].cvd
        denominator = abs(start_cvd) if start_cvd != 0 else 1.0
        return (recent[-1].cvd - start_cvd) / denominator * 100

    def classify_sentiment(self, momentum: float) -> Sentiment:
        if momentum > self.sentiment_threshold:
            return Sentiment.BULLISH
        if momentum < -self.sentiment_threshold:
            return Sentiment.BEARISH
        return Sentiment.NEUTRAL

    def detect_institutional_activity(
        self,
        candles: Sequence[Candle]
    ) -> List[InstitutionalActivity]:
        """
        Detect volume spikes (institutional activity).

        Args:
            candles: Candles ordered by ascending timestamp

        Returns:
            Spikes among the most recent `activity_lookback` bars, oldest first
        """
        average_window = [c.volume for c in candles[-self.volume_average_window:]]
        avg_volume = StatisticalUtils.mean(average_window)
        volume_std = StatisticalUtils.std(average_window)

        if avg_volume <= 0:
            return []

        activity = []
        start = max(0, len(candles) - self.activity_lookback)

        for index in range(start, len(candles)):
            candle = candles[index]
            if candle.volume <= avg_volume * self.volume_spike_multiplier:
                continue

            intensity = min((candle.volume / avg_volume - 1) * 100, MAX_INTENSITY)
            volume_z = StatisticalUtils.z_score(candle.volume, avg_volume, volume_std)
            confidence = volume_z * CONFIDENCE_PER_SIGMA

            if candle.close > candle.open:
                activity_type = ActivityType.ACCUMULATION
                description = 'High volume buying pressure - institutional accumulation detected'
            else:
                activity_type = ActivityType.DISTRIBUTION
                description = 'High volume selling pressure - institutional distribution detected'

            if self.detect_absorption:
                activity_type, description, bonus = self._refine_activity(
                    candles, index, volume_z, activity_type, description
                )
                confidence += bonus

            activity.append(InstitutionalActivity(
                timestamp=candle.timestamp,
                price=candle.close,
                volume=candle.volume,
                type=activity_type,
                intensity=intensity,
                confidence=clamp(confidence, 0.0, MAX_CONFIDENCE),
                description=description
            ))

            logger.info(
                f"Institutional {activity_type.value} detected: "
                f"volume={candle.volume:,.2f} ({intensity:.0f}% above average) @ ${candle.close:,.2f}"
            )

        return activity

    def _refine_activity(
        self,
        candles: Sequence[Candle],
        index: int,
        volume_z: float,
        activity_type: ActivityType,
        description: str
    ):
        """
        Absorption: heavy volume with little price movement.
        Rejection: heavy volume with a small body relative to range.
        """
        candle = candles[index]
        bonus = 0.0

        price_change = StatisticalUtils.safe_divide(candle.close - candle.open, candle.open)
        window = candles[max(0, index - ABSORPTION_VOLATILITY_WINDOW):index + 1]
        squared_moves = [
            StatisticalUtils.safe_divide(c.close - c.open, c.open) ** 2 for c in window
        ]
        recent_volatility = math.sqrt(StatisticalUtils.mean(squared_moves))

        if abs(price_change) < recent_volatility * ABSORPTION_VOLATILITY_RATIO:
            activity_type = ActivityType.ABSORPTION
            description = (
                'Large volume absorbed with minimal price impact - '
                'possible institutional accumulation'
            )
            bonus += ABSORPTION_CONFIDENCE_BONUS

        if candle.range > 0:
            body_ratio = candle.body / candle.range
            if body_ratio < REJECTION_BODY_RATIO and volume_z > REJECTION_MIN_Z:
                activity_type = ActivityType.REJECTION
                description = 'High volume rejection candle - major support/resistance level'
                bonus += REJECTION_CONFIDENCE_BONUS

        return activity_type, description, bonus

    # ========================================================================
    # Microstructure
    # ========================================================================

    def calculate_absorption(self, recent: Sequence[OrderFlowSample], avg_volume: float) -> float:
        """Percent of bars trading >1.5x average volume while moving < 0.2% from the prior close."""
        if not recent:
            return 0.0

        absorbing = 0
        for prev, curr in zip(recent, recent[1:]):
            move = StatisticalUtils.safe_divide(abs(curr.price - prev.price), prev.price)
            volume_ratio = StatisticalUtils.safe_divide(curr.volume, avg_volume)
            if volume_ratio > ABSORPTION_VOLUME_RATIO and move < ABSORPTION_MAX_MOVE:
                absorbing += 1

        return absorbing / len(recent) * 100

    def classify_liquidity(self, recent: Sequence[OrderFlowSample], avg_volume: float) -> LiquidityLevel:
        avg_delta = StatisticalUtils.mean([abs(s.delta) for s in recent])
        if avg_delta > avg_volume * HIGH_LIQUIDITY_DELTA_RATIO:
            return LiquidityLevel.HIGH
        if avg_delta > avg_volume * MEDIUM_LIQUIDITY_DELTA_RATIO:
            return LiquidityLevel.MEDIUM
        return LiquidityLevel.LOW

    def classify_regime(self, recent: Sequence[OrderFlowSample], momentum: float) -> MarketRegime:
        """Volatile on erratic bar-to-bar moves, trending on strong momentum."""
        # first sample has no prior close and counts as a zero move
        moves = [0.0] + [abs(curr.price - prev.price) for prev, curr in zip(recent, recent[1:])]
        avg_move = StatisticalUtils.mean(moves)

        if StatisticalUtils.std(moves) > avg_move * VOLATILE_RANGE_STD_RATIO:
            return MarketRegime.VOLATILE
        if abs(momentum) > TRENDING_MOMENTUM:
            return MarketRegime.TRENDING
        return MarketRegime.RANGING

    # ========================================================================
    # Signals
    # ========================================================================

    def generate_signals(
        self,
        candles: Sequence[Candle],
        samples: Sequence[OrderFlowSample],
        momentum: float,
        absorption: float,
        activity: Sequence[InstitutionalActivity]
    ) -> List[TradeSignal]:
        """
        CVD momentum and institutional absorption trade ideas.

        Stops sit beyond the nearer of VWAP and the recent volume POC.
        """
        if not samples:
            return []

        price = candles[-1].close
        vwap = samples[-1].vwap
        poc = self.flow_poc(candles)
        signals = []

        if momentum > SIGNAL_MOMENTUM and price > vwap:
            signals.append(TradeSignal(
                name='CVD Bullish Momentum',
                direction=SignalDirection.LONG,
                strength=min(momentum, MAX_SIGNAL_STRENGTH),
                recommendation='Strong buying pressure detected. Consider long positions above VWAP.',
                entry=price * 1.001,
                stop_loss=min(vwap, poc) * 0.995,
                take_profit=price * 1.02
            ))

        if momentum < -SIGNAL_MOMENTUM and price < vwap:
            signals.append(TradeSignal(
                name='CVD Bearish Momentum',
                direction=SignalDirection.SHORT,
                strength=min(abs(momentum), MAX_SIGNAL_STRENGTH),
                recommendation='Strong selling pressure detected. Consider short positions below VWAP.',
                entry=price * 0.999,
                stop_loss=max(vwap, poc) * 1.005,
                take_profit=price * 0.98
            ))

        latest = activity[-1] if activity else None
        if absorption > SIGNAL_ABSORPTION_PCT and latest is not None:
            if latest.type in (ActivityType.ABSORPTION, ActivityType.ACCUMULATION):
                signals.append(TradeSignal(
                    name='Institutional Absorption',
                    direction=SignalDirection.LONG,
                    strength=latest.confidence,
                    recommendation=(
                        'Smart money accumulation detected. '
                        'Price likely to move higher after absorption.'
                    ),
                    entry=price * 1.002,
                    stop_loss=latest.price * 0.99,
                    take_profit=price * 1.05
                ))

        for signal in signals:
            logger.info(
                f"Order flow signal: {signal.name} ({signal.direction.value}) "
                f"strength={signal.strength:.0f} entry=${signal.entry:,.2f}"
            )

        return signals

    @staticmethod
    def flow_poc(candles: Sequence[Candle]) -> float:
        """Close of the heaviest bar among the last POC_LOOKBACK bars (earliest wins ties)."""
        recent = candles[-POC_LOOKBACK:]
        heaviest = max(recent, key=lambda c: c.volume)
        return heaviest.close

    def _volume_imbalance(self, samples: Sequence[OrderFlowSample]) -> float:
        """Net delta as a percent of volume over the trailing window."""
        recent = samples[-self.imbalance_window:]
        total_delta = sum(s.delta for s in recent)
        total_volume = sum(s.volume for s in recent)
        return StatisticalUtils.safe_divide(total_delta, total_volume) * 100

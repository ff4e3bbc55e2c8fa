"""
Market Structure Analyzer - Swing points, BOS and CHoCH detection.

Detects:
1. Swing highs / lows (strict local extrema over a symmetric window)
2. Structure breaks between consecutive swings
   - BOS (Break of Structure): break in the direction of the tracked trend
   - CHoCH (Change of Character): break against the tracked trend
3. Current trend state
4. Order blocks and fair value gaps
5. Liquidity pools resting beyond strong swings
6. Key levels: swing support / resistance, premium / discount zones
7. Market phase, structure signals and recommendations
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .candles import Candle
from src.utils.math_utils import StatisticalUtils

logger = logging.getLogger(__name__)


MIN_CANDLES = 20
SWING_WINDOW = 5
RANGE_PERCENTILE = 0.8
MAX_STRENGTH = 10.0
MAX_BREAKS = 5
PRIOR_SWING_LOOKBACK = 3

# Order blocks / fair value gaps
ORDER_BLOCK_VOLUME_RATIO = 1.2
ORDER_BLOCK_STRENGTH_PER_RATIO = 30.0
MAX_ORDER_BLOCK_STRENGTH = 95.0
MAX_ORDER_BLOCKS = 5
FVG_STRENGTH_SCALE = 10000.0
MAX_FVG_STRENGTH = 90.0
MAX_FAIR_VALUE_GAPS = 3

# Liquidity pools
SWING_BASE_STRENGTH = 30.0
SWING_VOLUME_STRENGTH_PER_RATIO = 25.0
MAX_SWING_VOLUME_STRENGTH = 50.0
SWING_VOLUME_LOOKBACK = 10
MIN_POOL_STRENGTH = 60.0
MAX_LIQUIDITY_POOLS = 5

# Key levels
KEY_LEVEL_COUNT = 3
ZONE_FRACTION = 0.5  # premium / discount = outer half of each side of equilibrium

# Market phase
PHASE_PRICE_CHANGE_PCT = 5.0
PHASE_VOLATILITY_PCT = 2.0
PHASE_VOLUME_RATIO = 1.5
PHASE_RANGE_CHANGE_PCT = 2.0

# Signals
BOS_SIGNAL_STRENGTH = 75.0
CHOCH_SIGNAL_STRENGTH = 90.0
SIGNAL_PROXIMITY = 0.02
SIGNAL_SCAN = 2
CONFLUENCE_SIGNALS = 2


class SwingKind(str, Enum):
    HIGH = "high"
    LOW = "low"


class BreakType(str, Enum):
    BOS = "BOS"
    CHOCH = "CHoCH"


class TrendDirection(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class LiquiditySide(str, Enum):
    """Resting stops: buy stops above highs, sell stops below lows."""
    BUY_SIDE = "buy_side"
    SELL_SIDE = "sell_side"


class PriceZone(str, Enum):
    PREMIUM = "premium"
    EQUILIBRIUM = "equilibrium"
    DISCOUNT = "discount"


class MarketPhaseType(str, Enum):
    """Wyckoff-style market phase."""
    ACCUMULATION = "accumulation"
    MARKUP = "markup"
    DISTRIBUTION = "distribution"
    MARKDOWN = "markdown"
    RANGING = "ranging"


class StructureSignalType(str, Enum):
    BULLISH_BOS = "bullish_bos"
    BEARISH_BOS = "bearish_bos"
    BULLISH_CHOCH = "bullish_choch"
    BEARISH_CHOCH = "bearish_choch"
    ORDER_BLOCK_SUPPORT = "order_block_support"
    ORDER_BLOCK_RESISTANCE = "order_block_resistance"
    FVG_SUPPORT = "fvg_support"
    FVG_RESISTANCE = "fvg_resistance"


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Swing:
    """Swing point found during detection."""
    timestamp: datetime
    price: float
    kind: SwingKind
    index: int


@dataclass
class StructureBreak:
    """A labelled structure break."""
    timestamp: datetime
    type: BreakType
    direction: TrendDirection
    price: float
    strength: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'type': self.type.value,
            'direction': self.direction.value,
            'price': self.price,
            'strength': self.strength,
        }


@dataclass
class OrderBlock:
    """Last candle before a gap-away move, opened on rising volume."""
    timestamp: datetime
    price: float  # open of the block candle
    direction: TrendDirection
    strength: float
    volume: float
    mitigated: bool = False  # a later bar traded back to the block price

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'price': self.price,
            'direction': self.direction.value,
            'strength': self.strength,
            'volume': self.volume,
            'mitigated': self.mitigated,
        }


@dataclass
class FairValueGap:
    """Three-candle price inefficiency."""
    start_time: datetime
    end_time: datetime
    gap_low: float
    gap_high: float
    direction: TrendDirection
    strength: float
    filled: bool = False

    @property
    def gap_mid(self) -> float:
        return (self.gap_low + self.gap_high) / 2

    def contains(self, price: float) -> bool:
        return self.gap_low <= price <= self.gap_high

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'gap_low': self.gap_low,
            'gap_high': self.gap_high,
            'direction': self.direction.value,
            'strength': self.strength,
            'filled': self.filled,
        }


@dataclass
class LiquidityPool:
    """Stops resting beyond a strong swing."""
    timestamp: datetime
    price: float
    side: LiquiditySide
    strength: float
    swept: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'price': self.price,
            'side': self.side.value,
            'strength': self.strength,
            'swept': self.swept,
        }


@dataclass
class KeyLevels:
    """Swing support / resistance and the premium / discount split of the range."""
    support: List[float]  # nearest first
    resistance: List[float]  # nearest first
    equilibrium: float
    premium_zone: Tuple[float, float]
    discount_zone: Tuple[float, float]
    price_zone: PriceZone

    def to_dict(self) -> Dict[str, Any]:
        return {
            'support': self.support,
            'resistance': self.resistance,
            'equilibrium': self.equilibrium,
            'premium_zone': {'start': self.premium_zone[0], 'end': self.premium_zone[1]},
            'discount_zone': {'start': self.discount_zone[0], 'end': self.discount_zone[1]},
            'price_zone': self.price_zone.value,
        }


@dataclass
class MarketPhase:
    phase: MarketPhaseType
    confidence: float
    duration: int  # candles in the window
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase': self.phase.value,
            'confidence': self.confidence,
            'duration': self.duration,
            'description': self.description,
        }


@dataclass
class StructureSignal:
    type: StructureSignalType
    strength: float
    description: str
    price: float
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'strength': self.strength,
            'description': self.description,
            'price': self.price,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class MarketStructure:
    """Market structure result."""
    breaks: List[StructureBreak] = field(default_factory=list)  # oldest first
    trend: TrendDirection = TrendDirection.NEUTRAL
    swing_count: int = 0
    order_blocks: List[OrderBlock] = field(default_factory=list)  # oldest first
    fair_value_gaps: List[FairValueGap] = field(default_factory=list)  # unfilled, oldest first
    liquidity_pools: List[LiquidityPool] = field(default_factory=list)  # unswept, strongest first
    key_levels: Optional[KeyLevels] = None
    phase: Optional[MarketPhase] = None
    signals: List[StructureSignal] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'breaks': [b.to_dict() for b in self.breaks],
            'trend': self.trend.value,
            'swing_count': self.swing_count,
            'order_blocks': [b.to_dict() for b in self.order_blocks],
            'fair_value_gaps': [g.to_dict() for g in self.fair_value_gaps],
            'liquidity_pools': [p.to_dict() for p in self.liquidity_pools],
            'key_levels': self.key_levels.to_dict() if self.key_levels else None,
            'phase': self.phase.to_dict() if self.phase else None,
            'signals': [s.to_dict() for s in self.signals],
            'recommendations': self.recommendations,
        }


PHASE_RECOMMENDATIONS = {
    MarketPhaseType.ACCUMULATION: 'Consider building long positions in discount zones',
    MarketPhaseType.MARKUP: 'Look for pullback entries in bullish trend',
    MarketPhaseType.DISTRIBUTION: 'Prepare for potential trend reversal - secure profits',
    MarketPhaseType.MARKDOWN: 'Consider short positions on retracements',
    MarketPhaseType.RANGING: 'Wait for clear directional break from range',
}


class MarketStructureAnalyzer:
    """
    Market Structure Analyzer - Labels structure breaks between swings.

    Swing detection:
        A bar is a swing high when its high is strictly above the high of
        every bar in the `swing_window` bars before and after it (swing
        lows mirror this with lows). Bars without a full window on both
        sides are never swings.

    Break classification (consecutive swing pairs):
        Low -> High is bullish when the low is above the second most recent
        prior low and the high clears the high of the bar at the 80th
        percentile index of the window. High -> Low mirrors this.
        A break against the tracked trend is a CHoCH, otherwise a BOS.

    Order blocks:
        A green bar whose next bar opens above its close, on more than
        1.2x the previous bar's volume (bearish mirrors this). Mitigated
        once a later bar trades back to the block's open.

    Fair value gaps:
        Bullish when bars 2 and 3 both hold above bar 1's high; bearish
        mirrors this. Filled once a later bar trades through the gap.

    Liquidity pools:
        Swings with strength above 60 (30 base + up to 50 from relative
        volume). Buy stops rest above swing highs, sell stops below swing
        lows. Swept once a later bar trades beyond the swing.
    """

    def __init__(
        self,
        min_candles: int = MIN_CANDLES,
        swing_window: int = SWING_WINDOW,
        range_percentile: float = RANGE_PERCENTILE,
        max_strength: float = MAX_STRENGTH,
        max_breaks: int = MAX_BREAKS,
        max_order_blocks: int = MAX_ORDER_BLOCKS,
        max_fair_value_gaps: int = MAX_FAIR_VALUE_GAPS,
        max_liquidity_pools: int = MAX_LIQUIDITY_POOLS,
        key_level_count: int = KEY_LEVEL_COUNT
    ):
        """
        Initialize Market Structure Analyzer.

        Args:
            min_candles: Minimum candles for a structure analysis
            swing_window: Bars on each side a swing must dominate
            range_percentile: Index fraction of the reference bar for breaks
            max_strength: Cap on break strength (percent)
            max_breaks: Number of most recent breaks kept
            max_order_blocks: Number of most recent order blocks kept
            max_fair_value_gaps: Number of most recent unfilled gaps kept
            max_liquidity_pools: Number of strongest unswept pools kept
            key_level_count: Support / resistance levels kept on each side
        """
        if swing_window < 1:
            raise ValueError("swing_window must be >= 1")

        self.min_candles = min_candles
        self.swing_window = swing_window
        self.range_percentile = range_percentile
        self.max_strength = max_strength
        self.max_breaks = max_breaks
        self.max_order_blocks = max_order_blocks
        self.max_fair_value_gaps = max_fair_value_gaps
        self.max_liquidity_pools = max_liquidity_pools
        self.key_level_count = key_level_count

        logger.info(
            f"MarketStructureAnalyzer initialized - "
            f"swing_window={swing_window}, range_percentile={range_percentile}"
        )

    @classmethod
    def from_config(cls, config) -> 'MarketStructureAnalyzer':
        """Build from a MarketStructureConfig."""
        return cls(
            min_candles=config.min_candles,
            swing_window=config.swing_window,
            range_percentile=config.range_percentile,
            max_strength=config.max_strength,
            max_breaks=config.max_breaks,
            max_order_blocks=config.max_order_blocks,
            max_fair_value_gaps=config.max_fair_value_gaps,
            max_liquidity_pools=config.max_liquidity_pools,
            key_level_count=config.key_level_count
        )

    def analyze(self, candles: Sequence[Candle]) -> MarketStructure:
        """
        Detect swings, label structure breaks and map the surrounding levels.

        Args:
            candles: Candles ordered by ascending timestamp

        Returns:
            MarketStructure; neutral and empty below min_candles
        """
        if len(candles) < self.min_candles:
            logger.debug(
                f"Market structure skipped: need {self.min_candles} candles, got {len(candles)}"
            )
            return MarketStructure()

        swings = self.find_swings(candles)
        breaks, trend = self._classify_breaks(candles, swings)
        breaks = breaks[-self.max_breaks:]

        order_blocks = self.find_order_blocks(candles)
        gaps = [g for g in self.find_fair_value_gaps(candles) if not g.filled]
        pools = [p for p in self.find_liquidity_pools(candles, swings) if not p.swept]
        pools.sort(key=lambda p: p.strength, reverse=True)

        key_levels = self.calculate_key_levels(candles, swings)
        phase = self.classify_phase(candles, key_levels)
        signals = self.generate_signals(candles[-1].close, breaks, order_blocks, gaps)
        recommendations = self._recommend(phase, breaks, signals)

        logger.debug(
            f"Market structure: {len(swings)} swings, {len(breaks)} breaks, trend={trend.value}, "
            f"phase={phase.phase.value}, order blocks={len(order_blocks)}, "
            f"open gaps={len(gaps)}, pools={len(pools)}"
        )

        return MarketStructure(
            breaks=breaks,
            trend=trend,
            swing_count=len(swings),
            order_blocks=order_blocks[-self.max_order_blocks:],
            fair_value_gaps=gaps[-self.max_fair_value_gaps:],
            liquidity_pools=pools[:self.max_liquidity_pools],
            key_levels=key_levels,
            phase=phase,
            signals=signals,
            recommendations=recommendations
        )

    def find_swings(self, candles: Sequence[Candle]) -> List[Swing]:
        """Strict swing highs and lows, in bar order (high before low on the same bar)."""
        swings = []
        window = self.swing_window

        for i in range(window, len(candles) - window):
            current = candles[i]
            neighbours = list(candles[i - window:i]) + list(candles[i + 1:i + window + 1])

            if all(c.high < current.high for c in neighbours):
                swings.append(Swing(current.timestamp, current.high, SwingKind.HIGH, i))

            if all(c.low > current.low for c in neighbours):
                swings.append(Swing(current.timestamp, current.low, SwingKind.LOW, i))

        return swings

    def _classify_breaks(self, candles: Sequence[Candle], swings: List[Swing]):
        """Walk consecutive swing pairs, tracking the trend."""
        breaks: List[StructureBreak] = []
        trend = TrendDirection.NEUTRAL

        # Literal percentile-index proxy for the recent range extreme
        reference_index = min(math.floor(len(candles) * self.range_percentile), len(candles) - 1)
        reference_bar = candles[reference_index]

        for i in range(1, len(swings)):
            prev = swings[i - 1]
            curr = swings[i]

            if prev.kind == SwingKind.LOW and curr.kind == SwingKind.HIGH:
                prior_lows = self._prior_swings(swings, SwingKind.LOW, curr)
                if len(prior_lows) < 2:
                    continue
                is_higher_low = prev.price > prior_lows[-2].price
                if is_higher_low and curr.price > reference_bar.high:
                    breaks.append(self._make_break(
                        curr, trend, TrendDirection.BULLISH, high=curr.price, low=prev.price
                    ))
                    trend = TrendDirection.BULLISH

            elif prev.kind == SwingKind.HIGH and curr.kind == SwingKind.LOW:
                prior_highs = self._prior_swings(swings, SwingKind.HIGH, curr)
                if len(prior_highs) < 2:
                    continue
                is_lower_high = prev.price < prior_highs[-2].price
                if is_lower_high and curr.price < reference_bar.low:
                    breaks.append(self._make_break(
                        curr, trend, TrendDirection.BEARISH, high=prev.price, low=curr.price
                    ))
                    trend = TrendDirection.BEARISH

        return breaks, trend

    def _prior_swings(self, swings: List[Swing], kind: SwingKind, before: Swing) -> List[Swing]:
        """Last few swings of `kind` strictly earlier than `before`."""
        prior = [s for s in swings if s.kind == kind and s.timestamp < before.timestamp]
        return prior[-PRIOR_SWING_LOOKBACK:]

    def _make_break(
        self,
        swing: Swing,
        trend: TrendDirection,
        direction: TrendDirection,
        high: float,
        low: float
    ) -> StructureBreak:
        opposite = (
            TrendDirection.BEARISH if direction == TrendDirection.BULLISH
            else TrendDirection.BULLISH
        )
        break_type = BreakType.CHOCH if trend == opposite else BreakType.BOS

        strength = (high - low) / low * 100 if low else 0.0

        return StructureBreak(
            timestamp=swing.timestamp,
            type=break_type,
            direction=direction,
            price=swing.price,
            strength=min(strength, self.max_strength)
        )

    # ========================================================================
    # Order Blocks / Fair Value Gaps
    # ========================================================================

    def find_order_blocks(self, candles: Sequence[Candle]) -> List[OrderBlock]:
        """All order blocks in the window, oldest first."""
        blocks = []

        for i in range(1, len(candles) - 1):
            prev, current, nxt = candles[i - 1], candles[i], candles[i + 1]

            if current.volume <= prev.volume * ORDER_BLOCK_VOLUME_RATIO:
                continue

            if current.close > current.open and nxt.open > current.close:
                direction = TrendDirection.BULLISH
                mitigated = any(c.low <= current.open for c in candles[i + 2:])
            elif current.close < current.open and nxt.open < current.close:
                direction = TrendDirection.BEARISH
                mitigated = any(c.high >= current.open for c in candles[i + 2:])
            else:
                continue

            ratio = StatisticalUtils.safe_divide(current.volume, prev.volume, default=math.inf)
            blocks.append(OrderBlock(
                timestamp=current.timestamp,
                price=current.open,
                direction=direction,
                strength=min(MAX_ORDER_BLOCK_STRENGTH, ratio * ORDER_BLOCK_STRENGTH_PER_RATIO),
                volume=current.volume,
                mitigated=mitigated
            ))

        return blocks

    def find_fair_value_gaps(self, candles: Sequence[Candle]) -> List[FairValueGap]:
        """All fair value gaps in the window (filled ones included), oldest first."""
        gaps = []

        for i in range(2, len(candles)):
            first, middle, third = candles[i - 2], candles[i - 1], candles[i]
            later = candles[i + 1:]

            if third.low > first.high and middle.low > first.high:
                gap_low, gap_high = first.high, third.low
                gaps.append(FairValueGap(
                    start_time=first.timestamp,
                    end_time=third.timestamp,
                    gap_low=gap_low,
                    gap_high=gap_high,
                    direction=TrendDirection.BULLISH,
                    strength=min(MAX_FVG_STRENGTH, StatisticalUtils.safe_divide(gap_high - gap_low, gap_low) * FVG_STRENGTH_SCALE),
                    filled=any(c.low <= gap_low for c in later)
                ))

            if third.high < first.low and middle.high < first.low:
                gap_low, gap_high = third.high, first.low
                gaps.append(FairValueGap(
                    start_time=first.timestamp,
                    end_time=third.timestamp,
                    gap_low=gap_low,
                    gap_high=gap_high,
                    direction=TrendDirection.BEARISH,
                    strength=min(MAX_FVG_STRENGTH, StatisticalUtils.safe_divide(gap_high - gap_low, gap_low) * FVG_STRENGTH_SCALE),
                    filled=any(c.high >= gap_high for c in later)
                ))

        return gaps

    # ========================================================================
    # Liquidity / Key Levels
    # ========================================================================

    def swing_strength(self, candles: Sequence[Candle], index: int) -> float:
        """30 base plus up to 50 from the bar's volume against its trailing average."""
        window = candles[max(0, index - SWING_VOLUME_LOOKBACK):index + 1]
        avg_volume = StatisticalUtils.mean([c.volume for c in window])
        ratio = StatisticalUtils.safe_divide(candles[index].volume, avg_volume)
        return SWING_BASE_STRENGTH + min(MAX_SWING_VOLUME_STRENGTH, ratio * SWING_VOLUME_STRENGTH_PER_RATIO)

    def find_liquidity_pools(
        self,
        candles: Sequence[Candle],
        swings: Sequence[Swing]
    ) -> List[LiquidityPool]:
        """Pools at every sufficiently strong swing, in swing order."""
        pools = []

        for swing in swings:
            strength = self.swing_strength(candles, swing.index)
            if strength <= MIN_POOL_STRENGTH:
                continue

            later = candles[swing.index + 1:]
            if swing.kind == SwingKind.HIGH:
                side = LiquiditySide.BUY_SIDE
                swept = any(c.high > swing.price for c in later)
            else:
                side = LiquiditySide.SELL_SIDE
                swept = any(c.low < swing.price for c in later)

            pools.append(LiquidityPool(
                timestamp=swing.timestamp,
                price=swing.price,
                side=side,
                strength=strength,
                swept=swept
            ))

        return pools

    def calculate_key_levels(self, candles: Sequence[Candle], swings: Sequence[Swing]) -> KeyLevels:
        """
        Support / resistance from swings around the last close, plus the
        premium / discount split of the window range.

        Premium is the top quarter of the range, discount the bottom quarter.
        """
        current_price = candles[-1].close
        range_high = max(c.high for c in candles)
        range_low = min(c.low for c in candles)

        support = sorted(
            (s.price for s in swings if s.kind == SwingKind.LOW and s.price < current_price),
            reverse=True
        )[:self.key_level_count]
        resistance = sorted(
            s.price for s in swings if s.kind == SwingKind.HIGH and s.price > current_price
        )[:self.key_level_count]

        equilibrium = (range_high + range_low) / 2
        premium_start = equilibrium + (range_high - equilibrium) * ZONE_FRACTION
        discount_end = equilibrium - (equilibrium - range_low) * ZONE_FRACTION

        if range_high == range_low:
            price_zone = PriceZone.EQUILIBRIUM
        elif current_price >= premium_start:
            price_zone = PriceZone.PREMIUM
        elif current_price <= discount_end:
            price_zone = PriceZone.DISCOUNT
        else:
            price_zone = PriceZone.EQUILIBRIUM

        return KeyLevels(
            support=support,
            resistance=resistance,
            equilibrium=equilibrium,
            premium_zone=(premium_start, range_high),
            discount_zone=(range_low, discount_end),
            price_zone=price_zone
        )

    # ========================================================================
    # Phase / Signals / Recommendations
    # ========================================================================

    def classify_phase(self, candles: Sequence[Candle], key_levels: KeyLevels) -> MarketPhase:
        """
        Markup / markdown on a >5% move with >2% return volatility.

        A heavy last bar (>1.5x average volume) with under 2% net move is
        accumulation below equilibrium and distribution above it.
        """
        closes = [c.close for c in candles]
        volumes = [c.volume for c in candles]

        price_change = StatisticalUtils.safe_divide(closes[-1] - closes[0], closes[0]) * 100
        returns = [
            StatisticalUtils.safe_divide(curr - prev, prev)
            for prev, curr in zip(closes, closes[1:])
        ]
        volatility = StatisticalUtils.std(returns) * 100
        avg_volume = StatisticalUtils.mean(volumes)

        if price_change > PHASE_PRICE_CHANGE_PCT and volatility > PHASE_VOLATILITY_PCT:
            return MarketPhase(
                MarketPhaseType.MARKUP, 75.0, len(candles),
                'Strong upward momentum with institutional buying'
            )
        if price_change < -PHASE_PRICE_CHANGE_PCT and volatility > PHASE_VOLATILITY_PCT:
            return MarketPhase(
                MarketPhaseType.MARKDOWN, 75.0, len(candles),
                'Strong downward pressure with institutional selling'
            )
        if volumes[-1] > avg_volume * PHASE_VOLUME_RATIO and abs(price_change) < PHASE_RANGE_CHANGE_PCT:
            if closes[-1] <= key_levels.equilibrium:
                return MarketPhase(
                    MarketPhaseType.ACCUMULATION, 65.0, len(candles),
                    'High volume with low price movement in the lower range - potential accumulation'
                )
            return MarketPhase(
                MarketPhaseType.DISTRIBUTION, 65.0, len(candles),
                'High volume with low price movement in the upper range - potential distribution'
            )

        return MarketPhase(MarketPhaseType.RANGING, 50.0, len(candles), 'Market is in a ranging phase')

    def generate_signals(
        self,
        current_price: float,
        breaks: Sequence[StructureBreak],
        order_blocks: Sequence[OrderBlock],
        gaps: Sequence[FairValueGap]
    ) -> List[StructureSignal]:
        """Latest break, nearby unmitigated order blocks and gaps holding price."""
        signals = []

        if breaks:
            last = breaks[-1]
            bullish = last.direction == TrendDirection.BULLISH
            if last.type == BreakType.CHOCH:
                signal_type = StructureSignalType.BULLISH_CHOCH if bullish else StructureSignalType.BEARISH_CHOCH
                strength = CHOCH_SIGNAL_STRENGTH
                label = 'Change of Character'
            else:
                signal_type = StructureSignalType.BULLISH_BOS if bullish else StructureSignalType.BEARISH_BOS
                strength = BOS_SIGNAL_STRENGTH
                label = 'Break of Structure'
            signals.append(StructureSignal(
                type=signal_type,
                strength=strength,
                description=f"{last.direction.value.capitalize()} {label} confirmed",
                price=last.price,
                timestamp=last.timestamp
            ))

        for block in list(reversed(order_blocks))[:SIGNAL_SCAN]:
            distance = StatisticalUtils.safe_divide(abs(block.price - current_price), current_price, default=math.inf)
            if block.mitigated or distance >= SIGNAL_PROXIMITY:
                continue
            bullish = block.direction == TrendDirection.BULLISH
            signals.append(StructureSignal(
                type=StructureSignalType.ORDER_BLOCK_SUPPORT if bullish else StructureSignalType.ORDER_BLOCK_RESISTANCE,
                strength=block.strength,
                description=f"{block.direction.value.capitalize()} Order Block at {block.price:.2f}",
                price=block.price,
                timestamp=block.timestamp
            ))

        for gap in list(reversed(gaps))[:SIGNAL_SCAN]:
            if gap.filled or not gap.contains(current_price):
                continue
            bullish = gap.direction == TrendDirection.BULLISH
            signals.append(StructureSignal(
                type=StructureSignalType.FVG_SUPPORT if bullish else StructureSignalType.FVG_RESISTANCE,
                strength=gap.strength,
                description=f"Price in {gap.direction.value} Fair Value Gap",
                price=gap.gap_mid,
                timestamp=gap.start_time
            ))

        return signals

    def _recommend(
        self,
        phase: MarketPhase,
        breaks: Sequence[StructureBreak],
        signals: Sequence[StructureSignal]
    ) -> List[str]:
        recommendations = [PHASE_RECOMMENDATIONS[phase.phase]]

        if breaks:
            if breaks[-1].direction == TrendDirection.BULLISH:
                recommendations.append('Bullish structure confirmed - look for long opportunities')
            else:
                recommendations.append('Bearish structure confirmed - look for short opportunities')

        if len(signals) > CONFLUENCE_SIGNALS:
            recommendations.append('Multiple confluences detected - high probability setup')

        return recommendations

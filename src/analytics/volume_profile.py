"""
Volume Profile Analyzer - POC, VAH, VAL calculations from candles.

Calculates:
1. Volume distribution histogram over fixed price buckets
2. POC (Point of Control) - Price level with highest volume
3. VAH / VAL - Bounds of the 70% value area
4. HVN / LVN classification of every level
5. Market bias of the last close relative to the value area
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .candles import Candle

logger = logging.getLogger(__name__)


DEFAULT_BUCKET_COUNT = 100
LIGHTWEIGHT_BUCKET_COUNT = 50
OHLC_WEIGHTS = (0.25, 0.15, 0.15, 0.45)  # open, high, low, close
VALUE_AREA_PCT = 0.70
HVN_THRESHOLD_PCT = 3.0
LVN_THRESHOLD_PCT = 0.5
LIGHTWEIGHT_HVN_THRESHOLD_PCT = 2.5
LIGHTWEIGHT_LVN_THRESHOLD_PCT = 0.8
# HVN/LVN lists are wider than the per-node classification
HVN_LIST_THRESHOLD_PCT = 2.5
LVN_LIST_THRESHOLD_PCT = 0.8
TOP_HVN_LEVELS = 3


class VolumeWeighting(str, Enum):
    """How a candle's volume is attributed to price buckets."""
    TYPICAL = "typical"  # whole volume at (high + low + close) / 3
    OHLC = "ohlc"        # volume split across open/high/low/close levels


class NodeClassification(str, Enum):
    """Volume node classification."""
    NORMAL = "normal"
    HIGH_VOLUME_NODE = "high_volume_node"
    LOW_VOLUME_NODE = "low_volume_node"


class MarketBias(str, Enum):
    """Position of the last close relative to the value area."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    RANGE_BOUND = "range_bound"


@dataclass
class VolumeNode:
    """A price bucket with its accumulated volume."""
    price: float
    volume: float
    percentage: float
    classification: NodeClassification = NodeClassification.NORMAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            'price': self.price,
            'volume': self.volume,
            'percentage': self.percentage,
            'classification': self.classification.value,
        }


@dataclass
class ProfileAnalysis:
    """Textual reading of a volume profile."""
    bias: MarketBias
    market_structure: str
    support_resistance: List[str]
    recommendation: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bias': self.bias.value,
            'market_structure': self.market_structure,
            'support_resistance': list(self.support_resistance),
            'recommendation': self.recommendation,
            'confidence': self.confidence,
        }


@dataclass
class VolumeProfile:
    """Volume profile result."""
    nodes: List[VolumeNode]  # descending by price
    poc: Optional[VolumeNode]
    value_area_high: Optional[float]
    value_area_low: Optional[float]
    value_area_volume: float
    total_volume: float
    high_volume_nodes: List[VolumeNode]
    low_volume_nodes: List[VolumeNode]
    analysis: ProfileAnalysis
    bucket_count: int
    weighting: VolumeWeighting
    value_area_nodes: List[VolumeNode] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [n.to_dict() for n in self.nodes],
            'poc': self.poc.to_dict() if self.poc else None,
            'value_area_high': self.value_area_high,
            'value_area_low': self.value_area_low,
            'value_area_volume': self.value_area_volume,
            'total_volume': self.total_volume,
            'high_volume_nodes': [n.to_dict() for n in self.high_volume_nodes],
            'low_volume_nodes': [n.to_dict() for n in self.low_volume_nodes],
            'analysis': self.analysis.to_dict(),
            'bucket_count': self.bucket_count,
            'weighting': self.weighting.value,
        }


class VolumeProfileAnalyzer:
    """
    Volume Profile Analyzer - Calculates POC, VAH, VAL from OHLCV candles.

    Calculation Process:
    1. Span [lowest low, highest high] with `bucket_count` equal buckets
    2. Attribute each candle's volume to buckets (typical price or OHLC split)
    3. Convert bucket volumes to percentages of total and classify them
    4. POC = bucket with most volume
    5. Value area = buckets taken by descending volume until 70% is reached
    6. VAH = highest price in value area, VAL = lowest price in value area
    """

    def __init__(
        self,
        bucket_count: int = DEFAULT_BUCKET_COUNT,
        weighting: VolumeWeighting = VolumeWeighting.OHLC,
        ohlc_weights: Tuple[float, float, float, float] = OHLC_WEIGHTS,
        value_area_pct: float = VALUE_AREA_PCT,
        hvn_threshold_pct: float = HVN_THRESHOLD_PCT,
        lvn_threshold_pct: float = LVN_THRESHOLD_PCT,
        hvn_list_threshold_pct: float = HVN_LIST_THRESHOLD_PCT,
        lvn_list_threshold_pct: float = LVN_LIST_THRESHOLD_PCT
    ):
        """
        Initialize Volume Profile Analyzer.

        Args:
            bucket_count: Number of price buckets spanning the window range
            weighting: Volume attribution scheme
            ohlc_weights: Open/high/low/close weights for OHLC attribution
            value_area_pct: Fraction of volume in the value area (0.70 = 70%)
            hvn_threshold_pct: Percentage above which a node is an HVN
            lvn_threshold_pct: Percentage below which a node is an LVN
            hvn_list_threshold_pct: Percentage above which a node is listed in high_volume_nodes
            lvn_list_threshold_pct: Percentage below which a node is listed in low_volume_nodes
        """
        if bucket_count < 1:
            raise ValueError("bucket_count must be >= 1")
        if len(ohlc_weights) != 4 or sum(ohlc_weights) <= 0:
            raise ValueError("ohlc_weights must be four weights with a positive sum")

        self.bucket_count = bucket_count
        self.weighting = VolumeWeighting(weighting)
        weight_sum = sum(ohlc_weights)
        self.ohlc_weights = tuple(w / weight_sum for w in ohlc_weights)
        self.value_area_pct = value_area_pct
        self.hvn_threshold_pct = hvn_threshold_pct
        self.lvn_threshold_pct = lvn_threshold_pct
        self.hvn_list_threshold_pct = hvn_list_threshold_pct
        self.lvn_list_threshold_pct = lvn_list_threshold_pct

        logger.info(
            f"VolumeProfileAnalyzer initialized - "
            f"buckets={bucket_count}, weighting={self.weighting.value}, "
            f"value_area={value_area_pct*100}%"
        )

    @classmethod
    def lightweight(cls) -> 'VolumeProfileAnalyzer':
        """50 buckets, whole volume at the typical price."""
        return cls(
            bucket_count=LIGHTWEIGHT_BUCKET_COUNT,
            weighting=VolumeWeighting.TYPICAL,
            hvn_threshold_pct=LIGHTWEIGHT_HVN_THRESHOLD_PCT,
            lvn_threshold_pct=LIGHTWEIGHT_LVN_THRESHOLD_PCT,
            hvn_list_threshold_pct=LIGHTWEIGHT_HVN_THRESHOLD_PCT,
            lvn_list_threshold_pct=LIGHTWEIGHT_LVN_THRESHOLD_PCT
        )

    @classmethod
    def detailed(cls) -> 'VolumeProfileAnalyzer':
        """100 buckets, volume split across OHLC with close weighted highest."""
        return cls()

    @classmethod
    def from_config(cls, config) -> 'VolumeProfileAnalyzer':
        """Build from a VolumeProfileConfig."""
        return cls(
            bucket_count=config.bucket_count,
            weighting=config.weighting,
            ohlc_weights=tuple(config.ohlc_weights),
            value_area_pct=config.value_area_pct,
            hvn_threshold_pct=config.hvn_threshold_pct,
            lvn_threshold_pct=config.lvn_threshold_pct,
            hvn_list_threshold_pct=config.hvn_list_threshold_pct,
            lvn_list_threshold_pct=config.lvn_list_threshold_pct
        )

    def calculate_profile(self, candles: Sequence[Candle]) -> VolumeProfile:
        """
        Calculate the volume profile of a candle window.

        Args:
            candles: Candles ordered by ascending timestamp

        Returns:
            VolumeProfile; empty when there are no candles or no volume
        """
        if not candles:
            return self._empty_profile('No candles in window')

        min_price = min(c.low for c in candles)
        max_price = max(c.high for c in candles)
        price_step = (max_price - min_price) / self.bucket_count

        volume_by_bucket = self._build_histogram(candles, min_price, price_step)
        total_volume = sum(volume_by_bucket.values())

        if total_volume <= 0:
            logger.debug("Volume profile skipped: zero total volume")
            return self._empty_profile('No volume traded in window')

        nodes = []
        for index in sorted(volume_by_bucket, reverse=True):
            volume = volume_by_bucket[index]
            percentage = volume / total_volume * 100
            nodes.append(VolumeNode(
                price=min_price + index * price_step,
                volume=volume,
                percentage=percentage,
                classification=self._classify(percentage)
            ))

        poc = self._calculate_poc(nodes)
        value_area_nodes, value_area_volume = self._calculate_value_area(nodes, total_volume)
        value_area_prices = [n.price for n in value_area_nodes]
        value_area_high = max(value_area_prices)
        value_area_low = min(value_area_prices)

        high_volume_nodes = [n for n in nodes if n.percentage > self.hvn_list_threshold_pct]
        low_volume_nodes = [n for n in nodes if n.percentage < self.lvn_list_threshold_pct]

        analysis = self._analyze(
            current_price=candles[-1].close,
            poc=poc,
            value_area_high=value_area_high,
            value_area_low=value_area_low,
            high_volume_nodes=high_volume_nodes
        )

        logger.debug(
            f"Volume profile: POC=${poc.price:.2f} ({poc.percentage:.1f}%), "
            f"VA=${value_area_low:.2f}-${value_area_high:.2f}, bias={analysis.bias.value}"
        )

        return VolumeProfile(
            nodes=nodes,
            poc=poc,
            value_area_high=value_area_high,
            value_area_low=value_area_low,
            value_area_volume=value_area_volume,
            total_volume=total_volume,
            high_volume_nodes=high_volume_nodes,
            low_volume_nodes=low_volume_nodes,
            analysis=analysis,
            bucket_count=self.bucket_count,
            weighting=self.weighting,
            value_area_nodes=value_area_nodes
        )

    def _build_histogram(
        self,
        candles: Sequence[Candle],
        min_price: float,
        price_step: float
    ) -> Dict[int, float]:
        """Accumulate candle volume per bucket index."""
        volume_by_bucket: Dict[int, float] = defaultdict(float)

        for candle in candles:
            if self.weighting == VolumeWeighting.TYPICAL:
                index = self._bucket_index(candle.typical_price, min_price, price_step)
                volume_by_bucket[index] += candle.volume
            else:
                prices = (candle.open, candle.high, candle.low, candle.close)
                for price, weight in zip(prices, self.ohlc_weights):
                    index = self._bucket_index(price, min_price, price_step)
                    volume_by_bucket[index] += candle.volume * weight

        return dict(volume_by_bucket)

    def _bucket_index(self, price: float, min_price: float, price_step: float) -> int:
        """Bucket of a price; the top of the range falls in the last bucket."""
        if price_step <= 0:
            return 0
        index = math.floor((price - min_price) / price_step)
        return max(0, min(index, self.bucket_count - 1))

    def _classify(self, percentage: float) -> NodeClassification:
        if percentage > self.hvn_threshold_pct:
            return NodeClassification.HIGH_VOLUME_NODE
        if percentage < self.lvn_threshold_pct:
            return NodeClassification.LOW_VOLUME_NODE
        return NodeClassification.NORMAL

    def _calculate_poc(self, nodes: List[VolumeNode]) -> VolumeNode:
        """Node with the most volume; the first one wins ties."""
        poc = nodes[0]
        for node in nodes[1:]:
            if node.volume > poc.volume:
                poc = node
        return poc

    def _calculate_value_area(
        self,
        nodes: List[VolumeNode],
        total_volume: float
    ) -> Tuple[List[VolumeNode], float]:
        """
        Greedy value area.

        Takes nodes in descending volume order until the accumulated
        volume reaches value_area_pct of the total.

        Returns:
            Tuple of (value_area_nodes, value_area_volume)
        """
        target_volume = total_volume * self.value_area_pct
        by_volume = sorted(nodes, key=lambda n: n.volume, reverse=True)

        value_area_nodes: List[VolumeNode] = []
        accumulated_volume = 0.0

        for node in by_volume:
            if accumulated_volume >= target_volume:
                break
            value_area_nodes.append(node)
            accumulated_volume += node.volume

        return value_area_nodes, accumulated_volume

    def _analyze(
        self,
        current_price: float,
        poc: VolumeNode,
        value_area_high: float,
        value_area_low: float,
        high_volume_nodes: List[VolumeNode]
    ) -> ProfileAnalysis:
        """Market bias, S/R levels and recommendation from the last close."""
        if current_price > value_area_high:
            bias = MarketBias.BULLISH
            market_structure = 'Bullish - Price above Value Area'
        elif current_price < value_area_low:
            bias = MarketBias.BEARISH
            market_structure = 'Bearish - Price below Value Area'
        else:
            bias = MarketBias.RANGE_BOUND
            market_structure = 'Balanced'

        support_resistance = [
            f"POC Level: ${poc.price:.2f} (Strong S/R)",
            f"Value Area High: ${value_area_high:.2f}",
            f"Value Area Low: ${value_area_low:.2f}",
        ]
        for hvn in high_volume_nodes[:TOP_HVN_LEVELS]:
            support_resistance.append(
                f"HVN: ${hvn.price:.2f} ({hvn.percentage:.1f}% volume)"
            )

        recommendation = ''
        confidence = 50.0

        if bias == MarketBias.BULLISH and current_price > poc.price:
            recommendation = (
                'Bullish bias - Price above POC and Value Area. '
                'Look for pullbacks to Value Area for long entries.'
            )
            confidence = 75.0
        elif bias == MarketBias.BEARISH and current_price < poc.price:
            recommendation = (
                'Bearish bias - Price below POC and Value Area. '
                'Look for rallies to Value Area for short entries.'
            )
            confidence = 75.0
        elif bias == MarketBias.RANGE_BOUND:
            recommendation = (
                'Range-bound - Price within Value Area. '
                'Trade between VA High and VA Low.'
            )
            confidence = 60.0

        return ProfileAnalysis(
            bias=bias,
            market_structure=market_structure,
            support_resistance=support_resistance,
            recommendation=recommendation,
            confidence=confidence
        )

    def _empty_profile(self, reason: str) -> VolumeProfile:
        return VolumeProfile(
            nodes=[],
            poc=None,
            value_area_high=None,
            value_area_low=None,
            value_area_volume=0.0,
            total_volume=0.0,
            high_volume_nodes=[],
            low_volume_nodes=[],
            analysis=ProfileAnalysis(
                bias=MarketBias.RANGE_BOUND,
                market_structure='Insufficient data',
                support_resistance=[],
                recommendation=reason,
                confidence=0.0
            ),
            bucket_count=self.bucket_count,
            weighting=self.weighting
        )

"""
Candle model shared by all analytics engines.

Candles arrive from a CandleSource already validated and ordered by
ascending timestamp. They are never mutated by the engines.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Sequence


@dataclass(frozen=True)
class Candle:
    """Represents an OHLCV candlestick."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    symbol: str = ''
    timeframe: str = '1h'

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume,
            'symbol': self.symbol,
            'timeframe': self.timeframe,
        }


@dataclass(frozen=True)
class Ticker:
    """Latest traded price and 24h base-asset volume for a symbol."""
    symbol: str
    last_price: float
    volume_24h: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'last_price': self.last_price,
            'volume_24h': self.volume_24h,
        }


def highs(candles: Sequence[Candle]) -> List[float]:
    return [c.high for c in candles]


def lows(candles: Sequence[Candle]) -> List[float]:
    return [c.low for c in candles]


def closes(candles: Sequence[Candle]) -> List[float]:
    return [c.close for c in candles]


def volumes(candles: Sequence[Candle]) -> List[float]:
    return [c.volume for c in candles]

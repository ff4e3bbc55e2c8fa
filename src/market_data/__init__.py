"""Market data sources and payload parsing."""

from .source import CandleSource, CandleSourceError, InMemoryCandleSource, SymbolNotFoundError
from .klines import parse_kline, parse_klines, parse_ticker
from .mock import MockCandleGenerator, MockCandleSource

__all__ = [
    'CandleSource',
    'CandleSourceError',
    'SymbolNotFoundError',
    'InMemoryCandleSource',
    'parse_kline',
    'parse_klines',
    'parse_ticker',
    'MockCandleGenerator',
    'MockCandleSource',
]

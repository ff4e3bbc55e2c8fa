"""
Candle Source - Abstract interface for OHLCV candle providers.

This module defines the standard interface the analytics engine reads from:
- CandleSource: Abstract base class for candle providers
- InMemoryCandleSource: Source backed by preloaded candles
- Standard exception classes

Sources return candles validated and ordered by ascending timestamp. The
analytics core never retries; retry and rate-limit policy belong to the
concrete source.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from src.analytics.candles import Candle, Ticker


logger = logging.getLogger(__name__)


# ============================================================================
# Exception Classes
# ============================================================================

class CandleSourceError(Exception):
    """Base exception for upstream market data failures."""
    def __init__(self, message: str, symbol: Optional[str] = None):
        self.message = message
        self.symbol = symbol
        super().__init__(self.message)


class SymbolNotFoundError(CandleSourceError):
    """Requested symbol is unknown to the source."""
    pass


# ============================================================================
# Abstract Interface
# ============================================================================

class CandleSource(ABC):
    """
    Abstract base class for candle providers.

    Implementations must:
    - Return candles ordered by ascending timestamp
    - Return at most `limit` of the most recent candles
    - Raise CandleSourceError (or a subclass) on upstream failure
    """

    @abstractmethod
    async def get_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        """
        Fetch recent candles.

        Args:
            symbol: Trading pair symbol (e.g., 'BTCUSDT')
            timeframe: Candle timeframe (e.g., '1h')
            limit: Maximum number of candles

        Returns:
            Candles ordered by ascending timestamp
        """
        pass

    @abstractmethod
    async def get_ticker(self, symbol: str) -> Ticker:
        """
        Fetch the latest price and 24h volume.

        Args:
            symbol: Trading pair symbol

        Returns:
            Ticker
        """
        pass


# ============================================================================
# In-Memory Source
# ============================================================================

class InMemoryCandleSource(CandleSource):
    """
    Candle source backed by preloaded candles.

    Useful for tests, replays and request bodies that carry their own
    candles.
    """

    def __init__(self):
        self._candles: Dict[Tuple[str, str], List[Candle]] = {}
        self._tickers: Dict[str, Ticker] = {}

    def add_candles(self, symbol: str, timeframe: str, candles: Sequence[Candle]):
        """Store candles for a symbol/timeframe, sorted by timestamp."""
        self._candles[(symbol, timeframe)] = sorted(candles, key=lambda c: c.timestamp)
        logger.debug(f"Loaded {len(candles)} {timeframe} candles for {symbol}")

    def set_ticker(self, ticker: Ticker):
        self._tickers[ticker.symbol] = ticker

    async def get_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        candles = self._candles.get((symbol, timeframe))
        if candles is None:
            raise SymbolNotFoundError(f"No {timeframe} candles for {symbol}", symbol=symbol)
        return candles[-limit:] if limit > 0 else []

    async def get_ticker(self, symbol: str) -> Ticker:
        ticker = self._tickers.get(symbol)
        if ticker is not None:
            return ticker

        # Derive from the most recent candles when no ticker was set
        series = [c for (s, _), cs in self._candles.items() if s == symbol for c in cs]
        if not series:
            raise SymbolNotFoundError(f"No ticker for {symbol}", symbol=symbol)

        series.sort(key=lambda c: c.timestamp)
        return Ticker(
            symbol=symbol,
            last_price=series[-1].close,
            volume_24h=sum(c.volume for c in series[-24:])
        )

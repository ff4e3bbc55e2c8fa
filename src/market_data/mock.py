"""
Mock candle data for demos and tests.

Generates a reproducible random walk with a volatility regime and
occasional volume spikes.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import numpy as np

from src.analytics.candles import Candle, Ticker
from src.market_data.source import CandleSource


logger = logging.getLogger(__name__)


TIMEFRAME_SECONDS = {
    '1m': 60,
    '5m': 300,
    '15m': 900,
    '30m': 1800,
    '1h': 3600,
    '4h': 14400,
    '1d': 86400,
}

BASE_PRICES = {
    'BTCUSDT': 65000.0,
    'ETHUSDT': 3200.0,
    'SOLUSDT': 150.0,
    'ADAUSDT': 0.45,
}
DEFAULT_BASE_PRICE = 100.0

DEFAULT_MAX_SERIES = 64
TICKER_FALLBACK_TIMEFRAME = '1h'


class MockCandleGenerator:
    """
    Random-walk candle generator.

    Each bar draws a log return from N(drift, volatility), wicks from the
    body outward and a lognormal volume with a 5% chance of a 3-5x spike.
    """

    def __init__(
        self,
        seed: Optional[int] = 42,
        volatility: float = 0.01,
        drift: float = 0.0,
        base_volume: float = 1000.0,
        spike_probability: float = 0.05
    ):
        """
        Initialize generator.

        Args:
            seed: RNG seed (None for non-deterministic output)
            volatility: Per-bar log-return standard deviation
            drift: Per-bar mean log return
            base_volume: Median bar volume
            spike_probability: Chance of a volume spike per bar
        """
        self.rng = np.random.default_rng(seed)
        self.volatility = volatility
        self.drift = drift
        self.base_volume = base_volume
        self.spike_probability = spike_probability

    def generate(
        self,
        symbol: str,
        timeframe: str = '1h',
        count: int = 100,
        start_price: Optional[float] = None,
        end_time: Optional[datetime] = None
    ) -> List[Candle]:
        """Generate `count` candles ending at `end_time` (default now, UTC)."""
        if timeframe not in TIMEFRAME_SECONDS:
            raise ValueError(f"Unsupported timeframe: {timeframe}")

        step = timedelta(seconds=TIMEFRAME_SECONDS[timeframe])
        end_time = end_time or datetime.now(timezone.utc)
        price = start_price or BASE_PRICES.get(symbol, DEFAULT_BASE_PRICE)

        returns = self.rng.normal(self.drift, self.volatility, count)
        wick_up = np.abs(self.rng.normal(0, self.volatility / 2, count))
        wick_down = np.abs(self.rng.normal(0, self.volatility / 2, count))
        volumes = self.base_volume * self.rng.lognormal(0, 0.4, count)
        spikes = self.rng.random(count) < self.spike_probability
        volumes[spikes] *= self.rng.uniform(3.0, 5.0, int(spikes.sum()))

        candles = []
        for i in range(count):
            open_ = price
            close = open_ * float(np.exp(returns[i]))
            high = max(open_, close) * (1 + float(wick_up[i]))
            low = min(open_, close) * (1 - float(wick_down[i]))

            candles.append(Candle(
                timestamp=end_time - step * (count - 1 - i),
                open=open_,
                high=high,
                low=low,
                close=close,
                volume=float(volumes[i]),
                symbol=symbol,
                timeframe=timeframe
            ))
            price = close

        return candles


class MockCandleSource(CandleSource):
    """
    Candle source serving generated data.

    Series are cached per symbol/timeframe in an LRU of at most
    `max_series` entries. Tickers are read from the series most recently
    served for the symbol, so a ticker always matches the last candle
    window handed out.
    """

    def __init__(
        self,
        generator: Optional[MockCandleGenerator] = None,
        history: int = 500,
        max_series: int = DEFAULT_MAX_SERIES
    ):
        if max_series < 1:
            raise ValueError("max_series must be >= 1")
        self.generator = generator or MockCandleGenerator()
        self.history = history
        self.max_series = max_series
        self._series: OrderedDict[Tuple[str, str], List[Candle]] = OrderedDict()

    def _get_series(self, symbol: str, timeframe: str) -> List[Candle]:
        key = (symbol, timeframe)
        if key in self._series:
            self._series.move_to_end(key)
            return self._series[key]

        while len(self._series) >= self.max_series:
            evicted, _ = self._series.popitem(last=False)
            logger.debug(f"Evicted mock series {evicted[0]} {evicted[1]}")

        self._series[key] = self.generator.generate(symbol, timeframe, self.history)
        logger.debug(f"Generated {self.history} mock {timeframe} candles for {symbol}")
        return self._series[key]

    def _latest_timeframe(self, symbol: str) -> str:
        for cached_symbol, timeframe in reversed(self._series):
            if cached_symbol == symbol:
                return timeframe
        return TICKER_FALLBACK_TIMEFRAME

    @property
    def cached_series(self) -> int:
        return len(self._series)

    async def get_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        series = self._get_series(symbol, timeframe)
        return series[-limit:] if limit > 0 else []

    async def get_ticker(self, symbol: str) -> Ticker:
        timeframe = self._latest_timeframe(symbol)
        series = self._get_series(symbol, timeframe)
        bars_per_day = max(1, 86400 // TIMEFRAME_SECONDS.get(timeframe, 3600))
        last_day = series[-bars_per_day:]
        return Ticker(
            symbol=symbol,
            last_price=last_day[-1].close,
            volume_24h=sum(c.volume for c in last_day)
        )

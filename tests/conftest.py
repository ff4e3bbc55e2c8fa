"""
Shared fixtures for the analytics test suite.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.analytics.candles import Candle, Ticker
from src.market_data.mock import MockCandleGenerator


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

# Alternating peak/trough pivots, one every two bars starting at bar 1.
# Rising structure through bar 13, a lower high at bar 17, then falling.
ZIGZAG_PIVOTS = [13, 10, 15, 12, 17, 14, 19, 16, 18, 13, 16, 11, 14, 9, 12]


# ============================================================================
# Candle Builders
# ============================================================================

@pytest.fixture
def make_candle():
    """Build a candle at `index` hours after the base time."""
    def _make(index, open_, high, low, close, volume=100.0, symbol='BTCUSDT'):
        return Candle(
            timestamp=BASE_TIME + timedelta(hours=index),
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=volume,
            symbol=symbol,
            timeframe='1h'
        )
    return _make


@pytest.fixture
def make_candles(make_candle):
    """Build a candle series from (open, high, low, close, volume) tuples."""
    def _make(rows):
        return [make_candle(i, *row) for i, row in enumerate(rows)]
    return _make


@pytest.fixture
def price_path_candles(make_candle):
    """Doji candles centred on each price with a +/-0.5 range."""
    def _make(prices, volume=100.0):
        return [
            make_candle(i, p, p + 0.5, p - 0.5, p, volume)
            for i, p in enumerate(prices)
        ]
    return _make


# ============================================================================
# Series
# ============================================================================

@pytest.fixture
def zigzag_prices():
    """30 bar prices: pivots at odd bars, midpoints at even bars."""
    prices = [11.5]
    for k, pivot in enumerate(ZIGZAG_PIVOTS):
        if k > 0:
            prices.append((ZIGZAG_PIVOTS[k - 1] + pivot) / 2)
        prices.append(pivot)
    return prices


@pytest.fixture
def zigzag_candles(price_path_candles, zigzag_prices):
    return price_path_candles(zigzag_prices)


@pytest.fixture
def rising_candles(make_candle):
    """Strictly rising highs and lows, no pullbacks."""
    return [
        make_candle(i, 100 + i, 101 + i, 99.5 + i, 100.8 + i, 100.0)
        for i in range(40)
    ]


@pytest.fixture
def random_candles():
    """Reproducible random-walk candles."""
    generator = MockCandleGenerator(seed=7)
    return generator.generate('BTCUSDT', '1h', 120, start_price=100.0, end_time=BASE_TIME)


@pytest.fixture
def liquid_ticker():
    return Ticker(symbol='BTCUSDT', last_price=100.0, volume_24h=50_000_000)

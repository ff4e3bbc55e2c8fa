"""
Binance-format payload parsing.

Kline rows are arrays:
    [open_time_ms, open, high, low, close, volume, close_time_ms, ...]
with prices and volumes as decimal strings. The 24h ticker is an object
with `lastPrice` and `volume` string fields.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from src.analytics.candles import Candle, Ticker


logger = logging.getLogger(__name__)

MIN_KLINE_FIELDS = 6


def parse_kline(row: Sequence[Any], symbol: str = '', timeframe: str = '1h') -> Candle:
    """
    Parse a single kline row.

    Raises:
        ValueError: If the row is short, non-numeric or inconsistent
    """
    if len(row) < MIN_KLINE_FIELDS:
        raise ValueError(f"Kline row has {len(row)} fields, expected at least {MIN_KLINE_FIELDS}")

    try:
        open_time = int(row[0])
        open_, high, low, close, volume = (float(v) for v in row[1:6])
    except (TypeError, ValueError) as e:
        raise ValueError(f"Malformed kline row {row!r}: {e}") from e

    if volume < 0:
        raise ValueError(f"Negative volume in kline row {row!r}")
    if low > min(open_, close) or high < max(open_, close):
        raise ValueError(f"Inconsistent OHLC in kline row {row!r}")

    return Candle(
        timestamp=datetime.fromtimestamp(open_time / 1000, tz=timezone.utc),
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
        symbol=symbol,
        timeframe=timeframe
    )


def parse_klines(payload: Sequence[Sequence[Any]], symbol: str = '', timeframe: str = '1h') -> List[Candle]:
    """
    Parse a kline payload into candles ordered by ascending timestamp.

    Args:
        payload: List of kline rows
        symbol: Symbol stamped on every candle
        timeframe: Timeframe stamped on every candle

    Returns:
        List of Candle

    Raises:
        ValueError: If any row cannot be parsed
    """
    candles = [parse_kline(row, symbol, timeframe) for row in payload]
    candles.sort(key=lambda c: c.timestamp)
    logger.debug(f"Parsed {len(candles)} {timeframe} klines for {symbol or 'unknown symbol'}")
    return candles


def parse_ticker(payload: Dict[str, Any]) -> Ticker:
    """
    Parse a 24h ticker payload.

    Raises:
        ValueError: If required fields are missing or non-numeric
    """
    try:
        return Ticker(
            symbol=payload.get('symbol', ''),
            last_price=float(payload['lastPrice']),
            volume_24h=float(payload['volume'])
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Malformed ticker payload: {e}") from e

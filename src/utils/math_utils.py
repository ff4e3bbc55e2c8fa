"""
Mathematical Utilities

Provides the shared numeric helpers used by the analytics engines:
- Safe division and clamping
- Averages and dispersion
- Candle true range / ATR
- Log returns and annualized volatility
- Kelly criterion
"""

import math
import numpy as np
from typing import List, Sequence


class StatisticalUtils:
    """Statistical calculation utilities."""

    @staticmethod
    def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
        """Safe division that handles zero denominators."""
        if denominator == 0 or math.isnan(denominator):
            return default
        return numerator / denominator

    @staticmethod
    def mean(data: Sequence[float]) -> float:
        """Arithmetic mean, 0.0 for an empty sequence."""
        if len(data) == 0:
            return 0.0
        return float(np.mean(data))

    @staticmethod
    def std(data: Sequence[float]) -> float:
        """Population standard deviation, 0.0 for an empty sequence."""
        if len(data) == 0:
            return 0.0
        return float(np.std(data))

    @staticmethod
    def z_score(value: float, mean: float, std: float) -> float:
        """Calculate z-score (standard deviations from mean)."""
        if std == 0:
            return 0.0
        return (value - mean) / std


class RiskMetrics:
    """Risk calculation utilities."""

    @staticmethod
    def kelly_criterion(win_rate: float, avg_win: float, avg_loss: float) -> float:
        """
        Kelly fraction for a fixed win rate and payoff.

            kelly = (p * avg_win - (1 - p) * avg_loss) / avg_win

        Not clamped; callers decide how to bound it. Returns 0.0 when
        avg_win is zero.
        """
        if avg_win == 0:
            return 0.0
        return (win_rate * avg_win - (1 - win_rate) * avg_loss) / avg_win


class PriceAnalysis:
    """Price analysis utilities."""

    @staticmethod
    def log_returns(prices: Sequence[float]) -> List[float]:
        """Calculate logarithmic returns, skipping non-positive prices."""
        if len(prices) < 2:
            return []

        return [
            math.log(prices[i] / prices[i - 1])
            for i in range(1, len(prices))
            if prices[i] > 0 and prices[i - 1] > 0
        ]

    @staticmethod
    def volatility(prices: Sequence[float], periods_per_year: int = 365) -> float:
        """
        Annualized volatility in percent.

        Root mean square of the log returns (dispersion around zero),
        scaled by sqrt(periods_per_year) and expressed in percent.
        """
        returns = PriceAnalysis.log_returns(prices)
        if not returns:
            return 0.0

        returns_array = np.array(returns)
        rms = math.sqrt(float(np.mean(returns_array ** 2)))
        return rms * math.sqrt(periods_per_year) * 100


class TechnicalUtils:
    """Technical analysis utilities."""

    @staticmethod
    def true_ranges(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> List[float]:
        """
        True range for every bar after the first:
        max(high - low, |high - prev_close|, |low - prev_close|).
        """
        if len(highs) != len(lows) or len(highs) != len(closes) or len(highs) < 2:
            return []

        true_ranges = []

        for i in range(1, len(highs)):
            tr1 = highs[i] - lows[i]
            tr2 = abs(highs[i] - closes[i - 1])
            tr3 = abs(lows[i] - closes[i - 1])
            true_ranges.append(max(tr1, tr2, tr3))

        return true_ranges

    @staticmethod
    def atr(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 14) -> float:
        """
        Average True Range over the trailing `period` true ranges.

        Averages over the true ranges actually available when the window
        is shorter than `period`; 0.0 with fewer than two bars.
        """
        true_ranges = TechnicalUtils.true_ranges(highs, lows, closes)
        if not true_ranges:
            return 0.0

        return StatisticalUtils.mean(true_ranges[-period:])


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp value between min and max."""
    return max(min_val, min(value, max_val))

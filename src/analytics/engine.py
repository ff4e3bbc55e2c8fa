"""
Analytics Engine - Coordinator for all candle analytics.

Runs the volume profile, order flow and market structure analyzers (and
optionally the risk engine) over one candle window and assembles a
MarketReport. The latest reports are kept in a bounded LRU keyed by
symbol/timeframe.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from src.analytics.candles import Candle, Ticker
from src.analytics.market_structure import MarketStructure, MarketStructureAnalyzer
from src.analytics.order_flow import OrderFlowAnalysis, OrderFlowAnalyzer
from src.analytics.volume_profile import VolumeProfile, VolumeProfileAnalyzer
from src.risk.engine import RiskEngine
from src.risk.models import RiskAnalysis, RiskParameters
from src.utils.logger import get_analytics_logger

logger = logging.getLogger(__name__)
analytics_logger = get_analytics_logger(__name__)


DEFAULT_TIMEFRAME = '1h'
DEFAULT_CANDLE_LIMIT = 100
DEFAULT_MAX_REPORTS = 64


@dataclass
class MarketReport:
    """All analytics for a symbol over one candle window."""
    symbol: str
    timeframe: str
    timestamp: datetime
    candle_count: int
    last_price: Optional[float]
    volume_profile: VolumeProfile
    order_flow: OrderFlowAnalysis
    market_structure: MarketStructure
    risk: Optional[RiskAnalysis] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'timeframe': self.timeframe,
            'timestamp': self.timestamp.isoformat(),
            'candle_count': self.candle_count,
            'last_price': self.last_price,
            'volume_profile': self.volume_profile.to_dict(),
            'order_flow': self.order_flow.to_dict(),
            'market_structure': self.market_structure.to_dict(),
            'risk': self.risk.to_dict() if self.risk else None,
        }


class AnalyticsEngine:
    """
    Main analytics coordinator.

    Responsibilities:
    1. Fetch candles (and the ticker, when sizing) from a CandleSource
    2. Run every registered analyzer over the same window
    3. Cache the latest report per symbol/timeframe (LRU, `max_reports` entries)

    Analyzers are synchronous and stateless; the engine only awaits the
    source.
    """

    def __init__(
        self,
        source=None,
        timeframe: str = DEFAULT_TIMEFRAME,
        candle_limit: int = DEFAULT_CANDLE_LIMIT,
        max_reports: int = DEFAULT_MAX_REPORTS
    ):
        """
        Initialize Analytics Engine.

        Args:
            source: CandleSource used by analyze_symbol (optional for analyze)
            timeframe: Default candle timeframe
            candle_limit: Default number of candles per analysis
            max_reports: Most recent reports kept for get_latest_report
        """
        if max_reports < 1:
            raise ValueError("max_reports must be >= 1")

        self.source = source
        self.timeframe = timeframe
        self.candle_limit = candle_limit

        self.max_reports = max_reports
        self.reports: OrderedDict[str, MarketReport] = OrderedDict()

        self.volume_profile_analyzer = VolumeProfileAnalyzer()
        self.order_flow_analyzer = OrderFlowAnalyzer()
        self.market_structure_analyzer = MarketStructureAnalyzer()
        self.risk_engine = RiskEngine()

        self.total_reports = 0
        self.last_report_time: Optional[datetime] = None

        logger.info(f"AnalyticsEngine initialized - timeframe={timeframe}, candle_limit={candle_limit}")

    @classmethod
    def from_config(cls, config, source=None) -> 'AnalyticsEngine':
        """Build from an AppConfig."""
        engine = cls(
            source=source,
            timeframe=config.system.default_timeframe,
            candle_limit=config.system.candle_limit,
            max_reports=config.system.report_cache_size
        )
        engine.register_analyzers(
            volume_profile=VolumeProfileAnalyzer.from_config(config.volume_profile),
            order_flow=OrderFlowAnalyzer.from_config(config.order_flow),
            market_structure=MarketStructureAnalyzer.from_config(config.market_structure),
            risk=RiskEngine.from_config(config.risk)
        )
        return engine

    def register_analyzers(
        self,
        volume_profile: Optional[VolumeProfileAnalyzer] = None,
        order_flow: Optional[OrderFlowAnalyzer] = None,
        market_structure: Optional[MarketStructureAnalyzer] = None,
        risk: Optional[RiskEngine] = None
    ):
        """Replace analyzer components (dependency injection)."""
        if volume_profile is not None:
            self.volume_profile_analyzer = volume_profile
        if order_flow is not None:
            self.order_flow_analyzer = order_flow
        if market_structure is not None:
            self.market_structure_analyzer = market_structure
        if risk is not None:
            self.risk_engine = risk

        logger.info("Analytics components registered")

    def analyze(
        self,
        symbol: str,
        candles: Sequence[Candle],
        timeframe: Optional[str] = None,
        ticker: Optional[Ticker] = None,
        risk_params: Optional[RiskParameters] = None
    ) -> MarketReport:
        """
        Run all analyzers over a candle window.

        Args:
            symbol: Trading pair (e.g., 'BTCUSDT')
            candles: Candles ordered by ascending timestamp
            timeframe: Candle timeframe (defaults to the engine's)
            ticker: Latest price and 24h volume, required for risk
            risk_params: Run the risk engine when given

        Returns:
            MarketReport
        """
        timeframe = timeframe or self.timeframe
        perf = analytics_logger.performance

        with perf.timer('volume_profile', symbol=symbol, timeframe=timeframe):
            profile = self.volume_profile_analyzer.calculate_profile(candles)

        with perf.timer('order_flow', symbol=symbol, timeframe=timeframe):
            order_flow = self.order_flow_analyzer.analyze(candles)

        with perf.timer('market_structure', symbol=symbol, timeframe=timeframe):
            structure = self.market_structure_analyzer.analyze(candles)

        risk = None
        if risk_params is not None:
            if ticker is None:
                raise ValueError("ticker is required for risk analysis")
            with perf.timer('risk', symbol=symbol, timeframe=timeframe):
                risk = self.risk_engine.analyze(risk_params, candles, ticker)

        if not profile.is_empty:
            analytics_logger.signal(
                symbol,
                'volume_profile',
                profile.analysis.bias.value,
                profile.analysis.confidence,
                timeframe=timeframe
            )

        if ticker is not None:
            last_price = ticker.last_price
        else:
            last_price = candles[-1].close if candles else None

        report = MarketReport(
            symbol=symbol,
            timeframe=timeframe,
            timestamp=datetime.now(timezone.utc),
            candle_count=len(candles),
            last_price=last_price,
            volume_profile=profile,
            order_flow=order_flow,
            market_structure=structure,
            risk=risk
        )

        self._cache_report(f"{symbol}:{timeframe}", report)
        self.total_reports += 1
        self.last_report_time = report.timestamp

        logger.debug(
            f"Report for {symbol} {timeframe}: {len(candles)} candles, "
            f"sentiment={order_flow.sentiment.value}, trend={structure.trend.value}"
        )
        return report

    def _cache_report(self, key: str, report: MarketReport):
        self.reports[key] = report
        self.reports.move_to_end(key)
        while len(self.reports) > self.max_reports:
            evicted, _ = self.reports.popitem(last=False)
            logger.debug(f"Evicted cached report {evicted}")

    async def analyze_symbol(
        self,
        symbol: str,
        timeframe: Optional[str] = None,
        limit: Optional[int] = None,
        risk_params: Optional[RiskParameters] = None
    ) -> MarketReport:
        """
        Fetch candles from the source and run all analyzers.

        Raises:
            CandleSourceError: On upstream failure (propagated unchanged)
            RuntimeError: If no source is configured
        """
        if self.source is None:
            raise RuntimeError("AnalyticsEngine has no candle source")

        timeframe = timeframe or self.timeframe
        limit = limit or self.candle_limit

        candles = await self.source.get_candles(symbol, timeframe, limit)
        ticker = await self.source.get_ticker(symbol) if risk_params is not None else None

        return self.analyze(symbol, candles, timeframe=timeframe, ticker=ticker, risk_params=risk_params)

    def get_latest_report(self, symbol: str, timeframe: Optional[str] = None) -> Optional[MarketReport]:
        """Get the cached report for a symbol."""
        key = f"{symbol}:{timeframe or self.timeframe}"
        report = self.reports.get(key)
        if report is not None:
            self.reports.move_to_end(key)
        return report

    def get_statistics(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            'total_reports': self.total_reports,
            'last_report_time': self.last_report_time.isoformat() if self.last_report_time else None,
            'cached_reports': len(self.reports),
            'max_reports': self.max_reports,
            'timeframe': self.timeframe,
            'candle_limit': self.candle_limit,
        }

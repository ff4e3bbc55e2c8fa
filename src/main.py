"""
Main entry point for the analytics API.

Serves the candle analytics engines over HTTP. Every analysis endpoint
takes its candle window in the request body (as candle objects or raw
Binance kline rows); the demo endpoint reads from the mock candle source.
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from src.analytics.candles import Candle, Ticker
from src.analytics.engine import AnalyticsEngine
from src.analytics.volume_profile import VolumeProfileAnalyzer
from src.config import AppConfig, get_app_config
from src.market_data import CandleSourceError, MockCandleSource, parse_klines
from src.market_data.mock import TIMEFRAME_SECONDS
from src.risk.models import PositionSide, RiskParameters, StopType
from src.utils.logger import setup_logging

logger = logging.getLogger(__name__)

APP_NAME = "Candle Analytics"
APP_VERSION = "0.1.0"


# ============================================================================
# Request Models
# ============================================================================

class CandleModel(BaseModel):
    """OHLCV candle in a request body."""
    timestamp: datetime
    open: float = Field(..., gt=0)
    high: float = Field(..., gt=0)
    low: float = Field(..., gt=0)
    close: float = Field(..., gt=0)
    volume: float = Field(..., ge=0)

    @model_validator(mode='after')
    def check_range(self):
        if self.low > min(self.open, self.close) or self.high < max(self.open, self.close):
            raise ValueError("low must be <= min(open, close) and high >= max(open, close)")
        return self


class CandleWindowRequest(BaseModel):
    """A candle window given either as candle objects or Binance kline rows."""
    symbol: str = Field(default="BTCUSDT", min_length=1)
    timeframe: str = Field(default="1h")
    candles: Optional[List[CandleModel]] = None
    klines: Optional[List[List[Any]]] = None

    @model_validator(mode='after')
    def check_source(self):
        if (self.candles is None) == (self.klines is None):
            raise ValueError("provide exactly one of 'candles' or 'klines'")
        return self

    def to_candles(self) -> List[Candle]:
        if self.klines is not None:
            try:
                return parse_klines(self.klines, self.symbol, self.timeframe)
            except ValueError as e:
                raise HTTPException(status_code=422, detail=str(e))

        candles = [
            Candle(
                timestamp=c.timestamp,
                open=c.open,
                high=c.high,
                low=c.low,
                close=c.close,
                volume=c.volume,
                symbol=self.symbol,
                timeframe=self.timeframe
            )
            for c in self.candles
        ]
        candles.sort(key=lambda c: c.timestamp)
        return candles


class VolumeProfileRequest(CandleWindowRequest):
    preset: Optional[Literal["detailed", "lightweight"]] = Field(
        default=None,
        description="Analyzer preset (configured analyzer when omitted)"
    )


class TickerModel(BaseModel):
    last_price: float = Field(..., gt=0)
    volume_24h: float = Field(..., ge=0)


class RiskSettingsModel(BaseModel):
    equity: float = Field(..., ge=0)
    risk_percent: float = Field(..., ge=0)
    leverage: float = Field(default=1.0, gt=0)
    side: PositionSide = PositionSide.LONG
    stop_type: StopType = StopType.ATR
    atr_multiplier: Optional[float] = Field(default=None, gt=0)
    fixed_stop_percent: Optional[float] = Field(default=None, gt=0)

    def to_parameters(self, symbol: str) -> RiskParameters:
        try:
            return RiskParameters(
                symbol=symbol,
                equity=self.equity,
                risk_percent=self.risk_percent,
                leverage=self.leverage,
                side=self.side,
                stop_type=self.stop_type,
                atr_multiplier=self.atr_multiplier,
                fixed_stop_percent=self.fixed_stop_percent
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))


class RiskRequest(CandleWindowRequest):
    risk: RiskSettingsModel
    ticker: TickerModel


class ReportRequest(CandleWindowRequest):
    risk: Optional[RiskSettingsModel] = None
    ticker: Optional[TickerModel] = None

    @model_validator(mode='after')
    def check_ticker(self):
        if self.risk is not None and self.ticker is None:
            raise ValueError("'ticker' is required when 'risk' is given")
        return self


def _ticker(request: CandleWindowRequest, ticker: Optional[TickerModel]) -> Optional[Ticker]:
    if ticker is None:
        return None
    return Ticker(symbol=request.symbol, last_price=ticker.last_price, volume_24h=ticker.volume_24h)


# ============================================================================
# Application
# ============================================================================

def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Application config (loaded from config/ when omitted)
    """
    config = config or get_app_config()

    setup_logging(
        log_level=config.system.log_level,
        log_file=config.system.log_file or None,
        json_format=config.system.log_json
    )

    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)
    app.state.config = config
    app.state.engine = AnalyticsEngine.from_config(config)
    app.state.demo_engine = AnalyticsEngine.from_config(
        config,
        source=MockCandleSource(max_series=config.system.mock_series_cache_size)
    )

    @app.exception_handler(CandleSourceError)
    async def candle_source_error_handler(request: Request, exc: CandleSourceError):
        logger.error(f"Upstream market data failure for {exc.symbol or 'unknown symbol'}: {exc.message}")
        return JSONResponse(status_code=502, content={"detail": exc.message})

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "status": "running",
            "environment": config.system.environment,
            "engines": ["volume_profile", "order_flow", "market_structure", "risk"],
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "engine": app.state.engine.get_statistics(),
        }

    @app.post("/analysis/volume-profile")
    async def volume_profile(request: VolumeProfileRequest):
        """Volume profile of the candle window."""
        if request.preset == "lightweight":
            analyzer = VolumeProfileAnalyzer.lightweight()
        elif request.preset == "detailed":
            analyzer = VolumeProfileAnalyzer.detailed()
        else:
            analyzer = app.state.engine.volume_profile_analyzer

        profile = analyzer.calculate_profile(request.to_candles())
        return {"symbol": request.symbol, "timeframe": request.timeframe, **profile.to_dict()}

    @app.post("/analysis/order-flow")
    async def order_flow(request: CandleWindowRequest):
        """Estimated delta, CVD and institutional activity."""
        analysis = app.state.engine.order_flow_analyzer.analyze(request.to_candles())
        return {"symbol": request.symbol, "timeframe": request.timeframe, **analysis.to_dict()}

    @app.post("/analysis/market-structure")
    async def market_structure(request: CandleWindowRequest):
        """Swing-based BOS / CHoCH breaks and trend."""
        structure = app.state.engine.market_structure_analyzer.analyze(request.to_candles())
        return {"symbol": request.symbol, "timeframe": request.timeframe, **structure.to_dict()}

    @app.post("/analysis/risk")
    async def risk(request: RiskRequest):
        """Position sizing and risk assessment."""
        params = request.risk.to_parameters(request.symbol)
        analysis = app.state.engine.risk_engine.analyze(
            params,
            request.to_candles(),
            _ticker(request, request.ticker)
        )
        return analysis.to_dict()

    @app.post("/analysis/report")
    async def report(request: ReportRequest):
        """All engines over one candle window."""
        params = request.risk.to_parameters(request.symbol) if request.risk else None
        market_report = app.state.engine.analyze(
            request.symbol,
            request.to_candles(),
            timeframe=request.timeframe,
            ticker=_ticker(request, request.ticker),
            risk_params=params
        )
        return market_report.to_dict()

    @app.get("/demo/report/{symbol}")
    async def demo_report(
        symbol: str,
        timeframe: str = "1h",
        limit: int = Query(default=100, ge=1, le=1000),
        equity: float = Query(default=10000.0, gt=0),
        risk_percent: float = Query(default=2.0, ge=0),
        leverage: float = Query(default=1.0, gt=0)
    ):
        """Full report over generated candles."""
        if timeframe not in TIMEFRAME_SECONDS:
            raise HTTPException(status_code=422, detail=f"Unsupported timeframe: {timeframe}")

        symbol = symbol.upper()
        params = RiskParameters(
            symbol=symbol,
            equity=equity,
            risk_percent=risk_percent,
            leverage=leverage
        )

        market_report = await app.state.demo_engine.analyze_symbol(
            symbol,
            timeframe=timeframe,
            limit=limit,
            risk_params=params
        )
        return market_report.to_dict()

    logger.info(f"{APP_NAME} API created ({config.system.environment})")
    return app


app = create_app()


def main():
    """Entry point for the application."""
    import uvicorn

    config = app.state.config
    uvicorn.run(
        app,
        host=config.system.api_host,
        port=config.system.api_port,
        log_level=config.system.log_level.lower()
    )


if __name__ == "__main__":
    main()

"""
Tests for the HTTP API.

Tests:
- Health and root endpoints
- Analysis endpoints with candle and kline bodies
- Request validation (422)
- Upstream failures on the demo endpoint (502)
"""

import pytest
from fastapi.testclient import TestClient

from src.config.settings import AppConfig
from src.main import create_app
from src.market_data.source import CandleSource, CandleSourceError


# ============================================================================
# Fixtures
# ============================================================================

class UnavailableSource(CandleSource):
    async def get_candles(self, symbol, timeframe, limit):
        raise CandleSourceError("exchange unavailable", symbol=symbol)

    async def get_ticker(self, symbol):
        raise CandleSourceError("exchange unavailable", symbol=symbol)


@pytest.fixture
def app():
    return create_app(AppConfig())


@pytest.fixture
def client(app):
    return TestClient(app)


def _bodies(candles):
    return [
        {
            "timestamp": c.timestamp.isoformat(),
            "open": c.open,
            "high": c.high,
            "low": c.low,
            "close": c.close,
            "volume": c.volume,
        }
        for c in candles
    ]


@pytest.fixture
def calm_window(price_path_candles):
    """Candle bodies for a low-volatility window around $100."""
    return _bodies(price_path_candles([100.0 + 0.1 * (i % 3) for i in range(30)]))


@pytest.fixture
def kline_rows(random_candles):
    return [
        [
            int(c.timestamp.timestamp() * 1000),
            str(c.open), str(c.high), str(c.low), str(c.close), str(c.volume),
        ]
        for c in random_candles
    ]


RISK_SETTINGS = {
    "equity": 10000,
    "risk_percent": 2,
    "leverage": 5,
    "side": "long",
    "stop_type": "fixed",
    "fixed_stop_percent": 3,
}

TICKER = {"last_price": 100.0, "volume_24h": 50_000_000}


# ============================================================================
# Service Endpoint Tests
# ============================================================================

def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["engines"] == ["volume_profile", "order_flow", "market_structure", "risk"]


def test_health_reports_engine_statistics(client, calm_window):
    client.post("/analysis/report", json={"candles": calm_window})

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["engine"]["total_reports"] == 1


# ============================================================================
# Analysis Endpoint Tests
# ============================================================================

def test_volume_profile_from_klines(client, kline_rows):
    response = client.post(
        "/analysis/volume-profile",
        json={"symbol": "ETHUSDT", "klines": kline_rows, "preset": "lightweight"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["symbol"] == "ETHUSDT"
    assert body["weighting"] == "typical"
    assert body["poc"] is not None
    assert sum(n["percentage"] for n in body["nodes"]) == pytest.approx(100.0)


def test_volume_profile_uses_configured_analyzer(client, calm_window):
    response = client.post("/analysis/volume-profile", json={"candles": calm_window})

    assert response.status_code == 200
    assert response.json()["weighting"] == "ohlc"


def test_order_flow(client, kline_rows):
    response = client.post("/analysis/order-flow", json={"klines": kline_rows})

    assert response.status_code == 200
    body = response.json()
    assert len(body["samples"]) == len(kline_rows)
    assert body["sentiment"] in ("bullish", "bearish", "neutral")


def test_market_structure(client, zigzag_candles):
    response = client.post("/analysis/market-structure", json={"candles": _bodies(zigzag_candles)})

    assert response.status_code == 200
    assert response.json()["trend"] in ("bullish", "bearish", "neutral")


def test_risk_scenario(client, calm_window):
    response = client.post(
        "/analysis/risk",
        json={"candles": calm_window, "risk": RISK_SETTINGS, "ticker": TICKER}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["position"]["stop_loss"] == pytest.approx(97.0)
    assert body["position"]["take_profit"] == pytest.approx(106.0)
    assert body["position"]["position_size"] == pytest.approx(66.6667, rel=1e-4)
    assert body["optimal_sizing"]["recommended_size"] == pytest.approx(300.0)
    assert body["warnings"] == []


def test_risk_critical_leverage_is_a_warning_not_an_error(client, calm_window):
    settings = {**RISK_SETTINGS, "leverage": 50}

    response = client.post(
        "/analysis/risk",
        json={"candles": calm_window, "risk": settings, "ticker": TICKER}
    )

    assert response.status_code == 200
    assert "CRITICAL" in [w["level"] for w in response.json()["warnings"]]


def test_full_report(client, calm_window):
    response = client.post(
        "/analysis/report",
        json={"candles": calm_window, "risk": RISK_SETTINGS, "ticker": TICKER}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["candle_count"] == 30
    assert body["last_price"] == 100.0
    assert body["risk"]["position"]["stop_loss"] == pytest.approx(97.0)


# ============================================================================
# Validation Tests
# ============================================================================

def test_requires_exactly_one_candle_source(client, calm_window, kline_rows):
    assert client.post("/analysis/order-flow", json={}).status_code == 422
    assert client.post(
        "/analysis/order-flow",
        json={"candles": calm_window, "klines": kline_rows}
    ).status_code == 422


def test_inconsistent_candle_rejected(client, calm_window):
    calm_window[3]["low"] = 150.0

    response = client.post("/analysis/order-flow", json={"candles": calm_window})

    assert response.status_code == 422


def test_malformed_klines_rejected(client):
    response = client.post(
        "/analysis/order-flow",
        json={"klines": [[1704067200000, "abc", "1", "1", "1", "1"]]}
    )

    assert response.status_code == 422


@pytest.mark.parametrize("settings", [
    {**RISK_SETTINGS, "leverage": 0},
    {**RISK_SETTINGS, "equity": -5},
    {**RISK_SETTINGS, "stop_type": "trailing"},
])
def test_malformed_risk_settings_rejected(client, calm_window, settings):
    response = client.post(
        "/analysis/risk",
        json={"candles": calm_window, "risk": settings, "ticker": TICKER}
    )

    assert response.status_code == 422


def test_report_risk_requires_ticker(client, calm_window):
    response = client.post("/analysis/report", json={"candles": calm_window, "risk": RISK_SETTINGS})

    assert response.status_code == 422


# ============================================================================
# Demo Endpoint Tests
# ============================================================================

def test_demo_report(client):
    response = client.get("/demo/report/btcusdt", params={"limit": 150, "leverage": 3})

    assert response.status_code == 200
    body = response.json()
    assert body["symbol"] == "BTCUSDT"
    assert body["candle_count"] == 150
    assert body["risk"]["parameters"]["leverage"] == 3.0


@pytest.mark.parametrize("params", [
    {"timeframe": "7m"},
    {"limit": 0},
    {"equity": 0},
    {"leverage": -1},
])
def test_demo_report_validation(client, params):
    assert client.get("/demo/report/BTCUSDT", params=params).status_code == 422


def test_demo_upstream_failure_is_502(app, client):
    app.state.demo_engine.source = UnavailableSource()

    response = client.get("/demo/report/BTCUSDT")

    assert response.status_code == 502
    assert response.json()["detail"] == "exchange unavailable"


@pytest.mark.parametrize("timeframe", ["1m", "15m", "1h", "1d"])
def test_demo_risk_uses_analysed_window_price(client, timeframe):
    body = client.get(
        "/demo/report/BTCUSDT", params={"timeframe": timeframe, "limit": 100}
    ).json()

    source = client.app.state.demo_engine.source
    window = source._series[("BTCUSDT", timeframe)][-100:]

    assert body["last_price"] == pytest.approx(window[-1].close)
    assert body["risk"]["position"]["entry_price"] == pytest.approx(window[-1].close)


def test_demo_caches_stay_bounded():
    config = AppConfig()
    config.system.report_cache_size = 5
    config.system.mock_series_cache_size = 5
    bounded = create_app(config)
    bounded_client = TestClient(bounded)

    for i in range(20):
        assert bounded_client.get(f"/demo/report/SYM{i}", params={"limit": 30}).status_code == 200

    assert bounded.state.demo_engine.get_statistics()["cached_reports"] == 5
    assert bounded.state.demo_engine.source.cached_series == 5

"""
Unit tests for the OrderFlowAnalyzer.

Tests:
- Delta estimation and CVD prefix sums
- Momentum and sentiment
- Institutional activity detection
- Absorption / rejection refinement
- Microstructure, trade signals and execution risk
"""

import pytest

from src.analytics.order_flow import (
    ActivityType,
    LiquidityLevel,
    MarketRegime,
    OrderFlowAnalyzer,
    Sentiment,
    SignalDirection,
)
from src.config.settings import OrderFlowConfig


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def analyzer():
    return OrderFlowAnalyzer()


@pytest.fixture
def bullish_candles(make_candles):
    """25 green candles with constant volume."""
    return make_candles([
        (100.0 + i, 101.5 + i, 99.5 + i, 101.0 + i, 100.0) for i in range(25)
    ])


@pytest.fixture
def bearish_candles(make_candles):
    """25 red candles with constant volume."""
    return make_candles([
        (200.0 - i, 200.5 - i, 198.5 - i, 199.0 - i, 100.0) for i in range(25)
    ])


@pytest.fixture
def spike_candles(make_candles):
    """19 quiet bars followed by a bullish 10x volume bar."""
    rows = [(100.0, 100.6, 99.4, 100.2 if i % 2 else 99.8, 100.0) for i in range(19)]
    rows.append((100.0, 103.0, 99.8, 102.5, 1000.0))
    return make_candles(rows)


# ============================================================================
# Delta / CVD Tests
# ============================================================================

def test_delta_follows_candle_direction(analyzer, make_candle):
    green = make_candle(0, 100.0, 102.0, 99.0, 101.0, 200.0)
    red = make_candle(1, 101.0, 102.0, 99.0, 100.0, 200.0)
    doji = make_candle(2, 100.0, 101.0, 99.0, 100.0, 200.0)

    assert analyzer.estimate_delta(green) == pytest.approx(120.0)
    assert analyzer.estimate_delta(red) == pytest.approx(-120.0)
    assert analyzer.estimate_delta(doji) == 0.0


def test_cvd_is_prefix_sum_of_delta(analyzer, random_candles):
    samples = analyzer.calculate_cvd(random_candles)

    running = 0.0
    for sample in samples:
        running += sample.delta
        assert sample.cvd == pytest.approx(running)


def test_buy_sell_split_sums_to_volume(analyzer, random_candles):
    for sample in analyzer.calculate_cvd(random_candles):
        assert sample.buy_volume + sample.sell_volume == pytest.approx(sample.volume)
        assert sample.buy_volume - sample.sell_volume == pytest.approx(sample.delta)


def test_vwap_stays_within_window_range(analyzer, random_candles):
    samples = analyzer.calculate_cvd(random_candles)
    low = min(c.low for c in random_candles)
    high = max(c.high for c in random_candles)

    assert all(low <= s.vwap <= high for s in samples)


# ============================================================================
# Momentum / Sentiment Tests
# ============================================================================

def test_bullish_momentum(analyzer, bullish_candles):
    analysis = analyzer.analyze(bullish_candles)

    # CVD 960 -> 1500 over the last 10 samples
    assert analysis.momentum == pytest.approx(56.25)
    assert analysis.sentiment == Sentiment.BULLISH
    assert analysis.cvd == pytest.approx(1500.0)
    assert analysis.volume_imbalance == pytest.approx(60.0)


def test_bearish_momentum(analyzer, bearish_candles):
    analysis = analyzer.analyze(bearish_candles)

    assert analysis.momentum < 0
    assert analysis.sentiment == Sentiment.BEARISH
    assert analysis.volume_imbalance == pytest.approx(-60.0)


def test_momentum_sign_matches_cvd_change(analyzer, random_candles):
    analysis = analyzer.analyze(random_candles)
    window = analysis.samples[-10:]
    change = window[-1].cvd - window[0].cvd

    if change > 0:
        assert analysis.momentum > 0
    elif change < 0:
        assert analysis.momentum < 0
    else:
        assert analysis.momentum == 0


def test_zero_starting_cvd_uses_unit_denominator(analyzer, make_candle):
    samples = analyzer.calculate_cvd([
        make_candle(0, 100.0, 100.5, 99.5, 100.0, 50.0),
        make_candle(1, 100.0, 101.5, 99.5, 101.0, 10.0),
    ])

    # (6 - 0) / 1 * 100
    assert analyzer.calculate_momentum(samples) == pytest.approx(600.0)


@pytest.mark.parametrize("momentum,expected", [
    (5.1, Sentiment.BULLISH),
    (5.0, Sentiment.NEUTRAL),
    (-5.0, Sentiment.NEUTRAL),
    (-5.1, Sentiment.BEARISH),
])
def test_sentiment_thresholds(analyzer, momentum, expected):
    assert analyzer.classify_sentiment(momentum) == expected


def test_insufficient_candles_is_neutral(analyzer, bullish_candles):
    analysis = analyzer.analyze(bullish_candles[:19])

    assert analysis.samples == []
    assert analysis.momentum == 0.0
    assert analysis.sentiment == Sentiment.NEUTRAL
    assert analysis.institutional_activity == []


# ============================================================================
# Institutional Activity Tests
# ============================================================================

def test_volume_spike_is_accumulation(analyzer, spike_candles):
    activity = analyzer.detect_institutional_activity(spike_candles)

    assert len(activity) == 1
    event = activity[0]
    assert event.type == ActivityType.ACCUMULATION
    assert event.volume == 1000.0
    # avg = 145 -> (1000/145 - 1) * 100 capped at 200
    assert event.intensity == 200.0
    # z ~ 4.36 sigma -> capped at 95
    assert event.confidence == 95.0


def test_volume_spike_on_red_bar_is_distribution(analyzer, spike_candles, make_candle):
    candles = spike_candles[:-1] + [make_candle(19, 102.5, 103.0, 99.8, 100.0, 1000.0)]

    activity = analyzer.detect_institutional_activity(candles)

    assert [a.type for a in activity] == [ActivityType.DISTRIBUTION]


def test_no_activity_without_spikes(analyzer, bullish_candles):
    assert analyzer.detect_institutional_activity(bullish_candles) == []


def test_only_recent_bars_are_scanned(analyzer, spike_candles, make_candle):
    """A spike older than the lookback window is ignored."""
    quiet = [make_candle(20 + i, 100.0, 100.6, 99.4, 100.2, 100.0) for i in range(10)]

    activity = analyzer.detect_institutional_activity(spike_candles + quiet)

    assert activity == []


def test_rejection_refinement(spike_candles, make_candle):
    """Small body relative to range with a large z-score is a rejection."""
    candles = spike_candles[:-1] + [make_candle(19, 100.0, 104.0, 96.0, 100.5, 1000.0)]

    plain = OrderFlowAnalyzer().detect_institutional_activity(candles)
    refined = OrderFlowAnalyzer(detect_absorption=True).detect_institutional_activity(candles)

    assert plain[0].type == ActivityType.ACCUMULATION
    assert refined[0].type == ActivityType.REJECTION


def test_absorption_refinement(spike_candles, make_candle):
    """Heavy volume with a move well inside recent volatility is absorption."""
    candles = spike_candles[:-1] + [make_candle(19, 100.0, 100.1, 99.95, 100.05, 1000.0)]

    refined = OrderFlowAnalyzer(detect_absorption=True).detect_institutional_activity(candles)

    assert refined[0].type == ActivityType.ABSORPTION
    assert refined[0].confidence == 95.0


def test_from_config():
    config = OrderFlowConfig(delta_fraction=0.5, momentum_window=5, detect_absorption=True)
    analyzer = OrderFlowAnalyzer.from_config(config)

    assert analyzer.delta_fraction == 0.5
    assert analyzer.momentum_window == 5
    assert analyzer.detect_absorption is True


def test_to_dict(analyzer, spike_candles):
    data = analyzer.analyze(spike_candles).to_dict()

    assert data['sentiment'] in ('bullish', 'bearish', 'neutral')
    assert len(data['samples']) == 20
    assert data['institutional_activity'][0]['type'] == 'accumulation'


# ============================================================================
# Microstructure Tests
# ============================================================================

@pytest.fixture
def absorbing_candles(make_candles):
    """10 quiet dojis, then heavy bars barely moving price, ending on a 2000 volume bar."""
    rows = [(100.0, 100.2, 99.8, 100.0, 10.0)] * 10
    rows += [(100.0, 100.2, 99.9, 100.1, 600.0)] * 9
    rows.append((100.1, 100.3, 100.0, 100.2, 2000.0))
    return make_candles(rows)


def test_trending_microstructure(analyzer, bullish_candles):
    analysis = analyzer.analyze(bullish_candles)

    assert analysis.absorption == 0.0
    # |delta| 60 against average volume 100
    assert analysis.liquidity_level == LiquidityLevel.HIGH
    assert analysis.market_regime == MarketRegime.TRENDING
    assert analysis.liquidity_risk == 15.0
    assert analysis.slippage_estimate == pytest.approx(0.015)
    assert analysis.optimal_trade_size == pytest.approx(5.0)


def test_flat_window_is_ranging_with_low_liquidity(analyzer, price_path_candles):
    analysis = analyzer.analyze(price_path_candles([100.0] * 25))

    assert analysis.liquidity_level == LiquidityLevel.LOW
    assert analysis.market_regime == MarketRegime.RANGING
    assert analysis.liquidity_risk == 75.0
    assert analysis.slippage_estimate == pytest.approx(0.075)
    assert analysis.signals == []


def test_medium_liquidity(analyzer, make_candles):
    rows = [(100.0, 100.5, 99.5, 100.0, 100.0)] * 15
    rows += [(100.0, 100.5, 99.5, 100.4, 100.0)] * 5

    analysis = analyzer.analyze(make_candles(rows))

    # 5 x 60 delta over 20 bars = 15% of average volume
    assert analysis.liquidity_level == LiquidityLevel.MEDIUM
    assert analysis.liquidity_risk == 40.0


def test_absorption_percentage(analyzer, absorbing_candles):
    analysis = analyzer.analyze(absorbing_candles)

    # average volume 375: the 10 heavy bars run > 1.5x and move under 0.2%
    assert analysis.absorption == pytest.approx(50.0)
    assert analysis.market_regime == MarketRegime.VOLATILE
    assert analysis.liquidity_level == LiquidityLevel.HIGH


def test_erratic_moves_are_volatile(analyzer, price_path_candles):
    samples = analyzer.calculate_cvd(price_path_candles([100.0] * 18 + [105.0, 100.0]))

    assert analyzer.classify_regime(samples, momentum=50.0) == MarketRegime.VOLATILE


# ============================================================================
# Trade Signal Tests
# ============================================================================

def test_bullish_momentum_signal(analyzer, bullish_candles):
    signals = analyzer.analyze(bullish_candles).signals

    assert len(signals) == 1
    signal = signals[0]
    assert signal.name == 'CVD Bullish Momentum'
    assert signal.direction == SignalDirection.LONG
    assert signal.strength == pytest.approx(56.25)
    assert signal.entry == pytest.approx(125.0 * 1.001)
    # POC (close 105 of the first of 21 equal-volume bars) is below VWAP 112.67
    assert signal.stop_loss == pytest.approx(105.0 * 0.995)
    assert signal.take_profit == pytest.approx(125.0 * 1.02)


def test_bearish_momentum_signal(analyzer, bearish_candles):
    signals = analyzer.analyze(bearish_candles).signals

    assert [s.name for s in signals] == ['CVD Bearish Momentum']
    signal = signals[0]
    assert signal.direction == SignalDirection.SHORT
    assert signal.entry == pytest.approx(175.0 * 0.999)
    assert signal.stop_loss == pytest.approx(195.0 * 1.005)
    assert signal.take_profit == pytest.approx(175.0 * 0.98)


def test_absorption_signal(analyzer, absorbing_candles):
    analysis = analyzer.analyze(absorbing_candles)

    assert [a.type for a in analysis.institutional_activity] == [ActivityType.ACCUMULATION]
    assert [s.name for s in analysis.signals] == ['CVD Bullish Momentum', 'Institutional Absorption']

    signal = analysis.signals[1]
    assert signal.strength == analysis.institutional_activity[-1].confidence
    assert signal.entry == pytest.approx(100.2 * 1.002)
    assert signal.stop_loss == pytest.approx(100.2 * 0.99)
    assert signal.take_profit == pytest.approx(100.2 * 1.05)


def test_flow_poc_prefers_heaviest_recent_bar(make_candles):
    rows = [(100.0, 101.0, 99.0, 100.0, 5000.0)]  # outside the 21 bar lookback
    rows += [(100.0 + i, 101.0 + i, 99.0 + i, 100.5 + i, 100.0) for i in range(21)]
    rows[10] = (109.0, 110.0, 108.0, 109.5, 900.0)

    assert OrderFlowAnalyzer.flow_poc(make_candles(rows)) == 109.5


def test_extended_to_dict(analyzer, bullish_candles):
    data = analyzer.analyze(bullish_candles).to_dict()

    assert data['liquidity_level'] == 'high'
    assert data['market_regime'] == 'trending'
    assert data['signals'][0]['direction'] == 'long'
    assert data['liquidity_risk'] == 15.0


def test_insufficient_candles_has_no_signals(analyzer, bullish_candles):
    analysis = analyzer.analyze(bullish_candles[:19])

    assert analysis.signals == []
    assert analysis.absorption == 0.0
    assert analysis.to_dict()['market_regime'] == 'ranging'

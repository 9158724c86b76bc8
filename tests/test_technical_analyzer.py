"""
tests/test_technical_analyzer.py

Indicator outputs, trend classification and support/resistance windows.
"""

import pytest

from trading_agent.errors import AnalysisError
from trading_agent.indicators.technical_analyzer import TechnicalAnalyzer
from trading_agent.models import MACDSignal, RSISignal, TrendDirection


@pytest.fixture
def analyzer():
    return TechnicalAnalyzer()


def test_empty_series_raises(analyzer):
    with pytest.raises(AnalysisError):
        analyzer.analyze([])


def test_flat_series_is_neutral(analyzer):
    signals = analyzer.analyze([2.0] * 60)

    assert signals.trend_direction == TrendDirection.SIDEWAYS
    assert signals.trend_strength == 0.0
    assert signals.rsi_signal == RSISignal.NEUTRAL
    assert signals.macd_signal == MACDSignal.NEUTRAL
    assert signals.volatility_score == 0.0
    assert signals.indicators["rsi_14"] == 50.0


def test_rising_series_trends_up(analyzer):
    prices = [float(p) for p in range(1, 101)]

    signals = analyzer.analyze(prices)

    assert signals.trend_direction in (TrendDirection.UP, TrendDirection.STRONG_UP)
    assert 0.0 < signals.trend_strength <= 1.0
    assert signals.rsi_signal == RSISignal.OVERBOUGHT
    assert signals.indicators["ema_12"] > signals.indicators["ema_26"]


def test_support_resistance_empty_below_41_samples(analyzer):
    prices = [1.0] * 20 + [0.5] + [1.0] * 19

    support, resistance = analyzer.find_support_resistance(prices)

    assert len(prices) == 40
    assert support == []
    assert resistance == []


def test_support_detected_with_full_windows(analyzer):
    prices = [1.0] * 20 + [0.5] + [1.0] * 20

    support, resistance = analyzer.find_support_resistance(prices)

    assert support == [pytest.approx(0.49)]
    assert resistance == []


def test_levels_sorted_ascending(analyzer):
    prices = [1.0] * 20 + [2.0] + [1.0] * 20 + [3.0] + [1.0] * 20

    _, resistance = analyzer.find_support_resistance(prices)

    assert resistance == sorted(resistance)
    assert resistance == [pytest.approx(2.04), pytest.approx(3.06)]


@pytest.mark.parametrize("ema_fast, ema_slow, expected", [
    (106.0, 100.0, TrendDirection.STRONG_UP),
    (103.0, 100.0, TrendDirection.UP),
    (100.5, 100.0, TrendDirection.SIDEWAYS),
    (97.0, 100.0, TrendDirection.DOWN),
    (90.0, 100.0, TrendDirection.STRONG_DOWN),
])
def test_classify_trend_thresholds(ema_fast, ema_slow, expected):
    direction, _ = TechnicalAnalyzer.classify_trend(ema_fast, ema_slow)
    assert direction == expected


def test_volatility_clamped_to_unit_interval(analyzer):
    signals = analyzer.analyze([1.0, 10.0, 1.0, 10.0, 1.0])
    assert signals.volatility_score == 1.0


def test_analysis_is_stateless_across_assets(analyzer):
    first = analyzer.analyze([float(p) for p in range(1, 80)])
    analyzer.analyze([float(p) for p in range(200, 100, -1)])
    again = analyzer.analyze([float(p) for p in range(1, 80)])

    assert first == again

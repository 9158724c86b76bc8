"""
tests/test_performance_analyzer.py

Metrics derived from the trade log: win rate, totals, drawdown, Sharpe,
per-asset breakdown and strategy recommendations.
"""

from datetime import datetime, timedelta, timezone

import pytest

from trading_agent.models import Trade
from trading_agent.performance_analyzer import PerformanceAnalyzer

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def trade(pnl, address="SOL", hours=2.0, strategy="default", confidence=0.8, execution_type="market"):
    return Trade(
        asset_address=address,
        symbol=address,
        entry_price=1.0,
        exit_price=1.0 + (pnl or 0.0),
        quantity=1.0,
        entry_time=T0,
        exit_time=T0 + timedelta(hours=hours),
        profit_loss=pnl,
        strategy_name=strategy,
        confidence_score=confidence,
        execution_type=execution_type,
    )


def test_empty_log_has_zero_metrics():
    metrics = PerformanceAnalyzer(10.0).get_metrics()
    assert metrics.total_trades == 0
    assert metrics.win_rate == 0.0


def test_win_rate_and_total():
    analyzer = PerformanceAnalyzer(10.0)
    for pnl in (1.0, -0.5, 2.0):
        metrics = analyzer.record_trade(trade(pnl))

    assert metrics.total_trades == 3
    assert metrics.winning_trades == 2
    assert metrics.losing_trades == 1
    assert metrics.win_rate == pytest.approx(2 / 3)
    assert metrics.total_profit_loss == pytest.approx(2.5)
    assert metrics.average_return == pytest.approx(2.5 / 3)


def test_drawdown_from_running_peak():
    analyzer = PerformanceAnalyzer(10.0)
    for pnl in (1.0, -0.5, 2.0):
        analyzer.record_trade(trade(pnl))

    metrics = analyzer.get_metrics()

    # Equity 11.0 -> 10.5 -> 12.5
    assert metrics.max_drawdown == pytest.approx(0.5 / 11.0)
    assert metrics.current_drawdown == 0.0
    assert metrics.risk_adjusted_return == pytest.approx(2.5 / (0.5 / 11.0))


def test_initial_loss_counts_against_starting_capital():
    analyzer = PerformanceAnalyzer(10.0)
    metrics = analyzer.record_trade(trade(-1.0))

    assert metrics.max_drawdown == pytest.approx(0.1)
    assert metrics.current_drawdown == pytest.approx(0.1)


def test_sharpe_ratio():
    analyzer = PerformanceAnalyzer(10.0, risk_free_rate=0.0)
    analyzer.record_trade(trade(1.0))
    metrics = analyzer.record_trade(trade(3.0))

    assert metrics.sharpe_ratio == pytest.approx(2.0 / 1.0)


def test_unrealized_trades_excluded():
    analyzer = PerformanceAnalyzer(10.0)
    analyzer.record_trade(trade(1.0))
    metrics = analyzer.record_trade(trade(None))

    assert metrics.total_trades == 1
    assert len(analyzer.trades) == 2


def test_asset_breakdown():
    analyzer = PerformanceAnalyzer(10.0)
    analyzer.record_trade(trade(1.0, "SOL", hours=2.0))
    analyzer.record_trade(trade(-0.5, "SOL", hours=4.0))
    metrics = analyzer.record_trade(trade(2.0, "JUP"))

    sol = metrics.asset_performance["SOL"]
    assert sol.total_trades == 2
    assert sol.profitable_trades == 1
    assert sol.total_profit_loss == pytest.approx(0.5)
    assert sol.best_trade == 1.0
    assert sol.worst_trade == -0.5
    assert sol.average_hold_time == pytest.approx(3.0)
    assert metrics.asset_performance["JUP"].win_rate == 1.0


def test_strategy_analysis_recommendations():
    analyzer = PerformanceAnalyzer(10.0)
    analyzer.record_trade(trade(-1.0, confidence=0.5))
    analyzer.record_trade(trade(-1.0, confidence=0.5))
    analyzer.record_trade(trade(2.0, confidence=0.9, execution_type="limit"))
    analyzer.record_trade(trade(1.0, strategy="risk_exit"))

    analysis = analyzer.analyze_strategy_performance("default")

    assert analysis.strategy_name == "default"
    assert analysis.total_trades == 3
    assert analysis.win_rate == pytest.approx(1 / 3)
    assert analysis.total_profit == pytest.approx(0.0)
    assert analysis.average_confidence == pytest.approx(1.9 / 3)
    assert len(analysis.recommended_adjustments) == 3


def test_unknown_strategy_is_empty():
    analysis = PerformanceAnalyzer(10.0).analyze_strategy_performance("nothing")
    assert analysis.total_trades == 0
    assert analysis.recommended_adjustments == []

"""
tests/test_position_monitor.py

Stop-loss and take-profit exits, including the one-shot take-profit rule.
"""

from unittest.mock import Mock

import pytest

from conftest import FakeMarketData, FakeVenue, make_asset, make_config
from trading_agent.executors.execution_engine import ExecutionEngine
from trading_agent.managers.portfolio import Portfolio
from trading_agent.managers.position_monitor import PositionMonitor
from trading_agent.models import (
    ExecutionResult,
    ExecutionType,
    OrderStatus,
    TakeProfitLevel,
    TradeAction,
)
from trading_agent.performance_analyzer import PerformanceAnalyzer


def open_position(portfolio, quantity=10.0, price=1.0, stop_loss=None, levels=None):
    result = ExecutionResult(
        asset_address="SOL",
        action=TradeAction.BUY,
        amount=quantity * price,
        quantity=quantity,
        price=price,
        slippage=0.0,
        tx_id="tx-open",
        execution_time=0.0,
        execution_type=ExecutionType.MARKET,
        order_status=OrderStatus.COMPLETED,
    )
    portfolio.apply_fill(result, asset=make_asset(price=price), stop_loss=stop_loss, take_profit_levels=levels)


@pytest.fixture
def setup():
    portfolio = Portfolio(100.0)
    market_data = FakeMarketData([make_asset(price=1.0)])
    venue = FakeVenue(price=1.0)
    engine = ExecutionEngine(venue, make_config(), sleep=lambda _: None)
    performance = PerformanceAnalyzer(10.0)
    notifier = Mock()
    journal = Mock()
    monitor = PositionMonitor(portfolio, market_data, engine, performance, notifier, journal=journal)
    return portfolio, market_data, venue, performance, notifier, journal, monitor


def test_take_profit_sells_fraction_once(setup):
    portfolio, market_data, venue, performance, notifier, journal, monitor = setup
    open_position(portfolio, levels=[TakeProfitLevel(price=1.5, size_pct=0.5)])
    market_data.set_price("SOL", 1.6)
    venue.price = 1.6

    results = monitor.check_positions()

    assert len(results) == 1
    assert results[0].quantity == pytest.approx(5.0)
    position = portfolio.get("SOL")
    assert position.quantity == pytest.approx(5.0)
    assert position.take_profit_levels[0].triggered is True

    assert monitor.check_positions() == []
    assert portfolio.get("SOL").quantity == pytest.approx(5.0)
    assert len(venue.submitted) == 1

    trade = performance.trades[0]
    assert trade.profit_loss == pytest.approx(5.0 * 0.6)
    assert trade.strategy_name == PositionMonitor.STRATEGY_NAME
    journal.log_trade.assert_called_once_with(trade)
    notifier.publish.assert_called_once()


def test_take_profit_ladder_applies_to_remaining_quantity(setup):
    portfolio, market_data, venue, _, _, _, monitor = setup
    open_position(portfolio, levels=[
        TakeProfitLevel(price=1.2, size_pct=0.5),
        TakeProfitLevel(price=1.4, size_pct=1.0),
    ])
    market_data.set_price("SOL", 1.5)
    venue.price = 1.5

    results = monitor.check_positions()

    assert [r.quantity for r in results] == [pytest.approx(5.0), pytest.approx(5.0)]
    assert not portfolio.has_position("SOL")


def test_stop_loss_exits_everything(setup):
    portfolio, market_data, venue, performance, _, _, monitor = setup
    open_position(portfolio, stop_loss=0.9, levels=[TakeProfitLevel(price=1.5, size_pct=0.5)])
    market_data.set_price("SOL", 0.8)
    venue.price = 0.8

    results = monitor.check_positions()

    assert len(results) == 1
    assert results[0].quantity == pytest.approx(10.0)
    assert not portfolio.has_position("SOL")
    assert performance.get_metrics().total_profit_loss == pytest.approx(-2.0)


def test_no_exit_between_levels(setup):
    portfolio, market_data, venue, _, _, _, monitor = setup
    open_position(portfolio, stop_loss=0.9, levels=[TakeProfitLevel(price=1.5, size_pct=0.5)])
    market_data.set_price("SOL", 1.2)

    assert monitor.check_positions() == []
    assert venue.quotes == []


def test_failed_exit_leaves_level_armed(setup):
    portfolio, market_data, venue, _, _, _, monitor = setup
    open_position(portfolio, levels=[TakeProfitLevel(price=1.5, size_pct=0.5)])
    market_data.set_price("SOL", 1.6)
    venue.impacts = [0.5]

    assert monitor.check_positions() == []
    assert portfolio.get("SOL").take_profit_levels[0].triggered is False
    assert portfolio.get("SOL").quantity == 10.0


def test_missing_price_skips_position(setup):
    portfolio, market_data, venue, _, _, _, monitor = setup
    open_position(portfolio, stop_loss=0.9)
    market_data.assets.clear()

    assert monitor.check_positions() == []
    assert portfolio.has_position("SOL")

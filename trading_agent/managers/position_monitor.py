"""Stop-loss and take-profit monitoring for open positions."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from trading_agent.errors import ExecutionError
from trading_agent.executors.execution_engine import ExecutionEngine
from trading_agent.managers.portfolio import Portfolio
from trading_agent.models import (
    EntryType,
    ExecutionParams,
    ExecutionResult,
    PortfolioPosition,
    Trade,
    TradeAction,
    TradingDecision,
)
from trading_agent.performance_analyzer import PerformanceAnalyzer
from trading_agent.services.notifier import Notifier

logger = logging.getLogger(__name__)


def build_exit_trade(
    position: PortfolioPosition,
    result: ExecutionResult,
    strategy_name: str = "default",
    confidence: float = 0.0,
) -> Trade:
    """Trade record for a sell fill against a position's cost basis."""
    return Trade(
        asset_address=position.address,
        symbol=position.asset.symbol,
        entry_price=position.cost_basis,
        exit_price=result.price,
        quantity=result.quantity,
        entry_time=datetime.fromtimestamp(position.entry_timestamp, tz=timezone.utc),
        exit_time=datetime.now(timezone.utc),
        profit_loss=(result.price - position.cost_basis) * result.quantity,
        strategy_name=strategy_name,
        confidence_score=confidence,
        execution_type=result.execution_type.value,
    )


class PositionMonitor:
    """Checks every open position once per cycle and routes exits to the engine."""

    STRATEGY_NAME = "risk_exit"

    def __init__(
        self,
        portfolio: Portfolio,
        market_data,
        engine: ExecutionEngine,
        performance: PerformanceAnalyzer,
        notifier: Notifier,
        max_slippage: float = 0.01,
        journal=None,
    ):
        """
        Initialize position monitor.

        Args:
            portfolio: Shared portfolio store
            market_data: Provider with get_asset_snapshot(address)
            engine: Execution engine for exit orders
            performance: Analyzer that receives realized trades
            notifier: Notification sink for exits
            max_slippage: Slippage allowed on exit orders
            journal: Optional TradeJournal that receives realized trades
        """
        self.portfolio = portfolio
        self.market_data = market_data
        self.engine = engine
        self.performance = performance
        self.notifier = notifier
        self.max_slippage = max_slippage
        self.journal = journal

    def check_positions(self) -> List[ExecutionResult]:
        """
        Evaluate stop-loss and take-profit levels for all open positions.

        Returns:
            Execution results for every exit that was executed this cycle
        """
        results: List[ExecutionResult] = []
        for position in self.portfolio.positions():
            try:
                results.extend(self._check_position(position))
            except Exception as e:
                logger.error(f"Position check failed for {position.asset.symbol}: {e}", exc_info=True)
        return results

    def _check_position(self, position: PortfolioPosition) -> List[ExecutionResult]:
        snapshot = self.market_data.get_asset_snapshot(position.address)
        if snapshot is None or snapshot.price <= 0:
            logger.warning(f"No current price for {position.asset.symbol}, skipping position check")
            return []

        price = snapshot.price
        self.portfolio.update_price(position.address, price)

        if position.stop_loss is not None and price <= position.stop_loss:
            logger.warning(
                f"Stop loss triggered for {position.asset.symbol}: price {price:.8g} <= {position.stop_loss:.8g}"
            )
            result = self._exit(position, position.quantity, price, "Stop loss triggered")
            return [result] if result is not None else []

        results = []
        for index, level in enumerate(position.take_profit_levels or []):
            if level.triggered or price < level.price:
                continue

            current = self.portfolio.get(position.address)
            if current is None:
                break

            quantity = current.quantity * level.size_pct
            if quantity <= 0:
                continue

            logger.info(f"Take profit triggered at {level.price:.8g} for {position.asset.symbol}")
            result = self._exit(current, quantity, price, f"Take profit triggered at {level.price:.8g}")
            if result is None:
                continue

            self.portfolio.mark_take_profit_triggered(position.address, index)
            results.append(result)

        return results

    def _exit(
        self, position: PortfolioPosition, quantity: float, price: float, reason: str
    ) -> Optional[ExecutionResult]:
        decision = TradingDecision(
            asset_address=position.address,
            action=TradeAction.SELL,
            size=quantity * price,
            confidence=1.0,
            risk_score=0.0,
            reasoning=reason,
            execution_params=ExecutionParams(
                entry_type=EntryType.MARKET,
                stop_loss_pct=0.0,
                max_slippage=self.max_slippage,
                time_horizon="immediate",
            ),
            quantity=quantity,
            asset=position.asset,
        )

        try:
            result = self.engine.execute(decision)
        except ExecutionError as e:
            logger.error(f"Exit for {position.asset.symbol} failed: {e}")
            return None

        if result.quantity <= 0 or result.tx_id is None:
            logger.warning(f"Exit for {position.asset.symbol} returned no fill ({result.order_status.value})")
            return None

        self.portfolio.apply_fill(result)
        trade = build_exit_trade(position, result, self.STRATEGY_NAME, confidence=1.0)
        self.performance.record_trade(trade)
        if self.journal is not None:
            self.journal.log_trade(trade)
        self.notifier.publish(
            f"SELL {position.asset.symbol}: {result.quantity:.8g} @ {result.price:.8g} "
            f"({reason}, P/L {trade.profit_loss:+.6f})"
        )
        return result

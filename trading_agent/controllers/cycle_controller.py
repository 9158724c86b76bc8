"""Cycle controller for orchestrating trading cycles."""

import logging
import statistics
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from trading_agent.config import Config
from trading_agent.decision_provider import DecisionOracle
from trading_agent.decision_synthesizer import DecisionSynthesizer
from trading_agent.errors import AnalysisError, ExecutionError
from trading_agent.executors.execution_engine import ExecutionEngine
from trading_agent.indicators.technical_analyzer import TechnicalAnalyzer
from trading_agent.logger import TradeJournal
from trading_agent.managers.portfolio import Portfolio
from trading_agent.managers.position_monitor import PositionMonitor, build_exit_trade
from trading_agent.models import (
    AssetSnapshot,
    CycleLog,
    ExecutionResult,
    MarketContext,
    RiskAssessment,
    TradeAction,
    TradingDecision,
    TrendDirection,
)
from trading_agent.performance_analyzer import PerformanceAnalyzer
from trading_agent.risk_manager import RiskManager
from trading_agent.services.notifier import Notifier
from trading_agent.services.shutdown_service import ShutdownService

logger = logging.getLogger(__name__)


TREND_LABELS = {
    TrendDirection.STRONG_UP: "strong_uptrend",
    TrendDirection.UP: "uptrend",
    TrendDirection.SIDEWAYS: "sideways",
    TrendDirection.DOWN: "downtrend",
    TrendDirection.STRONG_DOWN: "strong_downtrend",
}


@dataclass
class AssetEvaluation:
    """Result of the read-only analysis stage for one asset."""

    asset: AssetSnapshot
    decision: TradingDecision
    risk: RiskAssessment
    oracle_raw: str


@dataclass
class CycleReport:
    cycle: int
    candidates: int = 0
    eligible: int = 0
    evaluated: int = 0
    executions: List[ExecutionResult] = field(default_factory=list)
    exits: List[ExecutionResult] = field(default_factory=list)


class CycleController:
    """Orchestrates the agent cycle and handles errors gracefully."""

    STRATEGY_NAME = "default"

    def __init__(
        self,
        config: Config,
        market_data,
        analyzer: TechnicalAnalyzer,
        risk_manager: RiskManager,
        oracle: DecisionOracle,
        synthesizer: DecisionSynthesizer,
        engine: ExecutionEngine,
        portfolio: Portfolio,
        monitor: PositionMonitor,
        performance: PerformanceAnalyzer,
        journal: TradeJournal,
        notifier: Notifier,
        shutdown_service: Optional[ShutdownService] = None,
    ):
        """
        Initialize cycle controller.

        Args:
            config: Configuration object
            market_data: Market data provider (usually a MarketDataAggregator)
            analyzer: TechnicalAnalyzer instance
            risk_manager: RiskManager instance
            oracle: Decision oracle instance
            synthesizer: DecisionSynthesizer instance
            engine: ExecutionEngine instance
            portfolio: Shared portfolio store
            monitor: PositionMonitor instance
            performance: PerformanceAnalyzer instance
            journal: TradeJournal instance
            notifier: Notification sink
            shutdown_service: Shutdown handling, created if not given
        """
        self.config = config
        self.market_data = market_data
        self.analyzer = analyzer
        self.risk_manager = risk_manager
        self.oracle = oracle
        self.synthesizer = synthesizer
        self.engine = engine
        self.portfolio = portfolio
        self.monitor = monitor
        self.performance = performance
        self.journal = journal
        self.notifier = notifier
        self.shutdown_service = shutdown_service or ShutdownService()
        self.cycle_count = 0

        logger.info("Cycle controller initialized successfully")

    def startup(self, register_signals: bool = True) -> bool:
        """
        Check venue connectivity and restore state before the main loop.

        Returns:
            bool: True if the agent can start, False otherwise
        """
        logger.info("=" * 60)
        logger.info("STARTING TOKEN TRADING AGENT")
        logger.info(f"Mode: {self.config.run_mode.upper()} | Venue: {self.config.exchange_type}")
        logger.info("=" * 60)

        if register_signals:
            self.shutdown_service.register_signal_handlers()

        logger.info("Testing venue connectivity...")
        if not self.engine.venue.ping():
            logger.error("Venue connectivity FAILED")
            return False
        logger.info("Venue connectivity OK")

        if self.config.run_mode == "live":
            try:
                cash = self.engine.venue.get_balance(self.config.quote_currency)
            except ExecutionError as e:
                logger.error(f"Could not fetch {self.config.quote_currency} balance: {e}")
                return False
            self.portfolio.set_cash(cash)
            logger.info(f"Synced cash from venue: {cash:.4f} {self.config.quote_currency}")
        else:
            logger.info(f"PAPER MODE: starting cash {self.portfolio.cash:.4f} {self.config.quote_currency}")

        try:
            self.portfolio.load()
        except (OSError, ValueError) as e:
            logger.error(f"Could not restore stored positions: {e}")
            return False

        logger.info("Startup checks passed")
        logger.info("=" * 60)
        return True

    def is_eligible(self, asset: AssetSnapshot) -> bool:
        """Basic tradability filter applied before any analysis."""
        if asset.price <= 0:
            return False
        if asset.liquidity < self.config.min_liquidity_usd:
            return False
        if asset.volume_24h < self.config.min_volume_usd:
            return False
        if not asset.is_verified:
            return False
        if (
            asset.holder_concentration is not None
            and asset.holder_concentration > self.config.max_holder_concentration
        ):
            return False
        return True

    def _benchmark_trend(self) -> str:
        try:
            prices = self.market_data.get_price_history(self.config.benchmark_asset, self.config.price_history_limit)
            if not prices:
                return "sideways"
            signals = self.analyzer.analyze(prices)
        except AnalysisError as e:
            logger.debug(f"Benchmark trend unavailable: {e}")
            return "sideways"
        return TREND_LABELS.get(signals.trend_direction, "sideways")

    def build_market_context(
        self, asset: AssetSnapshot, candidates: Sequence[AssetSnapshot], market_trend: str
    ) -> MarketContext:
        """
        Market context for one asset relative to this cycle's candidates.

        sector_performance is the share of candidates up over 24h, and
        volume_profile is "High" above the candidates' median volume.
        """
        with_change = [a for a in candidates if "24h" in a.price_change]
        if with_change:
            sector_performance = sum(1 for a in with_change if a.price_change["24h"] > 0) / len(with_change)
        else:
            sector_performance = 0.5

        if asset.market_cap:
            liquidity_score = asset.liquidity / asset.market_cap
        else:
            liquidity_score = asset.liquidity / (self.config.min_liquidity_usd * 10) if self.config.min_liquidity_usd > 0 else 1.0
        liquidity_score = max(0.0, min(1.0, liquidity_score))

        volumes = [a.volume_24h for a in candidates] or [asset.volume_24h]
        volume_profile = "High" if asset.volume_24h > statistics.median(volumes) else "Normal"

        return MarketContext(
            market_trend=market_trend,
            sector_performance=sector_performance,
            liquidity_score=liquidity_score,
            volume_profile=volume_profile,
            sentiment_score=asset.social_score or 0.0,
        )

    def evaluate_asset(self, asset: AssetSnapshot, context: MarketContext) -> Optional[AssetEvaluation]:
        """Read-only analysis of one asset. Safe to run concurrently."""
        prices = self.market_data.get_price_history(asset.address, self.config.price_history_limit)
        try:
            signals = self.analyzer.analyze(prices)
        except AnalysisError as e:
            logger.info(f"{asset.symbol}: skipped ({e})")
            return None

        exposure = self.portfolio.exposure(asset.address)
        risk = self.risk_manager.assess_risk(asset, signals, context, exposure)
        raw = self.oracle.evaluate(asset, signals, risk, context)
        decision = self.synthesizer.synthesize(asset, signals, risk, context, raw, exposure.portfolio_value)
        return AssetEvaluation(asset=asset, decision=decision, risk=risk, oracle_raw=raw)

    def _gather_candidates(self) -> List[AssetSnapshot]:
        candidates = self.market_data.get_trending_assets(self.config.trending_limit)
        known = {a.address for a in candidates}

        # Held assets are always evaluated so the oracle can exit them
        for position in self.portfolio.positions():
            if position.address in known:
                continue
            snapshot = self.market_data.get_asset_snapshot(position.address)
            if snapshot is not None:
                candidates.append(snapshot)
                known.add(position.address)
        return candidates

    def run_cycle(self) -> CycleReport:
        """Run one full pipeline pass: analyze, decide, execute, then monitor positions."""
        self.cycle_count += 1
        report = CycleReport(cycle=self.cycle_count)

        candidates = self._gather_candidates()
        for asset in candidates:
            self.portfolio.update_price(asset.address, asset.price)

        eligible = [a for a in candidates if self.portfolio.has_position(a.address) or self.is_eligible(a)]
        report.candidates = len(candidates)
        report.eligible = len(eligible)
        logger.info(f"Cycle {self.cycle_count}: {len(candidates)} candidates, {len(eligible)} eligible")

        evaluations: List[AssetEvaluation] = []
        if eligible:
            market_trend = self._benchmark_trend()
            contexts: Dict[str, MarketContext] = {
                a.address: self.build_market_context(a, candidates, market_trend) for a in eligible
            }

            with ThreadPoolExecutor(max_workers=min(len(eligible), self.config.analysis_workers)) as executor:
                future_to_asset = {
                    executor.submit(self.evaluate_asset, asset, contexts[asset.address]): asset
                    for asset in eligible
                }
                for future in as_completed(future_to_asset):
                    asset = future_to_asset[future]
                    try:
                        evaluation = future.result()
                    except Exception as e:
                        logger.error(f"{asset.symbol}: analysis failed: {e}", exc_info=True)
                        continue
                    if evaluation is not None:
                        evaluations.append(evaluation)

        report.evaluated = len(evaluations)

        # Execution is sequential, in candidate order
        order = {a.address: i for i, a in enumerate(eligible)}
        evaluations.sort(key=lambda e: order.get(e.asset.address, 0))
        for evaluation in evaluations:
            result = self._execute_evaluation(evaluation)
            if result is not None:
                report.executions.append(result)

        report.exits = self.monitor.check_positions()
        self._log_cycle_summary()
        return report

    def _execute_evaluation(self, evaluation: AssetEvaluation) -> Optional[ExecutionResult]:
        asset = evaluation.asset
        decision = evaluation.decision
        result: Optional[ExecutionResult] = None
        error: Optional[str] = None

        try:
            if decision.action == TradeAction.BUY:
                result, error = self._execute_buy(decision)
            elif decision.action == TradeAction.SELL:
                result, error = self._execute_sell(decision)
        except ExecutionError as e:
            error = str(e)
            logger.error(f"{asset.symbol}: execution failed: {e}")

        executed = result is not None and result.quantity > 0 and result.tx_id is not None
        self.journal.log_cycle(CycleLog(
            timestamp=int(time.time()),
            asset_address=asset.address,
            symbol=asset.symbol,
            market_price=asset.price,
            risk_score=evaluation.risk.risk_score,
            oracle_raw_output=evaluation.oracle_raw,
            action=decision.action.value,
            size=decision.size,
            confidence=decision.confidence,
            reasoning=decision.reasoning,
            executed=executed,
            tx_id=result.tx_id if result else None,
            fill_price=result.price if result else None,
            order_status=result.order_status.value if result else None,
            error=error,
            mode=self.config.run_mode,
        ))
        return result

    def _execute_buy(self, decision: TradingDecision):
        asset = decision.asset
        if not self.portfolio.has_position(decision.asset_address) and \
                self.portfolio.position_count() >= self.config.max_tokens:
            logger.info(f"{asset.symbol}: buy skipped, already holding {self.config.max_tokens} positions")
            return None, "max positions reached"

        if decision.size > self.portfolio.cash:
            logger.info(f"{asset.symbol}: buy of {decision.size:.4f} skipped, cash {self.portfolio.cash:.4f}")
            return None, "insufficient cash"

        result = self.engine.execute(decision)
        if result.quantity > 0 and result.tx_id is not None:
            params = decision.execution_params
            self.portfolio.apply_fill(
                result,
                asset=asset,
                stop_loss=params.stop_loss_price,
                take_profit_levels=params.take_profit_levels,
            )
            self.notifier.publish(
                f"BUY {asset.symbol}: {result.quantity:.8g} @ {result.price:.8g} "
                f"(confidence {decision.confidence:.2f}, risk {decision.risk_score:.2f})"
            )
        return result, None

    def _execute_sell(self, decision: TradingDecision):
        asset = decision.asset
        position = self.portfolio.get(decision.asset_address)
        if position is None:
            logger.debug(f"{asset.symbol}: sell signal ignored, no open position")
            return None, None

        decision = replace(decision, quantity=position.quantity, size=position.quantity * asset.price)
        result = self.engine.execute(decision)
        if result.quantity > 0 and result.tx_id is not None:
            self.portfolio.apply_fill(result)
            trade = build_exit_trade(position, result, self.STRATEGY_NAME, confidence=decision.confidence)
            self.performance.record_trade(trade)
            self.journal.log_trade(trade)
            self.notifier.publish(
                f"SELL {asset.symbol}: {result.quantity:.8g} @ {result.price:.8g} (P/L {trade.profit_loss:+.6f})"
            )
        return result, None

    def _log_cycle_summary(self) -> None:
        stats = self.portfolio.stats()
        metrics = self.performance.get_metrics()
        logger.info(
            f"Portfolio: value={stats.total_value:.4f} cash={stats.cash:.4f} positions={stats.position_count} "
            f"realized={stats.total_realized_pnl:+.4f} unrealized={stats.total_unrealized_pnl:+.4f}"
        )
        if metrics.total_trades:
            logger.info(
                f"Performance: trades={metrics.total_trades} win rate={metrics.win_rate * 100:.1f}% "
                f"P/L={metrics.total_profit_loss:+.4f} max DD={metrics.max_drawdown * 100:.2f}%"
            )

    def run(self, once: bool = False) -> None:
        """
        Execute agent cycles in a continuous loop.

        Handles errors gracefully and continues operation. Shutdown is
        observed between cycles only, so an in-flight cycle always completes.
        """
        while not self.shutdown_service.requested:
            cycle_start_time = time.time()
            logger.info(f"\nCYCLE {self.cycle_count + 1} - {datetime.now(timezone.utc).strftime('%H:%M:%S')}")

            try:
                self.run_cycle()
            except Exception as e:
                logger.error(f"Cycle {self.cycle_count} failed: {e}", exc_info=True)
                logger.info("Continuing to next cycle...")

            if once:
                break

            # Sleep until next cycle
            self._sleep_until_next_cycle(cycle_start_time)

        logger.info("Agent loop stopped")

    def _sleep_until_next_cycle(self, cycle_start_time: float) -> None:
        """Sleep until the next cycle based on configured interval."""
        cycle_duration = time.time() - cycle_start_time
        sleep_time = max(0, self.config.loop_interval_seconds - cycle_duration)

        if sleep_time > 0:
            logger.debug(f"Sleeping for {sleep_time:.1f} seconds until next cycle")
            self.shutdown_service.wait(sleep_time)
        else:
            logger.warning(f"Cycle took {cycle_duration:.1f}s, longer than interval {self.config.loop_interval_seconds}s")

    def shutdown(self) -> None:
        """Gracefully shutdown the agent."""
        self.shutdown_service.shutdown()

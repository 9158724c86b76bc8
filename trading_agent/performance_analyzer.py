"""Trade log performance analytics."""

import logging
import threading
from typing import List

import pandas as pd

from trading_agent.models import AssetMetrics, PerformanceMetrics, StrategyAnalysis, Trade

logger = logging.getLogger(__name__)


class PerformanceAnalyzer:
    """
    Keeps the trade log and derives performance metrics from it.

    Metrics are recomputed from the whole log after every trade rather than
    updated incrementally. Trades without a realized profit_loss are kept in
    the log but do not count towards the metrics.
    """

    def __init__(self, initial_capital: float, risk_free_rate: float = 0.02):
        self.initial_capital = initial_capital
        self.risk_free_rate = risk_free_rate
        self._trades: List[Trade] = []
        self._metrics = PerformanceMetrics()
        self._lock = threading.Lock()

    @property
    def trades(self) -> List[Trade]:
        with self._lock:
            return list(self._trades)

    def record_trade(self, trade: Trade) -> PerformanceMetrics:
        with self._lock:
            self._trades.append(trade)
            self._metrics = self._compute_metrics(self._trades)
            metrics = self._metrics

        if trade.profit_loss is not None:
            logger.info(
                f"Trade recorded: {trade.symbol or trade.asset_address} P/L {trade.profit_loss:+.6f} | "
                f"total {metrics.total_profit_loss:+.6f}, win rate {metrics.win_rate * 100:.1f}%"
            )
        return metrics

    def get_metrics(self) -> PerformanceMetrics:
        with self._lock:
            return self._metrics

    def _trade_frame(self, trades: List[Trade]) -> pd.DataFrame:
        rows = [
            {
                "asset_address": t.asset_address,
                "symbol": t.symbol or t.asset_address,
                "profit_loss": t.profit_loss,
                "entry_time": t.entry_time,
                "exit_time": t.exit_time,
                "strategy_name": t.strategy_name,
                "confidence_score": t.confidence_score,
                "execution_type": t.execution_type,
            }
            for t in trades
            if t.profit_loss is not None
        ]
        return pd.DataFrame(
            rows,
            columns=[
                "asset_address", "symbol", "profit_loss", "entry_time", "exit_time",
                "strategy_name", "confidence_score", "execution_type",
            ],
        )

    def _compute_metrics(self, trades: List[Trade]) -> PerformanceMetrics:
        frame = self._trade_frame(trades)
        if frame.empty:
            return PerformanceMetrics()

        pnl = frame["profit_loss"].astype("float64")
        total_trades = len(pnl)
        winning_trades = int((pnl > 0).sum())
        total_profit_loss = float(pnl.sum())

        std_dev = float(pnl.std(ddof=0))
        sharpe_ratio = (float(pnl.mean()) - self.risk_free_rate) / std_dev if std_dev > 0 else 0.0

        # Replay the equity curve against its running peak
        equity = self.initial_capital + pnl.cumsum()
        peak = equity.cummax().clip(lower=self.initial_capital)
        drawdown = ((peak - equity) / peak).where(peak > 0, 0.0)
        max_drawdown = max(float(drawdown.max()), 0.0)
        current_drawdown = max(float(drawdown.iloc[-1]), 0.0)

        return PerformanceMetrics(
            total_trades=total_trades,
            winning_trades=winning_trades,
            losing_trades=total_trades - winning_trades,
            total_profit_loss=total_profit_loss,
            win_rate=winning_trades / total_trades,
            average_return=total_profit_loss / total_trades,
            sharpe_ratio=sharpe_ratio,
            max_drawdown=max_drawdown,
            current_drawdown=current_drawdown,
            risk_adjusted_return=total_profit_loss / max_drawdown if max_drawdown > 0 else total_profit_loss,
            asset_performance=self._asset_metrics(frame),
        )

    @staticmethod
    def _asset_metrics(frame: pd.DataFrame) -> dict:
        result = {}
        for address, group in frame.groupby("asset_address", sort=False):
            pnl = group["profit_loss"].astype("float64")
            profitable = int((pnl > 0).sum())

            closed = group.dropna(subset=["exit_time"])
            average_hold_time = 0.0
            if not closed.empty:
                hold = pd.to_datetime(closed["exit_time"], utc=True) - pd.to_datetime(closed["entry_time"], utc=True)
                average_hold_time = float(hold.dt.total_seconds().mean() / 3600.0)

            result[address] = AssetMetrics(
                symbol=str(group["symbol"].iloc[0]),
                total_trades=len(pnl),
                profitable_trades=profitable,
                total_profit_loss=float(pnl.sum()),
                average_hold_time=average_hold_time,
                best_trade=float(pnl.max()),
                worst_trade=float(pnl.min()),
                win_rate=profitable / len(pnl),
            )
        return result

    def analyze_strategy_performance(self, strategy_name: str) -> StrategyAnalysis:
        """Summarize one strategy's trades with tuning recommendations."""
        with self._lock:
            trades = [t for t in self._trades if t.strategy_name == strategy_name]

        if not trades:
            return StrategyAnalysis()

        frame = pd.DataFrame(
            {
                "profit_loss": [t.profit_loss if t.profit_loss is not None else 0.0 for t in trades],
                "confidence_score": [t.confidence_score for t in trades],
                "execution_type": [t.execution_type for t in trades],
            }
        )
        wins = frame["profit_loss"] > 0
        win_rate = float(wins.mean())
        average_confidence = float(frame["confidence_score"].mean())

        return StrategyAnalysis(
            strategy_name=strategy_name,
            total_trades=len(frame),
            win_rate=win_rate,
            total_profit=float(frame["profit_loss"].sum()),
            average_confidence=average_confidence,
            recommended_adjustments=self._recommendations(frame, win_rate, average_confidence),
        )

    @staticmethod
    def _recommendations(frame: pd.DataFrame, win_rate: float, average_confidence: float) -> List[str]:
        recommendations = []
        wins = frame["profit_loss"] > 0

        if win_rate < 0.5:
            recommendations.append("Consider increasing minimum confidence threshold for trade execution")

        high_confidence = frame["confidence_score"] > average_confidence
        if high_confidence.any():
            high_confidence_win_rate = float(wins[high_confidence].mean())
            if high_confidence_win_rate > win_rate:
                recommendations.append(
                    "Strategy performs better with higher confidence trades. Consider raising confidence threshold"
                )

        market = frame["execution_type"] == "market"
        limit = frame["execution_type"] == "limit"
        if market.any() and limit.any():
            if float(wins[limit].mean()) > float(wins[market].mean()):
                recommendations.append(
                    "Limit orders show better performance. Consider increasing limit order usage"
                )

        return recommendations

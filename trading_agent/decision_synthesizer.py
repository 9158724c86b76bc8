"""Turns an oracle verdict plus analysis into a bounded trading decision."""

import logging
from typing import List, Optional, Union

from trading_agent.config import Config
from trading_agent.decision_parser import DecisionParser
from trading_agent.errors import OracleParseError, RiskViolation
from trading_agent.models import (
    AssetSnapshot,
    DCAConfig,
    EntryType,
    ExecutionParams,
    ExecutionStrategy,
    MarketContext,
    OracleVerdict,
    RiskAssessment,
    TakeProfitLevel,
    TechnicalSignals,
    TradeAction,
    TradingDecision,
)
from trading_agent.risk_manager import RiskManager


logger = logging.getLogger(__name__)


class DecisionSynthesizer:
    """
    Combines technicals, risk and the oracle verdict into a TradingDecision.

    The oracle is untrusted: a malformed verdict becomes a Hold, and a Buy
    whose size fails the risk gate is downgraded to Hold rather than resized.
    """

    MIN_ORACLE_LIQUIDITY = 0.7
    MAX_BUY_RISK = 0.3
    FORCE_SELL_RISK = 0.7

    MOMENTUM_MULTIPLIERS = {
        "strong_buy": 1.0,
        "buy": 0.8,
        "neutral": 0.5,
    }
    OTHER_MOMENTUM_MULTIPLIER = 0.3

    # (gain, fraction of current quantity to sell)
    DEFAULT_TAKE_PROFITS = [(0.10, 0.3), (0.20, 0.5), (0.30, 1.0)]
    DEFAULT_DCA_ENTRIES = 3
    DEFAULT_DCA_INTERVAL_HOURS = 24.0

    def __init__(self, config: Config, risk_manager: RiskManager, parser: Optional[DecisionParser] = None):
        self.config = config
        self.risk_manager = risk_manager
        self.parser = parser or DecisionParser()

    def synthesize(
        self,
        asset: AssetSnapshot,
        signals: TechnicalSignals,
        risk: RiskAssessment,
        context: MarketContext,
        verdict: Union[str, OracleVerdict],
        portfolio_value: float,
    ) -> TradingDecision:
        """
        Build a decision for one asset.

        Args:
            asset: Current asset snapshot
            signals: Technical signals for the asset
            risk: Risk assessment for the asset
            context: Market context for the asset
            verdict: Raw oracle text or an already parsed OracleVerdict
            portfolio_value: Current portfolio value in quote currency

        Returns:
            TradingDecision (Hold when the verdict cannot be parsed)
        """
        if not isinstance(verdict, OracleVerdict):
            try:
                verdict = self.parser.parse_verdict(verdict)
            except OracleParseError as e:
                logger.warning(f"{asset.symbol}: oracle verdict rejected ({e}), holding")
                return TradingDecision(
                    asset_address=asset.address,
                    action=TradeAction.HOLD,
                    size=0.0,
                    confidence=0.0,
                    risk_score=risk.risk_score,
                    reasoning=f"Oracle verdict could not be parsed: {e}",
                    technical_signals=signals,
                    market_context=context,
                    asset=asset,
                )

        action = self.decide_action(verdict, risk.risk_score)
        size = self.calculate_position_size(
            risk.risk_score, signals.trend_strength, verdict.liquidity_score, verdict.momentum
        )
        reasoning = verdict.reasoning

        if action == TradeAction.BUY:
            try:
                self.risk_manager.enforce_position_size(size, portfolio_value)
            except RiskViolation as e:
                logger.info(f"{asset.symbol}: buy of {size:.4f} downgraded to hold ({e})")
                action = TradeAction.HOLD
                reasoning = f"{reasoning} [downgraded to hold: {e}]".strip()

        execution_params = self.build_execution_params(asset, risk, verdict.execution_strategy, size)

        decision = TradingDecision(
            asset_address=asset.address,
            action=action,
            size=size,
            confidence=verdict.confidence,
            risk_score=risk.risk_score,
            reasoning=reasoning,
            technical_signals=signals,
            market_context=context,
            execution_params=execution_params,
            asset=asset,
        )
        logger.info(
            f"{asset.symbol}: {action.value.upper()} size={size:.4f} "
            f"confidence={verdict.confidence:.2f} risk={risk.risk_score:.3f}"
        )
        return decision

    def decide_action(self, verdict: OracleVerdict, risk_score: float) -> TradeAction:
        if (
            verdict.confidence >= self.config.min_confidence
            and verdict.liquidity_score >= self.MIN_ORACLE_LIQUIDITY
            and risk_score <= self.MAX_BUY_RISK
            and verdict.momentum in ("buy", "strong_buy")
            and verdict.smart_money_flow == "inflow"
        ):
            return TradeAction.BUY
        if (
            risk_score > self.FORCE_SELL_RISK
            or verdict.momentum == "strong_sell"
            or verdict.smart_money_flow == "outflow"
        ):
            return TradeAction.SELL
        return TradeAction.HOLD

    def calculate_position_size(
        self, risk_score: float, trend_strength: float, liquidity_score: float, momentum: str
    ) -> float:
        base_size = self.config.max_position_size * 0.2 * (1.0 - risk_score) * trend_strength
        liquidity_multiplier = min(liquidity_score * 1.5, 1.0)
        momentum_multiplier = self.MOMENTUM_MULTIPLIERS.get(momentum, self.OTHER_MOMENTUM_MULTIPLIER)

        size = base_size * liquidity_multiplier * momentum_multiplier
        return min(max(size, self.config.min_position_size), self.config.max_position_size)

    def build_execution_params(
        self,
        asset: AssetSnapshot,
        risk: RiskAssessment,
        strategy: Optional[ExecutionStrategy],
        size: float,
    ) -> ExecutionParams:
        strategy = strategy or ExecutionStrategy()

        stop_loss_pct = strategy.stop_loss_pct
        if stop_loss_pct is None:
            stop_loss_pct = 0.05 if risk.risk_score > self.FORCE_SELL_RISK else 0.10

        stop_loss_price = risk.stop_loss_price
        if stop_loss_price is None and asset.price > 0:
            stop_loss_price = asset.price * (1.0 - stop_loss_pct)

        take_profit_levels = self._take_profit_ladder(asset.price, strategy)

        entry_type = strategy.entry_type or EntryType.MARKET
        dca_config = strategy.dca
        if dca_config is not None and strategy.entry_type is None:
            entry_type = EntryType.DCA
        if entry_type == EntryType.DCA:
            if dca_config is None:
                dca_config = DCAConfig(
                    num_entries=self.DEFAULT_DCA_ENTRIES,
                    time_between_entries=self.DEFAULT_DCA_INTERVAL_HOURS,
                    size_per_entry=0.0,
                )
            # Tranches are always equal slices of the decided size
            dca_config = DCAConfig(
                num_entries=dca_config.num_entries,
                time_between_entries=dca_config.time_between_entries,
                size_per_entry=size / dca_config.num_entries,
            )
        else:
            dca_config = None

        return ExecutionParams(
            entry_type=entry_type,
            stop_loss_pct=stop_loss_pct,
            stop_loss_price=stop_loss_price,
            take_profit_levels=take_profit_levels,
            max_slippage=self.config.max_slippage,
            dca_config=dca_config,
            time_horizon=self.config.price_timeframe,
        )

    def _take_profit_ladder(self, price: float, strategy: ExecutionStrategy) -> List[TakeProfitLevel]:
        levels = [TakeProfitLevel(price=level.price, size_pct=level.size_pct) for level in strategy.take_profit_levels]
        levels.extend(
            TakeProfitLevel(price=price * (1.0 + gain), size_pct=size_pct)
            for gain, size_pct in strategy.take_profit_gains
        )
        if not levels:
            levels = [
                TakeProfitLevel(price=price * (1.0 + gain), size_pct=size_pct)
                for gain, size_pct in self.DEFAULT_TAKE_PROFITS
            ]
        levels.sort(key=lambda level: level.price)
        return levels

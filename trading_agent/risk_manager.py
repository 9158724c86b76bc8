"""Risk management layer for the token trading agent."""

import logging
from typing import Optional, Tuple

from trading_agent.config import Config
from trading_agent.errors import RiskViolation
from trading_agent.models import (
    AssetSnapshot,
    MarketContext,
    MarketRiskLevel,
    PortfolioExposure,
    RiskAssessment,
    TechnicalSignals,
    VolatilityRating,
)


logger = logging.getLogger(__name__)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class RiskManager:
    """Scores asset risk and gates position sizes."""

    # Overall score weights
    VOLATILITY_WEIGHT = 0.3
    LIQUIDITY_WEIGHT = 0.3
    MARKET_WEIGHT = 0.2
    CONCENTRATION_WEIGHT = 0.2

    MAX_POSITION_PER_ASSET = 0.2  # 20% of portfolio per asset
    BASE_POSITION_PCT = 0.1  # 10% of portfolio before risk adjustment
    MIN_ACCEPTABLE_LIQUIDITY = 0.3

    MARKET_TREND_RISK = {
        "strong_uptrend": 0.2,
        "uptrend": 0.3,
        "sideways": 0.5,
        "downtrend": 0.7,
        "strong_downtrend": 0.8,
    }

    def __init__(self, config: Config):
        """
        Initialize risk manager with configuration.

        Args:
            config: Configuration object with position bounds
        """
        self.min_position_size = config.min_position_size
        self.max_position_size = config.max_position_size

    def assess_risk(
        self,
        asset: AssetSnapshot,
        signals: TechnicalSignals,
        context: MarketContext,
        exposure: PortfolioExposure,
    ) -> RiskAssessment:
        """
        Score an asset's risk and derive its position cap and stop loss.

        Args:
            asset: Current asset snapshot
            signals: Technical signals for the asset
            context: Market context for the asset
            exposure: Current portfolio exposure figures

        Returns:
            RiskAssessment with the weighted score and derived limits
        """
        logger.debug(f"Assessing risk for {asset.symbol}")

        volatility_risk = self.calculate_volatility_risk(signals)
        liquidity_risk = self.calculate_liquidity_risk(context)
        market_risk = self.calculate_market_risk(context)
        concentration_risk = self.calculate_concentration_risk(
            exposure.asset_exposure, exposure.portfolio_value
        )

        risk_factors = []
        if volatility_risk > 0.7:
            risk_factors.append("High volatility")
        if liquidity_risk > 0.7:
            risk_factors.append("Low liquidity")
        if market_risk > 0.7:
            risk_factors.append("High market risk")
        if concentration_risk > 0.7:
            risk_factors.append("High concentration risk")

        risk_score = self.combine_scores(volatility_risk, liquidity_risk, market_risk, concentration_risk)

        market_exposure = 0.0
        if exposure.portfolio_value > 0:
            market_exposure = _clamp(exposure.total_exposure / exposure.portfolio_value)

        return RiskAssessment(
            risk_score=risk_score,
            volatility_risk=volatility_risk,
            liquidity_risk=liquidity_risk,
            market_risk=market_risk,
            concentration_risk=concentration_risk,
            volatility_rating=self.rate_volatility(volatility_risk),
            market_risk_level=self.rate_market_risk(market_risk),
            max_position_size=self.calculate_max_position_size(
                risk_score, exposure.portfolio_value, market_exposure
            ),
            stop_loss_price=self.calculate_stop_loss(asset.price, signals),
            risk_factors=risk_factors,
        )

    @classmethod
    def combine_scores(
        cls,
        volatility_risk: float,
        liquidity_risk: float,
        market_risk: float,
        concentration_risk: float,
    ) -> float:
        return (
            _clamp(volatility_risk) * cls.VOLATILITY_WEIGHT
            + _clamp(liquidity_risk) * cls.LIQUIDITY_WEIGHT
            + _clamp(market_risk) * cls.MARKET_WEIGHT
            + _clamp(concentration_risk) * cls.CONCENTRATION_WEIGHT
        )

    @staticmethod
    def calculate_volatility_risk(signals: TechnicalSignals) -> float:
        # Strong trends offset part of the volatility penalty
        return _clamp(signals.volatility_score * (1.0 - signals.trend_strength * 0.3))

    def calculate_liquidity_risk(self, context: MarketContext) -> float:
        if context.liquidity_score < self.MIN_ACCEPTABLE_LIQUIDITY:
            return 1.0
        return _clamp((1.0 - context.liquidity_score) * 1.5)

    def calculate_market_risk(self, context: MarketContext) -> float:
        base_risk = self.MARKET_TREND_RISK.get(context.market_trend, 0.5)
        sector_adjustment = (1.0 - context.sector_performance) * 0.2
        return _clamp(base_risk + sector_adjustment)

    def calculate_concentration_risk(self, asset_exposure: float, portfolio_value: float) -> float:
        cap = portfolio_value * self.MAX_POSITION_PER_ASSET
        if cap <= 0:
            return 1.0 if asset_exposure > 0 else 0.0
        return _clamp(asset_exposure / cap)

    def calculate_max_position_size(
        self, risk_score: float, portfolio_value: float, market_exposure: float
    ) -> float:
        base_size = portfolio_value * self.BASE_POSITION_PCT
        return max(0.0, base_size * (1.0 - risk_score) * (1.0 - market_exposure))

    @staticmethod
    def calculate_stop_loss(current_price: float, signals: TechnicalSignals) -> Optional[float]:
        """
        Stop at the nearest support below price when it sits 2-15% away,
        else two volatility-implied ATRs below price.
        """
        if current_price <= 0 or not signals.support_levels:
            return None

        below = [level for level in signals.support_levels if level < current_price]
        if below:
            nearest = max(below)
            stop_distance = (current_price - nearest) / current_price
            if 0.02 < stop_distance < 0.15:
                return nearest

        atr = signals.volatility_score * current_price
        stop = current_price - 2.0 * atr
        return stop if stop > 0 else None

    @staticmethod
    def rate_volatility(volatility_risk: float) -> VolatilityRating:
        if volatility_risk < 0.2:
            return VolatilityRating.VERY_LOW
        if volatility_risk < 0.4:
            return VolatilityRating.LOW
        if volatility_risk < 0.6:
            return VolatilityRating.MEDIUM
        if volatility_risk < 0.8:
            return VolatilityRating.HIGH
        return VolatilityRating.VERY_HIGH

    @staticmethod
    def rate_market_risk(market_risk: float) -> MarketRiskLevel:
        if market_risk < 0.3:
            return MarketRiskLevel.LOW
        if market_risk < 0.6:
            return MarketRiskLevel.MODERATE
        if market_risk < 0.8:
            return MarketRiskLevel.HIGH
        return MarketRiskLevel.EXTREME

    def validate_position_size(self, size: float, portfolio_value: float) -> Tuple[bool, str]:
        """
        Run the position size checks and return approval or denial.

        Args:
            size: Proposed position size in quote currency
            portfolio_value: Current portfolio value in quote currency

        Returns:
            Tuple of (approved: bool, reason: str)
        """
        if size < self.min_position_size or size > self.max_position_size:
            logger.warning(
                f"Risk check: denied - size {size:.4f} outside "
                f"[{self.min_position_size:.4f}, {self.max_position_size:.4f}]"
            )
            return False, "position size outside configured bounds"

        if portfolio_value <= 0:
            logger.warning("Risk check: denied - portfolio value is not positive")
            return False, "no portfolio value"

        position_ratio = size / portfolio_value
        if position_ratio > self.MAX_POSITION_PER_ASSET:
            logger.warning(
                f"Risk check: denied - size {size:.4f} is {position_ratio * 100:.1f}% of portfolio "
                f"(max {self.MAX_POSITION_PER_ASSET * 100:.0f}%)"
            )
            return False, "exceeds max share of portfolio per asset"

        return True, ""

    def enforce_position_size(self, size: float, portfolio_value: float) -> None:
        """Raise RiskViolation when validate_position_size denies the size."""
        approved, reason = self.validate_position_size(size, portfolio_value)
        if not approved:
            raise RiskViolation(reason)

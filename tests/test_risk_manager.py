"""
tests/test_risk_manager.py

Weighted risk score, component risks, position sizing and the size gate.
"""

import pytest

from conftest import make_asset, make_config, make_signals
from trading_agent.errors import RiskViolation
from trading_agent.models import MarketContext, MarketRiskLevel, PortfolioExposure, VolatilityRating
from trading_agent.risk_manager import RiskManager


@pytest.fixture
def risk_manager():
    return RiskManager(make_config())


def test_combined_score_uses_exact_weights():
    score = RiskManager.combine_scores(0.5, 0.2, 0.8, 0.1)
    assert score == pytest.approx(0.3 * 0.5 + 0.3 * 0.2 + 0.2 * 0.8 + 0.2 * 0.1)


def test_combined_score_bounds():
    assert RiskManager.combine_scores(0.0, 0.0, 0.0, 0.0) == 0.0
    assert RiskManager.combine_scores(1.0, 1.0, 1.0, 1.0) == pytest.approx(1.0)


def test_low_liquidity_is_maximum_risk(risk_manager):
    assert risk_manager.calculate_liquidity_risk(MarketContext(liquidity_score=0.29)) == 1.0
    assert risk_manager.calculate_liquidity_risk(MarketContext(liquidity_score=0.9)) == pytest.approx(0.15)


def test_market_risk_from_trend_and_sector(risk_manager):
    context = MarketContext(market_trend="downtrend", sector_performance=0.5)
    assert risk_manager.calculate_market_risk(context) == pytest.approx(0.8)

    unknown = MarketContext(market_trend="unknown", sector_performance=1.0)
    assert risk_manager.calculate_market_risk(unknown) == pytest.approx(0.5)


def test_concentration_risk_against_per_asset_cap(risk_manager):
    assert risk_manager.calculate_concentration_risk(1.0, 10.0) == pytest.approx(0.5)
    assert risk_manager.calculate_concentration_risk(5.0, 10.0) == 1.0
    assert risk_manager.calculate_concentration_risk(0.0, 0.0) == 0.0


def test_max_position_size_non_increasing_in_risk(risk_manager):
    sizes = [risk_manager.calculate_max_position_size(r / 10, 100.0, 0.2) for r in range(11)]

    assert all(a >= b for a, b in zip(sizes, sizes[1:]))
    assert sizes[0] == pytest.approx(100.0 * 0.1 * 0.8)
    assert sizes[-1] == 0.0


def test_stop_loss_prefers_nearby_support():
    signals = make_signals(support_levels=[0.5, 0.95], volatility_score=0.1)
    assert RiskManager.calculate_stop_loss(1.0, signals) == pytest.approx(0.95)


def test_stop_loss_falls_back_to_volatility():
    signals = make_signals(support_levels=[0.5], volatility_score=0.1)
    assert RiskManager.calculate_stop_loss(1.0, signals) == pytest.approx(0.8)


def test_stop_loss_requires_support_levels():
    assert RiskManager.calculate_stop_loss(1.0, make_signals(support_levels=[])) is None


def test_assess_risk_populates_assessment(risk_manager):
    asset = make_asset(price=1.0)
    signals = make_signals(trend_strength=0.0, volatility_score=0.5)
    context = MarketContext(market_trend="sideways", sector_performance=0.5, liquidity_score=0.9)
    exposure = PortfolioExposure(asset_exposure=0.0, total_exposure=0.0, portfolio_value=10.0)

    risk = risk_manager.assess_risk(asset, signals, context, exposure)

    assert risk.volatility_risk == pytest.approx(0.5)
    assert risk.liquidity_risk == pytest.approx(0.15)
    assert risk.market_risk == pytest.approx(0.6)
    assert risk.concentration_risk == 0.0
    assert risk.risk_score == pytest.approx(0.3 * 0.5 + 0.3 * 0.15 + 0.2 * 0.6)
    assert risk.volatility_rating == VolatilityRating.MEDIUM
    assert risk.market_risk_level == MarketRiskLevel.HIGH
    assert risk.max_position_size == pytest.approx(10.0 * 0.1 * (1.0 - risk.risk_score))
    assert risk.risk_factors == []


def test_validate_position_size_bounds(risk_manager):
    assert risk_manager.validate_position_size(0.5, 10.0) == (True, "")
    assert risk_manager.validate_position_size(0.05, 10.0)[0] is False
    assert risk_manager.validate_position_size(1.5, 10.0)[0] is False
    assert risk_manager.validate_position_size(0.5, 0.0)[0] is False
    # 0.5 of a 2.0 portfolio is 25%, above the 20% per-asset cap
    assert risk_manager.validate_position_size(0.5, 2.0)[0] is False


def test_enforce_position_size_raises(risk_manager):
    with pytest.raises(RiskViolation):
        risk_manager.enforce_position_size(2.0, 10.0)

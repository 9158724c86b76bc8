"""
tests/conftest.py

Shared fakes: configuration builder, scripted venue, in-memory market data
and a canned decision oracle. Nothing here touches the network.
"""

import json
from dataclasses import replace
from typing import Dict, List, Optional

import pytest

from trading_agent.config import Config
from trading_agent.decision_provider import DecisionOracle
from trading_agent.errors import VenueUnavailable
from trading_agent.exchange_adapters.execution_venue import ExecutionVenue
from trading_agent.models import AssetSnapshot, Fill, Quote, TechnicalSignals, TrendDirection


def make_config(**overrides) -> Config:
    values = dict(
        run_mode="paper",
        exchange_type="binance",
        exchange_api_key=None,
        exchange_api_secret=None,
        market_data_exchanges=["binance"],
        quote_currency="USDT",
        native_currency="USDT",
        wallet_id="test-wallet",
        llm_api_key="sk-test-key",
        llm_base_url="https://api.deepseek.com",
        llm_model="deepseek-chat",
        llm_timeout_seconds=15.0,
        loop_interval_seconds=60,
        trending_limit=20,
        price_history_limit=200,
        price_timeframe="15m",
        benchmark_asset="BTC",
        analysis_workers=2,
        max_position_size=1.0,
        min_position_size=0.1,
        max_tokens=5,
        min_confidence=0.7,
        min_liquidity_usd=100_000.0,
        min_volume_usd=50_000.0,
        max_holder_concentration=0.4,
        max_slippage=0.01,
        max_retries=3,
        retry_delay_seconds=1.0,
        venue_timeout_seconds=10.0,
        starting_capital=10.0,
        risk_free_rate=0.02,
        data_dir="data",
        notify_webhook_url=None,
    )
    values.update(overrides)
    return Config(**values)


def make_asset(address: str = "SOL", price: float = 1.0, **overrides) -> AssetSnapshot:
    values = dict(
        address=address,
        symbol=address,
        name=address.title(),
        price=price,
        price_native=price,
        volume_24h=1_000_000.0,
        liquidity=500_000.0,
        market_cap=5_000_000.0,
        price_change={"24h": 2.0},
    )
    values.update(overrides)
    return AssetSnapshot(**values)


def make_signals(**overrides) -> TechnicalSignals:
    values = dict(
        trend_direction=TrendDirection.UP,
        trend_strength=1.0,
        volatility_score=0.1,
    )
    values.update(overrides)
    return TechnicalSignals(**values)


def verdict_json(**overrides) -> str:
    payload = {
        "confidence": 0.9,
        "momentum": "strong_buy",
        "liquidity_score": 0.9,
        "smart_money_flow": "inflow",
        "reasoning": "Strong inflow",
    }
    payload.update(overrides)
    return json.dumps(payload)


class FakeVenue(ExecutionVenue):
    """
    Venue with scripted behaviour.

    `impacts` and `fill_prices` are consumed one per quote / confirm; the
    last value repeats. `fail_quotes` makes the next N quotes raise.
    `fill_ratio` below 1 confirms only that share of each order.
    """

    def __init__(self, price: float = 1.0, impacts=None, fill_prices=None, fail_quotes: int = 0,
                 balance: float = 10.0, reachable: bool = True, fill_ratio: float = 1.0):
        self.price = price
        self.impacts = list(impacts or [0.0])
        self.fill_prices = list(fill_prices or [])
        self.fail_quotes = fail_quotes
        self.balance = balance
        self.reachable = reachable
        self.fill_ratio = fill_ratio
        self.quotes: List[Quote] = []
        self.submitted: List[Quote] = []
        self._tx = 0

    def quote(self, input_asset: str, output_asset: str, amount: float) -> Quote:
        if self.fail_quotes > 0:
            self.fail_quotes -= 1
            raise VenueUnavailable("venue timeout")
        impact = self.impacts.pop(0) if len(self.impacts) > 1 else self.impacts[0]
        side = "buy" if input_asset == "USDT" else "sell"
        output = amount / self.price if side == "buy" else amount * self.price
        quote = Quote(
            input_asset=input_asset,
            output_asset=output_asset,
            input_amount=amount,
            output_amount=output,
            price=self.price,
            price_impact=impact,
            market=f"{output_asset if side == 'buy' else input_asset}/USDT",
            side=side,
        )
        self.quotes.append(quote)
        return quote

    def submit(self, quote: Quote, wallet: str) -> str:
        self.submitted.append(quote)
        self._tx += 1
        return f"tx-{self._tx}"

    def confirm(self, quote: Quote, tx_id: str) -> Fill:
        price = quote.price
        if self.fill_prices:
            price = self.fill_prices.pop(0) if len(self.fill_prices) > 1 else self.fill_prices[0]
        if quote.side == "buy":
            quantity = quote.input_amount / price
        else:
            quantity = quote.input_amount
        return Fill(
            tx_id=tx_id, quantity=quantity * self.fill_ratio, price=price, complete=self.fill_ratio >= 1.0
        )

    def ping(self) -> bool:
        return self.reachable

    def get_balance(self, currency: str) -> float:
        return self.balance


class FakeMarketData:
    """In-memory market data keyed by address."""

    def __init__(self, assets: Optional[List[AssetSnapshot]] = None,
                 histories: Optional[Dict[str, List[float]]] = None):
        self.assets = {a.address: a for a in (assets or [])}
        self.histories = histories or {}
        self.trending: List[str] = [a.address for a in (assets or [])]

    def set_price(self, address: str, price: float) -> None:
        asset = self.assets[address]
        self.assets[address] = replace(asset, price=price, price_native=price)

    def get_asset_snapshot(self, address: str) -> Optional[AssetSnapshot]:
        return self.assets.get(address)

    def get_trending_assets(self, limit: int) -> List[AssetSnapshot]:
        return [self.assets[a] for a in self.trending[:limit] if a in self.assets]

    def get_price_history(self, address: str, limit: int) -> List[float]:
        return list(self.histories.get(address, []))[-limit:]

    def get_price(self, address: str) -> Optional[float]:
        asset = self.assets.get(address)
        return asset.price if asset else None


class FakeOracle(DecisionOracle):
    """Returns a canned verdict per address, or a default."""

    def __init__(self, default: str = "", verdicts: Optional[Dict[str, str]] = None):
        self.default = default
        self.verdicts = verdicts or {}
        self.calls: List[str] = []

    def evaluate(self, asset, signals, risk, context) -> str:
        self.calls.append(asset.address)
        return self.verdicts.get(asset.address, self.default)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def no_sleep():
    calls = []
    return calls.append, calls

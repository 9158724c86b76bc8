"""
tests/test_market_data.py

ccxt market data normalization and provider aggregation.
"""

from unittest.mock import MagicMock

import ccxt
import pytest

from conftest import make_asset
from trading_agent.data_fetchers.market_data_provider import CcxtMarketDataProvider, MarketDataAggregator

MARKETS = {
    "SOL/USDT": {"baseId": "SOL", "active": True, "spot": True, "precision": {"amount": 3}},
    "JUP/USDT": {"baseId": "JUP", "active": False, "spot": True},
    "BTC/USDT": {"baseId": "BTC", "active": True, "spot": True},
    "ETH/BTC": {"baseId": "ETH", "active": True, "spot": True},
}

TICKERS = {
    "SOL/USDT": {"last": 150.0, "quoteVolume": 2_000_000.0, "percentage": 3.5, "timestamp": 1000},
    "JUP/USDT": {"last": 0.8, "quoteVolume": 500_000.0},
    "BTC/USDT": {"last": 60000.0, "quoteVolume": 9_000_000.0},
    "ETH/BTC": {"last": 0.05, "quoteVolume": 100.0},
}


@pytest.fixture
def provider():
    exchange = MagicMock()
    exchange.markets = MARKETS
    exchange.fetch_tickers.return_value = TICKERS
    exchange.fetch_ticker.side_effect = lambda symbol: TICKERS[symbol]
    exchange.fetch_order_book.return_value = {
        "bids": [[149.0, 100.0], [100.0, 1000.0]],
        "asks": [[151.0, 100.0], [200.0, 1000.0]],
    }
    adapter = MagicMock()
    adapter.exchange = exchange
    adapter.exchange_id = "binance"
    adapter.load_markets.return_value = MARKETS
    adapter.has_market.side_effect = lambda symbol: symbol in MARKETS
    return CcxtMarketDataProvider(adapter, "USDT")


def test_snapshot_normalized_from_ticker(provider):
    snapshot = provider.get_asset_snapshot("sol")

    assert snapshot.address == "SOL"
    assert snapshot.price == 150.0
    assert snapshot.price_native == 150.0
    assert snapshot.volume_24h == 2_000_000.0
    assert snapshot.price_change == {"24h": 3.5}
    assert snapshot.decimals == 3
    assert snapshot.is_verified is True
    # Only levels within 2% of the 150 mid count
    assert snapshot.liquidity == pytest.approx(149.0 * 100.0 + 151.0 * 100.0)


def test_inactive_market_not_verified(provider):
    assert provider.get_asset_snapshot("JUP").is_verified is False


def test_unknown_asset_returns_none(provider):
    assert provider.get_asset_snapshot("NOPE") is None


def test_trending_sorted_by_quote_volume(provider):
    assets = provider.get_trending_assets(2)
    assert [a.address for a in assets] == ["BTC", "SOL"]


def test_price_history_uses_closes(provider):
    provider.exchange.fetch_ohlcv.return_value = [[0, 1, 2, 0.5, 1.5, 10], [1, 1.5, 2, 1, 1.8, 10]]

    assert provider.get_price_history("SOL", 2) == [1.5, 1.8]
    provider.exchange.fetch_ohlcv.assert_called_once_with("SOL/USDT", timeframe="15m", limit=2)


def test_native_price_conversion():
    exchange = MagicMock()
    exchange.markets = MARKETS
    exchange.fetch_ticker.side_effect = lambda symbol: TICKERS[symbol]
    exchange.fetch_order_book.return_value = {"bids": [], "asks": []}
    adapter = MagicMock()
    adapter.exchange = exchange
    adapter.has_market.return_value = True
    provider = CcxtMarketDataProvider(adapter, "USDT", native_currency="BTC")

    snapshot = provider.get_asset_snapshot("SOL")

    assert snapshot.price_native == pytest.approx(150.0 / 60000.0)
    assert snapshot.liquidity == 0.0


class StubProvider:
    def __init__(self, name, trending=None, snapshot=None, history=None, error=None):
        self.name = name
        self.trending = trending or []
        self.snapshot = snapshot
        self.history = history or []
        self.error = error

    def _check(self):
        if self.error is not None:
            raise self.error

    def get_asset_snapshot(self, address):
        self._check()
        return self.snapshot

    def get_trending_assets(self, limit):
        self._check()
        return self.trending[:limit]

    def get_price_history(self, address, limit):
        self._check()
        return self.history


def test_aggregator_requires_providers():
    with pytest.raises(ValueError):
        MarketDataAggregator([])


def test_aggregator_falls_back_on_error():
    failing = StubProvider("a", error=ccxt.NetworkError("down"))
    working = StubProvider("b", snapshot=make_asset("SOL", price=2.0), history=[1.0, 2.0])
    aggregator = MarketDataAggregator([failing, working])

    assert aggregator.get_asset_snapshot("SOL").price == 2.0
    assert aggregator.get_price("SOL") == 2.0
    assert aggregator.get_price_history("SOL", 10) == [1.0, 2.0]


def test_aggregator_first_success_wins():
    first = StubProvider("a", snapshot=make_asset("SOL", price=1.0))
    second = StubProvider("b", snapshot=make_asset("SOL", price=9.0))

    assert MarketDataAggregator([first, second]).get_asset_snapshot("SOL").price == 1.0


def test_aggregator_trending_merged_and_deduplicated():
    first = StubProvider("a", trending=[make_asset("SOL", price=1.0), make_asset("JUP")])
    second = StubProvider("b", trending=[make_asset("SOL", price=9.0), make_asset("BONK")])
    aggregator = MarketDataAggregator([first, second])

    assets = aggregator.get_trending_assets(3)

    assert [a.address for a in assets] == ["SOL", "JUP", "BONK"]
    assert assets[0].price == 1.0


def test_aggregator_empty_when_everything_fails():
    aggregator = MarketDataAggregator([StubProvider("a", error=ccxt.ExchangeError("bad"))])

    assert aggregator.get_asset_snapshot("SOL") is None
    assert aggregator.get_trending_assets(5) == []
    assert aggregator.get_price_history("SOL", 5) == []
    assert aggregator.get_price("SOL") is None

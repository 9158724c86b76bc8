"""Market data providers: ccxt-backed snapshots, trending lists and price history."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import ccxt

from trading_agent.errors import TradingAgentError
from trading_agent.exchange_adapters.exchange_adapter import ExchangeAdapter, market_symbol
from trading_agent.models import AssetSnapshot

logger = logging.getLogger(__name__)


class MarketDataProvider(ABC):
    """Source of normalized asset snapshots and price history."""

    @abstractmethod
    def get_asset_snapshot(self, address: str) -> Optional[AssetSnapshot]:
        """Return the current snapshot, or None if the asset is unknown."""
        pass

    @abstractmethod
    def get_trending_assets(self, limit: int) -> List[AssetSnapshot]:
        pass

    @abstractmethod
    def get_price_history(self, address: str, limit: int) -> List[float]:
        """Closing prices ordered oldest to newest."""
        pass


class CcxtMarketDataProvider(MarketDataProvider):
    """
    Market data from one ccxt exchange.

    An asset's address is its exchange currency code (e.g. "SOL"), quoted in
    `quote_currency`. Liquidity is the order book depth within
    LIQUIDITY_BAND of the mid price on both sides.
    """

    LIQUIDITY_BAND = 0.02
    ORDER_BOOK_DEPTH = 100

    def __init__(
        self,
        adapter: ExchangeAdapter,
        quote_currency: str,
        native_currency: Optional[str] = None,
        timeframe: str = "15m",
    ):
        self.adapter = adapter
        self.exchange = adapter.exchange
        self.quote_currency = quote_currency.upper()
        self.native_currency = (native_currency or quote_currency).upper()
        self.timeframe = timeframe

    @property
    def name(self) -> str:
        return self.adapter.exchange_id

    def _native_rate(self) -> float:
        """Price of one native currency unit in quote currency."""
        if self.native_currency == self.quote_currency:
            return 1.0
        ticker = self.exchange.fetch_ticker(market_symbol(self.native_currency, self.quote_currency))
        return float(ticker.get("last") or ticker.get("close") or 0.0)

    def _order_book_liquidity(self, symbol: str) -> float:
        book = self.exchange.fetch_order_book(symbol, self.ORDER_BOOK_DEPTH)
        bids = book.get("bids") or []
        asks = book.get("asks") or []
        if not bids or not asks:
            return 0.0

        mid = (float(bids[0][0]) + float(asks[0][0])) / 2.0
        low = mid * (1.0 - self.LIQUIDITY_BAND)
        high = mid * (1.0 + self.LIQUIDITY_BAND)
        depth = sum(float(p) * float(s) for p, s, *_ in bids if float(p) >= low)
        depth += sum(float(p) * float(s) for p, s, *_ in asks if float(p) <= high)
        return depth

    def _snapshot_from_ticker(self, address: str, ticker: Dict, native_rate: float) -> Optional[AssetSnapshot]:
        symbol = market_symbol(address, self.quote_currency)
        price = float(ticker.get("last") or ticker.get("close") or 0.0)
        if price <= 0:
            return None

        quote_volume = ticker.get("quoteVolume")
        if quote_volume is None:
            quote_volume = float(ticker.get("baseVolume") or 0.0) * price

        price_change = {}
        if ticker.get("percentage") is not None:
            price_change["24h"] = float(ticker["percentage"])

        market = (self.exchange.markets or {}).get(symbol, {})
        precision = (market.get("precision") or {}).get("amount")
        decimals = int(precision) if isinstance(precision, int) else 0

        return AssetSnapshot(
            address=address,
            symbol=address,
            name=market.get("baseId") or address,
            price=price,
            price_native=price / native_rate if native_rate > 0 else price,
            volume_24h=float(quote_volume),
            liquidity=self._order_book_liquidity(symbol),
            decimals=decimals,
            price_change=price_change,
            is_verified=market.get("active") is not False,
            timestamp=int(ticker.get("timestamp") or time.time() * 1000),
        )

    def get_asset_snapshot(self, address: str) -> Optional[AssetSnapshot]:
        address = address.upper()
        symbol = market_symbol(address, self.quote_currency)
        if not self.adapter.has_market(symbol):
            logger.debug(f"{self.name}: no market {symbol}")
            return None

        ticker = self.exchange.fetch_ticker(symbol)
        return self._snapshot_from_ticker(address, ticker, self._native_rate())

    def get_trending_assets(self, limit: int) -> List[AssetSnapshot]:
        markets = self.adapter.load_markets()
        tickers = self.exchange.fetch_tickers()

        suffix = f"/{self.quote_currency}"
        candidates = []
        for symbol, ticker in tickers.items():
            if not symbol.endswith(suffix):
                continue
            market = markets.get(symbol, {})
            if market.get("spot") is False:
                continue
            volume = ticker.get("quoteVolume") or 0.0
            candidates.append((float(volume), symbol[: -len(suffix)], ticker))

        candidates.sort(key=lambda item: item[0], reverse=True)

        native_rate = self._native_rate()
        snapshots = []
        for _, address, ticker in candidates[:limit]:
            snapshot = self._snapshot_from_ticker(address, ticker, native_rate)
            if snapshot is not None:
                snapshots.append(snapshot)

        logger.debug(f"{self.name}: {len(snapshots)} trending assets")
        return snapshots

    def get_price_history(self, address: str, limit: int) -> List[float]:
        symbol = market_symbol(address, self.quote_currency)
        candles = self.exchange.fetch_ohlcv(symbol, timeframe=self.timeframe, limit=limit)
        return [float(candle[4]) for candle in candles if candle and candle[4] is not None]


class MarketDataAggregator(MarketDataProvider):
    """
    Tries providers in order.

    For single-asset lookups the first provider that answers wins. Trending
    lists are merged across providers in order and deduplicated by address,
    keeping the first snapshot seen.
    """

    def __init__(self, providers: Sequence[MarketDataProvider]):
        if not providers:
            raise ValueError("MarketDataAggregator needs at least one provider")
        self.providers = list(providers)

    @staticmethod
    def _provider_name(provider) -> str:
        return getattr(provider, "name", type(provider).__name__)

    def get_asset_snapshot(self, address: str) -> Optional[AssetSnapshot]:
        for provider in self.providers:
            try:
                snapshot = provider.get_asset_snapshot(address)
            except (ccxt.BaseError, TradingAgentError) as e:
                logger.warning(f"{self._provider_name(provider)}: snapshot for {address} failed: {e}")
                continue
            if snapshot is not None:
                return snapshot
        return None

    def get_trending_assets(self, limit: int) -> List[AssetSnapshot]:
        seen = set()
        merged: List[AssetSnapshot] = []
        for provider in self.providers:
            if len(merged) >= limit:
                break
            try:
                assets = provider.get_trending_assets(limit)
            except (ccxt.BaseError, TradingAgentError) as e:
                logger.warning(f"{self._provider_name(provider)}: trending fetch failed: {e}")
                continue
            for asset in assets:
                if asset.address in seen:
                    continue
                seen.add(asset.address)
                merged.append(asset)
        return merged[:limit]

    def get_price_history(self, address: str, limit: int) -> List[float]:
        for provider in self.providers:
            try:
                prices = provider.get_price_history(address, limit)
            except (ccxt.BaseError, TradingAgentError) as e:
                logger.warning(f"{self._provider_name(provider)}: price history for {address} failed: {e}")
                continue
            if prices:
                return prices
        return []

    def get_price(self, address: str) -> Optional[float]:
        snapshot = self.get_asset_snapshot(address)
        return snapshot.price if snapshot is not None else None

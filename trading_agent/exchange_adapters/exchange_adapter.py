"""Exchange adapter for connecting to ccxt-supported exchanges."""

import logging
from typing import Optional

import ccxt

from trading_agent.errors import ConfigurationError

logger = logging.getLogger(__name__)


def market_symbol(base: str, quote: str) -> str:
    """Unified ccxt market symbol, e.g. ("SOL", "USDT") -> "SOL/USDT"."""
    return f"{base.upper()}/{quote.upper()}"


class ExchangeAdapter:
    """Handles exchange connections and configurations."""

    def __init__(
        self,
        exchange_id: str,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ):
        """
        Initialize exchange adapter.

        Args:
            exchange_id: ccxt exchange id (e.g. "binance", "kraken")
            api_key: API key, only needed for trading endpoints
            api_secret: API secret, only needed for trading endpoints
            timeout_seconds: Per-request timeout applied by ccxt
        """
        self.exchange_id = exchange_id
        self.exchange = self._init_exchange(exchange_id, api_key, api_secret, timeout_seconds)
        self._markets_loaded = False

    @staticmethod
    def _init_exchange(exchange_id: str, api_key: Optional[str], api_secret: Optional[str], timeout_seconds: float):
        """
        Initialize ccxt exchange client with proper configuration.

        Returns:
            Configured ccxt exchange instance

        Raises:
            ConfigurationError: If ccxt does not know the exchange id
        """
        exchange_class = getattr(ccxt, exchange_id, None)
        if exchange_class is None:
            raise ConfigurationError(f"Unsupported exchange type: {exchange_id}")

        options = {
            'enableRateLimit': True,
            'timeout': int(timeout_seconds * 1000),  # ccxt expects milliseconds
            'options': {
                'defaultType': 'spot',
                'adjustForTimeDifference': True,
            },
        }
        if api_key and api_secret:
            options['apiKey'] = api_key
            options['secret'] = api_secret

        exchange = exchange_class(options)
        logger.debug(f"Initialized ccxt exchange '{exchange_id}' (timeout={timeout_seconds}s)")
        return exchange

    def load_markets(self) -> dict:
        """Load market metadata once and cache it on the ccxt client."""
        if not self._markets_loaded:
            self.exchange.load_markets()
            self._markets_loaded = True
        return self.exchange.markets or {}

    def has_market(self, symbol: str) -> bool:
        return symbol in self.load_markets()

"""Simulated execution venue for paper trading."""

import logging
import threading
import uuid
from typing import Callable, Dict, Optional

from trading_agent.errors import VenueUnavailable
from trading_agent.exchange_adapters.execution_venue import ExecutionVenue
from trading_agent.models import Fill, Quote

logger = logging.getLogger(__name__)


class PaperVenue(ExecutionVenue):
    """
    Fills every order instantly at the current market price.

    Prices come from `price_lookup(asset) -> price | None`, usually the
    market data provider. A fixed simulated price impact is applied against
    the trader.
    """

    def __init__(
        self,
        price_lookup: Callable[[str], Optional[float]],
        quote_currency: str,
        starting_balance: float = 0.0,
        simulated_impact: float = 0.0,
    ):
        self.price_lookup = price_lookup
        self.quote_currency = quote_currency.upper()
        self.starting_balance = starting_balance
        self.simulated_impact = simulated_impact
        self._pending: Dict[str, Quote] = {}
        self._lock = threading.Lock()

    def quote(self, input_asset: str, output_asset: str, amount: float) -> Quote:
        input_asset = input_asset.upper()
        output_asset = output_asset.upper()
        if amount <= 0:
            raise VenueUnavailable(f"Cannot quote non-positive amount {amount}")

        if input_asset == self.quote_currency:
            side, asset = "buy", output_asset
        elif output_asset == self.quote_currency:
            side, asset = "sell", input_asset
        else:
            raise VenueUnavailable(f"No route from {input_asset} to {output_asset}")

        market_price = self.price_lookup(asset)
        if not market_price or market_price <= 0:
            raise VenueUnavailable(f"No price available for {asset}")

        if side == "buy":
            price = market_price * (1.0 + self.simulated_impact)
            output_amount = amount / price
        else:
            price = market_price * (1.0 - self.simulated_impact)
            output_amount = amount * price

        return Quote(
            input_asset=input_asset,
            output_asset=output_asset,
            input_amount=amount,
            output_amount=output_amount,
            price=price,
            price_impact=self.simulated_impact,
            market=f"{asset}/{self.quote_currency}",
            side=side,
        )

    def submit(self, quote: Quote, wallet: str) -> str:
        tx_id = f"paper-{uuid.uuid4()}"
        with self._lock:
            self._pending[tx_id] = quote
        logger.info(f"[PAPER] {quote.side} {quote.market} in={quote.input_amount:.8g} @ {quote.price:.8g} ({tx_id})")
        return tx_id

    def confirm(self, quote: Quote, tx_id: str) -> Fill:
        with self._lock:
            pending = self._pending.pop(tx_id, None)
        if pending is None:
            raise VenueUnavailable(f"Unknown paper order {tx_id}")

        quantity = pending.output_amount if pending.side == "buy" else pending.input_amount
        return Fill(tx_id=tx_id, quantity=quantity, price=pending.price)

    def ping(self) -> bool:
        return True

    def get_balance(self, currency: str) -> float:
        if currency.upper() == self.quote_currency:
            return self.starting_balance
        return 0.0

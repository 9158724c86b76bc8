"""Live execution venue backed by a ccxt exchange."""

import logging
import time
from typing import Callable, List, Sequence, Tuple

import ccxt

from trading_agent.errors import VenueUnavailable
from trading_agent.exchange_adapters.exchange_adapter import ExchangeAdapter, market_symbol
from trading_agent.exchange_adapters.execution_venue import ExecutionVenue
from trading_agent.models import Fill, Quote

logger = logging.getLogger(__name__)


def walk_book(levels: Sequence[Sequence[float]], amount: float, amount_in_quote: bool) -> Tuple[float, float]:
    """
    Consume order book levels until `amount` is filled.

    Args:
        levels: [[price, size], ...] best level first
        amount: Amount to fill, in quote units when amount_in_quote else base units
        amount_in_quote: True when spending quote currency (market buy)

    Returns:
        Tuple of (base_filled, quote_filled). Less than `amount` when the
        book is too thin.
    """
    remaining = amount
    base_filled = 0.0
    quote_filled = 0.0
    for level in levels:
        price, size = float(level[0]), float(level[1])
        if price <= 0 or size <= 0:
            continue
        if amount_in_quote:
            take_quote = min(remaining, price * size)
            base_filled += take_quote / price
            quote_filled += take_quote
            remaining -= take_quote
        else:
            take_base = min(remaining, size)
            base_filled += take_base
            quote_filled += take_base * price
            remaining -= take_base
        if remaining <= 1e-12:
            break
    return base_filled, quote_filled


class CcxtVenue(ExecutionVenue):
    """
    Spot market venue on a ccxt exchange.

    Assets are exchange currency codes. One side of every swap must be the
    quote currency: spending quote buys the asset, spending the asset sells it.
    """

    ORDER_BOOK_DEPTH = 50
    CONFIRM_POLLS = 3
    CONFIRM_POLL_DELAY = 0.5

    def __init__(
        self,
        adapter: ExchangeAdapter,
        quote_currency: str,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.adapter = adapter
        self.exchange = adapter.exchange
        self.quote_currency = quote_currency.upper()
        self._sleep = sleep

    def _call(self, description: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ccxt.NetworkError as e:
            # Includes RequestTimeout
            raise VenueUnavailable(f"{description} failed (network): {e}") from e
        except ccxt.BaseError as e:
            raise VenueUnavailable(f"{description} failed: {e}") from e

    def quote(self, input_asset: str, output_asset: str, amount: float) -> Quote:
        input_asset = input_asset.upper()
        output_asset = output_asset.upper()
        if amount <= 0:
            raise VenueUnavailable(f"Cannot quote non-positive amount {amount}")

        if input_asset == self.quote_currency:
            side, base = "buy", output_asset
        elif output_asset == self.quote_currency:
            side, base = "sell", input_asset
        else:
            raise VenueUnavailable(f"No route from {input_asset} to {output_asset}")

        symbol = market_symbol(base, self.quote_currency)
        book = self._call(f"Order book {symbol}", self.exchange.fetch_order_book, symbol, self.ORDER_BOOK_DEPTH)
        levels: List = book.get("asks" if side == "buy" else "bids") or []
        if not levels:
            raise VenueUnavailable(f"Empty order book for {symbol}")

        best_price = float(levels[0][0])
        base_filled, quote_filled = walk_book(levels, amount, amount_in_quote=(side == "buy"))
        wanted = amount
        filled = quote_filled if side == "buy" else base_filled

        if base_filled <= 0:
            raise VenueUnavailable(f"No fillable depth for {symbol}")

        avg_price = quote_filled / base_filled
        if filled + 1e-12 < wanted:
            # Not enough depth: report full impact so the slippage gate rejects it
            price_impact = 1.0
        elif side == "buy":
            price_impact = (avg_price - best_price) / best_price
        else:
            price_impact = (best_price - avg_price) / best_price

        output_amount = base_filled if side == "buy" else quote_filled
        quote = Quote(
            input_asset=input_asset,
            output_asset=output_asset,
            input_amount=amount,
            output_amount=output_amount,
            price=avg_price,
            price_impact=max(price_impact, 0.0),
            market=symbol,
            side=side,
        )
        logger.debug(
            f"Quote {side} {symbol}: in={amount:.8g} out={output_amount:.8g} "
            f"avg={avg_price:.8g} impact={quote.price_impact * 100:.3f}%"
        )
        return quote

    def submit(self, quote: Quote, wallet: str) -> str:
        base_amount = quote.output_amount if quote.side == "buy" else quote.input_amount
        amount = base_amount
        if self.exchange.markets and quote.market in self.exchange.markets:
            # Raises InvalidOrder when the amount is below the market's precision
            amount = float(self._call(
                f"Amount precision {quote.market}",
                self.exchange.amount_to_precision,
                quote.market,
                base_amount,
            ))

        logger.info(f"Submitting market {quote.side} {amount:.8g} {quote.market} (wallet={wallet})")
        order = self._call(
            f"Submit {quote.side} {quote.market}",
            self.exchange.create_order,
            quote.market,
            "market",
            quote.side,
            amount,
        )
        order_id = order.get("id") if isinstance(order, dict) else None
        if not order_id:
            raise VenueUnavailable(f"Exchange returned no order id: {order}")
        return str(order_id)

    def confirm(self, quote: Quote, tx_id: str) -> Fill:
        order = {}
        for poll in range(self.CONFIRM_POLLS):
            order = self._call(f"Fetch order {tx_id}", self.exchange.fetch_order, tx_id, quote.market)
            filled = float(order.get("filled") or 0.0)
            status = (order.get("status") or "").lower()
            if filled > 0 and status in ("closed", "canceled", "expired"):
                break
            if status == "closed":
                break
            if poll < self.CONFIRM_POLLS - 1:
                # Market orders should fill almost instantly
                self._sleep(self.CONFIRM_POLL_DELAY)

        filled = float(order.get("filled") or 0.0)
        status = (order.get("status") or "").lower()
        if filled <= 0:
            if status == "open":
                self._cancel_remainder(quote, tx_id)
            raise VenueUnavailable(f"Order {tx_id} not filled (status={order.get('status')})")

        price = order.get("average") or order.get("price")
        if not price:
            cost = float(order.get("cost") or 0.0)
            price = cost / filled if cost > 0 else quote.price

        expected = quote.output_amount if quote.side == "buy" else quote.input_amount
        if status == "closed":
            complete = True
        elif status:
            complete = False
        else:
            complete = filled >= expected * (1 - 1e-6)

        if not complete:
            logger.warning(
                f"Order {tx_id} on {quote.market} filled {filled:.8g} of {expected:.8g} (status={status or 'unknown'})"
            )
            if status == "open":
                self._cancel_remainder(quote, tx_id)

        return Fill(tx_id=tx_id, quantity=filled, price=float(price), complete=complete)

    def _cancel_remainder(self, quote: Quote, tx_id: str):
        try:
            self._call(f"Cancel order {tx_id}", self.exchange.cancel_order, tx_id, quote.market)
            logger.info(f"Cancelled unfilled remainder of order {tx_id} on {quote.market}")
        except VenueUnavailable as e:
            logger.error(f"Order {tx_id} on {quote.market} left open: {e}")

    def ping(self) -> bool:
        try:
            self._call("Ping", self.adapter.load_markets)
            return True
        except VenueUnavailable as e:
            logger.error(f"Venue check failed: {e}")
            return False

    def get_balance(self, currency: str) -> float:
        balance = self._call("Fetch balance", self.exchange.fetch_balance)
        free = balance.get("free") or {}
        return float(free.get(currency.upper()) or 0.0)

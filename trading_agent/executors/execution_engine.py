"""Order execution state machine for market, limit and DCA orders."""

import logging
import time
from dataclasses import replace
from typing import Callable, Optional, Tuple

from trading_agent.config import Config
from trading_agent.errors import ExecutionError, RetriesExhausted, SlippageExceeded, VenueUnavailable
from trading_agent.exchange_adapters.execution_venue import ExecutionVenue
from trading_agent.models import (
    EntryType,
    ExecutionResult,
    ExecutionType,
    OrderStatus,
    Quote,
    TradeAction,
    TradingDecision,
)

logger = logging.getLogger(__name__)


class ExecutionEngine:
    """
    Executes trading decisions against a venue.

    Every market order runs quote -> slippage check -> submit -> confirm, at
    most `max_retries` times. Attempts for one order are strictly sequential
    and separated by `retry_delay_seconds` through the injected sleeper.
    """

    DCA_COMPLETION_RATIO = 0.9

    def __init__(
        self,
        venue: ExecutionVenue,
        config: Config,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.venue = venue
        self.quote_currency = config.quote_currency
        self.wallet_id = config.wallet_id
        self.max_retries = config.max_retries
        self.retry_delay = config.retry_delay_seconds
        self.default_max_slippage = config.max_slippage
        self._sleep = sleep
        self._clock = clock

    def execute(self, decision: TradingDecision) -> ExecutionResult:
        """
        Execute a Buy or Sell decision.

        Args:
            decision: Decision to execute, consumed exactly once

        Returns:
            ExecutionResult for the order

        Raises:
            ExecutionError: For Hold decisions
            VenueUnavailable: If a limit order cannot be quoted
            RetriesExhausted: If every market attempt failed
        """
        if decision.action == TradeAction.HOLD:
            raise ExecutionError(f"Refusing to execute HOLD decision for {decision.asset_address}")

        entry_type = decision.execution_params.entry_type
        if entry_type == EntryType.LIMIT:
            return self.execute_limit_order(decision)
        if entry_type == EntryType.DCA:
            if decision.execution_params.dca_config is not None:
                return self.execute_dca(decision)
            logger.warning("DCA requested without a DCA config, falling back to market order")
        return self.execute_market_order(decision)

    def _route(self, decision: TradingDecision, price_hint: Optional[float] = None) -> Tuple[str, str, float]:
        """Return (input_asset, output_asset, input_amount) for a decision."""
        if decision.action == TradeAction.BUY:
            return self.quote_currency, decision.asset_address, decision.size

        quantity = decision.quantity
        if quantity is None:
            price = price_hint
            if price is None and decision.asset is not None:
                price = decision.asset.price
            if not price or price <= 0:
                raise ExecutionError(f"Cannot size sell of {decision.asset_address} without quantity or price")
            quantity = decision.size / price
        return decision.asset_address, self.quote_currency, quantity

    def _max_slippage(self, decision: TradingDecision) -> float:
        max_slippage = decision.execution_params.max_slippage
        return self.default_max_slippage if max_slippage is None else max_slippage

    def execute_market_order(self, decision: TradingDecision) -> ExecutionResult:
        start_time = self._clock()
        input_asset, output_asset, amount = self._route(decision)
        max_slippage = self._max_slippage(decision)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                quote = self.venue.quote(input_asset, output_asset, amount)
                if quote.price_impact > max_slippage:
                    raise SlippageExceeded(quote.price_impact, max_slippage)

                tx_id = self.venue.submit(quote, self.wallet_id)
                fill = self.venue.confirm(quote, tx_id)

                logger.info(
                    f"Trade executed: {decision.action.value} {decision.asset_address} "
                    f"qty={fill.quantity:.8g} @ {fill.price:.8g} tx={tx_id} (attempt {attempt})"
                )
                return ExecutionResult(
                    asset_address=decision.asset_address,
                    action=decision.action,
                    amount=fill.quantity * fill.price,
                    quantity=fill.quantity,
                    price=fill.price,
                    slippage=quote.price_impact,
                    tx_id=fill.tx_id,
                    execution_time=self._clock() - start_time,
                    execution_type=ExecutionType.MARKET,
                    order_status=OrderStatus.COMPLETED if fill.complete else OrderStatus.PARTIAL,
                )
            except (SlippageExceeded, VenueUnavailable) as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} for {decision.asset_address} failed: {e}"
                )
                if attempt < self.max_retries:
                    self._sleep(self.retry_delay)

        raise RetriesExhausted(self.max_retries, last_error)

    def execute_limit_order(self, decision: TradingDecision) -> ExecutionResult:
        """
        Compute a limit price from a single quote.

        The venue has no native limit orders, so nothing is submitted: the
        result is PARTIAL with no transaction id.
        """
        start_time = self._clock()
        input_asset, output_asset, amount = self._route(decision)
        quote: Quote = self.venue.quote(input_asset, output_asset, amount)

        max_slippage = self._max_slippage(decision)
        if decision.action == TradeAction.BUY:
            limit_price = quote.price * (1.0 + max_slippage)
        else:
            limit_price = quote.price * (1.0 - max_slippage)

        logger.info(
            f"Limit {decision.action.value} {decision.asset_address} at {limit_price:.8g} "
            f"requires a limit-capable venue, not submitted"
        )
        return ExecutionResult(
            asset_address=decision.asset_address,
            action=decision.action,
            amount=0.0,
            quantity=0.0,
            price=limit_price,
            slippage=0.0,
            tx_id=None,
            execution_time=self._clock() - start_time,
            execution_type=ExecutionType.LIMIT,
            order_status=OrderStatus.PARTIAL,
        )

    def execute_dca(self, decision: TradingDecision) -> ExecutionResult:
        """
        Split the decision into equal market tranches.

        A failed tranche is logged and skipped. The reported price is the
        average tranche fill price weighted by tranche amount.
        """
        dca_config = decision.execution_params.dca_config
        num_entries = max(1, dca_config.num_entries)
        start_time = self._clock()

        tranche = replace(
            decision,
            size=decision.size / num_entries,
            quantity=decision.quantity / num_entries if decision.quantity is not None else None,
            execution_params=replace(decision.execution_params, entry_type=EntryType.MARKET, dca_config=None),
        )

        target = decision.size
        executed_size = 0.0
        weighted_price = 0.0
        total_amount = 0.0
        total_quantity = 0.0
        max_slippage_seen = 0.0
        last_tx_id: Optional[str] = None

        for i in range(num_entries):
            try:
                result = self.execute_market_order(tranche)
                filled_size = tranche.size
                if result.order_status != OrderStatus.COMPLETED:
                    filled_size = min(tranche.size, result.amount)
                executed_size += filled_size
                weighted_price += filled_size * result.price
                total_amount += result.amount
                total_quantity += result.quantity
                max_slippage_seen = max(max_slippage_seen, result.slippage)
                last_tx_id = result.tx_id
                logger.info(f"DCA order {i + 1}/{num_entries} executed @ {result.price:.8g}")
            except ExecutionError as e:
                logger.warning(f"DCA order {i + 1}/{num_entries} failed: {e}")

            if i < num_entries - 1:
                self._sleep(dca_config.time_between_entries * 3600)

        avg_price = weighted_price / executed_size if executed_size > 0 else 0.0
        if executed_size > 0 and executed_size >= target * self.DCA_COMPLETION_RATIO:
            status = OrderStatus.COMPLETED
        elif executed_size > 0:
            status = OrderStatus.PARTIAL
        else:
            status = OrderStatus.FAILED

        return ExecutionResult(
            asset_address=decision.asset_address,
            action=decision.action,
            amount=total_amount,
            quantity=total_quantity,
            price=avg_price,
            slippage=max_slippage_seen,
            tx_id=last_tx_id,
            execution_time=self._clock() - start_time,
            execution_type=ExecutionType.DCA,
            order_status=status,
        )

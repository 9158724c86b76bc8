"""Lock-guarded portfolio store shared across the agent."""

import copy
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from trading_agent.models import (
    AssetSnapshot,
    ExecutionResult,
    PartialSell,
    PortfolioExposure,
    PortfolioPosition,
    PortfolioStats,
    TakeProfitLevel,
    TradeAction,
)
from trading_agent.storage.position_store import JsonPositionStore

logger = logging.getLogger(__name__)

# Quantities below this are treated as a closed position
DUST_QUANTITY = 1e-12


class Portfolio:
    """
    Open positions plus quote-currency cash.

    Every read and write goes through a single re-entrant lock. Readers get
    copies, so the only way to change a position is through this class.
    """

    def __init__(
        self,
        cash: float,
        store: Optional[JsonPositionStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._lock = threading.RLock()
        self._positions: Dict[str, PortfolioPosition] = {}
        self._last_prices: Dict[str, float] = {}
        self._cash = cash
        self._store = store
        self._clock = clock

    def load(self) -> int:
        """Restore positions from the store. Returns the number loaded."""
        if self._store is None:
            return 0
        positions = self._store.load_all()
        with self._lock:
            for position in positions:
                self._positions[position.address] = position
                self._last_prices[position.address] = position.asset.price
        if positions:
            logger.info(f"Restored {len(positions)} open position(s) from storage")
        return len(positions)

    @property
    def cash(self) -> float:
        with self._lock:
            return self._cash

    def set_cash(self, cash: float) -> None:
        with self._lock:
            self._cash = cash

    def get(self, address: str) -> Optional[PortfolioPosition]:
        with self._lock:
            position = self._positions.get(address)
            return copy.deepcopy(position) if position is not None else None

    def positions(self) -> List[PortfolioPosition]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._positions.values()]

    def has_position(self, address: str) -> bool:
        with self._lock:
            return address in self._positions

    def position_count(self) -> int:
        with self._lock:
            return len(self._positions)

    def update_price(self, address: str, price: float) -> None:
        if price > 0:
            with self._lock:
                self._last_prices[address] = price

    def _mark_price(self, position: PortfolioPosition) -> float:
        return self._last_prices.get(position.address, position.cost_basis)

    def exposure_for(self, address: str) -> float:
        with self._lock:
            position = self._positions.get(address)
            if position is None:
                return 0.0
            return position.quantity * self._mark_price(position)

    def total_exposure(self) -> float:
        with self._lock:
            return sum(p.quantity * self._mark_price(p) for p in self._positions.values())

    def portfolio_value(self) -> float:
        with self._lock:
            return self._cash + self.total_exposure()

    def exposure(self, address: str) -> PortfolioExposure:
        with self._lock:
            return PortfolioExposure(
                asset_exposure=self.exposure_for(address),
                total_exposure=self.total_exposure(),
                portfolio_value=self.portfolio_value(),
            )

    def apply_fill(
        self,
        result: ExecutionResult,
        asset: Optional[AssetSnapshot] = None,
        stop_loss: Optional[float] = None,
        take_profit_levels: Optional[List[TakeProfitLevel]] = None,
    ) -> Optional[PortfolioPosition]:
        """
        Apply a confirmed execution to the portfolio.

        Buys open a position or add to it at a quantity-weighted cost basis.
        Sells go through record_partial_sell.

        Returns:
            The position after the fill (for sells, the position as it was
            just after the sell was recorded, even if it is now closed)
        """
        if result.quantity <= 0:
            return None

        if result.action == TradeAction.SELL:
            return self.record_partial_sell(result.asset_address, result.quantity, result.price, result.tx_id)

        with self._lock:
            position = self._positions.get(result.asset_address)
            if position is None:
                if asset is None:
                    raise ValueError(f"Cannot open position {result.asset_address} without an asset snapshot")
                position = PortfolioPosition(
                    asset=asset,
                    quantity=result.quantity,
                    cost_basis=result.price,
                    entry_timestamp=int(self._clock()),
                    stop_loss=stop_loss,
                    take_profit_levels=copy.deepcopy(take_profit_levels) if take_profit_levels else None,
                )
                self._positions[result.asset_address] = position
                logger.info(f"Opened position {asset.symbol}: qty={result.quantity:.8g} @ {result.price:.8g}")
            else:
                total_quantity = position.quantity + result.quantity
                position.cost_basis = (
                    position.quantity * position.cost_basis + result.quantity * result.price
                ) / total_quantity
                position.quantity = total_quantity
                if stop_loss is not None:
                    position.stop_loss = stop_loss
                if take_profit_levels:
                    position.take_profit_levels = copy.deepcopy(take_profit_levels)
                logger.info(
                    f"Added to position {position.asset.symbol}: qty={position.quantity:.8g} "
                    f"cost basis={position.cost_basis:.8g}"
                )

            self._cash -= result.amount
            self._last_prices[result.asset_address] = result.price
            self._persist(position)
            return copy.deepcopy(position)

    def record_partial_sell(
        self, address: str, quantity: float, price: float, tx_id: Optional[str] = None
    ) -> PortfolioPosition:
        """
        Record a sell against an open position.

        The quantity is decremented and a PartialSell appended. Cost basis is
        unchanged. The position is removed once its quantity reaches zero.

        Raises:
            KeyError: If there is no open position for the address
        """
        with self._lock:
            position = self._positions.get(address)
            if position is None:
                raise KeyError(f"Position not found: {address}")

            sold = min(quantity, position.quantity)
            position.partial_sells.append(
                PartialSell(quantity=sold, price=price, timestamp=int(self._clock()), tx_id=tx_id)
            )
            position.quantity -= sold
            self._cash += sold * price
            self._last_prices[address] = price

            snapshot = copy.deepcopy(position)
            if position.quantity <= DUST_QUANTITY:
                del self._positions[address]
                if self._store is not None:
                    try:
                        self._store.delete(address)
                    except OSError as e:
                        logger.error(f"Failed to delete stored position {address}: {e}")
                logger.info(f"Closed position {position.asset.symbol} (realized P/L {position.realized_pnl():+.6f})")
            else:
                self._persist(position)
            return snapshot

    def mark_take_profit_triggered(self, address: str, index: int) -> bool:
        """Mark one take-profit level as triggered. Returns False if already marked or missing."""
        with self._lock:
            position = self._positions.get(address)
            if position is None or not position.take_profit_levels:
                return False
            if index < 0 or index >= len(position.take_profit_levels):
                return False
            level = position.take_profit_levels[index]
            if level.triggered:
                return False
            level.triggered = True
            self._persist(position)
            return True

    def _persist(self, position: PortfolioPosition) -> None:
        if self._store is None:
            return
        try:
            self._store.upsert(position, self._mark_price(position))
        except OSError as e:
            # In-memory state stays authoritative; the next write retries
            logger.error(f"Failed to persist position {position.address}: {e}")

    def stats(self) -> PortfolioStats:
        with self._lock:
            stats = PortfolioStats(cash=self._cash, position_count=len(self._positions))
            total_value = self._cash
            for position in self._positions.values():
                price = self._mark_price(position)
                unrealized = position.unrealized_pnl(price)
                total_value += position.quantity * price
                stats.total_realized_pnl += position.realized_pnl()
                stats.total_unrealized_pnl += unrealized
                if unrealized > 0:
                    stats.profitable_positions += 1
            stats.total_value = total_value
            return stats

"""Execution venue interface."""

from abc import ABC, abstractmethod

from trading_agent.models import Fill, Quote


class ExecutionVenue(ABC):
    """
    Routing venue used by the execution engine.

    Implementations raise VenueUnavailable for network failures, timeouts and
    rejected requests. The engine treats these as retryable.
    """

    @abstractmethod
    def quote(self, input_asset: str, output_asset: str, amount: float) -> Quote:
        """
        Price a swap of `amount` units of input_asset into output_asset.

        Returns:
            Quote with the expected average price and price impact
        """
        pass

    @abstractmethod
    def submit(self, quote: Quote, wallet: str) -> str:
        """
        Submit an order for a previously obtained quote.

        Returns:
            str: Transaction / order id
        """
        pass

    @abstractmethod
    def confirm(self, quote: Quote, tx_id: str) -> Fill:
        """Wait for a submitted order to fill and return the fill."""
        pass

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the venue is reachable."""
        pass

    @abstractmethod
    def get_balance(self, currency: str) -> float:
        """Free balance of `currency` held at the venue."""
        pass

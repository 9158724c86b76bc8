"""Error taxonomy for the token trading agent."""

from typing import Optional


class TradingAgentError(Exception):
    """Base class for all agent errors."""


class ConfigurationError(TradingAgentError, ValueError):
    """Invalid or missing configuration. Fatal at startup."""


class AnalysisError(TradingAgentError):
    """Not enough data to analyze an asset. The asset is skipped for this cycle."""


class RiskViolation(TradingAgentError):
    """A proposed position was rejected by the risk gate."""


class OracleParseError(TradingAgentError):
    """The decision oracle returned a malformed verdict."""


class ExecutionError(TradingAgentError):
    """Base class for execution failures surfaced to the orchestrator."""


class SlippageExceeded(ExecutionError):
    """Quoted price impact is above the allowed maximum."""

    def __init__(self, price_impact: float, max_slippage: float):
        self.price_impact = price_impact
        self.max_slippage = max_slippage
        super().__init__(
            f"Price impact {price_impact * 100:.2f}% exceeds max slippage {max_slippage * 100:.2f}%"
        )


class VenueUnavailable(ExecutionError):
    """The execution venue could not be reached or rejected the request."""


class RetriesExhausted(ExecutionError):
    """Every attempt for an order failed."""

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"Failed to execute trade after {attempts} attempts"
        if last_error is not None:
            message += f" (last error: {last_error})"
        super().__init__(message)

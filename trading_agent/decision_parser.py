"""Decision oracle response parsing and validation."""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from trading_agent.errors import OracleParseError
from trading_agent.models import (
    DCAConfig,
    EntryType,
    ExecutionStrategy,
    OracleVerdict,
    TakeProfitLevel,
)


logger = logging.getLogger(__name__)


# Nested locations used by the long-form verdict schema
_NESTED_PATHS = {
    "momentum": ("market_analysis", "momentum_indicators", "overall_momentum"),
    "liquidity_score": ("market_analysis", "liquidity_assessment", "liquidity_score"),
    "smart_money_flow": ("market_analysis", "on_chain_metrics", "smart_money_flow"),
}


def _dig(data: Dict[str, Any], path) -> Any:
    value: Any = data
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class DecisionParser:
    """Parses raw oracle text into a validated OracleVerdict."""

    ALLOWED_MOMENTUM = {"strong_buy", "buy", "neutral", "sell", "strong_sell"}
    ALLOWED_FLOW = {"inflow", "outflow", "neutral"}

    def parse_verdict(self, raw_response: str) -> OracleVerdict:
        """
        Parse an oracle response into an OracleVerdict.

        Required fields may appear at the top level or under the long-form
        ``market_analysis`` block. Optional fields that fail validation are
        dropped with a warning.

        Args:
            raw_response: Raw string response from the oracle

        Returns:
            OracleVerdict with validated fields

        Raises:
            OracleParseError: If the response is not JSON or a required field
                is missing or invalid
        """
        if not isinstance(raw_response, str):
            raise OracleParseError(f"Oracle response is not text: {type(raw_response).__name__}")

        cleaned_response = self._strip_code_fence(raw_response)

        try:
            data = json.loads(cleaned_response)
        except json.JSONDecodeError as e:
            logger.error(f"JSON parsing failed: {e}. Raw response: {raw_response}")
            raise OracleParseError("JSON parsing error") from e

        if not isinstance(data, dict):
            logger.error(f"Parsed JSON is not a dictionary. Type: {type(data)}. Raw response: {raw_response}")
            raise OracleParseError("Invalid JSON structure")

        confidence = data.get("confidence")
        if not _is_number(confidence) or not 0.0 <= confidence <= 1.0:
            raise OracleParseError(f"Invalid confidence: {confidence!r}")

        momentum = self._field(data, "momentum")
        if not isinstance(momentum, str) or momentum.lower() not in self.ALLOWED_MOMENTUM:
            raise OracleParseError(f"Invalid momentum: {momentum!r}")

        liquidity_score = self._field(data, "liquidity_score")
        if not _is_number(liquidity_score) or not 0.0 <= liquidity_score <= 1.0:
            raise OracleParseError(f"Invalid liquidity_score: {liquidity_score!r}")

        smart_money_flow = self._field(data, "smart_money_flow")
        if not isinstance(smart_money_flow, str) or smart_money_flow.lower() not in self.ALLOWED_FLOW:
            raise OracleParseError(f"Invalid smart_money_flow: {smart_money_flow!r}")

        reasoning = data.get("reasoning", "")
        if not isinstance(reasoning, str):
            logger.warning("Reasoning field is not a string, converting")
            reasoning = str(reasoning)

        strategy_data = data.get("execution_strategy")
        execution_strategy = None
        if isinstance(strategy_data, dict):
            execution_strategy = self._parse_strategy(strategy_data)
        elif strategy_data is not None:
            logger.warning("execution_strategy is not an object, ignoring")

        return OracleVerdict(
            confidence=float(confidence),
            momentum=momentum.lower(),
            liquidity_score=float(liquidity_score),
            smart_money_flow=smart_money_flow.lower(),
            reasoning=reasoning,
            execution_strategy=execution_strategy,
            raw=raw_response,
        )

    @staticmethod
    def _strip_code_fence(raw_response: str) -> str:
        cleaned_response = raw_response.strip()
        if cleaned_response.startswith("```"):
            lines = cleaned_response.split('\n')
            if lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned_response = '\n'.join(lines).strip()
        return cleaned_response

    @staticmethod
    def _field(data: Dict[str, Any], name: str) -> Any:
        value = data.get(name)
        if value is None:
            value = _dig(data, _NESTED_PATHS[name])
        return value

    def _parse_strategy(self, data: Dict[str, Any]) -> ExecutionStrategy:
        strategy = ExecutionStrategy()

        entry_type = data.get("entry_type")
        if isinstance(entry_type, str):
            try:
                strategy.entry_type = EntryType(entry_type.strip().lower())
            except ValueError:
                logger.warning(f"Unknown entry_type '{entry_type}', ignoring")

        stop_loss_pct = data.get("stop_loss_pct")
        if _is_number(stop_loss_pct) and 0.0 < stop_loss_pct < 1.0:
            strategy.stop_loss_pct = float(stop_loss_pct)
        elif stop_loss_pct is not None:
            logger.warning(f"Invalid stop_loss_pct {stop_loss_pct!r}, ignoring")

        levels = data.get("take_profit_levels")
        if isinstance(levels, list):
            strategy.take_profit_levels, strategy.take_profit_gains = self._parse_take_profits(levels)

        dca = data.get("dca_strategy")
        if isinstance(dca, dict) and dca.get("should_dca") is True:
            strategy.dca = self._parse_dca(dca, data.get("position_size"))

        return strategy

    @staticmethod
    def _parse_take_profits(levels: List[Any]) -> Tuple[List[TakeProfitLevel], List[Tuple[float, float]]]:
        absolute: List[TakeProfitLevel] = []
        relative: List[Tuple[float, float]] = []
        for level in levels:
            if not isinstance(level, dict):
                continue
            size_pct = level.get("size_pct", level.get("size_percentage"))
            if not _is_number(size_pct) or not 0.0 < size_pct <= 1.0:
                logger.warning(f"Take-profit level without a valid size_pct, ignoring: {level}")
                continue

            price_target = level.get("price_target")
            gain_pct = level.get("gain_pct")
            if _is_number(price_target) and price_target > 0:
                absolute.append(TakeProfitLevel(price=float(price_target), size_pct=float(size_pct)))
            elif _is_number(gain_pct) and gain_pct > 0:
                relative.append((float(gain_pct), float(size_pct)))
        return absolute, relative

    @staticmethod
    def _parse_dca(dca: Dict[str, Any], position_size: Optional[Any]) -> Optional[DCAConfig]:
        num_entries = dca.get("num_entries", 3)
        interval_hours = dca.get("interval_hours", 24)
        if not _is_number(num_entries) or int(num_entries) < 1:
            logger.warning(f"Invalid DCA num_entries {num_entries!r}, ignoring DCA")
            return None
        if not _is_number(interval_hours) or interval_hours < 0:
            logger.warning(f"Invalid DCA interval_hours {interval_hours!r}, ignoring DCA")
            return None
        size_per_entry = position_size if _is_number(position_size) else 0.0
        return DCAConfig(
            num_entries=int(num_entries),
            time_between_entries=float(interval_hours),
            size_per_entry=float(size_per_entry),
        )

"""
tests/test_decision_parser.py

Verdict parsing: flat and nested schemas, code fences, rejection of
malformed responses and the optional execution strategy block.
"""

import json

import pytest

from conftest import verdict_json
from trading_agent.decision_parser import DecisionParser
from trading_agent.errors import OracleParseError
from trading_agent.models import EntryType


@pytest.fixture
def parser():
    return DecisionParser()


def test_parse_flat_verdict(parser):
    verdict = parser.parse_verdict(verdict_json(momentum="BUY"))

    assert verdict.confidence == 0.9
    assert verdict.momentum == "buy"
    assert verdict.liquidity_score == 0.9
    assert verdict.smart_money_flow == "inflow"
    assert verdict.reasoning == "Strong inflow"
    assert verdict.execution_strategy is None


def test_parse_nested_verdict(parser):
    raw = json.dumps({
        "confidence": 0.8,
        "reasoning": "nested",
        "market_analysis": {
            "momentum_indicators": {"overall_momentum": "neutral"},
            "liquidity_assessment": {"liquidity_score": 0.75},
            "on_chain_metrics": {"smart_money_flow": "outflow"},
        },
    })

    verdict = parser.parse_verdict(raw)

    assert verdict.momentum == "neutral"
    assert verdict.liquidity_score == 0.75
    assert verdict.smart_money_flow == "outflow"


def test_parse_strips_code_fence(parser):
    raw = "```json\n" + verdict_json() + "\n```"
    assert parser.parse_verdict(raw).confidence == 0.9


@pytest.mark.parametrize("raw", [
    "Oracle API error: timed out",
    "[1, 2, 3]",
    verdict_json(confidence=1.5),
    verdict_json(confidence="high"),
    verdict_json(momentum="moon"),
    verdict_json(liquidity_score=-0.1),
    verdict_json(smart_money_flow="sideways"),
    json.dumps({"confidence": 0.9}),
])
def test_malformed_verdicts_rejected(parser, raw):
    with pytest.raises(OracleParseError):
        parser.parse_verdict(raw)


def test_non_text_rejected(parser):
    with pytest.raises(OracleParseError):
        parser.parse_verdict(None)


def test_boolean_confidence_rejected(parser):
    with pytest.raises(OracleParseError):
        parser.parse_verdict(verdict_json(confidence=True))


def test_execution_strategy_parsed(parser):
    raw = verdict_json(execution_strategy={
        "entry_type": "LIMIT",
        "stop_loss_pct": 0.08,
        "take_profit_levels": [
            {"price_target": 1.5, "size_pct": 0.5},
            {"gain_pct": 0.2, "size_percentage": 1.0},
            {"gain_pct": 0.3},
        ],
    })

    strategy = parser.parse_verdict(raw).execution_strategy

    assert strategy.entry_type == EntryType.LIMIT
    assert strategy.stop_loss_pct == 0.08
    assert [(level.price, level.size_pct) for level in strategy.take_profit_levels] == [(1.5, 0.5)]
    assert strategy.take_profit_gains == [(0.2, 1.0)]
    assert strategy.dca is None


def test_invalid_optional_fields_dropped(parser):
    raw = verdict_json(execution_strategy={"entry_type": "twap", "stop_loss_pct": 2.0})

    strategy = parser.parse_verdict(raw).execution_strategy

    assert strategy.entry_type is None
    assert strategy.stop_loss_pct is None


def test_dca_strategy_defaults(parser):
    raw = verdict_json(execution_strategy={"dca_strategy": {"should_dca": True}})

    dca = parser.parse_verdict(raw).execution_strategy.dca

    assert dca.num_entries == 3
    assert dca.time_between_entries == 24.0


def test_dca_strategy_ignored_unless_requested(parser):
    raw = verdict_json(execution_strategy={"dca_strategy": {"should_dca": False, "num_entries": 5}})
    assert parser.parse_verdict(raw).execution_strategy.dca is None

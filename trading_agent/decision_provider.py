"""Decision oracle interface and implementations for the token trading agent."""

import logging
from abc import ABC, abstractmethod

from openai import OpenAI

from trading_agent.models import AssetSnapshot, MarketContext, RiskAssessment, TechnicalSignals


logger = logging.getLogger(__name__)


class DecisionOracle(ABC):
    """Abstract base class for LLM decision oracles."""

    @abstractmethod
    def evaluate(
        self,
        asset: AssetSnapshot,
        signals: TechnicalSignals,
        risk: RiskAssessment,
        context: MarketContext,
    ) -> str:
        """
        Ask the oracle for a verdict on one asset.

        Args:
            asset: Current asset snapshot
            signals: Technical signals for the asset
            risk: Risk assessment for the asset
            context: Market context for the asset

        Returns:
            str: Raw oracle response (should be JSON format)
        """
        pass


class OpenAIDecisionOracle(DecisionOracle):
    """Decision oracle backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com",
        model: str = "deepseek-chat",
        timeout: float = 15.0,
        client=None,
    ):
        """
        Initialize the oracle client.

        Args:
            api_key: API key for the LLM endpoint
            base_url: OpenAI-compatible endpoint URL
            model: Model name
            timeout: Request timeout in seconds
            client: Optional pre-built client (used in tests)
        """
        self.model = model
        self.timeout = timeout
        self.client = client or OpenAI(api_key=api_key, base_url=base_url)

    def _build_prompt(
        self,
        asset: AssetSnapshot,
        signals: TechnicalSignals,
        risk: RiskAssessment,
        context: MarketContext,
    ) -> str:
        indicators = signals.indicators
        changes = ", ".join(f"{window}={pct:+.2f}%" for window, pct in sorted(asset.price_change.items())) or "n/a"
        supports = ", ".join(f"{level:.6g}" for level in signals.support_levels[-3:]) or "none"
        resistances = ", ".join(f"{level:.6g}" for level in signals.resistance_levels[:3]) or "none"
        market_cap = f"${asset.market_cap:,.0f}" if asset.market_cap else "unknown"
        concentration = (
            f"{asset.holder_concentration * 100:.1f}%" if asset.holder_concentration is not None else "unknown"
        )

        return f"""You are evaluating a single token for a risk-managed trading agent.

ASSET: {asset.symbol} ({asset.name}), address {asset.address}
- Price: {asset.price:.8g} (native {asset.price_native:.8g})
- Price change: {changes}
- 24h volume: ${asset.volume_24h:,.0f}
- Liquidity: ${asset.liquidity:,.0f}
- Market cap: {market_cap}
- Top holder concentration: {concentration}

TECHNICALS:
- Trend: {signals.trend_direction.value} (strength {signals.trend_strength:.3f})
- RSI(14): {indicators.get('rsi_14', 50.0):.1f} ({signals.rsi_signal.value})
- MACD: {indicators.get('macd', 0.0):.6g} vs signal {indicators.get('macd_signal', 0.0):.6g} ({signals.macd_signal.value})
- Volatility score: {signals.volatility_score:.4f}
- Support: {supports}
- Resistance: {resistances}

MARKET CONTEXT:
- Market trend: {context.market_trend}
- Sector performance: {context.sector_performance:.2f}
- Liquidity score: {context.liquidity_score:.2f}
- Volume profile: {context.volume_profile}

RISK:
- Overall risk score: {risk.risk_score:.3f} (0 = safest, 1 = riskiest)
- Volatility: {risk.volatility_rating.value}, market risk: {risk.market_risk_level.value}
- Risk factors: {', '.join(risk.risk_factors) or 'none'}

Respond with ONLY a JSON object, no prose, using this schema:
{{
  "confidence": <0.0-1.0>,
  "momentum": "strong_buy" | "buy" | "neutral" | "sell" | "strong_sell",
  "liquidity_score": <0.0-1.0>,
  "smart_money_flow": "inflow" | "outflow" | "neutral",
  "reasoning": "<one or two sentences>",
  "execution_strategy": {{
    "entry_type": "market" | "limit" | "dca",
    "stop_loss_pct": <0.0-1.0>,
    "take_profit_levels": [{{"gain_pct": <fraction>, "size_pct": <0.0-1.0>}}],
    "dca_strategy": {{"should_dca": <bool>, "num_entries": <int>, "interval_hours": <number>}}
  }}
}}"""

    def evaluate(
        self,
        asset: AssetSnapshot,
        signals: TechnicalSignals,
        risk: RiskAssessment,
        context: MarketContext,
    ) -> str:
        """
        Get a verdict from the LLM.

        API failures are returned as an error string, which the verdict
        parser rejects and the synthesizer turns into a Hold.
        """
        try:
            prompt = self._build_prompt(asset, signals, risk, context)

            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                timeout=self.timeout,
            )

            raw_response = response.choices[0].message.content
            return raw_response or ""

        except Exception as e:
            # Return error message that will be handled by parser
            error_msg = f"Oracle API error: {str(e)}"
            logger.warning(f"{asset.symbol}: {error_msg}")
            return error_msg

"""Technical analysis over a single price series."""

import logging
from typing import List, Sequence, Tuple

import pandas as pd

from trading_agent.errors import AnalysisError
from trading_agent.models import MACDSignal, RSISignal, TechnicalSignals, TrendDirection

logger = logging.getLogger(__name__)


class TechnicalAnalyzer:
    """
    Computes RSI, MACD, EMA trend, support/resistance and volatility.

    Every call works on a fresh pandas Series built from the prices passed in,
    so no indicator state leaks from one asset to the next.
    """

    RSI_PERIOD = 14
    FAST_EMA = 12
    SLOW_EMA = 26
    SIGNAL_EMA = 9
    SR_WINDOW = 20
    SR_OFFSET = 0.02
    MACD_THRESHOLD = 0.0002

    def analyze(self, prices: Sequence[float]) -> TechnicalSignals:
        """
        Analyze an ordered price sequence.

        Args:
            prices: Prices ordered oldest to newest

        Returns:
            TechnicalSignals for the latest point of the series

        Raises:
            AnalysisError: If the sequence is empty
        """
        if not prices:
            raise AnalysisError("Cannot analyze an empty price series")

        close = pd.Series([float(p) for p in prices], dtype="float64")
        if close.isna().any():
            raise AnalysisError("Price series contains missing values")

        rsi = self.calculate_rsi(close)
        macd_value, macd_signal = self.calculate_macd(close)
        ema_fast, ema_slow = self._last_emas(close)
        direction, strength = self.classify_trend(ema_fast, ema_slow)
        support, resistance = self.find_support_resistance(close.tolist())
        volatility = self.calculate_volatility(close)

        indicators = {
            "rsi_14": rsi,
            "macd": macd_value,
            "macd_signal": macd_signal,
            "ema_12": ema_fast,
            "ema_26": ema_slow,
            "sma_50": self._sma(close, 50),
            "sma_200": self._sma(close, 200),
        }

        return TechnicalSignals(
            trend_direction=direction,
            trend_strength=strength,
            support_levels=support,
            resistance_levels=resistance,
            rsi_signal=self.interpret_rsi(rsi),
            macd_signal=self.interpret_macd(macd_value, macd_signal),
            volatility_score=volatility,
            indicators=indicators,
        )

    def calculate_rsi(self, close: pd.Series) -> float:
        """RSI(14) from exponentially smoothed gains and losses."""
        if len(close) < 2:
            return 50.0

        delta = close.diff().fillna(0.0)
        gain = delta.clip(lower=0.0).ewm(span=self.RSI_PERIOD, adjust=False).mean().iloc[-1]
        loss = (-delta.clip(upper=0.0)).ewm(span=self.RSI_PERIOD, adjust=False).mean().iloc[-1]

        if loss == 0:
            return 100.0 if gain > 0 else 50.0
        rs = gain / loss
        return float(100.0 - (100.0 / (1.0 + rs)))

    def calculate_macd(self, close: pd.Series) -> Tuple[float, float]:
        """MACD(12, 26, 9). Returns (macd, signal) at the last point."""
        ema_fast = close.ewm(span=self.FAST_EMA, adjust=False).mean()
        ema_slow = close.ewm(span=self.SLOW_EMA, adjust=False).mean()
        macd = ema_fast - ema_slow
        signal = macd.ewm(span=self.SIGNAL_EMA, adjust=False).mean()
        return float(macd.iloc[-1]), float(signal.iloc[-1])

    def _last_emas(self, close: pd.Series) -> Tuple[float, float]:
        ema_fast = close.ewm(span=self.FAST_EMA, adjust=False).mean().iloc[-1]
        ema_slow = close.ewm(span=self.SLOW_EMA, adjust=False).mean().iloc[-1]
        return float(ema_fast), float(ema_slow)

    @staticmethod
    def classify_trend(ema_fast: float, ema_slow: float) -> Tuple[TrendDirection, float]:
        """Classify (fast - slow) / slow at +/-2% and +/-5%."""
        if ema_slow == 0:
            return TrendDirection.SIDEWAYS, 0.0

        diff_pct = (ema_fast - ema_slow) / ema_slow
        if diff_pct > 0.05:
            direction = TrendDirection.STRONG_UP
        elif diff_pct > 0.02:
            direction = TrendDirection.UP
        elif diff_pct < -0.05:
            direction = TrendDirection.STRONG_DOWN
        elif diff_pct < -0.02:
            direction = TrendDirection.DOWN
        else:
            direction = TrendDirection.SIDEWAYS

        return direction, min(abs(diff_pct), 1.0)

    def find_support_resistance(self, prices: List[float]) -> Tuple[List[float], List[float]]:
        """
        Detect local extrema over a window of 20 samples on each side.

        A sample is support when it is strictly below every sample in both
        windows and resistance when strictly above. Levels are pushed 2%
        outward from the raw extremum.

        Returns:
            Tuple of (support_levels, resistance_levels), both ascending
        """
        window = self.SR_WINDOW
        support: List[float] = []
        resistance: List[float] = []

        # Needs 2 * window + 1 samples for a single candidate
        for i in range(window, len(prices) - window):
            current = prices[i]
            left = prices[i - window:i]
            right = prices[i + 1:i + 1 + window]

            if current < min(left) and current < min(right):
                level = current * (1.0 - self.SR_OFFSET)
                if level not in support:
                    support.append(level)

            if current > max(left) and current > max(right):
                level = current * (1.0 + self.SR_OFFSET)
                if level not in resistance:
                    resistance.append(level)

        support.sort()
        resistance.sort()
        return support, resistance

    @staticmethod
    def calculate_volatility(close: pd.Series) -> float:
        """Population standard deviation of simple returns, clamped to [0, 1]."""
        if len(close) < 2:
            return 0.0

        returns = close.pct_change(fill_method=None).iloc[1:]
        returns = returns.replace([float("inf"), float("-inf")], float("nan")).dropna()
        if returns.empty:
            return 0.0

        volatility = float(returns.std(ddof=0))
        if pd.isna(volatility):
            return 0.0
        return min(max(volatility, 0.0), 1.0)

    @staticmethod
    def _sma(close: pd.Series, period: int) -> float:
        if len(close) < period:
            return float(close.iloc[-1])
        return float(close.tail(period).mean())

    @staticmethod
    def interpret_rsi(rsi: float) -> RSISignal:
        if rsi >= 70.0:
            return RSISignal.OVERBOUGHT
        if rsi <= 30.0:
            return RSISignal.OVERSOLD
        if rsi > 60.0:
            return RSISignal.BULLISH
        if rsi < 40.0:
            return RSISignal.BEARISH
        return RSISignal.NEUTRAL

    def interpret_macd(self, value: float, signal: float) -> MACDSignal:
        diff = value - signal
        threshold = self.MACD_THRESHOLD

        if diff > threshold * 2.0:
            return MACDSignal.STRONG_BUY
        if diff > threshold:
            return MACDSignal.BUY
        if diff < -threshold * 2.0:
            return MACDSignal.STRONG_SELL
        if diff < -threshold:
            return MACDSignal.SELL
        return MACDSignal.NEUTRAL

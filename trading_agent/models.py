"""Data models for the token trading agent."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class TrendDirection(str, Enum):
    STRONG_UP = "strong_up"
    UP = "up"
    SIDEWAYS = "sideways"
    DOWN = "down"
    STRONG_DOWN = "strong_down"


class RSISignal(str, Enum):
    OVERBOUGHT = "overbought"
    BULLISH = "bullish"
    NEUTRAL = "neutral"
    BEARISH = "bearish"
    OVERSOLD = "oversold"


class MACDSignal(str, Enum):
    STRONG_BUY = "strong_buy"
    BUY = "buy"
    NEUTRAL = "neutral"
    SELL = "sell"
    STRONG_SELL = "strong_sell"


class VolatilityRating(str, Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class MarketRiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"


class TradeAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class EntryType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    DCA = "dca"


class ExecutionType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    DCA = "dca"


class OrderStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class AssetSnapshot:
    """Normalized market data for one asset, produced once per cycle."""

    address: str
    symbol: str
    name: str
    price: float  # Quote currency
    price_native: float  # Settlement currency
    volume_24h: float
    liquidity: float
    decimals: int = 0
    market_cap: Optional[float] = None
    price_change: Dict[str, float] = field(default_factory=dict)  # {"1h": 2.5, "24h": -4.0} in percent
    holder_count: Optional[int] = None
    holder_concentration: Optional[float] = None  # Share held by top holders, 0.0 to 1.0
    is_verified: bool = True
    social_score: Optional[float] = None
    timestamp: int = 0  # Unix milliseconds


@dataclass
class TechnicalSignals:
    """Indicator-derived signals for a price series."""

    trend_direction: TrendDirection = TrendDirection.SIDEWAYS
    trend_strength: float = 0.0
    support_levels: List[float] = field(default_factory=list)  # Ascending
    resistance_levels: List[float] = field(default_factory=list)  # Ascending
    rsi_signal: RSISignal = RSISignal.NEUTRAL
    macd_signal: MACDSignal = MACDSignal.NEUTRAL
    volatility_score: float = 0.0
    indicators: Dict[str, float] = field(default_factory=dict)  # {"rsi_14": 55.2, "ema_12": 1.02, ...}


@dataclass
class MarketContext:
    """Cycle-wide market conditions as seen from one asset."""

    market_trend: str = "sideways"  # strong_uptrend | uptrend | sideways | downtrend | strong_downtrend
    sector_performance: float = 0.5  # 0.0 to 1.0
    liquidity_score: float = 0.0  # 0.0 to 1.0
    volume_profile: str = "Normal"  # "High" | "Normal"
    sentiment_score: float = 0.0


@dataclass
class PortfolioExposure:
    """Current exposure figures handed to the risk manager."""

    asset_exposure: float
    total_exposure: float
    portfolio_value: float


@dataclass
class RiskAssessment:
    """Weighted risk score and derived position limits for one asset."""

    risk_score: float
    volatility_risk: float
    liquidity_risk: float
    market_risk: float
    concentration_risk: float
    volatility_rating: VolatilityRating
    market_risk_level: MarketRiskLevel
    max_position_size: float
    stop_loss_price: Optional[float] = None
    risk_factors: List[str] = field(default_factory=list)  # Advisory only


@dataclass
class TakeProfitLevel:
    price: float
    size_pct: float  # Fraction of the current quantity to sell, 0.0 to 1.0
    triggered: bool = False


@dataclass
class DCAConfig:
    num_entries: int
    time_between_entries: float  # Hours
    size_per_entry: float


@dataclass
class ExecutionStrategy:
    """Execution hints suggested by the decision oracle."""

    entry_type: Optional[EntryType] = None
    stop_loss_pct: Optional[float] = None
    take_profit_levels: List[TakeProfitLevel] = field(default_factory=list)
    take_profit_gains: List[Tuple[float, float]] = field(default_factory=list)  # (gain_pct, size_pct) pairs
    dca: Optional[DCAConfig] = None


@dataclass
class OracleVerdict:
    """Structured verdict parsed from the decision oracle response."""

    confidence: float
    momentum: str  # strong_buy | buy | neutral | sell | strong_sell
    liquidity_score: float
    smart_money_flow: str  # inflow | outflow | neutral
    reasoning: str = ""
    execution_strategy: Optional[ExecutionStrategy] = None
    raw: str = ""


@dataclass
class ExecutionParams:
    entry_type: EntryType = EntryType.MARKET
    stop_loss_pct: float = 0.10
    stop_loss_price: Optional[float] = None
    take_profit_levels: List[TakeProfitLevel] = field(default_factory=list)
    max_slippage: Optional[float] = None  # None uses the configured MAX_SLIPPAGE
    dca_config: Optional[DCAConfig] = None
    time_horizon: str = "immediate"


@dataclass
class TradingDecision:
    """A single decision, consumed exactly once by the execution engine."""

    asset_address: str
    action: TradeAction
    size: float  # Quote currency units
    confidence: float
    risk_score: float
    reasoning: str = ""
    technical_signals: TechnicalSignals = field(default_factory=TechnicalSignals)
    market_context: MarketContext = field(default_factory=MarketContext)
    execution_params: ExecutionParams = field(default_factory=ExecutionParams)
    quantity: Optional[float] = None  # Asset units, set for exits
    asset: Optional[AssetSnapshot] = None


@dataclass(frozen=True)
class Quote:
    """Venue quote for swapping input_amount of input_asset into output_asset."""

    input_asset: str
    output_asset: str
    input_amount: float
    output_amount: float
    price: float  # Price of the traded asset in quote currency
    price_impact: float  # Fraction, 0.01 == 1%
    market: str = ""
    side: str = ""  # "buy" | "sell"


@dataclass(frozen=True)
class Fill:
    tx_id: str
    quantity: float  # Asset units
    price: float
    complete: bool = True  # False when the order closed with only part of its amount filled


@dataclass(frozen=True)
class ExecutionResult:
    """Terminal outcome of executing one decision."""

    asset_address: str
    action: TradeAction
    amount: float  # Quote currency units executed
    quantity: float  # Asset units executed
    price: float
    slippage: float
    tx_id: Optional[str]
    execution_time: float  # Seconds
    execution_type: ExecutionType
    order_status: OrderStatus


@dataclass
class PartialSell:
    quantity: float
    price: float
    timestamp: int  # Unix seconds
    tx_id: Optional[str] = None


@dataclass
class PortfolioPosition:
    """An open holding. Mutated only through the Portfolio store."""

    asset: AssetSnapshot
    quantity: float
    cost_basis: float  # Per-unit entry price in quote currency
    entry_timestamp: int  # Unix seconds
    partial_sells: List[PartialSell] = field(default_factory=list)
    stop_loss: Optional[float] = None
    take_profit_levels: Optional[List[TakeProfitLevel]] = None

    @property
    def address(self) -> str:
        return self.asset.address

    def realized_pnl(self) -> float:
        return sum((sell.price - self.cost_basis) * sell.quantity for sell in self.partial_sells)

    def unrealized_pnl(self, current_price: float) -> float:
        return (current_price - self.cost_basis) * self.quantity


@dataclass(frozen=True)
class Trade:
    """Immutable record of a realized trade."""

    asset_address: str
    entry_price: float
    quantity: float
    entry_time: datetime
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    profit_loss: Optional[float] = None
    symbol: str = ""
    strategy_name: str = "default"
    confidence_score: float = 0.0
    execution_type: str = ExecutionType.MARKET.value


@dataclass
class AssetMetrics:
    symbol: str
    total_trades: int = 0
    profitable_trades: int = 0
    total_profit_loss: float = 0.0
    average_hold_time: float = 0.0  # Hours
    best_trade: float = 0.0
    worst_trade: float = 0.0
    win_rate: float = 0.0


@dataclass
class PerformanceMetrics:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_profit_loss: float = 0.0
    win_rate: float = 0.0
    average_return: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    current_drawdown: float = 0.0
    risk_adjusted_return: float = 0.0
    asset_performance: Dict[str, AssetMetrics] = field(default_factory=dict)


@dataclass
class StrategyAnalysis:
    strategy_name: str = ""
    total_trades: int = 0
    win_rate: float = 0.0
    total_profit: float = 0.0
    average_confidence: float = 0.0
    recommended_adjustments: List[str] = field(default_factory=list)


@dataclass
class CycleLog:
    """Complete log record for one asset evaluation in a cycle."""

    timestamp: int
    asset_address: str
    symbol: str
    market_price: float
    risk_score: float
    oracle_raw_output: str
    action: str
    size: float
    confidence: float
    reasoning: str
    executed: bool
    tx_id: Optional[str]
    fill_price: Optional[float]
    order_status: Optional[str]
    error: Optional[str]
    mode: str  # "paper" | "live"


@dataclass
class PortfolioStats:
    cash: float = 0.0
    total_value: float = 0.0  # Cash plus marked value of open positions
    total_realized_pnl: float = 0.0
    total_unrealized_pnl: float = 0.0
    position_count: int = 0
    profitable_positions: int = 0

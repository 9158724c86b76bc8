"""Configuration module for the token trading agent."""

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

from trading_agent.errors import ConfigurationError


def _get_float(name: str, default: str) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        raise ConfigurationError(f"{name} must be a valid float")


def _get_int(name: str, default: str) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        raise ConfigurationError(f"{name} must be a valid integer")


@dataclass
class Config:
    """Configuration for the trading agent loaded from environment variables."""

    # Mode
    run_mode: str  # "paper" | "live"

    # Venue
    exchange_type: str
    exchange_api_key: Optional[str]
    exchange_api_secret: Optional[str]
    market_data_exchanges: List[str]
    quote_currency: str
    native_currency: str
    wallet_id: str

    # Decision oracle
    llm_api_key: str
    llm_base_url: str
    llm_model: str
    llm_timeout_seconds: float

    # Agent behavior
    loop_interval_seconds: int
    trending_limit: int
    price_history_limit: int
    price_timeframe: str
    benchmark_asset: str
    analysis_workers: int

    # Position limits
    max_position_size: float
    min_position_size: float
    max_tokens: int
    min_confidence: float

    # Eligibility
    min_liquidity_usd: float
    min_volume_usd: float
    max_holder_concentration: float

    # Execution
    max_slippage: float
    max_retries: int
    retry_delay_seconds: float
    venue_timeout_seconds: float

    # Portfolio / performance
    starting_capital: float
    risk_free_rate: float

    # Storage / notifications
    data_dir: str
    notify_webhook_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Config":
        """
        Load configuration from environment variables with validation.

        Returns:
            Config: Validated configuration object

        Raises:
            ConfigurationError: If required fields are missing or invalid
        """
        # Load .env file if it exists
        load_dotenv()

        run_mode = os.getenv("RUN_MODE")
        exchange_type = os.getenv("EXCHANGE_TYPE", "binance").strip().lower()
        exchange_api_key = os.getenv("EXCHANGE_API_KEY")
        exchange_api_secret = os.getenv("EXCHANGE_API_SECRET")
        llm_api_key = os.getenv("LLM_API_KEY")

        required_fields = {
            "RUN_MODE": run_mode,
            "LLM_API_KEY": llm_api_key,
        }
        if run_mode == "live":
            required_fields["EXCHANGE_API_KEY"] = exchange_api_key
            required_fields["EXCHANGE_API_SECRET"] = exchange_api_secret

        missing_fields = [name for name, value in required_fields.items() if not value]
        if missing_fields:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing_fields)}")

        if run_mode not in ("paper", "live"):
            raise ConfigurationError("RUN_MODE must be either 'paper' or 'live'")

        # Market data exchanges are tried in order, first success wins
        data_exchanges_str = os.getenv("MARKET_DATA_EXCHANGES", exchange_type)
        market_data_exchanges = [s.strip().lower() for s in data_exchanges_str.split(",") if s.strip()]
        if not market_data_exchanges:
            raise ConfigurationError("MARKET_DATA_EXCHANGES must contain at least one exchange id")

        quote_currency = os.getenv("QUOTE_CURRENCY", "USDT").strip().upper()
        native_currency = os.getenv("NATIVE_CURRENCY", quote_currency).strip().upper()

        loop_interval_seconds = _get_int("LOOP_INTERVAL_SECONDS", "60")
        trending_limit = _get_int("TRENDING_LIMIT", "20")
        price_history_limit = _get_int("PRICE_HISTORY_LIMIT", "200")
        analysis_workers = _get_int("ANALYSIS_WORKERS", "4")
        max_tokens = _get_int("MAX_TOKENS", "5")
        max_retries = _get_int("MAX_RETRIES", "3")

        max_position_size = _get_float("MAX_POSITION_SIZE", "1.0")
        min_position_size = _get_float("MIN_POSITION_SIZE", "0.1")
        min_confidence = _get_float("MIN_CONFIDENCE", "0.7")
        min_liquidity_usd = _get_float("MIN_LIQUIDITY_USD", "100000")
        min_volume_usd = _get_float("MIN_VOLUME_USD", "50000")
        max_holder_concentration = _get_float("MAX_HOLDER_CONCENTRATION", "0.4")
        max_slippage = _get_float("MAX_SLIPPAGE", "0.01")
        retry_delay_seconds = _get_float("RETRY_DELAY_SECONDS", "1.0")
        venue_timeout_seconds = _get_float("VENUE_TIMEOUT_SECONDS", "10")
        llm_timeout_seconds = _get_float("LLM_TIMEOUT_SECONDS", "15")
        starting_capital = _get_float("STARTING_CAPITAL", "10.0")
        risk_free_rate = _get_float("RISK_FREE_RATE", "0.02")

        # Validate numeric ranges
        if loop_interval_seconds <= 0:
            raise ConfigurationError("LOOP_INTERVAL_SECONDS must be greater than 0")
        if trending_limit <= 0:
            raise ConfigurationError("TRENDING_LIMIT must be greater than 0")
        if price_history_limit <= 0:
            raise ConfigurationError("PRICE_HISTORY_LIMIT must be greater than 0")
        if analysis_workers <= 0:
            raise ConfigurationError("ANALYSIS_WORKERS must be greater than 0")
        if max_tokens <= 0:
            raise ConfigurationError("MAX_TOKENS must be greater than 0")
        if max_retries <= 0:
            raise ConfigurationError("MAX_RETRIES must be greater than 0")
        if min_position_size < 0:
            raise ConfigurationError("MIN_POSITION_SIZE must be non-negative")
        if max_position_size < min_position_size:
            raise ConfigurationError("MAX_POSITION_SIZE must be greater than or equal to MIN_POSITION_SIZE")
        if not 0.0 <= min_confidence <= 1.0:
            raise ConfigurationError("MIN_CONFIDENCE must be between 0.0 and 1.0")
        if not 0.0 <= max_holder_concentration <= 1.0:
            raise ConfigurationError("MAX_HOLDER_CONCENTRATION must be between 0.0 and 1.0")
        if not 0.0 < max_slippage < 1.0:
            raise ConfigurationError("MAX_SLIPPAGE must be between 0.0 and 1.0")
        if retry_delay_seconds < 0:
            raise ConfigurationError("RETRY_DELAY_SECONDS must be non-negative")
        if venue_timeout_seconds <= 0:
            raise ConfigurationError("VENUE_TIMEOUT_SECONDS must be greater than 0")
        if starting_capital <= 0:
            raise ConfigurationError("STARTING_CAPITAL must be greater than 0")

        return cls(
            run_mode=run_mode,
            exchange_type=exchange_type,
            exchange_api_key=exchange_api_key,
            exchange_api_secret=exchange_api_secret,
            market_data_exchanges=market_data_exchanges,
            quote_currency=quote_currency,
            native_currency=native_currency,
            wallet_id=os.getenv("WALLET_ID", "default"),
            llm_api_key=llm_api_key,
            llm_base_url=os.getenv("LLM_BASE_URL", "https://api.deepseek.com"),
            llm_model=os.getenv("LLM_MODEL", "deepseek-chat"),
            llm_timeout_seconds=llm_timeout_seconds,
            loop_interval_seconds=loop_interval_seconds,
            trending_limit=trending_limit,
            price_history_limit=price_history_limit,
            price_timeframe=os.getenv("PRICE_TIMEFRAME", "15m"),
            benchmark_asset=os.getenv("BENCHMARK_ASSET", "BTC").strip().upper(),
            analysis_workers=analysis_workers,
            max_position_size=max_position_size,
            min_position_size=min_position_size,
            max_tokens=max_tokens,
            min_confidence=min_confidence,
            min_liquidity_usd=min_liquidity_usd,
            min_volume_usd=min_volume_usd,
            max_holder_concentration=max_holder_concentration,
            max_slippage=max_slippage,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
            venue_timeout_seconds=venue_timeout_seconds,
            starting_capital=starting_capital,
            risk_free_rate=risk_free_rate,
            data_dir=os.getenv("DATA_DIR", "data"),
            notify_webhook_url=os.getenv("NOTIFY_WEBHOOK_URL") or None,
        )

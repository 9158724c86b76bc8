"""Loop controller for the token trading agent."""

import logging
import os

from trading_agent.config import Config
from trading_agent.controllers.cycle_controller import CycleController
from trading_agent.data_fetchers.market_data_provider import CcxtMarketDataProvider, MarketDataAggregator
from trading_agent.decision_parser import DecisionParser
from trading_agent.decision_provider import OpenAIDecisionOracle
from trading_agent.decision_synthesizer import DecisionSynthesizer
from trading_agent.exchange_adapters.ccxt_venue import CcxtVenue
from trading_agent.exchange_adapters.exchange_adapter import ExchangeAdapter
from trading_agent.exchange_adapters.execution_venue import ExecutionVenue
from trading_agent.exchange_adapters.paper_venue import PaperVenue
from trading_agent.executors.execution_engine import ExecutionEngine
from trading_agent.indicators.technical_analyzer import TechnicalAnalyzer
from trading_agent.logger import TradeJournal
from trading_agent.managers.portfolio import Portfolio
from trading_agent.managers.position_monitor import PositionMonitor
from trading_agent.performance_analyzer import PerformanceAnalyzer
from trading_agent.risk_manager import RiskManager
from trading_agent.services.notifier import LogNotifier, Notifier, WebhookNotifier
from trading_agent.services.shutdown_service import ShutdownService
from trading_agent.storage.position_store import JsonPositionStore

logger = logging.getLogger(__name__)


class LoopController:
    """Builds every component from configuration and hands them to the cycle controller."""

    def __init__(self, config: Config):
        """
        Initialize loop controller with all components.

        Args:
            config: Configuration object
        """
        self.config = config

        logger.info("Initializing loop controller components...")

        self.market_data = self._init_market_data(config)
        self.venue = self._init_venue(config)
        self.analyzer = TechnicalAnalyzer()
        self.oracle = OpenAIDecisionOracle(
            config.llm_api_key,
            base_url=config.llm_base_url,
            model=config.llm_model,
            timeout=config.llm_timeout_seconds,
        )
        self.risk_manager = RiskManager(config)
        self.synthesizer = DecisionSynthesizer(config, self.risk_manager, DecisionParser())
        self.engine = ExecutionEngine(self.venue, config)

        store = JsonPositionStore(os.path.join(config.data_dir, "positions.json"))
        self.portfolio = Portfolio(config.starting_capital, store=store)
        self.performance = PerformanceAnalyzer(config.starting_capital, config.risk_free_rate)
        self.journal = TradeJournal(
            os.path.join(config.data_dir, "trades.jsonl"),
            secrets=[config.llm_api_key, config.exchange_api_key, config.exchange_api_secret],
        )
        self.notifier = self._init_notifier(config)
        self.monitor = PositionMonitor(
            self.portfolio,
            self.market_data,
            self.engine,
            self.performance,
            self.notifier,
            max_slippage=config.max_slippage,
            journal=self.journal,
        )
        self.shutdown_service = ShutdownService()

        self.cycle_controller = CycleController(
            config,
            self.market_data,
            self.analyzer,
            self.risk_manager,
            self.oracle,
            self.synthesizer,
            self.engine,
            self.portfolio,
            self.monitor,
            self.performance,
            self.journal,
            self.notifier,
            shutdown_service=self.shutdown_service,
        )

        logger.info("Loop controller initialized successfully")

    def _init_market_data(self, config: Config) -> MarketDataAggregator:
        providers = []
        for exchange_id in config.market_data_exchanges:
            adapter = ExchangeAdapter(exchange_id, timeout_seconds=config.venue_timeout_seconds)
            providers.append(CcxtMarketDataProvider(
                adapter,
                config.quote_currency,
                native_currency=config.native_currency,
                timeframe=config.price_timeframe,
            ))
        logger.info(f"Market data sources: {', '.join(config.market_data_exchanges)}")
        return MarketDataAggregator(providers)

    def _init_venue(self, config: Config) -> ExecutionVenue:
        """
        Initialize the execution venue based on run mode.

        Paper mode fills at the aggregated market price without touching
        the exchange. Live mode trades on `config.exchange_type`.
        """
        if config.run_mode == "paper":
            logger.info("PAPER MODE: orders are simulated at market price")
            return PaperVenue(self.market_data.get_price, config.quote_currency, config.starting_capital)

        logger.warning(f"LIVE MODE: orders are sent to {config.exchange_type}")
        adapter = ExchangeAdapter(
            config.exchange_type,
            api_key=config.exchange_api_key,
            api_secret=config.exchange_api_secret,
            timeout_seconds=config.venue_timeout_seconds,
        )
        return CcxtVenue(adapter, config.quote_currency)

    @staticmethod
    def _init_notifier(config: Config) -> Notifier:
        if config.notify_webhook_url:
            return WebhookNotifier(config.notify_webhook_url)
        return LogNotifier()

    def startup(self) -> bool:
        """Delegate startup to cycle controller."""
        return self.cycle_controller.startup()

    def run(self, once: bool = False) -> None:
        """Delegate run to cycle controller."""
        self.cycle_controller.run(once=once)

    def shutdown(self) -> None:
        """Stop the loop and flush pending notifications."""
        self.cycle_controller.shutdown()
        self.notifier.close()

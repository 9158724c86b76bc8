#!/usr/bin/env python3
"""
Main entry point for the token trading agent.

This script loads configuration, initializes the loop controller,
and starts the trading agent with proper error handling.
"""

import argparse
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from trading_agent.config import Config
from trading_agent.errors import ConfigurationError
from trading_agent.loop_controller import LoopController

__version__ = "0.1.0"


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }
        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def setup_logging(verbose: bool = False, json_logs: bool = False, log_dir: str = "logs") -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set log level to DEBUG, otherwise INFO
        json_logs: If True, enable JSON structured logging
        log_dir: Directory for log files
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    Path(log_dir).mkdir(parents=True, exist_ok=True)

    if json_logs:
        formatter = JSONFormatter()
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        date_format = "%Y-%m-%d %H:%M:%S"
        formatter = logging.Formatter(log_format, date_format)

    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(str(Path(log_dir) / "agent.log"), mode="a")
    ]
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=log_level, handlers=handlers)

    # Reduce noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai._base_client").setLevel(logging.WARNING)
    logging.getLogger("ccxt").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Token Trading Agent - LLM-assisted spot trading",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                    # Run with default .env file
  python main.py --env .env.paper   # Run with custom env file
  python main.py --once --verbose   # Run a single cycle with debug logging

Environment Variables:
  See .env.example for required configuration variables.

Safety:
  Always run with RUN_MODE=paper before trading live.
        """
    )

    parser.add_argument(
        "--env",
        type=str,
        default=".env",
        help="Path to environment file (default: .env)"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Enable JSON structured logging"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Token Trading Agent v{__version__}"
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main entry point for the trading agent.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = parse_arguments(argv)

    setup_logging(verbose=args.verbose, json_logs=args.json_logs)
    logger = logging.getLogger(__name__)

    logger.info("=" * 80)
    logger.info("TOKEN TRADING AGENT")
    logger.info("=" * 80)

    # Load configuration
    try:
        logger.info(f"Loading configuration from: {args.env}")
        if args.env != ".env":
            if not Path(args.env).exists():
                logger.error(f"Environment file not found: {args.env}")
                return 1
            load_dotenv(args.env, override=True)

        config = Config.from_env()
        logger.info("[OK] Configuration loaded successfully")

    except ConfigurationError as e:
        logger.error(f"[ERROR] Configuration error: {e}")
        logger.error("Please check your .env file and ensure all required variables are set.")
        logger.error("See .env.example for reference.")
        return 1

    if config.run_mode == "live":
        logger.warning("!" * 80)
        logger.warning("!!! LIVE MODE ENABLED !!!")
        logger.warning("!!! REAL MONEY WILL BE TRADED !!!")
        logger.warning("!" * 80)
        logger.warning("Press Ctrl+C within 5 seconds to abort...")
        try:
            time.sleep(5)
        except KeyboardInterrupt:
            logger.info("\nAborted by user")
            return 0
    else:
        logger.info("=" * 80)
        logger.info("PAPER MODE - Orders are simulated")
        logger.info("=" * 80)

    try:
        logger.info("Initializing loop controller...")
        controller = LoopController(config)
        logger.info("[OK] Loop controller initialized")
    except Exception as e:
        logger.error(f"[ERROR] Failed to initialize loop controller: {e}", exc_info=True)
        return 1

    # Startup checks register signal handlers, test the venue and restore positions
    try:
        logger.info("Running startup checks...")
        if not controller.startup():
            logger.error("[ERROR] Startup checks failed")
            logger.error("Please check your API credentials and network connectivity.")
            return 1
        logger.info("[OK] All startup checks passed")
    except Exception as e:
        logger.error(f"[ERROR] Startup error: {e}", exc_info=True)
        return 1

    try:
        logger.info("Starting main trading loop...")
        logger.info("Press Ctrl+C to stop gracefully")
        logger.info("=" * 80)

        controller.run(once=args.once)

        logger.info("=" * 80)
        logger.info("Agent stopped successfully")
        logger.info("=" * 80)
        return 0

    except KeyboardInterrupt:
        logger.info("\nKeyboard interrupt received")
        return 0
    except Exception as e:
        logger.error(f"[ERROR] Fatal error in main loop: {e}", exc_info=True)
        return 1
    finally:
        controller.shutdown()


if __name__ == "__main__":
    sys.exit(main())

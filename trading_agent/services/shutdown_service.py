"""Shutdown service for graceful application termination."""

import logging
import signal
import threading

logger = logging.getLogger(__name__)


class ShutdownService:
    """Service for handling graceful shutdown operations."""

    def __init__(self, stop_event: threading.Event = None):
        """
        Initialize shutdown service.

        Args:
            stop_event: Event checked by the driver loop between cycles
        """
        self.stop_event = stop_event or threading.Event()

    @property
    def requested(self) -> bool:
        return self.stop_event.is_set()

    def shutdown(self) -> None:
        """
        Gracefully shutdown the agent.

        Sets the stop event, allowing the current cycle to complete.
        """
        logger.info("\n" + "=" * 60)
        logger.info("SHUTDOWN SIGNAL RECEIVED")
        logger.info("=" * 60)
        logger.info("Completing current cycle before shutdown...")
        self.stop_event.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds. Returns True if shutdown was requested."""
        return self.stop_event.wait(timeout)

    def register_signal_handlers(self) -> None:
        """
        Register signal handlers for graceful shutdown.

        Handles SIGINT (Ctrl+C) and SIGTERM (kill command).
        """
        def signal_handler(signum, frame):
            signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
            logger.info(f"\nReceived {signal_name}")
            self.shutdown()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        logger.info("Signal handlers registered (SIGINT, SIGTERM)")

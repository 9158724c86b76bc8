"""Fire-and-forget notification sinks for trades and alerts."""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Notification sink. publish() never raises and never blocks a trade."""

    @abstractmethod
    def publish(self, text: str) -> None:
        pass

    def close(self) -> None:
        pass


class LogNotifier(Notifier):
    """Writes notifications to the application log."""

    def publish(self, text: str) -> None:
        logger.info(f"[NOTIFY] {text}")


class WebhookNotifier(Notifier):
    """
    Posts notifications as JSON to a webhook URL.

    Messages are queued and sent from a background thread, so a slow or
    failing endpoint only costs a log line.
    """

    _STOP = object()

    def __init__(self, url: str, timeout: float = 5.0, max_queue: int = 100):
        """
        Initialize webhook notifier.

        Args:
            url: Webhook URL accepting {"text": ...} JSON bodies
            timeout: Request timeout in seconds
            max_queue: Messages beyond this backlog are dropped
        """
        self.url = url
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self._queue: "queue.Queue" = queue.Queue(maxsize=max_queue)
        self._worker = threading.Thread(target=self._run, name="webhook-notifier", daemon=True)
        self._worker.start()

    def publish(self, text: str) -> None:
        try:
            self._queue.put_nowait(text)
        except queue.Full:
            logger.warning("Notification queue full, dropping message")

    def _send(self, text: str) -> bool:
        try:
            response = self.session.post(self.url, json={"text": text}, timeout=self.timeout)
            response.raise_for_status()
            return True
        except requests.exceptions.RequestException as e:
            logger.warning(f"Failed to send notification: {e}")
            return False

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                self._send(item)
            finally:
                self._queue.task_done()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Flush pending messages and stop the worker."""
        try:
            self._queue.put(self._STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Notification queue still full at shutdown, pending messages dropped")
            return
        self._worker.join(timeout)
        self.session.close()

"""Structured JSONL journal for agent cycles and trades."""

import json
import os
import threading
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from trading_agent.models import CycleLog, Trade


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class TradeJournal:
    """Handles structured logging of cycles and trades to JSONL format."""

    # Keys whose values are never written
    SENSITIVE_KEYS = ('api_key', 'api_secret', 'secret', 'password', 'auth', 'credential')

    def __init__(self, log_file: str, secrets: Optional[Iterable[str]] = None):
        """
        Initialize journal with output file path.

        Args:
            log_file: Path to JSONL file (will be created if doesn't exist)
            secrets: Secret values (API keys etc.) to redact wherever they appear
        """
        self.log_file = log_file
        self._secrets = [s for s in (secrets or []) if s]
        self._lock = threading.Lock()

        # Create logs directory if it doesn't exist
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

    def log_cycle(self, cycle_log: CycleLog) -> None:
        """Append one asset evaluation record."""
        record = {"type": "cycle"}
        record.update(asdict(cycle_log))
        self._write(record)

    def log_trade(self, trade: Trade) -> None:
        """Append one realized trade record."""
        record = {"type": "trade"}
        record.update(asdict(trade))
        self._write(record)

    def _write(self, record: dict) -> None:
        """
        Append a record as one JSON line.

        Ensures API keys and secrets are never logged.
        Flushes after each write for durability.
        """
        record = self._sanitize_log(record)
        line = json.dumps(record, default=_json_default)

        with self._lock:
            with open(self.log_file, 'a') as f:
                f.write(line)
                f.write('\n')
                f.flush()  # Ensure data is written to disk immediately

    def _sanitize_log(self, log_dict: dict) -> dict:
        """
        Remove or redact any sensitive information from a record.

        Args:
            log_dict: Record to sanitize

        Returns:
            Sanitized copy of the record
        """
        sanitized = {}
        for key, value in log_dict.items():
            if any(pattern in key.lower() for pattern in self.SENSITIVE_KEYS):
                sanitized[key] = "[REDACTED]"
                continue
            if isinstance(value, str):
                for secret in self._secrets:
                    if secret in value:
                        value = value.replace(secret, "[REDACTED]")
            sanitized[key] = value
        return sanitized

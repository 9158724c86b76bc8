"""JSON file persistence for open positions."""

import json
import logging
import os
import threading
import time
from dataclasses import asdict
from typing import Dict, List, Optional

from trading_agent.models import AssetSnapshot, PartialSell, PortfolioPosition, TakeProfitLevel

logger = logging.getLogger(__name__)


def position_to_document(position: PortfolioPosition, current_price: Optional[float] = None) -> dict:
    """Serialize a position, with P/L computed at write time."""
    price = current_price if current_price is not None else position.cost_basis
    document = asdict(position)
    document.update({
        "token_address": position.address,
        "current_price": price,
        "unrealized_pnl": position.unrealized_pnl(price),
        "realized_pnl": position.realized_pnl(),
        "last_updated": int(time.time()),
    })
    return document


def position_from_document(document: dict) -> PortfolioPosition:
    asset = AssetSnapshot(**document["asset"])
    levels = document.get("take_profit_levels")
    return PortfolioPosition(
        asset=asset,
        quantity=float(document["quantity"]),
        cost_basis=float(document["cost_basis"]),
        entry_timestamp=int(document["entry_timestamp"]),
        partial_sells=[PartialSell(**sell) for sell in document.get("partial_sells", [])],
        stop_loss=document.get("stop_loss"),
        take_profit_levels=[TakeProfitLevel(**level) for level in levels] if levels is not None else None,
    )


class JsonPositionStore:
    """
    Positions keyed by asset address in a single JSON file.

    Upserts and deletes are idempotent and rewrite the file atomically.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

        directory = os.path.dirname(path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

    def _read(self) -> Dict[str, dict]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r") as f:
            content = f.read().strip()
        if not content:
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"Position file {self.path} does not contain a JSON object")
        return data

    def _write(self, documents: Dict[str, dict]) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(documents, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    def upsert(self, position: PortfolioPosition, current_price: Optional[float] = None) -> None:
        with self._lock:
            documents = self._read()
            documents[position.address] = position_to_document(position, current_price)
            self._write(documents)
        logger.debug(f"Stored position {position.address} qty={position.quantity:.8g}")

    def delete(self, address: str) -> bool:
        with self._lock:
            documents = self._read()
            if address not in documents:
                return False
            del documents[address]
            self._write(documents)
        logger.debug(f"Deleted position {address}")
        return True

    def load_all(self) -> List[PortfolioPosition]:
        with self._lock:
            documents = self._read()

        positions = []
        for address, document in documents.items():
            try:
                positions.append(position_from_document(document))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable stored position {address}: {e}")
        return positions

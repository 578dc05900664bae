"""Bounded in-memory log of dispatched orders."""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime
from typing import Deque, Optional

from services.execution.types import Order

DEFAULT_HISTORY_LIMIT = 1000


class TradingHistory:
    """Append-only order log; the oldest entries fall off past ``maxlen``."""

    def __init__(self, maxlen: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._orders: Deque[Order] = deque(maxlen=max(1, int(maxlen)))
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    def append(self, order: Order) -> None:
        with self._lock:
            self._orders.append(order)

    def page(self, limit: int = 50, offset: int = 0) -> list[Order]:
        """Newest first."""

        limit = max(0, int(limit))
        offset = max(0, int(offset))
        with self._lock:
            newest_first = list(reversed(self._orders))
        return newest_first[offset : offset + limit]

    def get(self, order_id: str) -> Optional[Order]:
        """Latest record stored for ``order_id``."""

        with self._lock:
            for order in reversed(self._orders):
                if order.order_id == order_id:
                    return order
        return None

    def executed_since(self, cutoff: datetime) -> list[Order]:
        """Latest record of each order executed at or after ``cutoff``, oldest first."""

        with self._lock:
            orders = list(self._orders)
        latest: dict[str, Order] = {}
        for order in orders:
            latest[order.order_id] = order
        return [
            order
            for order in latest.values()
            if order.executed_at is not None and order.executed_at >= cutoff
        ]

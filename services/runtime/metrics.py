"""Minimal Prometheus-style metrics container."""

from __future__ import annotations

import threading
from typing import Dict, Tuple


class Metrics:
    """Thread-safe metrics container supporting counters and gauges."""

    def __init__(self) -> None:
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._lock = threading.Lock()

    def inc(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + amount

    def set(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = value

    def counter(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def snapshot(self) -> Tuple[Dict[str, float], Dict[str, float]]:
        with self._lock:
            return dict(self._counters), dict(self._gauges)

    def render(self) -> str:
        counters, gauges = self.snapshot()
        lines = []
        for key, value in sorted(counters.items()):
            lines.append(f"# TYPE {key} counter\n{key} {value}")
        for key, value in sorted(gauges.items()):
            lines.append(f"# TYPE {key} gauge\n{key} {value}")
        return "\n".join(lines) + "\n"

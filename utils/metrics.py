"""Thread-safe counters tracking the outcome of a spreading run."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class RunCounters:
    """Accumulates per-feature outcomes reported by pipeline workers."""

    counts: Dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def update(self, key: str, n: int = 1) -> None:
        with self._lock:
            self.counts[key] = self.counts.get(key, 0) + n

    def get(self, key: str) -> int:
        with self._lock:
            return self.counts.get(key, 0)

    def to_dict(self) -> Dict[str, int]:
        with self._lock:
            return dict(self.counts)

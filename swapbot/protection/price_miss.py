from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from swapbot.config import section


class PriceMissTracker:
    """Counts failed price lookups per mint inside a sliding window."""

    def __init__(
        self,
        max_strikes: int = 3,
        window_sec: float = 120.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.max_strikes = max(1, max_strikes)
        self.window_sec = window_sec
        self._clock = clock or time.time
        self._misses: Dict[str, Deque[float]] = {}

    @classmethod
    def from_config(cls, config: dict, clock: Optional[Callable[[], float]] = None) -> "PriceMissTracker":
        miss_cfg = section(config, "price_miss")
        return cls(
            max_strikes=int(miss_cfg.get("max_strikes", 3)),
            window_sec=float(miss_cfg.get("window_sec", 120)),
            clock=clock,
        )

    def _prune(self, mint: str, now: float) -> Deque[float]:
        misses = self._misses.setdefault(mint, deque())
        while misses and misses[0] < now - self.window_sec:
            misses.popleft()
        return misses

    def record_miss(self, mint: str) -> int:
        now = self._clock()
        misses = self._prune(mint, now)
        misses.append(now)
        return len(misses)

    def record_hit(self, mint: str) -> None:
        self._misses.pop(mint, None)

    def should_force_exit(self, mint: str) -> bool:
        if mint not in self._misses:
            return False
        return len(self._prune(mint, self._clock())) >= self.max_strikes

    def strikes(self, mint: str) -> int:
        if mint not in self._misses:
            return 0
        return len(self._prune(mint, self._clock()))

    def cleanup(self) -> None:
        now = self._clock()
        for mint in list(self._misses.keys()):
            if not self._prune(mint, now):
                del self._misses[mint]


__all__ = ["PriceMissTracker"]

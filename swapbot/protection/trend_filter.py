from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from swapbot.config import section

logger = logging.getLogger(__name__)

MARKET_TRENDING = "TRENDING"
MARKET_CHOPPY = "CHOPPY"
MARKET_UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class TrendSettings:
    min_samples: int = 3
    lookback: int = 20
    trending_threshold: float = 0.6
    chop_reversal_ratio: float = 0.5
    block_on_chop: bool = True
    chop_size_multiplier: float = 0.5
    max_consecutive_chop: int = 5
    pause_sec: float = 300.0

    @classmethod
    def from_config(cls, config: dict) -> "TrendSettings":
        trend_cfg = section(config, "trend")
        return cls(
            min_samples=int(trend_cfg.get("min_samples", 3)),
            lookback=int(trend_cfg.get("lookback", 20)),
            trending_threshold=float(trend_cfg.get("trending_threshold", 0.6)),
            chop_reversal_ratio=float(trend_cfg.get("chop_reversal_ratio", 0.5)),
            block_on_chop=bool(trend_cfg.get("block_on_chop", True)),
            chop_size_multiplier=float(trend_cfg.get("chop_size_multiplier", 0.5)),
            max_consecutive_chop=int(trend_cfg.get("max_consecutive_chop", 5)),
            pause_sec=float(trend_cfg.get("pause_sec", 300)),
        )


def _deltas(prices: Sequence[float]) -> List[float]:
    return [curr - prev for prev, curr in zip(prices, prices[1:])]


def calculate_trend_strength(prices: Sequence[float]) -> float:
    """Net move over total absolute movement, in [0, 1]."""
    deltas = _deltas(prices)
    total = sum(abs(d) for d in deltas)
    if total <= 0:
        return 0.0
    return min(1.0, abs(sum(deltas)) / total)


def reversal_ratio(prices: Sequence[float]) -> float:
    moves = [d for d in _deltas(prices) if d != 0]
    if len(moves) < 2:
        return 0.0
    flips = sum(1 for prev, curr in zip(moves, moves[1:]) if (prev > 0) != (curr > 0))
    return flips / (len(moves) - 1)


class TrendFilter:
    """Classifies a price series as trending or choppy and gates new entries on it."""

    def __init__(self, settings: Optional[TrendSettings] = None, clock: Optional[Callable[[], float]] = None) -> None:
        self.settings = settings or TrendSettings()
        self._clock = clock or time.time
        self._states: Dict[str, str] = {}
        self._chop_streak: Dict[str, int] = {}
        self._paused_until: Dict[str, float] = {}

    def calculate_trend_strength(self, prices: Sequence[float]) -> float:
        return calculate_trend_strength(prices)

    def classify(self, prices: Sequence[float]) -> str:
        if len(prices) < self.settings.min_samples:
            return MARKET_UNKNOWN
        window = list(prices)[-max(self.settings.min_samples, self.settings.lookback):]
        strength = calculate_trend_strength(window)
        if strength >= self.settings.trending_threshold:
            return MARKET_TRENDING
        if reversal_ratio(window) >= self.settings.chop_reversal_ratio:
            return MARKET_CHOPPY
        return MARKET_TRENDING if strength >= 0.5 else MARKET_CHOPPY

    def analyze_market(self, mint: str, prices: Sequence[float]) -> str:
        state = self.classify(prices)
        self._states[mint] = state
        if state == MARKET_CHOPPY:
            streak = self._chop_streak.get(mint, 0) + 1
            self._chop_streak[mint] = streak
            if self.settings.block_on_chop and streak >= self.settings.max_consecutive_chop:
                self._paused_until[mint] = self._clock() + self.settings.pause_sec
                self._chop_streak[mint] = 0
                logger.info(f"Pausing entries on {mint} for {self.settings.pause_sec:.0f}s after repeated chop")
        else:
            self._chop_streak.pop(mint, None)
        return state

    def state_of(self, mint: str) -> str:
        return self._states.get(mint, MARKET_UNKNOWN)

    def is_paused(self, mint: str) -> bool:
        until = self._paused_until.get(mint)
        return until is not None and self._clock() < until

    def should_allow_trade(self, mint: str) -> bool:
        if self.is_paused(mint):
            return False
        if self.state_of(mint) == MARKET_CHOPPY:
            return not self.settings.block_on_chop
        return True

    def position_size_multiplier(self, mint: str) -> float:
        if self.state_of(mint) == MARKET_CHOPPY:
            return self.settings.chop_size_multiplier
        return 1.0

    def forget(self, mint: str) -> None:
        self._states.pop(mint, None)
        self._chop_streak.pop(mint, None)
        self._paused_until.pop(mint, None)

    def cleanup(self) -> None:
        now = self._clock()
        for mint in [m for m, until in self._paused_until.items() if until <= now]:
            del self._paused_until[mint]


__all__ = [
    "MARKET_CHOPPY",
    "MARKET_TRENDING",
    "MARKET_UNKNOWN",
    "TrendFilter",
    "TrendSettings",
    "calculate_trend_strength",
    "reversal_ratio",
]

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from swapbot.book.positions import Position
from swapbot.config import section

NO_EXIT_REASON = "No time-based exit needed"


@dataclass(frozen=True)
class ExitRecommendation:
    should_exit: bool
    reason: str

    @classmethod
    def hold(cls, reason: str = NO_EXIT_REASON) -> "ExitRecommendation":
        return cls(should_exit=False, reason=reason)


@dataclass(frozen=True)
class TimeExitSettings:
    enabled: bool = True
    min_age_sec: float = 60.0
    max_hold_unprofitable_sec: float = 1800.0
    flat_exit_sec: Optional[float] = None
    flat_window: int = 10
    flat_range_pct: float = 0.01

    @classmethod
    def from_config(cls, config: dict) -> "TimeExitSettings":
        exit_cfg = section(config, "time_exit")
        flat_exit = exit_cfg.get("flat_exit_sec")
        return cls(
            enabled=bool(exit_cfg.get("enabled", True)),
            min_age_sec=float(exit_cfg.get("min_age_sec", 60)),
            max_hold_unprofitable_sec=float(exit_cfg.get("max_hold_unprofitable_sec", 1800)),
            flat_exit_sec=float(flat_exit) if flat_exit is not None else None,
            flat_window=int(exit_cfg.get("flat_window", 10)),
            flat_range_pct=float(exit_cfg.get("flat_range_pct", 0.01)),
        )


class TimeExitPolicy:
    """Exits losing positions that have been held too long. Profitable positions are exempt."""

    def __init__(self, settings: Optional[TimeExitSettings] = None, clock: Optional[Callable[[], float]] = None) -> None:
        self.settings = settings or TimeExitSettings()
        self._clock = clock or time.time

    def analyze_time_based_exit(self, position: Position, now: Optional[float] = None) -> ExitRecommendation:
        cfg = self.settings
        if not cfg.enabled:
            return ExitRecommendation.hold()
        current = self._clock() if now is None else now
        age = position.age(current)
        if age < cfg.min_age_sec:
            return ExitRecommendation.hold()

        pnl = position.unrealized_pnl_pct
        if pnl >= 0:
            return ExitRecommendation.hold()

        if age >= cfg.max_hold_unprofitable_sec:
            return ExitRecommendation(
                should_exit=True,
                reason=f"Held {age / 60:.1f} min while unprofitable ({pnl:.2%})",
            )

        if cfg.flat_exit_sec is not None and age >= cfg.flat_exit_sec and self._is_flat(position):
            return ExitRecommendation(
                should_exit=True,
                reason=f"Flat and unprofitable for {age / 60:.1f} min ({pnl:.2%})",
            )
        return ExitRecommendation.hold()

    def _is_flat(self, position: Position) -> bool:
        window = position.prices()[-self.settings.flat_window:]
        if len(window) < self.settings.flat_window:
            return False
        low, high = min(window), max(window)
        if low <= 0:
            return False
        return (high - low) / low <= self.settings.flat_range_pct


__all__ = ["ExitRecommendation", "NO_EXIT_REASON", "TimeExitPolicy", "TimeExitSettings"]

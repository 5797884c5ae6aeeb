from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from swapbot.book.positions import Position
from swapbot.config import section
from swapbot.protection.time_exit import ExitRecommendation


@dataclass(frozen=True)
class TrailingStop:
    """Hard stop below entry plus a stop that trails the peak once armed.

    The trailing level only ever rises because it is derived from peak_price,
    which the book keeps monotone.
    """

    trail_pct: float = 0.03
    hard_stop_pct: float = 0.15

    @classmethod
    def from_config(cls, config: dict) -> "TrailingStop":
        trailing_cfg = section(config, "trailing")
        return cls(
            trail_pct=float(trailing_cfg.get("trail_pct", 0.03)),
            hard_stop_pct=float(trailing_cfg.get("hard_stop_pct", 0.15)),
        )

    def stop_level(self, position: Position) -> Optional[float]:
        if not position.trailing_stop_armed:
            return None
        return position.peak_price * (1.0 - self.trail_pct)

    def evaluate(self, position: Position) -> ExitRecommendation:
        if self.hard_stop_pct > 0 and position.unrealized_pnl_pct <= -self.hard_stop_pct:
            return ExitRecommendation(
                should_exit=True,
                reason=f"Hard stop hit ({position.unrealized_pnl_pct:.2%})",
            )
        level = self.stop_level(position)
        if level is not None and position.current_price <= level:
            return ExitRecommendation(
                should_exit=True,
                reason=f"Trailing stop hit at {position.current_price:.8g} (peak {position.peak_price:.8g})",
            )
        return ExitRecommendation.hold("Trailing stop not triggered")


__all__ = ["TrailingStop"]

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional

from swapbot.config import section
from swapbot.core.exceptions import AlreadyHeld, NotFound

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def returns_stdev(prices: List[float]) -> float:
    """Population standard deviation of simple returns between consecutive prices."""
    returns = [
        (curr - prev) / prev
        for prev, curr in zip(prices, prices[1:])
        if prev > 0
    ]
    if len(returns) < 2:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance)


@dataclass
class Position:
    mint: str
    entry_price: float
    notional_value: float
    opened_at: float
    history_size: int = 40
    current_price: float = 0.0
    peak_price: float = 0.0
    trough_price: float = 0.0
    trailing_stop_armed: bool = False
    volatility: float = 0.0
    updated_at: float = 0.0
    price_history: Deque[float] = field(init=False)

    def __post_init__(self) -> None:
        self.current_price = self.entry_price
        self.peak_price = self.entry_price
        self.trough_price = self.entry_price
        self.updated_at = self.opened_at
        self.price_history = deque([self.entry_price], maxlen=max(2, self.history_size))

    @property
    def quantity(self) -> float:
        return self.notional_value / self.entry_price

    @property
    def unrealized_pnl_pct(self) -> float:
        return self.current_price / self.entry_price - 1.0

    @property
    def unrealized_pnl(self) -> float:
        return self.quantity * self.current_price - self.notional_value

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price

    @property
    def drawdown_from_peak(self) -> float:
        if self.peak_price <= 0:
            return 0.0
        return 1.0 - self.current_price / self.peak_price

    def age(self, now: float) -> float:
        return max(0.0, now - self.opened_at)

    def prices(self) -> List[float]:
        return list(self.price_history)

    def _observe(self, price: float, now: float) -> None:
        self.current_price = price
        self.price_history.append(price)
        if price > self.peak_price:
            self.peak_price = price
        if price < self.trough_price:
            self.trough_price = price
        self.volatility = returns_stdev(list(self.price_history))
        self.updated_at = now


class PositionBook:
    """Sole owner of open positions, keyed by mint.

    Mutations are synchronous so callers on one event loop never interleave
    inside a single update.
    """

    def __init__(
        self,
        history_size: int = 40,
        trailing_activation_pct: float = 0.05,
        clock: Optional[Clock] = None,
    ) -> None:
        self.history_size = history_size
        self.trailing_activation_pct = trailing_activation_pct
        self._clock = clock or time.time
        self._positions: Dict[str, Position] = {}

    @classmethod
    def from_config(cls, config: dict, clock: Optional[Clock] = None) -> "PositionBook":
        positions_cfg = section(config, "positions")
        trailing_cfg = section(config, "trailing")
        return cls(
            history_size=int(positions_cfg.get("history_size", 40)),
            trailing_activation_pct=float(trailing_cfg.get("activation_pct", 0.05)),
            clock=clock,
        )

    def open(self, mint: str, entry_price: float, notional_value: float) -> Position:
        if mint in self._positions:
            raise AlreadyHeld(mint)
        if entry_price <= 0 or not math.isfinite(entry_price):
            raise ValueError(f"entry_price must be positive, got {entry_price}")
        if notional_value <= 0 or not math.isfinite(notional_value):
            raise ValueError(f"notional_value must be positive, got {notional_value}")
        position = Position(
            mint=mint,
            entry_price=float(entry_price),
            notional_value=float(notional_value),
            opened_at=self._clock(),
            history_size=self.history_size,
        )
        self._positions[mint] = position
        logger.info(f"Opened position {mint} @ {entry_price:.8g} notional={notional_value:.6g}")
        return position

    def update(self, mint: str, price: float) -> Position:
        position = self._positions.get(mint)
        if position is None:
            raise NotFound(mint)
        if price <= 0 or not math.isfinite(price):
            raise ValueError(f"price must be positive, got {price}")
        position._observe(float(price), self._clock())
        if not position.trailing_stop_armed and position.unrealized_pnl_pct >= self.trailing_activation_pct:
            position.trailing_stop_armed = True
            logger.info(f"Trailing stop armed for {mint} at pnl {position.unrealized_pnl_pct:.2%}")
        return position

    def remove(self, mint: str) -> Optional[Position]:
        position = self._positions.pop(mint, None)
        if position is not None:
            logger.info(f"Closed position {mint} pnl={position.unrealized_pnl_pct:.2%}")
        return position

    def get(self, mint: str) -> Optional[Position]:
        return self._positions.get(mint)

    def __contains__(self, mint: object) -> bool:
        return mint in self._positions

    def count(self) -> int:
        return len(self._positions)

    def all(self) -> List[Position]:
        return list(self._positions.values())

    def mints(self) -> List[str]:
        return list(self._positions.keys())

    def total_value(self) -> float:
        return sum(p.market_value for p in self._positions.values())

    def total_unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self._positions.values())


__all__ = ["Clock", "Position", "PositionBook", "returns_stdev"]

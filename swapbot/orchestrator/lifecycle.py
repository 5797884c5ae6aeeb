from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

from swapbot.core.exceptions import StateConflict
from swapbot.data.discovery import TokenMeta

STATE_DISCOVERED = "DISCOVERED"
STATE_HELD = "HELD"
STATE_DISPOSED = "DISPOSED"

_TRANSITIONS = {
    STATE_DISCOVERED: {STATE_HELD},
    STATE_HELD: {STATE_DISPOSED},
    STATE_DISPOSED: set(),
}


@dataclass
class TokenRecord:
    """Lifecycle and observation history for one token, owned by the orchestrator."""

    meta: TokenMeta
    registered_at: float
    history_size: int = 60
    status: str = STATE_DISCOVERED
    evaluated: bool = False
    disposed_at: Optional[float] = None
    last_exit_reason: Optional[str] = None
    last_exit_forced: bool = False
    prices: Deque[float] = field(init=False)
    last_volume: float = 0.0

    def __post_init__(self) -> None:
        self.prices = deque(
            (p for p in self.meta.price_history if p > 0),
            maxlen=max(2, self.history_size),
        )

    @property
    def mint(self) -> str:
        return self.meta.mint

    def observe(self, price: float, volume: float) -> None:
        self.prices.append(price)
        self.last_volume = volume

    def transition(self, target: str) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise StateConflict(self.mint, f"illegal transition {self.status} -> {target}")
        self.status = target


def can_reenter(record: TokenRecord, now: float, lockout_sec: float) -> bool:
    """A disposed token may be tracked again once the lockout has passed.

    Forced exits double the lockout.
    """
    if record.status != STATE_DISPOSED or record.disposed_at is None:
        return False
    lockout = lockout_sec * (2 if record.last_exit_forced else 1)
    return now >= record.disposed_at + lockout


def is_stale(record: TokenRecord, now: float, ttl_sec: float) -> bool:
    return record.status == STATE_DISCOVERED and ttl_sec > 0 and now - record.registered_at > ttl_sec


__all__ = [
    "STATE_DISCOVERED",
    "STATE_DISPOSED",
    "STATE_HELD",
    "TokenRecord",
    "can_reenter",
    "is_stale",
]

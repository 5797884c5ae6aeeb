from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple, Union

from pydantic import BaseModel, Field

from swapbot.data.discovery import TokenMeta

ACTION_BUY = "BUY"
ACTION_SELL = "SELL"
ACTION_HOLD = "HOLD"


class TradeIntent(BaseModel):
    mint: str
    action: str
    forced: bool = False
    reason_codes: List[str] = Field(default_factory=list)


def buy(mint: str, *reasons: str) -> TradeIntent:
    return TradeIntent(mint=mint, action=ACTION_BUY, reason_codes=list(reasons))


def sell(mint: str, *reasons: str, forced: bool = False) -> TradeIntent:
    return TradeIntent(mint=mint, action=ACTION_SELL, forced=forced, reason_codes=list(reasons))


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time view of one token handed to a strategy.

    ``prices`` is the bounded observation history, oldest first, ending with
    ``price``.
    """

    mint: str
    price: float
    volume: float
    prices: Tuple[float, ...] = field(default_factory=tuple)
    ts: float = 0.0


@dataclass(frozen=True)
class DiscoveredEvent:
    meta: TokenMeta
    snapshot: MarketSnapshot


@dataclass(frozen=True)
class TickEvent:
    snapshot: MarketSnapshot


StrategyEvent = Union[DiscoveredEvent, TickEvent]


class StrategyRuntime(Protocol):
    """Read-only view of engine state available to strategies."""

    def is_held(self, mint: str) -> bool:
        ...

    def held_count(self) -> int:
        ...

    def has_capacity(self) -> bool:
        ...

    def is_whitelisted(self, mint: str) -> bool:
        ...

    def now(self) -> float:
        ...


class BaseStrategy:
    name = "base"
    requires_validation = True

    async def decide(self, event: StrategyEvent, runtime: StrategyRuntime) -> Optional[TradeIntent]:
        if isinstance(event, DiscoveredEvent):
            return await self.on_discovered(event.meta, event.snapshot, runtime)
        return await self.on_tick(event.snapshot, runtime)

    async def on_discovered(
        self, meta: TokenMeta, snapshot: MarketSnapshot, runtime: StrategyRuntime
    ) -> Optional[TradeIntent]:
        return await self.on_tick(snapshot, runtime)

    async def on_tick(self, snapshot: MarketSnapshot, runtime: StrategyRuntime) -> Optional[TradeIntent]:
        return None


__all__ = [
    "ACTION_BUY",
    "ACTION_HOLD",
    "ACTION_SELL",
    "BaseStrategy",
    "DiscoveredEvent",
    "MarketSnapshot",
    "StrategyEvent",
    "StrategyRuntime",
    "TickEvent",
    "TradeIntent",
    "buy",
    "sell",
]

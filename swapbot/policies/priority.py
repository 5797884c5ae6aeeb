from __future__ import annotations

from typing import Iterable, Optional

from swapbot.config import section
from swapbot.data.discovery import SOURCE_PUMPFUN, SOURCE_WHITELIST, TokenMeta
from swapbot.policies.base import BaseStrategy, MarketSnapshot, StrategyRuntime, TradeIntent, buy


class PriorityStrategy(BaseStrategy):
    """Buys fresh listings from preferred sources or the whitelist; exits are left to the protective layers."""

    name = "priority"

    def __init__(
        self,
        preferred_sources: Iterable[str] = (SOURCE_PUMPFUN,),
        require_whitelist: bool = False,
        max_tokens: int = 10,
    ) -> None:
        self.preferred_sources = frozenset(s.lower() for s in preferred_sources)
        self.require_whitelist = require_whitelist
        self.max_tokens = max(1, max_tokens)

    @classmethod
    def from_config(cls, config: dict, **_: object) -> "PriorityStrategy":
        cfg = section(section(config, "strategy"), "priority")
        return cls(
            preferred_sources=cfg.get("preferred_sources", [SOURCE_PUMPFUN]),
            require_whitelist=bool(cfg.get("require_whitelist", False)),
            max_tokens=int(cfg.get("max_tokens", 10)),
        )

    def _eligible(self, meta: TokenMeta, runtime: StrategyRuntime) -> Optional[str]:
        whitelisted = runtime.is_whitelisted(meta.mint) or meta.source == SOURCE_WHITELIST
        if self.require_whitelist:
            return "WHITELISTED" if whitelisted else None
        if whitelisted:
            return "WHITELISTED"
        if meta.source.lower() in self.preferred_sources:
            return f"PREFERRED_SOURCE_{meta.source.upper()}"
        return None

    async def on_discovered(
        self, meta: TokenMeta, snapshot: MarketSnapshot, runtime: StrategyRuntime
    ) -> Optional[TradeIntent]:
        if runtime.is_held(meta.mint):
            return None
        if runtime.held_count() >= self.max_tokens or not runtime.has_capacity():
            return None
        reason = self._eligible(meta, runtime)
        if reason is None:
            return None
        return buy(meta.mint, reason)


__all__ = ["PriorityStrategy"]

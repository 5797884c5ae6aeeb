from __future__ import annotations

import math
from typing import List

from swapbot.config import section
from swapbot.core.exceptions import InvalidTick
from swapbot.data.discovery import TokenMeta
from swapbot.data.market_types import Tick


def validate_tick(tick: Tick, mint: str) -> Tick:
    if tick.mint and tick.mint != mint:
        raise InvalidTick(f"tick for {tick.mint} returned when asking for {mint}")
    if not math.isfinite(tick.price) or tick.price <= 0:
        raise InvalidTick(f"invalid price {tick.price} for {mint}")
    if not math.isfinite(tick.volume) or tick.volume < 0:
        raise InvalidTick(f"invalid volume {tick.volume} for {mint}")
    return tick


def validate_discovery(meta: TokenMeta, now: float, config: dict) -> List[str]:
    """Basic freshness and source checks for a newly discovered token.

    Returns REJECT_ reason codes; an empty list means the token passes.
    """
    rejected: List[str] = []
    validation_cfg = section(config, "validation")

    if not meta.mint or not meta.mint.strip():
        rejected.append("MISSING_MINT")

    max_age = float(validation_cfg.get("max_age_sec", 0.0))
    if max_age > 0 and now - meta.discovered_at > max_age:
        rejected.append("STALE_LISTING")
    if meta.discovered_at > now + 60:
        rejected.append("FUTURE_TIMESTAMP")

    allowed = validation_cfg.get("allowed_sources")
    if allowed and meta.source not in set(allowed):
        rejected.append("UNKNOWN_SOURCE")

    if any((not math.isfinite(p)) or p <= 0 for p in meta.price_history):
        rejected.append("BAD_PRICE_HISTORY")

    return [f"REJECT_{code}" for code in rejected]


__all__ = ["validate_discovery", "validate_tick"]

from __future__ import annotations

import time
from collections import deque
from typing import Deque, Iterable, List, Optional, Protocol

from pydantic import BaseModel, Field

SOURCE_PUMPFUN = "pumpfun"
SOURCE_PROFILE = "profile"
SOURCE_BOOST = "boost"
SOURCE_WHITELIST = "whitelist"
SOURCE_MANUAL = "manual"


class TokenMeta(BaseModel):
    mint: str
    source: str = SOURCE_MANUAL
    discovered_at: float = Field(default_factory=time.time)
    symbol: Optional[str] = None
    price_history: List[float] = Field(default_factory=list)


class DiscoveryFeed(Protocol):
    async def poll(self) -> List[TokenMeta]:
        ...


class StaticDiscoveryFeed:
    """In-memory feed; its tokens are handed out once on the first poll."""

    def __init__(self, tokens: Optional[Iterable[TokenMeta]] = None) -> None:
        self._pending: Deque[TokenMeta] = deque(tokens or [])

    async def poll(self) -> List[TokenMeta]:
        batch = list(self._pending)
        self._pending.clear()
        return batch


class HttpDiscoveryFeed:
    """Cursor-based poll against the venue's new-token listing."""

    def __init__(self, client, limit: int = 50) -> None:
        self.client = client
        self.limit = limit
        self.cursor = 0

    async def poll(self) -> List[TokenMeta]:
        tokens, cursor = await self.client.new_tokens(since=self.cursor, limit=self.limit)
        self.cursor = max(self.cursor, cursor)
        return tokens


__all__ = [
    "DiscoveryFeed",
    "HttpDiscoveryFeed",
    "SOURCE_BOOST",
    "SOURCE_MANUAL",
    "SOURCE_PROFILE",
    "SOURCE_PUMPFUN",
    "SOURCE_WHITELIST",
    "StaticDiscoveryFeed",
    "TokenMeta",
]

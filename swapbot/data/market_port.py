from __future__ import annotations

from typing import Dict, Protocol

from swapbot.data.market_types import SwapQuote, Tick


class QuoteSource(Protocol):
    async def quote(self, input_mint: str, output_mint: str, amount: float) -> SwapQuote:
        ...


class MarketDataPort(QuoteSource, Protocol):
    async def balance(self, address: str) -> float:
        ...

    async def holdings(self, address: str) -> Dict[str, float]:
        ...

    async def tick(self, mint: str) -> Tick:
        ...


class SwapBuilder(Protocol):
    async def build_swap_tx(self, quote: SwapQuote, user_pubkey: str) -> str:
        ...


__all__ = ["MarketDataPort", "QuoteSource", "SwapBuilder"]

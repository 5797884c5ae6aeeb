from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Tick(BaseModel):
    mint: str
    price: float
    volume: float = 0.0
    ts: Optional[float] = None


class TokenHolding(BaseModel):
    mint: str
    amount: float
    decimals: Optional[int] = None


class SwapQuote(BaseModel):
    input_mint: str
    output_mint: str
    in_amount: float
    out_amount: float
    price_impact_pct: float = 0.0
    slippage_bps: int = 0
    quote_id: Optional[str] = None
    expires_at: Optional[float] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    def fill_price(self, buying: bool) -> float:
        """Token price in quote units; the token is the output side when buying."""
        token_amount, quote_amount = (self.out_amount, self.in_amount) if buying else (self.in_amount, self.out_amount)
        return quote_amount / token_amount if token_amount > 0 else 0.0


__all__ = ["SwapQuote", "Tick", "TokenHolding"]

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JupiterQuoteResponse(BaseModel):
    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: str = Field(alias="inAmount")
    out_amount: str = Field(alias="outAmount")
    other_amount_threshold: str = Field(alias="otherAmountThreshold")
    swap_mode: str = Field(default="ExactIn", alias="swapMode")
    slippage_bps: int = Field(alias="slippageBps")
    price_impact_pct: str = Field(default="0", alias="priceImpactPct")
    route_plan: List[Dict[str, Any]] = Field(default_factory=list, alias="routePlan")
    context_slot: Optional[int] = Field(default=None, alias="contextSlot")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def amounts(self) -> tuple[int, int]:
        return int(self.in_amount), int(self.out_amount)

    def impact_percent(self) -> float:
        # Jupiter reports impact as a fraction string, e.g. "0.0012".
        return float(self.price_impact_pct) * 100.0


class JupiterSwapResponse(BaseModel):
    swap_transaction: str = Field(alias="swapTransaction")
    last_valid_block_height: Optional[int] = Field(default=None, alias="lastValidBlockHeight")
    prioritization_fee_lamports: Optional[int] = Field(default=None, alias="prioritizationFeeLamports")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


__all__ = ["JupiterQuoteResponse", "JupiterSwapResponse"]

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from pydantic import BaseModel

from swapbot.book.positions import Position
from swapbot.config import section
from swapbot.core.exceptions import ProviderOffline, QuoteExpired, SignerError, UpstreamError
from swapbot.data.market_port import MarketDataPort, QuoteSource, SwapBuilder
from swapbot.execution.signer import Signer
from swapbot.policies.base import ACTION_BUY, ACTION_SELL, TradeIntent

logger = logging.getLogger(__name__)


class SwapResult(BaseModel):
    mint: str
    action: str
    success: bool
    forced: bool = False
    executed_price: Optional[float] = None
    in_amount: Optional[float] = None
    out_amount: Optional[float] = None
    signature: Optional[str] = None
    failure_reason: Optional[str] = None
    attempts: int = 0


@dataclass(frozen=True)
class ExecutionSettings:
    quote_mint: str = "So11111111111111111111111111111111111111112"
    buy_amount: float = 0.1
    max_attempts: int = 3
    max_price_impact_pct: float = 10.0

    @classmethod
    def from_config(cls, config: dict) -> "ExecutionSettings":
        exec_cfg = section(config, "execution")
        return cls(
            quote_mint=str(exec_cfg.get("quote_mint", cls.quote_mint)),
            buy_amount=float(exec_cfg.get("buy_amount", 0.1)),
            max_attempts=max(1, int(exec_cfg.get("max_attempts", 3))),
            max_price_impact_pct=float(exec_cfg.get("max_price_impact_pct", 10.0)),
        )


class ExecutionGateway:
    """Turns a trade intent into a quoted, built, signed and submitted swap.

    A stale quote is retried with a fresh one up to ``max_attempts``. Any other
    failure ends the attempt and is reported on the SwapResult.
    """

    def __init__(
        self,
        quotes: QuoteSource,
        builder: SwapBuilder,
        signer: Signer,
        wallet_address: str,
        settings: Optional[ExecutionSettings] = None,
        market: Optional[MarketDataPort] = None,
    ) -> None:
        self.quotes = quotes
        self.builder = builder
        self.signer = signer
        self.wallet_address = wallet_address
        self.settings = settings or ExecutionSettings()
        self.market = market

    def _failed(self, intent: TradeIntent, reason: str, attempts: int) -> SwapResult:
        logger.warning(f"{intent.action} {intent.mint} failed after {attempts} attempt(s): {reason}")
        return SwapResult(
            mint=intent.mint,
            action=intent.action,
            success=False,
            forced=intent.forced,
            failure_reason=reason,
            attempts=attempts,
        )

    async def _sell_amount(self, mint: str, position: Optional[Position]) -> float:
        if self.market is not None:
            try:
                held = (await self.market.holdings(self.wallet_address)).get(mint, 0.0)
            except (UpstreamError, httpx.HTTPError) as exc:
                logger.warning(f"Holdings lookup failed for {mint}, falling back to book quantity: {exc}")
                held = 0.0
            if held > 0:
                return held
        if position is not None:
            return position.quantity
        return 0.0

    async def execute(
        self,
        intent: TradeIntent,
        position: Optional[Position] = None,
        size_multiplier: float = 1.0,
    ) -> SwapResult:
        cfg = self.settings
        if intent.action == ACTION_BUY:
            input_mint, output_mint = cfg.quote_mint, intent.mint
            amount = cfg.buy_amount * size_multiplier
        elif intent.action == ACTION_SELL:
            input_mint, output_mint = intent.mint, cfg.quote_mint
            amount = await self._sell_amount(intent.mint, position)
        else:
            return self._failed(intent, f"unsupported action {intent.action}", 0)
        if amount <= 0:
            return self._failed(intent, "nothing to swap", 0)

        last_error = ""
        for attempt in range(1, cfg.max_attempts + 1):
            try:
                quote = await self.quotes.quote(input_mint, output_mint, amount)
                if quote.price_impact_pct > cfg.max_price_impact_pct:
                    return self._failed(
                        intent, f"price impact {quote.price_impact_pct:.2f}% above limit", attempt
                    )
                unsigned_tx = await self.builder.build_swap_tx(quote, self.wallet_address)
                signature = await self.signer.sign_and_submit(unsigned_tx)
            except QuoteExpired as exc:
                last_error = f"quote expired: {exc}"
                logger.info(f"Quote expired for {intent.action} {intent.mint} (attempt {attempt}); requoting")
                continue
            except (SignerError, UpstreamError, ProviderOffline, httpx.HTTPError) as exc:
                return self._failed(intent, f"{type(exc).__name__}: {exc}", attempt)

            executed_price = quote.fill_price(buying=intent.action == ACTION_BUY)
            logger.info(
                f"{intent.action} {intent.mint} filled @ {executed_price:.8g} "
                f"in={quote.in_amount:.6g} out={quote.out_amount:.6g} sig={signature}"
            )
            return SwapResult(
                mint=intent.mint,
                action=intent.action,
                success=True,
                forced=intent.forced,
                executed_price=executed_price,
                in_amount=quote.in_amount,
                out_amount=quote.out_amount,
                signature=signature,
                attempts=attempt,
            )

        return self._failed(intent, last_error or "quote expired", cfg.max_attempts)


__all__ = ["ExecutionGateway", "ExecutionSettings", "SwapResult"]

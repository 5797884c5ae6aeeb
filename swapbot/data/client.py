from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from swapbot.config import get_config
from swapbot.core.exceptions import InvalidTick, UpstreamBadResponse
from swapbot.core.http_client import ResilientHttpClient
from swapbot.core.request_spec import RequestSpec
from swapbot.data.discovery import TokenMeta
from swapbot.data.market_types import SwapQuote, Tick


@dataclass(frozen=True)
class MarketApiSettings:
    base_url: str
    api_key: str
    slippage_bps: int

    @classmethod
    def from_env(cls, config: Optional[dict] = None) -> "MarketApiSettings":
        cfg = config if config is not None else get_config()
        default_base = cfg.get("market_api_base", "http://127.0.0.1:18090")
        base_url = os.getenv("MARKET_API_BASE", default_base).strip().rstrip("/")
        api_key = os.getenv("MARKET_API_KEY", "").strip()
        slippage_bps = int(cfg.get("execution", {}).get("slippage_bps", 100))
        return cls(base_url=base_url, api_key=api_key, slippage_bps=slippage_bps)


class MarketApiClient:
    """Venue REST client: ticks, wallet state, quotes, swap building and new listings."""

    def __init__(
        self,
        settings: Optional[MarketApiSettings] = None,
        async_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 2,
        rps: float = 20.0,
    ) -> None:
        self.settings = settings or MarketApiSettings.from_env()
        self._http = ResilientHttpClient(
            name="market-api",
            rps=rps,
            max_retries=max_retries,
            backoff_base=0.1,
            async_client=async_client,
        )

    async def __aenter__(self) -> "MarketApiClient":
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._http.__aexit__(exc_type, exc, tb)

    def _spec(self, method: str, path: str, query: Optional[Dict[str, Any]] = None, body=None) -> RequestSpec:
        headers = {"X-API-KEY": self.settings.api_key} if self.settings.api_key else {}
        return RequestSpec(
            method=method,
            base_url=self.settings.base_url,
            path=path,
            query=query or {},
            headers=headers,
            json=body,
        )

    async def tick(self, mint: str) -> Tick:
        payload = await self._http.request(self._spec("GET", f"/market/tick/{mint}"))
        try:
            return Tick.model_validate(payload)
        except ValidationError as exc:
            raise InvalidTick(f"malformed tick for {mint}") from exc

    async def balance(self, address: str) -> float:
        payload = await self._http.request(self._spec("GET", f"/wallet/{address}/balance"))
        try:
            return float(payload["balance"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamBadResponse("market-api balance response invalid") from exc

    async def holdings(self, address: str) -> Dict[str, float]:
        payload = await self._http.request(self._spec("GET", f"/wallet/{address}/holdings"))
        try:
            rows = payload.get("holdings", []) if isinstance(payload, dict) else []
            return {str(row["mint"]): float(row["amount"]) for row in rows if "mint" in row}
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise UpstreamBadResponse("market-api holdings response invalid") from exc

    async def quote(self, input_mint: str, output_mint: str, amount: float) -> SwapQuote:
        body = {
            "input_mint": input_mint,
            "output_mint": output_mint,
            "amount": float(amount),
            "slippage_bps": self.settings.slippage_bps,
        }
        payload = await self._http.request(self._spec("POST", "/swap/quote", body=body))
        try:
            quote = SwapQuote.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamBadResponse("market-api quote response invalid") from exc
        return quote.model_copy(update={"raw": payload})

    async def build_swap_tx(self, quote: SwapQuote, user_pubkey: str) -> str:
        body = {"quote_id": quote.quote_id, "user_pubkey": user_pubkey}
        payload = await self._http.request(self._spec("POST", "/swap/build", body=body))
        tx = payload.get("swap_transaction") if isinstance(payload, dict) else None
        if not tx:
            raise UpstreamBadResponse("market-api swap response missing transaction")
        return str(tx)

    async def new_tokens(self, since: int = 0, limit: int = 50) -> Tuple[List[TokenMeta], int]:
        payload = await self._http.request(
            self._spec("GET", "/tokens/new", query={"since": since, "limit": limit})
        )
        try:
            tokens = [TokenMeta.model_validate(row) for row in payload.get("tokens", [])]
            cursor = int(payload.get("cursor", since))
        except (AttributeError, ValidationError, TypeError, ValueError) as exc:
            raise UpstreamBadResponse("market-api listing response invalid") from exc
        return tokens, cursor


__all__ = ["MarketApiClient", "MarketApiSettings"]

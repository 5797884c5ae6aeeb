from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from swapbot.config import repo_root
from swapbot.core.exceptions import ProviderMisconfigured, UpstreamBadResponse
from swapbot.core.fixtures import load_fixture
from swapbot.core.http_client import ResilientHttpClient
from swapbot.data.jupiter.request_factory import JupiterRequestFactory, SwapOptions
from swapbot.data.jupiter.schemas import JupiterQuoteResponse, JupiterSwapResponse
from swapbot.data.market_types import SwapQuote

logger = logging.getLogger(__name__)

FIXTURE_VERSION = "1"
SOL_MINT = "So11111111111111111111111111111111111111112"


@dataclass(frozen=True)
class JupiterSettings:
    api_key: str
    base_url: str
    quote_path: str
    swap_path: str
    live: bool

    @classmethod
    def from_env(cls) -> "JupiterSettings":
        api_key = os.getenv("JUPITER_API_KEY", "").strip()
        live_flag = os.getenv("JUPITER_LIVE", "0").strip().lower() in {"1", "true", "yes"}
        if live_flag and not api_key:
            raise ProviderMisconfigured("JUPITER_API_KEY is required when JUPITER_LIVE=1")
        return cls(
            api_key=api_key,
            base_url=os.getenv("JUPITER_BASE_URL", "https://api.jup.ag").strip().rstrip("/"),
            quote_path=os.getenv("JUPITER_QUOTE_PATH", "/swap/v1/quote").strip(),
            swap_path=os.getenv("JUPITER_SWAP_PATH", "/swap/v1/swap").strip(),
            live=live_flag,
        )


def _parse(payload: Any, model, context: str):
    if isinstance(payload, dict) and payload.get("error"):
        raise UpstreamBadResponse(str(payload.get("error")))
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamBadResponse(f"Jupiter {context} response invalid") from exc


class JupiterProvider:
    def __init__(self, settings: JupiterSettings, http_client: Optional[ResilientHttpClient] = None) -> None:
        self.settings = settings
        self.request_factory = JupiterRequestFactory(
            api_key=settings.api_key,
            base_url=settings.base_url,
            quote_path=settings.quote_path,
            swap_path=settings.swap_path,
        )
        self._client = http_client or ResilientHttpClient(name="jupiter")
        self._owns_client = http_client is None

    async def __aenter__(self) -> "JupiterProvider":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client:
            await self._client.__aexit__(exc_type, exc, tb)

    async def get_quote(self, params: Dict[str, Any]) -> JupiterQuoteResponse:
        payload = await self._client.request(self.request_factory.quote(**params))
        return _parse(payload, JupiterQuoteResponse, "quote")

    async def build_swap_tx(
        self, quote_response: Dict[str, Any], user_pubkey: str, options: Optional[SwapOptions] = None
    ) -> JupiterSwapResponse:
        payload = await self._client.request(self.request_factory.swap(quote_response, user_pubkey, options))
        return _parse(payload, JupiterSwapResponse, "swap")


class MockJupiterProvider:
    """Offline provider answering from the JSON fixtures under tests/fixtures/jupiter."""

    def __init__(self, fixture_dir: Optional[Path] = None, error_mode: Optional[str] = None) -> None:
        self.fixture_dir = fixture_dir or repo_root() / "tests" / "fixtures" / "jupiter"
        self.error_mode = error_mode
        self.request_factory = JupiterRequestFactory(api_key="offline")
        self.calls: Dict[str, int] = {"quote": 0, "swap": 0}

    async def __aenter__(self) -> "MockJupiterProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def get_quote(self, params: Dict[str, Any]) -> JupiterQuoteResponse:
        self.request_factory.quote(**params)
        self.calls["quote"] += 1
        name = "quote_error.json" if self.error_mode == "quote" else "quote_ok.json"
        return _parse(self._load(name), JupiterQuoteResponse, "quote")

    async def build_swap_tx(
        self, quote_response: Dict[str, Any], user_pubkey: str, options: Optional[SwapOptions] = None
    ) -> JupiterSwapResponse:
        self.request_factory.swap(quote_response, user_pubkey, options)
        self.calls["swap"] += 1
        name = "swap_error.json" if self.error_mode == "swap" else "swap_ok.json"
        return _parse(self._load(name), JupiterSwapResponse, "swap")

    def _load(self, name: str) -> Dict[str, Any]:
        return load_fixture(self.fixture_dir, name, expected_version=FIXTURE_VERSION)


class JupiterSwapVenue:
    """Adapts a Jupiter provider to the engine's quote/build ports.

    Amounts cross this boundary in UI units and are scaled to base units with
    the per-mint decimals table.
    """

    def __init__(
        self,
        provider,
        slippage_bps: int = 100,
        decimals: Optional[Mapping[str, int]] = None,
        default_decimals: int = 6,
        options: Optional[SwapOptions] = None,
    ) -> None:
        self.provider = provider
        self.slippage_bps = slippage_bps
        self.decimals: Dict[str, int] = {SOL_MINT: 9}
        self.decimals.update(decimals or {})
        self.default_decimals = default_decimals
        self.options = options

    async def __aenter__(self) -> "JupiterSwapVenue":
        await self.provider.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.provider.__aexit__(exc_type, exc, tb)

    def _scale(self, mint: str) -> int:
        return 10 ** self.decimals.get(mint, self.default_decimals)

    async def quote(self, input_mint: str, output_mint: str, amount: float) -> SwapQuote:
        base_amount = int(amount * self._scale(input_mint))
        response = await self.provider.get_quote(
            {
                "input_mint": input_mint,
                "output_mint": output_mint,
                "amount": base_amount,
                "slippage_bps": self.slippage_bps,
            }
        )
        in_raw, out_raw = response.amounts()
        return SwapQuote(
            input_mint=response.input_mint,
            output_mint=response.output_mint,
            in_amount=in_raw / self._scale(response.input_mint),
            out_amount=out_raw / self._scale(response.output_mint),
            price_impact_pct=response.impact_percent(),
            slippage_bps=response.slippage_bps,
            raw=response.model_dump(by_alias=True),
        )

    async def build_swap_tx(self, quote: SwapQuote, user_pubkey: str) -> str:
        swap = await self.provider.build_swap_tx(quote.raw, user_pubkey, self.options)
        return swap.swap_transaction


def get_jupiter_provider(settings: Optional[JupiterSettings] = None, fixture_dir: Optional[Path] = None):
    cfg = settings or JupiterSettings.from_env()
    if cfg.live:
        return JupiterProvider(cfg)
    logger.info("JUPITER_LIVE not set; using fixture-backed Jupiter provider")
    return MockJupiterProvider(fixture_dir=fixture_dir)


__all__ = [
    "JupiterProvider",
    "JupiterSettings",
    "JupiterSwapVenue",
    "MockJupiterProvider",
    "SOL_MINT",
    "get_jupiter_provider",
]

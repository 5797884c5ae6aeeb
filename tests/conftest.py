import asyncio
import copy
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from swapbot.composition import build_bot
from swapbot.config import load_config
from swapbot.core.exceptions import QuoteExpired, UpstreamBadResponse
from swapbot.data.discovery import StaticDiscoveryFeed
from swapbot.data.market_types import SwapQuote, Tick
from swapbot.execution.signer import SimulatedSigner, TradingModeSettings

QUOTE_MINT = "So11111111111111111111111111111111111111112"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMarket:
    """Scripted market port and swap builder."""

    def __init__(self) -> None:
        self.scripts: Dict[str, List[Tuple[float, float]]] = {}
        self.current: Dict[str, float] = {}
        self.fail_ticks: Dict[str, int] = {}
        self.crash_ticks: set = set()
        self.expire_builds = 0
        self.build_error: Optional[Exception] = None
        self.holding: Dict[str, float] = {}
        self.quote_calls = 0
        self.build_calls = 0
        self.tick_delay = 0.0
        self.on_tick: Optional[Callable[[str], None]] = None
        self.in_flight: Dict[str, int] = {}
        self.max_in_flight: Dict[str, int] = {}
        self.global_in_flight = 0
        self.max_global_in_flight = 0

    def script(self, mint: str, prices: List[float], volume: float = 1000.0) -> None:
        self.scripts[mint] = [(p, volume) for p in prices]

    async def tick(self, mint: str) -> Tick:
        self.in_flight[mint] = self.in_flight.get(mint, 0) + 1
        self.max_in_flight[mint] = max(self.max_in_flight.get(mint, 0), self.in_flight[mint])
        self.global_in_flight += 1
        self.max_global_in_flight = max(self.max_global_in_flight, self.global_in_flight)
        try:
            if self.tick_delay:
                await asyncio.sleep(self.tick_delay)
            if self.on_tick is not None:
                self.on_tick(mint)
            if mint in self.crash_ticks:
                raise RuntimeError(f"unexpected failure for {mint}")
            if self.fail_ticks.get(mint, 0) > 0:
                self.fail_ticks[mint] -= 1
                raise UpstreamBadResponse("tick unavailable", status_code=503)
            queue = self.scripts[mint]
            price, volume = queue.pop(0) if len(queue) > 1 else queue[0]
            self.current[mint] = price
            return Tick(mint=mint, price=price, volume=volume)
        finally:
            self.in_flight[mint] -= 1
            self.global_in_flight -= 1

    async def balance(self, address: str) -> float:
        return 5.0

    async def holdings(self, address: str) -> Dict[str, float]:
        return dict(self.holding)

    async def quote(self, input_mint: str, output_mint: str, amount: float) -> SwapQuote:
        self.quote_calls += 1
        if input_mint == QUOTE_MINT:
            out_amount = amount / self.current[output_mint]
        else:
            out_amount = amount * self.current[input_mint]
        return SwapQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=out_amount,
            quote_id=f"q{self.quote_calls}",
        )

    async def build_swap_tx(self, quote: SwapQuote, user_pubkey: str) -> str:
        self.build_calls += 1
        if self.expire_builds > 0:
            self.expire_builds -= 1
            raise QuoteExpired("quote expired", status_code=409)
        if self.build_error is not None:
            raise self.build_error
        return f"tx-{quote.quote_id}"


def _merge(base: dict, overrides: dict) -> dict:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def market() -> FakeMarket:
    return FakeMarket()


@pytest.fixture
def base_config() -> dict:
    cfg = copy.deepcopy(load_config())
    cfg["orchestrator"]["interval_sec"] = 0.01
    return cfg


@pytest.fixture
def trading() -> TradingModeSettings:
    return TradingModeSettings(trading_mode="dry_run", wallet_address="TEST_WALLET", keypair_path="", rpc_url="")


@pytest.fixture
def make_bot(market, clock, base_config, trading):
    def _make(feed=None, strategy="rsi", overrides=None, signer=None, scorer=None):
        cfg = _merge(copy.deepcopy(base_config), overrides or {})
        cfg["strategy"]["type"] = strategy
        return build_bot(
            cfg,
            market=market,
            discovery=feed if feed is not None else StaticDiscoveryFeed(),
            signer=signer or SimulatedSigner(),
            scorer=scorer,
            trading=trading,
            clock=clock,
        )

    return _make

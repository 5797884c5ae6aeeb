import copy
import json
import time
from pathlib import Path

import httpx
import pytest

from swapbot.composition import build_bot
from swapbot.config import get_config
from swapbot.data.client import MarketApiClient, MarketApiSettings
from swapbot.execution.signer import TradingModeSettings
from swapbot.orchestrator.lifecycle import STATE_DISPOSED, STATE_HELD
from mock_api.server import app, reset_state

CYCLE_SEC = 30.0


class SteppedClock:
    def __init__(self):
        self.now = time.time()

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_e2e_mock_api(tmp_path: Path):
    reset_state()
    cfg = copy.deepcopy(get_config(refresh=True))
    clock = SteppedClock()
    trading = TradingModeSettings(trading_mode="dry_run", wallet_address="E2E_WALLET", keypair_path="", rpc_url="")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as async_client:
        settings = MarketApiSettings(base_url="http://test", api_key="", slippage_bps=100)
        client = MarketApiClient(settings=settings, async_client=async_client, rps=1000)
        bot = build_bot(cfg, market=client, trading=trading, log_dir=tmp_path, clock=clock)
        for _ in range(30):
            await bot.run_cycle()
            clock.now += CYCLE_SEC
        bot.trade_log.close()

    metrics = app.state.metrics
    assert metrics["tokens_new"] == 30
    assert metrics["tick"] > 0
    assert metrics["quote"] > 0
    assert metrics["build"] > 0
    assert metrics["balance"] == 30

    trade_log = bot.trade_log.path
    assert trade_log is not None and trade_log.exists()
    records = [json.loads(line) for line in trade_log.read_text(encoding="utf-8").splitlines()]
    assert records
    for record in records:
        assert "reason_codes" in record
        assert "signature" in record

    bought = {r["mint"] for r in records if r["action"] == "BUY" and r["success"]}
    assert "MINT_DIP_RECOVERY" in bought
    assert "MINT_RUG" in bought
    assert "MINT_CHOP" not in bought
    assert "MINT_STEADY" not in bought

    rug_exits = [r for r in records if r["mint"] == "MINT_RUG" and r["action"] == "SELL"]
    assert rug_exits and rug_exits[0]["forced"]
    assert rug_exits[0]["reason_codes"][0] == "RUG_PULL"
    assert bot.lifecycle_state("MINT_RUG") == STATE_DISPOSED

    status = bot.status()
    assert status.cycles == 30
    assert status.forced_exits >= 1
    assert status.balance == 10.0
    assert status.held_tokens == sum(
        1 for mint in bought if bot.lifecycle_state(mint) == STATE_HELD
    )

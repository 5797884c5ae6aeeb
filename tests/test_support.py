import io
import json

import pytest
from rich.console import Console

from swapbot.composition import build_scorer
from swapbot.config import get_config, load_config, section
from swapbot.core.exceptions import ProviderMisconfigured, SignerError
from swapbot.execution.signer import (
    KeypairSigner,
    SimulatedSigner,
    TradingModeSettings,
    build_signer,
)
from swapbot.orchestrator.trade_log import TradeLogger
from swapbot.policies.model_assisted import HttpModelScorer
from swapbot.policies.oscillator import OscillatorSettings
from swapbot.protection.rug_detector import RugSettings


def test_default_config_sections():
    cfg = get_config(refresh=True)
    assert cfg["strategy"]["type"] == "rsi"
    assert section(cfg, "rug")["extreme_drop_pct"] == 0.4
    assert section(cfg, "missing") == {}
    assert cfg["execution"]["dry_run"] is True


def test_config_override_path(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("strategy:\n  type: priority\n", encoding="utf-8")
    monkeypatch.setenv("SWAPBOT_CONFIG", str(path))
    assert load_config()["strategy"]["type"] == "priority"

    bad = tmp_path / "list.yaml"
    bad.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(bad)
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_settings_reject_non_mapping_sections():
    with pytest.raises(ValueError):
        RugSettings.from_config({"rug": 5})
    with pytest.raises(ValueError):
        OscillatorSettings.from_config({"strategy": {"oscillator": [14]}})
    assert RugSettings.from_config({}).min_prior_samples == 2


def test_scorer_built_only_for_model_strategy_with_endpoint():
    assert build_scorer({"strategy": {"type": "rsi", "model": {"endpoint": "http://scorer"}}}) is None
    assert build_scorer({"strategy": {"type": "model", "model": {"endpoint": ""}}}) is None

    scorer = build_scorer({"strategy": {"type": "model", "model": {"endpoint": "http://scorer/score"}}})
    assert isinstance(scorer, HttpModelScorer)
    assert scorer.endpoint == "http://scorer/score"


@pytest.mark.asyncio
async def test_http_scorer_client_closed_on_exit():
    scorer = HttpModelScorer("http://scorer/score")
    async with scorer:
        assert scorer._client._client is not None
    assert scorer._client._client is None


def test_trade_logger_counts_and_persists(tmp_path):
    logger = TradeLogger(base_dir=tmp_path)
    logger.log({"mint": "X", "action": "BUY", "success": True})
    logger.log({"mint": "X", "action": "SELL", "success": True, "forced": True})
    logger.log({"mint": "Y", "action": "BUY", "success": False})
    logger.summarize(Console(file=io.StringIO()))
    logger.close()

    assert logger.counters["total"] == 3
    assert logger.counters["successful"] == 2
    assert logger.counters["failed"] == 1
    assert logger.counters["buy"] == 1
    assert logger.counters["forced_exits"] == 1
    assert logger.action_counts() == {"BUY:ok": 1, "SELL:ok": 1, "BUY:fail": 1}

    lines = logger.path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["mint"] for line in lines] == ["X", "X", "Y"]


def test_trade_logger_in_memory_only():
    logger = TradeLogger(persist=False)
    logger.log({"mint": "X", "action": "BUY", "success": True})
    assert logger.path is None
    assert len(logger.entries()) == 1


def test_live_mode_requires_signer_credentials(monkeypatch):
    monkeypatch.setenv("TRADING_MODE", "live")
    monkeypatch.delenv("SIGNER_KEYPAIR_PATH", raising=False)
    with pytest.raises(ProviderMisconfigured):
        TradingModeSettings.from_env()

    monkeypatch.setenv("TRADING_MODE", "paper")
    with pytest.raises(ProviderMisconfigured):
        TradingModeSettings.from_env()


def test_dry_run_defaults(monkeypatch):
    for name in ("TRADING_MODE", "WALLET_ADDRESS", "SIGNER_KEYPAIR_PATH", "SOLANA_RPC_URL"):
        monkeypatch.delenv(name, raising=False)
    settings = TradingModeSettings.from_env()
    assert not settings.live
    assert settings.wallet_address == "SIMULATED_WALLET"
    assert isinstance(build_signer(settings), SimulatedSigner)


@pytest.mark.asyncio
async def test_simulated_signer():
    signer = SimulatedSigner()
    first = await signer.sign_and_submit("tx")
    second = await signer.sign_and_submit("tx")
    assert first != second
    assert signer.submitted == ["tx", "tx"]
    with pytest.raises(SignerError):
        await signer.sign_and_submit("")


def test_keypair_signer_validates_file(tmp_path):
    path = tmp_path / "id.json"
    path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
    with pytest.raises(ProviderMisconfigured):
        KeypairSigner(str(path), "http://rpc")

    path.write_text(json.dumps(list(range(64))), encoding="utf-8")
    assert KeypairSigner(str(path), "http://rpc").rpc_url == "http://rpc"

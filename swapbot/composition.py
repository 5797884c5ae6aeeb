from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional

from swapbot.book.positions import PositionBook
from swapbot.config import section
from swapbot.data.client import MarketApiClient, MarketApiSettings
from swapbot.data.discovery import DiscoveryFeed, HttpDiscoveryFeed
from swapbot.data.jupiter.provider import JupiterSwapVenue, get_jupiter_provider
from swapbot.data.market_port import MarketDataPort
from swapbot.execution.gateway import ExecutionGateway, ExecutionSettings
from swapbot.execution.signer import Signer, SimulatedSigner, TradingModeSettings, build_signer
from swapbot.orchestrator.runner import OrchestratorSettings, TradingOrchestrator
from swapbot.orchestrator.trade_log import TradeLogger
from swapbot.policies.model_assisted import HttpModelScorer, ModelAssistedStrategy, ModelScorer
from swapbot.policies.registry import build_strategy
from swapbot.protection.price_miss import PriceMissTracker
from swapbot.protection.rug_detector import RugDetector, RugSettings
from swapbot.protection.time_exit import TimeExitPolicy, TimeExitSettings
from swapbot.protection.trailing_stop import TrailingStop
from swapbot.protection.trend_filter import TrendFilter, TrendSettings


def build_market_client(config: dict) -> MarketApiClient:
    return MarketApiClient(settings=MarketApiSettings.from_env(config))


def build_venue(config: dict, market):
    venue = str(section(config, "execution").get("venue", "market")).strip().lower()
    if venue == "market":
        return market
    if venue == "jupiter":
        slippage = int(section(config, "execution").get("slippage_bps", 100))
        return JupiterSwapVenue(get_jupiter_provider(), slippage_bps=slippage)
    raise ValueError(f"Unknown execution venue: {venue}")


def build_scorer(config: dict) -> Optional[HttpModelScorer]:
    """HTTP scorer for the model strategy, or None when no endpoint is configured."""
    strategy_cfg = section(config, "strategy")
    if str(strategy_cfg.get("type", "")).strip().lower() != ModelAssistedStrategy.name:
        return None
    endpoint = str(section(strategy_cfg, "model").get("endpoint") or "")
    if not endpoint:
        return None
    return HttpModelScorer(endpoint, api_key=os.getenv("MODEL_API_KEY", "").strip())


def build_bot(
    config: dict,
    market: MarketDataPort,
    discovery: Optional[DiscoveryFeed] = None,
    signer: Optional[Signer] = None,
    scorer: Optional[ModelScorer] = None,
    venue=None,
    trading: Optional[TradingModeSettings] = None,
    log_dir: Optional[Path] = None,
    clock: Optional[Callable[[], float]] = None,
) -> TradingOrchestrator:
    """Wire every component from config.

    Raises ProviderMisconfigured when live trading lacks signer credentials.
    """
    trading = trading or TradingModeSettings.from_env()
    if signer is None:
        dry_run = bool(section(config, "execution").get("dry_run", True)) and not trading.live
        signer = SimulatedSigner() if dry_run else build_signer(trading)

    if venue is None:
        venue = build_venue(config, market)
    gateway = ExecutionGateway(
        quotes=venue,
        builder=venue,
        signer=signer,
        wallet_address=trading.wallet_address,
        settings=ExecutionSettings.from_config(config),
        market=market,
    )
    if discovery is None:
        discovery = HttpDiscoveryFeed(market)

    return TradingOrchestrator(
        market=market,
        discovery=discovery,
        strategy=build_strategy(config, scorer=scorer),
        gateway=gateway,
        book=PositionBook.from_config(config, clock=clock),
        rug=RugDetector(RugSettings.from_config(config), clock=clock),
        trend=TrendFilter(TrendSettings.from_config(config), clock=clock),
        time_exit=TimeExitPolicy(TimeExitSettings.from_config(config), clock=clock),
        trailing=TrailingStop.from_config(config),
        price_misses=PriceMissTracker.from_config(config, clock=clock),
        config=config,
        settings=OrchestratorSettings.from_config(config),
        trade_log=TradeLogger(base_dir=log_dir, persist=log_dir is not None),
        wallet_address=trading.wallet_address,
        clock=clock,
    )


__all__ = ["build_bot", "build_market_client", "build_scorer", "build_venue"]

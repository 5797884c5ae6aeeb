from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Set

import httpx
from pydantic import BaseModel, Field

from swapbot.book.positions import Position, PositionBook
from swapbot.config import section
from swapbot.core.exceptions import InvalidTick, ProviderOffline, StateConflict, UpstreamError
from swapbot.data.discovery import SOURCE_WHITELIST, DiscoveryFeed, TokenMeta
from swapbot.data.market_port import MarketDataPort
from swapbot.execution.gateway import ExecutionGateway, SwapResult
from swapbot.orchestrator.lifecycle import (
    STATE_DISCOVERED,
    STATE_DISPOSED,
    STATE_HELD,
    TokenRecord,
    can_reenter,
    is_stale,
)
from swapbot.orchestrator.trade_log import TradeLogger
from swapbot.orchestrator.validator import validate_discovery, validate_tick
from swapbot.policies.base import (
    ACTION_BUY,
    ACTION_SELL,
    BaseStrategy,
    DiscoveredEvent,
    MarketSnapshot,
    TickEvent,
    TradeIntent,
    sell,
)
from swapbot.protection.price_miss import PriceMissTracker
from swapbot.protection.rug_detector import URGENCY_HIGH, RugAnalysis, RugDetector
from swapbot.protection.time_exit import TimeExitPolicy
from swapbot.protection.trailing_stop import TrailingStop
from swapbot.protection.trend_filter import TrendFilter

logger = logging.getLogger(__name__)

_FETCH_ERRORS = (InvalidTick, UpstreamError, ProviderOffline, httpx.HTTPError)


@dataclass(frozen=True)
class OrchestratorSettings:
    interval_sec: float = 30.0
    max_workers: int = 8
    max_concurrent_positions: int = 10
    discovered_ttl_sec: float = 600.0
    reentry_lockout_sec: float = 300.0
    cleanup_every_cycles: int = 10
    watch_history_size: int = 60

    @classmethod
    def from_config(cls, config: dict) -> "OrchestratorSettings":
        orch_cfg = section(config, "orchestrator")
        return cls(
            interval_sec=float(orch_cfg.get("interval_sec", 30)),
            max_workers=max(1, int(orch_cfg.get("max_workers", 8))),
            max_concurrent_positions=max(1, int(orch_cfg.get("max_concurrent_positions", 10))),
            discovered_ttl_sec=float(orch_cfg.get("discovered_ttl_sec", 600)),
            reentry_lockout_sec=float(orch_cfg.get("reentry_lockout_sec", 300)),
            cleanup_every_cycles=max(1, int(orch_cfg.get("cleanup_every_cycles", 10))),
            watch_history_size=max(2, int(orch_cfg.get("watch_history_size", 60))),
        )


class BotStatus(BaseModel):
    running: bool
    uptime_sec: float = 0.0
    cycles: int = 0
    active_tokens: int = 0
    held_tokens: int = 0
    total_trades: int = 0
    successful_trades: int = 0
    failed_trades: int = 0
    buys: int = 0
    sells: int = 0
    forced_exits: int = 0
    balance: Optional[float] = None
    whitelist: List[str] = Field(default_factory=list)


class _CycleRuntime:
    """Read-only engine view handed to the strategy, with the whitelist frozen for one cycle."""

    def __init__(self, orchestrator: "TradingOrchestrator", whitelist: FrozenSet[str]) -> None:
        self._orchestrator = orchestrator
        self._whitelist = whitelist

    def is_held(self, mint: str) -> bool:
        return mint in self._orchestrator.book

    def held_count(self) -> int:
        return self._orchestrator.book.count()

    def has_capacity(self) -> bool:
        return self._orchestrator.has_capacity()

    def is_whitelisted(self, mint: str) -> bool:
        return mint in self._whitelist

    def now(self) -> float:
        return self._orchestrator.now()


class TradingOrchestrator:
    """Scheduling loop tying discovery, protection, strategy and execution together.

    Tokens are evaluated concurrently, bounded by ``max_workers``; each token
    has its own lock so its lifecycle never sees two transitions at once.
    """

    def __init__(
        self,
        market: MarketDataPort,
        discovery: DiscoveryFeed,
        strategy: BaseStrategy,
        gateway: ExecutionGateway,
        book: PositionBook,
        rug: RugDetector,
        trend: TrendFilter,
        time_exit: TimeExitPolicy,
        trailing: TrailingStop,
        price_misses: PriceMissTracker,
        config: Optional[dict] = None,
        settings: Optional[OrchestratorSettings] = None,
        trade_log: Optional[TradeLogger] = None,
        wallet_address: str = "",
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.market = market
        self.discovery = discovery
        self.strategy = strategy
        self.gateway = gateway
        self.book = book
        self.rug = rug
        self.trend = trend
        self.time_exit = time_exit
        self.trailing = trailing
        self.price_misses = price_misses
        self.config = config or {}
        self.settings = settings or OrchestratorSettings.from_config(self.config)
        self.trade_log = trade_log or TradeLogger(persist=False)
        self.wallet_address = wallet_address or gateway.wallet_address
        self._clock = clock or time.time

        self._records: Dict[str, TokenRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._whitelist: Set[str] = set()
        self._injected: List[TokenMeta] = []
        self._pending_buys = 0
        self._cycles = 0
        self._balance: Optional[float] = None
        self._started_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._cycle_lock = asyncio.Lock()

    # control surface

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stop_event = asyncio.Event()
        self._started_at = self._clock()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Orchestrator started with strategy={self.strategy.name}")

    async def stop(self) -> None:
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        # The in-flight cycle, swaps included, runs to completion.
        await self._task
        self._task = None
        self._started_at = None
        logger.info("Orchestrator stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> BotStatus:
        counters = self.trade_log.counters
        uptime = self._clock() - self._started_at if self._started_at is not None and self.running else 0.0
        return BotStatus(
            running=self.running,
            uptime_sec=max(0.0, uptime),
            cycles=self._cycles,
            active_tokens=sum(1 for r in self._records.values() if r.status != STATE_DISPOSED),
            held_tokens=self.book.count(),
            total_trades=counters["total"],
            successful_trades=counters["successful"],
            failed_trades=counters["failed"],
            buys=counters["buy"],
            sells=counters["sell"],
            forced_exits=counters["forced_exits"],
            balance=self._balance,
            whitelist=sorted(self._whitelist),
        )

    def add_to_whitelist(self, mint: str) -> None:
        self._whitelist.add(mint)

    def remove_from_whitelist(self, mint: str) -> None:
        self._whitelist.discard(mint)

    def discover(self, meta: TokenMeta) -> None:
        self._injected.append(meta)

    # queries

    def now(self) -> float:
        return self._clock()

    def has_capacity(self) -> bool:
        return self.book.count() + self._pending_buys < self.settings.max_concurrent_positions

    def record(self, mint: str) -> Optional[TokenRecord]:
        return self._records.get(mint)

    def lifecycle_state(self, mint: str) -> Optional[str]:
        record = self._records.get(mint)
        return record.status if record else None

    # scheduling

    async def _loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Scheduling cycle failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.settings.interval_sec)
            except asyncio.TimeoutError:
                pass

    async def run(self, cycles: int, sleep: bool = False) -> BotStatus:
        for index in range(cycles):
            await self.run_cycle()
            if sleep and index < cycles - 1:
                await asyncio.sleep(self.settings.interval_sec)
        return self.status()

    async def run_cycle(self) -> None:
        async with self._cycle_lock:
            whitelist = frozenset(self._whitelist)
            runtime = _CycleRuntime(self, whitelist)
            await self._ingest(whitelist)

            targets = [r for r in self._records.values() if r.status != STATE_DISPOSED]
            semaphore = asyncio.Semaphore(self.settings.max_workers)
            await asyncio.gather(*(self._guarded(record, runtime, semaphore) for record in targets))

            await self._refresh_balance()
            self._cycles += 1
            if self._cycles % self.settings.cleanup_every_cycles == 0:
                self.cleanup()

    async def _ingest(self, whitelist: FrozenSet[str]) -> None:
        try:
            polled = await self.discovery.poll()
        except (UpstreamError, ProviderOffline, httpx.HTTPError) as exc:
            logger.warning(f"Discovery poll failed: {exc}")
            polled = []
        injected, self._injected = self._injected, []
        now = self._clock()
        for meta in [*injected, *polled]:
            self._register(meta, now)
        for mint in whitelist:
            if mint not in self._records:
                self._register(TokenMeta(mint=mint, source=SOURCE_WHITELIST, discovered_at=now), now)

    def _register(self, meta: TokenMeta, now: float) -> Optional[TokenRecord]:
        existing = self._records.get(meta.mint)
        if existing is not None:
            if not can_reenter(existing, now, self.settings.reentry_lockout_sec):
                return None
            logger.info(f"Re-entering lifecycle for {meta.mint}")
            self.rug.forget(meta.mint)
            self.trend.forget(meta.mint)

        if self.strategy.requires_validation:
            rejected = validate_discovery(meta, now, self.config)
            if rejected:
                logger.info(f"Discovery of {meta.mint} rejected: {rejected}")
                return None

        record = TokenRecord(meta=meta, registered_at=now, history_size=self.settings.watch_history_size)
        self._records[meta.mint] = record
        logger.info(f"Tracking {meta.mint} from {meta.source}")
        return record

    async def _guarded(self, record: TokenRecord, runtime: _CycleRuntime, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            lock = self._locks.setdefault(record.mint, asyncio.Lock())
            async with lock:
                try:
                    await self._evaluate(record, runtime)
                except StateConflict as exc:
                    logger.warning(f"State conflict ignored: {exc}")
                except Exception:
                    logger.exception(f"Evaluation failed for {record.mint}")

    async def _evaluate(self, record: TokenRecord, runtime: _CycleRuntime) -> None:
        mint = record.mint
        try:
            tick = validate_tick(await self.market.tick(mint), mint)
        except _FETCH_ERRORS as exc:
            strikes = self.price_misses.record_miss(mint)
            logger.warning(f"No usable tick for {mint} ({strikes} strike(s)): {exc}")
            if record.status == STATE_HELD and self.price_misses.should_force_exit(mint):
                await self._execute(record, sell(mint, "PRICE_UNAVAILABLE", forced=True))
            return
        self.price_misses.record_hit(mint)
        record.observe(tick.price, tick.volume)

        position: Optional[Position] = None
        if record.status == STATE_HELD:
            position = self.book.update(mint, tick.price)
        rug = self.rug.analyze_tick(mint, tick.price, tick.volume)
        self.trend.analyze_market(mint, list(record.prices))

        if position is not None:
            forced = self._forced_exit(position, rug)
            if forced is not None:
                await self._execute(record, forced)
                return

        snapshot = MarketSnapshot(
            mint=mint,
            price=tick.price,
            volume=tick.volume,
            prices=tuple(record.prices),
            ts=self._clock(),
        )
        event = TickEvent(snapshot) if record.evaluated else DiscoveredEvent(record.meta, snapshot)
        record.evaluated = True
        intent = await self.strategy.decide(event, runtime)
        if intent is None:
            return
        if intent.mint != mint:
            logger.warning(f"Strategy returned intent for {intent.mint} while evaluating {mint}; ignored")
            return

        if intent.action == ACTION_BUY:
            if record.status != STATE_DISCOVERED:
                return
            if rug.is_rug_pull or self.rug.is_recent_alert(mint):
                logger.info(f"Buy of {mint} blocked by rug detector")
                return
            if not self.trend.should_allow_trade(mint):
                logger.info(f"Buy of {mint} blocked by trend filter ({self.trend.state_of(mint)})")
                return
        elif intent.action == ACTION_SELL and record.status != STATE_HELD:
            return
        await self._execute(record, intent)

    def _forced_exit(self, position: Position, rug: RugAnalysis) -> Optional[TradeIntent]:
        mint = position.mint
        if rug.is_rug_pull and rug.urgency == URGENCY_HIGH:
            return sell(mint, "RUG_PULL", *rug.reasons, forced=True)
        time_rec = self.time_exit.analyze_time_based_exit(position)
        if time_rec.should_exit:
            return sell(mint, "TIME_EXIT", time_rec.reason, forced=True)
        stop_rec = self.trailing.evaluate(position)
        if stop_rec.should_exit:
            return sell(mint, "STOP_EXIT", stop_rec.reason, forced=True)
        return None

    async def _execute(self, record: TokenRecord, intent: TradeIntent) -> None:
        mint = record.mint
        if intent.action == ACTION_BUY:
            if not self.has_capacity():
                logger.info(f"Buy of {mint} skipped: at capacity ({self.book.count()} held)")
                return
            self._pending_buys += 1
            try:
                result = await self.gateway.execute(intent, size_multiplier=self.trend.position_size_multiplier(mint))
            finally:
                self._pending_buys -= 1
            if result.success:
                self._commit_buy(record, result)
        else:
            result = await self.gateway.execute(intent, position=self.book.get(mint))
            if result.success:
                self._commit_sell(record, intent, result)
        self._log_trade(intent, result)

    def _commit_buy(self, record: TokenRecord, result: SwapResult) -> None:
        if not result.executed_price or not result.in_amount:
            # The swap went through but reported no fill; treat as failed locally.
            logger.error(f"Buy of {record.mint} confirmed without fill data; position not opened")
            result.success = False
            result.failure_reason = "missing fill data"
            return
        self.book.open(record.mint, result.executed_price, result.in_amount)
        record.transition(STATE_HELD)

    def _commit_sell(self, record: TokenRecord, intent: TradeIntent, result: SwapResult) -> None:
        self.book.remove(record.mint)
        record.transition(STATE_DISPOSED)
        record.disposed_at = self._clock()
        record.last_exit_reason = ",".join(intent.reason_codes)
        record.last_exit_forced = intent.forced
        self.price_misses.record_hit(record.mint)

    def _log_trade(self, intent: TradeIntent, result: SwapResult) -> None:
        self.trade_log.log(
            {
                "mint": intent.mint,
                "action": intent.action,
                "forced": intent.forced,
                "reason_codes": intent.reason_codes,
                "success": result.success,
                "executed_price": result.executed_price,
                "in_amount": result.in_amount,
                "out_amount": result.out_amount,
                "signature": result.signature,
                "failure_reason": result.failure_reason,
                "attempts": result.attempts,
            }
        )

    async def _refresh_balance(self) -> None:
        if not self.wallet_address:
            return
        try:
            self._balance = await self.market.balance(self.wallet_address)
        except (UpstreamError, ProviderOffline, httpx.HTTPError) as exc:
            logger.warning(f"Balance refresh failed: {exc}")

    def cleanup(self) -> None:
        now = self._clock()
        self.rug.cleanup(now)
        self.trend.cleanup()
        self.price_misses.cleanup()
        evicted = []
        for mint, record in list(self._records.items()):
            expired = is_stale(record, now, self.settings.discovered_ttl_sec) or can_reenter(
                record, now, self.settings.reentry_lockout_sec
            )
            lock = self._locks.get(mint)
            if expired and (lock is None or not lock.locked()):
                del self._records[mint]
                self._locks.pop(mint, None)
                self.trend.forget(mint)
                evicted.append(mint)
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle token(s): {evicted}")


__all__ = ["BotStatus", "OrchestratorSettings", "TradingOrchestrator"]

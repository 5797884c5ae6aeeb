from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from swapbot.config import section
from swapbot.policies.base import BaseStrategy, MarketSnapshot, StrategyRuntime, TradeIntent, buy, sell

REASON_OVERSOLD = "RSI_OVERSOLD"
REASON_OVERBOUGHT = "RSI_OVERBOUGHT"
REASON_DIVERGENCE = "BEARISH_DIVERGENCE"
REASON_NEUTRAL_CROSS = "RSI_NEUTRAL_CROSS"


def compute_rsi(prices: Sequence[float], period: int = 14) -> Optional[float]:
    """Simple-average RSI over the last ``period`` price changes, or None if too short."""
    if period <= 0 or len(prices) < period + 1:
        return None
    window = list(prices)[-(period + 1):]
    gains = 0.0
    losses = 0.0
    for prev, curr in zip(window, window[1:]):
        delta = curr - prev
        if delta > 0:
            gains += delta
        else:
            losses -= delta
    if losses == 0:
        return 100.0 if gains > 0 else 50.0
    rs = (gains / period) / (losses / period)
    return 100.0 - 100.0 / (1.0 + rs)


@dataclass(frozen=True)
class OscillatorSettings:
    period: int = 14
    oversold: float = 30.0
    overbought: float = 70.0
    neutral: float = 50.0
    divergence_lookback: int = 3
    divergence_price_pct: float = 0.01
    divergence_rsi_points: float = 2.0

    @classmethod
    def from_config(cls, config: dict) -> "OscillatorSettings":
        osc_cfg = section(section(config, "strategy"), "oscillator")
        return cls(
            period=int(osc_cfg.get("period", 14)),
            oversold=float(osc_cfg.get("oversold", 30)),
            overbought=float(osc_cfg.get("overbought", 70)),
            neutral=float(osc_cfg.get("neutral", 50)),
            divergence_lookback=int(osc_cfg.get("divergence_lookback", 3)),
            divergence_price_pct=float(osc_cfg.get("divergence_price_pct", 0.01)),
            divergence_rsi_points=float(osc_cfg.get("divergence_rsi_points", 2.0)),
        )


class OscillatorStrategy(BaseStrategy):
    """RSI entries and exits.

    Every decision is a function of the price history in the snapshot, so two
    identical histories yield the same intent however far apart they arrive.
    """

    name = "rsi"

    def __init__(self, settings: Optional[OscillatorSettings] = None) -> None:
        self.settings = settings or OscillatorSettings()

    @classmethod
    def from_config(cls, config: dict, **_: object) -> "OscillatorStrategy":
        return cls(OscillatorSettings.from_config(config))

    def _rsi(self, prices: Sequence[float]) -> Optional[float]:
        return compute_rsi(prices, self.settings.period)

    async def on_tick(self, snapshot: MarketSnapshot, runtime: StrategyRuntime) -> Optional[TradeIntent]:
        prices = snapshot.prices
        current = self._rsi(prices)
        if current is None:
            return None

        if not runtime.is_held(snapshot.mint):
            if current <= self.settings.oversold and runtime.has_capacity():
                return buy(snapshot.mint, REASON_OVERSOLD)
            return None

        if current >= self.settings.overbought:
            return sell(snapshot.mint, REASON_OVERBOUGHT)
        if self._bearish_divergence(prices, current):
            return sell(snapshot.mint, REASON_DIVERGENCE)
        previous = self._rsi(prices[:-1])
        if previous is not None and previous < self.settings.neutral <= current:
            return sell(snapshot.mint, REASON_NEUTRAL_CROSS)
        return None

    def _bearish_divergence(self, prices: Sequence[float], current: float) -> bool:
        lookback = self.settings.divergence_lookback
        if lookback <= 0 or len(prices) <= lookback:
            return False
        earlier_rsi = self._rsi(prices[:-lookback])
        base_price = prices[-1 - lookback]
        if earlier_rsi is None or base_price <= 0:
            return False
        price_change = prices[-1] / base_price - 1.0
        return (
            price_change >= self.settings.divergence_price_pct
            and current - earlier_rsi <= -self.settings.divergence_rsi_points
        )


__all__ = [
    "OscillatorSettings",
    "OscillatorStrategy",
    "REASON_DIVERGENCE",
    "REASON_NEUTRAL_CROSS",
    "REASON_OVERBOUGHT",
    "REASON_OVERSOLD",
    "compute_rsi",
]

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional

from swapbot.config import section

logger = logging.getLogger(__name__)

URGENCY_LOW = "LOW"
URGENCY_MEDIUM = "MEDIUM"
URGENCY_HIGH = "HIGH"

REASON_EXTREME_DROP = "Extreme price drop"
REASON_VOLUME_COLLAPSE = "Volume collapse"
REASON_RAPID_DROPS = "Rapid price drops"
REASON_VELOCITY = "High price velocity"


@dataclass(frozen=True)
class TickSample:
    price: float
    volume: float
    ts: float
    change: float


@dataclass(frozen=True)
class RugAnalysis:
    is_rug_pull: bool
    confidence: float
    urgency: str = URGENCY_LOW
    reasons: List[str] = field(default_factory=list)

    @classmethod
    def clean(cls) -> "RugAnalysis":
        return cls(is_rug_pull=False, confidence=0.0)


@dataclass(frozen=True)
class RugSettings:
    window_size: int = 20
    min_prior_samples: int = 2
    extreme_drop_pct: float = 0.40
    volume_collapse_pct: float = 0.90
    volume_avg_window: int = 3
    tick_drop_pct: float = 0.05
    velocity_pct_per_sec: float = 0.02
    retention_sec: float = 300.0
    alert_ttl_sec: float = 600.0
    weights: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict) -> "RugSettings":
        rug_cfg = section(config, "rug")
        return cls(
            window_size=int(rug_cfg.get("window_size", 20)),
            min_prior_samples=int(rug_cfg.get("min_prior_samples", 2)),
            extreme_drop_pct=float(rug_cfg.get("extreme_drop_pct", 0.40)),
            volume_collapse_pct=float(rug_cfg.get("volume_collapse_pct", 0.90)),
            volume_avg_window=int(rug_cfg.get("volume_avg_window", 3)),
            tick_drop_pct=float(rug_cfg.get("tick_drop_pct", 0.05)),
            velocity_pct_per_sec=float(rug_cfg.get("velocity_pct_per_sec", 0.02)),
            retention_sec=float(rug_cfg.get("retention_sec", 300)),
            alert_ttl_sec=float(rug_cfg.get("alert_ttl_sec", 600)),
            weights={str(k): float(v) for k, v in (rug_cfg.get("weights") or {}).items()},
        )

    def weight(self, rule: str) -> float:
        return self.weights.get(rule, 1.0)


# rule -> (severity, urgent)
_SEVERITY = {
    "extreme_drop": (0.8, True),
    "volume_collapse": (0.5, False),
    "rapid_drops": (0.4, False),
    "velocity": (0.3, False),
}


class RugDetector:
    """Per-mint anomaly scorer over a bounded window of recent ticks."""

    def __init__(self, settings: Optional[RugSettings] = None, clock: Optional[Callable[[], float]] = None) -> None:
        self.settings = settings or RugSettings()
        self._clock = clock or time.time
        self._windows: Dict[str, Deque[TickSample]] = {}
        self._alerts: Dict[str, float] = {}

    def analyze_tick(self, mint: str, price: float, volume: float) -> RugAnalysis:
        now = self._clock()
        window = self._windows.get(mint)
        if window is None:
            window = deque(maxlen=max(self.settings.min_prior_samples + 1, self.settings.window_size))
            self._windows[mint] = window

        prior = list(window)
        change = 0.0
        if prior and prior[-1].price > 0:
            change = (price - prior[-1].price) / prior[-1].price
        window.append(TickSample(price=price, volume=volume, ts=now, change=change))

        if len(prior) < max(1, self.settings.min_prior_samples):
            return RugAnalysis.clean()

        fired = self._evaluate(prior, price, volume, change, now)
        if not fired:
            return RugAnalysis.clean()

        confidence = sum(_SEVERITY[rule][0] * self.settings.weight(rule) for rule, _ in fired)
        confidence = min(1.0, max(0.0, confidence))
        urgent = any(_SEVERITY[rule][1] for rule, _ in fired)
        reasons: List[str] = []
        for _, reason in fired:
            if reason not in reasons:
                reasons.append(reason)
        analysis = RugAnalysis(
            is_rug_pull=True,
            confidence=confidence,
            urgency=URGENCY_HIGH if urgent else URGENCY_MEDIUM,
            reasons=reasons,
        )
        self._alerts[mint] = now
        logger.warning(
            f"Rug signal on {mint}: urgency={analysis.urgency} confidence={confidence:.2f} reasons={reasons}"
        )
        return analysis

    def _evaluate(
        self, prior: List[TickSample], price: float, volume: float, change: float, now: float
    ) -> List[tuple]:
        cfg = self.settings
        fired = []

        if -change >= cfg.extreme_drop_pct:
            fired.append(("extreme_drop", REASON_EXTREME_DROP))

        recent = prior[-max(1, cfg.volume_avg_window):]
        avg_volume = sum(s.volume for s in recent) / len(recent)
        if avg_volume > 0 and volume <= avg_volume * (1.0 - cfg.volume_collapse_pct):
            fired.append(("volume_collapse", REASON_VOLUME_COLLAPSE))

        changes = [s.change for s in prior[1:]] + [change]
        if len(changes) >= 3:
            drops = sum(1 for c in changes if -c >= cfg.tick_drop_pct)
            if drops >= max(3, len(changes) // 2):
                fired.append(("rapid_drops", REASON_RAPID_DROPS))

        first = prior[0]
        elapsed = now - first.ts
        if len(prior) >= 2 and elapsed >= 1.0 and first.price > 0:
            velocity = (price - first.price) / first.price / elapsed
            if -velocity >= cfg.velocity_pct_per_sec:
                fired.append(("velocity", REASON_VELOCITY))

        return fired

    def is_recent_alert(self, mint: str, now: Optional[float] = None) -> bool:
        raised_at = self._alerts.get(mint)
        if raised_at is None:
            return False
        current = self._clock() if now is None else now
        return current - raised_at <= self.settings.alert_ttl_sec

    def forget(self, mint: str) -> None:
        self._windows.pop(mint, None)
        self._alerts.pop(mint, None)

    def tracked(self) -> List[str]:
        return list(self._windows.keys())

    def cleanup(self, now: Optional[float] = None) -> int:
        """Drop samples and alerts older than the retention horizon. Returns samples evicted."""
        current = self._clock() if now is None else now
        cutoff = current - self.settings.retention_sec
        evicted = 0
        for mint in list(self._windows.keys()):
            window = self._windows[mint]
            while window and window[0].ts < cutoff:
                window.popleft()
                evicted += 1
            if not window:
                del self._windows[mint]
        alert_cutoff = current - self.settings.alert_ttl_sec
        for mint in [m for m, ts in self._alerts.items() if ts < alert_cutoff]:
            del self._alerts[mint]
        if evicted:
            logger.debug(f"Rug detector evicted {evicted} samples")
        return evicted


__all__ = [
    "REASON_EXTREME_DROP",
    "REASON_RAPID_DROPS",
    "REASON_VELOCITY",
    "REASON_VOLUME_COLLAPSE",
    "RugAnalysis",
    "RugDetector",
    "RugSettings",
    "TickSample",
    "URGENCY_HIGH",
    "URGENCY_LOW",
    "URGENCY_MEDIUM",
]

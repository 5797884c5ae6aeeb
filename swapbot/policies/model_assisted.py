from __future__ import annotations

import logging
from typing import List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from swapbot.config import section
from swapbot.core.exceptions import UpstreamBadResponse, UpstreamError
from swapbot.core.http_client import ResilientHttpClient
from swapbot.core.request_spec import RequestSpec
from swapbot.data.discovery import TokenMeta
from swapbot.policies.base import (
    ACTION_BUY,
    ACTION_HOLD,
    ACTION_SELL,
    BaseStrategy,
    MarketSnapshot,
    StrategyRuntime,
    TradeIntent,
    buy,
    sell,
)

logger = logging.getLogger(__name__)


class ModelRequest(BaseModel):
    mint: str
    event: str
    price: float
    volume: float = 0.0
    prices: List[float] = Field(default_factory=list)
    held: bool = False
    source: Optional[str] = None


class ModelVerdict(BaseModel):
    action: str = ACTION_HOLD
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""


class ModelScorer(Protocol):
    async def score(self, request: ModelRequest) -> ModelVerdict:
        ...


class MomentumScorer:
    """Deterministic in-process scorer based on short-horizon return."""

    def __init__(self, lookback: int = 5, entry_return: float = 0.03, exit_return: float = -0.03) -> None:
        self.lookback = max(1, lookback)
        self.entry_return = entry_return
        self.exit_return = exit_return

    async def score(self, request: ModelRequest) -> ModelVerdict:
        prices = request.prices[-(self.lookback + 1):]
        if len(prices) < 2 or prices[0] <= 0:
            return ModelVerdict(reasoning="insufficient history")
        ret = prices[-1] / prices[0] - 1.0
        confidence = min(1.0, 0.5 + abs(ret) * 5.0)
        if not request.held and ret >= self.entry_return:
            return ModelVerdict(action=ACTION_BUY, confidence=confidence, reasoning=f"momentum {ret:.2%}")
        if request.held and ret <= self.exit_return:
            return ModelVerdict(action=ACTION_SELL, confidence=confidence, reasoning=f"momentum {ret:.2%}")
        return ModelVerdict(confidence=confidence, reasoning=f"momentum {ret:.2%}")


class HttpModelScorer:
    """Posts the request to an external scoring endpoint and parses a ModelVerdict."""

    def __init__(self, endpoint: str, api_key: str = "", http_client: Optional[ResilientHttpClient] = None) -> None:
        self.endpoint = endpoint
        self.api_key = api_key
        self._client = http_client or ResilientHttpClient(name="model-scorer", max_retries=1)

    async def __aenter__(self) -> "HttpModelScorer":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._client.__aexit__(exc_type, exc, tb)

    async def score(self, request: ModelRequest) -> ModelVerdict:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        spec = RequestSpec("POST", self.endpoint, "", headers=headers, json=request.model_dump())
        payload = await self._client.request(spec)
        try:
            return ModelVerdict.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamBadResponse("model scorer response invalid") from exc


class ModelAssistedStrategy(BaseStrategy):
    """Delegates to a ModelScorer and acts only on confident verdicts.

    With ``bypass_validation`` on, discovered tokens skip the freshness/source
    gate; the model is expected to do its own screening.
    """

    name = "model"

    def __init__(self, scorer: ModelScorer, confidence_threshold: float = 0.7, bypass_validation: bool = True) -> None:
        self.scorer = scorer
        self.confidence_threshold = confidence_threshold
        self.bypass_validation = bypass_validation
        self.requires_validation = not bypass_validation

    @classmethod
    def from_config(cls, config: dict, scorer: Optional[ModelScorer] = None, **_: object) -> "ModelAssistedStrategy":
        model_cfg = section(section(config, "strategy"), "model")
        if scorer is None:
            endpoint = str(model_cfg.get("endpoint") or "")
            scorer = HttpModelScorer(endpoint) if endpoint else MomentumScorer()
        return cls(
            scorer=scorer,
            confidence_threshold=float(model_cfg.get("confidence_threshold", 0.7)),
            bypass_validation=bool(model_cfg.get("bypass_validation", True)),
        )

    async def _ask(self, request: ModelRequest) -> Optional[TradeIntent]:
        try:
            verdict = await self.scorer.score(request)
        except (UpstreamError, httpx.HTTPError, ValidationError) as exc:
            logger.warning(f"Model scorer failed for {request.mint}: {exc}")
            return None
        if verdict.confidence < self.confidence_threshold:
            return None
        reason = f"MODEL_{verdict.action}_{verdict.confidence:.2f}"
        action = verdict.action.upper()
        if action == ACTION_BUY and not request.held:
            return buy(request.mint, reason)
        if action == ACTION_SELL and request.held:
            return sell(request.mint, reason)
        return None

    def _request(self, event: str, snapshot: MarketSnapshot, runtime: StrategyRuntime, source=None) -> ModelRequest:
        return ModelRequest(
            mint=snapshot.mint,
            event=event,
            price=snapshot.price,
            volume=snapshot.volume,
            prices=list(snapshot.prices),
            held=runtime.is_held(snapshot.mint),
            source=source,
        )

    async def on_discovered(
        self, meta: TokenMeta, snapshot: MarketSnapshot, runtime: StrategyRuntime
    ) -> Optional[TradeIntent]:
        if not runtime.is_held(meta.mint) and not runtime.has_capacity():
            return None
        return await self._ask(self._request("discovered", snapshot, runtime, source=meta.source))

    async def on_tick(self, snapshot: MarketSnapshot, runtime: StrategyRuntime) -> Optional[TradeIntent]:
        if not runtime.is_held(snapshot.mint) and not runtime.has_capacity():
            return None
        return await self._ask(self._request("tick", snapshot, runtime))


__all__ = [
    "HttpModelScorer",
    "ModelAssistedStrategy",
    "ModelRequest",
    "ModelScorer",
    "ModelVerdict",
    "MomentumScorer",
]

from __future__ import annotations

from typing import Dict, Optional, Type

from swapbot.config import section
from swapbot.policies.base import BaseStrategy
from swapbot.policies.model_assisted import ModelAssistedStrategy, ModelScorer
from swapbot.policies.oscillator import OscillatorStrategy
from swapbot.policies.priority import PriorityStrategy

_REGISTRY: Dict[str, Type[BaseStrategy]] = {
    OscillatorStrategy.name: OscillatorStrategy,
    PriorityStrategy.name: PriorityStrategy,
    ModelAssistedStrategy.name: ModelAssistedStrategy,
}


def register_strategy(name: str, strategy_cls: Type[BaseStrategy]) -> None:
    if not hasattr(strategy_cls, "from_config"):
        raise TypeError(f"{strategy_cls.__name__} must define from_config(config, **kwargs)")
    _REGISTRY[name.strip().lower()] = strategy_cls


def available_strategies() -> list[str]:
    return sorted(_REGISTRY)


def build_strategy(config: dict, scorer: Optional[ModelScorer] = None, name: Optional[str] = None) -> BaseStrategy:
    choice = (name or section(config, "strategy").get("type") or OscillatorStrategy.name).strip().lower()
    strategy_cls = _REGISTRY.get(choice)
    if strategy_cls is None:
        raise ValueError(f"Unknown strategy type: {choice} (available: {', '.join(available_strategies())})")
    return strategy_cls.from_config(config, scorer=scorer)


__all__ = ["available_strategies", "build_strategy", "register_strategy"]

from __future__ import annotations

import random
from typing import Dict, List

QUOTE_MINT = "So11111111111111111111111111111111111111112"


def _path(rng: random.Random, start: float, drifts: List[float], noise: float) -> List[float]:
    prices = [start]
    for drift in drifts:
        step = drift + rng.uniform(-noise, noise)
        prices.append(max(1e-6, prices[-1] * (1.0 + step)))
    return prices


def _volumes(rng: random.Random, count: int, base: float) -> List[float]:
    return [base * (1.0 + rng.uniform(-0.2, 0.2)) for _ in range(count)]


def _scenarios(rng: random.Random) -> List[Dict[str, object]]:
    dip_recovery = _path(rng, 1.0, [-0.03] * 12 + [0.04] * 20 + [0.0] * 8, 0.002)
    steady = _path(rng, 0.5, [0.01] * 40, 0.001)

    rug = _path(rng, 2.0, [-0.04] * 10 + [0.03] * 6, 0.001)
    rug += [rug[-1] * 0.35, rug[-1] * 0.2, rug[-1] * 0.1]
    rug += [rug[-1]] * 10
    rug_volumes = _volumes(rng, len(rug), 5000.0)
    for index in range(len(rug) - 13, len(rug)):
        rug_volumes[index] = 40.0

    chop = [0.8 * (1.05 if i % 2 else 0.96) for i in range(40)]
    fade = _path(rng, 3.0, [-0.06] * 10 + [-0.002] * 40, 0.0005)

    return [
        {"symbol": "DIPREC", "mint": "MINT_DIP_RECOVERY", "source": "pumpfun", "listed_at_poll": 1, "prices": dip_recovery},
        {"symbol": "STEADY", "mint": "MINT_STEADY", "source": "profile", "listed_at_poll": 1, "prices": steady},
        {"symbol": "RUGGED", "mint": "MINT_RUG", "source": "pumpfun", "listed_at_poll": 2, "prices": rug, "volumes": rug_volumes},
        {"symbol": "CHOPPY", "mint": "MINT_CHOP", "source": "boost", "listed_at_poll": 2, "prices": chop},
        {"symbol": "FADER", "mint": "MINT_FADE", "source": "pumpfun", "listed_at_poll": 3, "prices": fade},
    ]


def generate_seed(seed: int = 7, history_points: int = 8) -> Dict[str, object]:
    """Deterministic token universe: listing order, tick paths and liquidity per mint."""
    rng = random.Random(seed)
    tokens: Dict[str, Dict[str, object]] = {}
    for seq, scenario in enumerate(_scenarios(rng), start=1):
        prices = [float(p) for p in scenario["prices"]]
        volumes = scenario.get("volumes") or _volumes(rng, len(prices), 2000.0)
        history = prices[:history_points]
        tokens[str(scenario["mint"])] = {
            "seq": seq,
            "mint": scenario["mint"],
            "symbol": scenario["symbol"],
            "source": scenario["source"],
            "listed_at_poll": scenario["listed_at_poll"],
            "history": history,
            "ticks": prices[history_points:],
            "volumes": [float(v) for v in volumes][history_points:],
            "liquidity": 50.0 + rng.uniform(0, 50),
        }
    return {"tokens": tokens, "quote_mint": QUOTE_MINT}


__all__ = ["QUOTE_MINT", "generate_seed"]

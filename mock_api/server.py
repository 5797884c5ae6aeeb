from __future__ import annotations

import base64
import json
import time
import uuid
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from mock_api.data_seed import QUOTE_MINT, generate_seed

QUOTE_TTL_SEC = 30.0
DEFAULT_BALANCE = 10.0

app = FastAPI(title="Mock market venue")


def reset_state(seed: Optional[Dict] = None) -> None:
    app.state.seed = seed or generate_seed()
    app.state.cursors = {}
    app.state.polls = 0
    app.state.quotes = {}
    app.state.expire_next_builds = 0
    app.state.balances = {}
    app.state.holdings = {}
    app.state.metrics = {
        "tokens_new": 0,
        "tick": 0,
        "balance": 0,
        "holdings": 0,
        "quote": 0,
        "build": 0,
        "build_expired": 0,
    }


reset_state()


class QuoteRequest(BaseModel):
    input_mint: str
    output_mint: str
    amount: float
    slippage_bps: int = 100


class BuildSwapRequest(BaseModel):
    quote_id: str
    user_pubkey: str


def _token(mint: str) -> Dict:
    token = app.state.seed["tokens"].get(mint)
    if token is None:
        raise HTTPException(status_code=404, detail="Unknown token")
    return token


def _current_index(token: Dict) -> int:
    cursor = app.state.cursors.get(token["mint"], 0)
    return min(cursor, len(token["ticks"]) - 1)


def _current_price(token: Dict) -> float:
    served = app.state.cursors.get(token["mint"], 0)
    if not served:
        return float(token["history"][-1])
    return float(token["ticks"][min(served, len(token["ticks"])) - 1])


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/tokens/new")
async def tokens_new(since: int = 0, limit: int = 50) -> Dict:
    app.state.metrics["tokens_new"] += 1
    app.state.polls += 1
    now = time.time()
    listed = [
        token
        for token in app.state.seed["tokens"].values()
        if token["seq"] > since and token["listed_at_poll"] <= app.state.polls
    ]
    listed.sort(key=lambda token: token["seq"])
    listed = listed[: max(1, limit)]
    cursor = max([since] + [token["seq"] for token in listed])
    return {
        "tokens": [
            {
                "mint": token["mint"],
                "symbol": token["symbol"],
                "source": token["source"],
                "discovered_at": now,
                "price_history": token["history"],
            }
            for token in listed
        ],
        "cursor": cursor,
    }


@app.get("/market/tick/{mint}")
async def market_tick(mint: str) -> Dict:
    app.state.metrics["tick"] += 1
    token = _token(mint)
    index = _current_index(token)
    app.state.cursors[mint] = min(index + 1, len(token["ticks"]))
    return {
        "mint": mint,
        "price": float(token["ticks"][index]),
        "volume": float(token["volumes"][index]),
        "ts": time.time(),
    }


@app.get("/wallet/{address}/balance")
async def wallet_balance(address: str) -> Dict:
    app.state.metrics["balance"] += 1
    return {"address": address, "balance": app.state.balances.get(address, DEFAULT_BALANCE)}


@app.get("/wallet/{address}/holdings")
async def wallet_holdings(address: str) -> Dict[str, List[Dict]]:
    app.state.metrics["holdings"] += 1
    rows = app.state.holdings.get(address, {})
    return {"holdings": [{"mint": mint, "amount": amount} for mint, amount in rows.items()]}


@app.post("/swap/quote")
async def swap_quote(request: QuoteRequest) -> Dict:
    app.state.metrics["quote"] += 1
    if request.amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be positive")
    if request.input_mint == QUOTE_MINT and request.output_mint != QUOTE_MINT:
        token = _token(request.output_mint)
        price = _current_price(token)
        out_amount = request.amount / price
        notional = request.amount
    elif request.output_mint == QUOTE_MINT and request.input_mint != QUOTE_MINT:
        token = _token(request.input_mint)
        price = _current_price(token)
        out_amount = request.amount * price
        notional = out_amount
    else:
        raise HTTPException(status_code=400, detail="Exactly one side must be the quote mint")

    quote_id = uuid.uuid4().hex
    expires_at = time.time() + QUOTE_TTL_SEC
    payload = {
        "quote_id": quote_id,
        "input_mint": request.input_mint,
        "output_mint": request.output_mint,
        "in_amount": request.amount,
        "out_amount": out_amount,
        "price_impact_pct": min(100.0, notional / max(float(token["liquidity"]), 1e-9) * 100.0),
        "slippage_bps": request.slippage_bps,
        "expires_at": expires_at,
    }
    app.state.quotes[quote_id] = payload
    return payload


@app.post("/swap/build")
async def swap_build(request: BuildSwapRequest) -> Dict:
    app.state.metrics["build"] += 1
    quote = app.state.quotes.get(request.quote_id)
    if quote is None:
        raise HTTPException(status_code=404, detail="Unknown quote")
    if app.state.expire_next_builds > 0 or time.time() > quote["expires_at"]:
        app.state.expire_next_builds = max(0, app.state.expire_next_builds - 1)
        app.state.metrics["build_expired"] += 1
        app.state.quotes.pop(request.quote_id, None)
        raise HTTPException(status_code=409, detail="Quote expired")
    body = json.dumps({"quote": quote, "user": request.user_pubkey}, sort_keys=True).encode("utf-8")
    return {"swap_transaction": base64.b64encode(body).decode("ascii")}

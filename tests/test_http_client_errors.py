import asyncio

import httpx
import pytest

from swapbot.core.exceptions import (
    CircuitBreakerOpen,
    InvalidTick,
    QuoteExpired,
    UpstreamBadResponse,
    UpstreamRateLimited,
)
from swapbot.core.http_client import ResilientHttpClient
from swapbot.core.request_spec import RequestSpec
from swapbot.data.client import MarketApiClient, MarketApiSettings


def _make_spec() -> RequestSpec:
    return RequestSpec(
        method="GET",
        base_url="https://example.com",
        path="/test",
        query={},
        headers={},
    )


async def _run_error_case(status_code, exc_type):
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code))
    async with httpx.AsyncClient(transport=transport) as async_client:
        client = ResilientHttpClient(async_client=async_client, max_retries=0)
        with pytest.raises(exc_type):
            await client.request(_make_spec())


def test_http_client_rate_limited():
    asyncio.run(_run_error_case(429, UpstreamRateLimited))


def test_http_client_upstream_error():
    asyncio.run(_run_error_case(500, UpstreamBadResponse))


def test_http_client_rejected_request():
    asyncio.run(_run_error_case(400, UpstreamBadResponse))


def test_http_client_stale_quote():
    asyncio.run(_run_error_case(409, QuoteExpired))


def test_http_client_retries_server_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
            client = ResilientHttpClient(async_client=async_client, max_retries=2, backoff_base=0.1)
            return await client.request(_make_spec())

    assert asyncio.run(_run()) == {"ok": True}
    assert len(calls) == 2


def test_http_client_does_not_retry_stale_quote():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(409)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
            client = ResilientHttpClient(async_client=async_client, max_retries=3)
            with pytest.raises(QuoteExpired):
                await client.request(_make_spec())

    asyncio.run(_run())
    assert len(calls) == 1


def test_circuit_breaker_opens_after_repeated_failures():
    async def _run():
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as async_client:
            client = ResilientHttpClient(async_client=async_client, max_retries=0, rps=100)
            for _ in range(5):
                with pytest.raises(UpstreamBadResponse):
                    await client.request(_make_spec())
            with pytest.raises(CircuitBreakerOpen):
                await client.request(_make_spec())

    asyncio.run(_run())


def _market_client(async_client):
    settings = MarketApiSettings(base_url="http://venue", api_key="k", slippage_bps=75)
    return MarketApiClient(settings=settings, async_client=async_client, max_retries=0)


@pytest.mark.asyncio
async def test_market_client_malformed_tick():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"mint": "X"}))
    async with httpx.AsyncClient(transport=transport) as async_client:
        client = _market_client(async_client)
        with pytest.raises(InvalidTick):
            await client.tick("X")


@pytest.mark.asyncio
async def test_market_client_quote_and_holdings():
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.path == "/swap/quote":
            return httpx.Response(
                200,
                json={
                    "quote_id": "q1",
                    "input_mint": "SOL",
                    "output_mint": "X",
                    "in_amount": 0.1,
                    "out_amount": 50.0,
                    "price_impact_pct": 0.2,
                    "slippage_bps": 75,
                },
            )
        return httpx.Response(200, json={"holdings": [{"mint": "X", "amount": 12.5}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
        client = _market_client(async_client)
        quote = await client.quote("SOL", "X", 0.1)
        holdings = await client.holdings("WALLET")

    assert quote.quote_id == "q1"
    assert quote.raw["out_amount"] == 50.0
    assert quote.fill_price(buying=True) == pytest.approx(0.002)
    assert holdings == {"X": 12.5}
    assert seen[0].headers["X-API-KEY"] == "k"
    assert b'"slippage_bps":75' in seen[0].content.replace(b" ", b"")


@pytest.mark.asyncio
async def test_market_client_malformed_holdings():
    payload = {"holdings": [{"mint": "X"}, {"mint": "Y", "amount": "lots"}]}
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))
    async with httpx.AsyncClient(transport=transport) as async_client:
        client = _market_client(async_client)
        with pytest.raises(UpstreamBadResponse):
            await client.holdings("WALLET")

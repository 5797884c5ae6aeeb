import pytest

from swapbot.data.jupiter.request_factory import JupiterRequestError, JupiterRequestFactory, SwapOptions

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def test_quote_request_contract():
    factory = JupiterRequestFactory(api_key="test-key", base_url="https://api.jup.ag")
    spec = factory.quote(input_mint=SOL, output_mint=USDC, amount=1000, slippage_bps=50)
    assert spec.method == "GET"
    assert spec.base_url == "https://api.jup.ag"
    assert spec.path == "/swap/v1/quote"
    assert spec.query["inputMint"] == SOL
    assert spec.query["outputMint"] == USDC
    assert spec.query["amount"] == 1000
    assert spec.query["slippageBps"] == 50
    assert spec.query["swapMode"] == "ExactIn"
    assert spec.headers == {"X-API-KEY": "test-key"}


def test_optional_quote_params():
    spec = JupiterRequestFactory().quote(SOL, USDC, amount=1, slippage_bps=10, only_direct_routes=True, max_accounts=20)
    assert spec.params()["onlyDirectRoutes"] == "true"
    assert spec.params()["maxAccounts"] == "20"
    assert spec.headers == {}


def test_swap_request_contract():
    factory = JupiterRequestFactory(api_key="test-key", base_url="https://api.jup.ag")
    quote = {"inputMint": "AAA", "outputMint": "BBB", "inAmount": "1", "outAmount": "2"}
    spec = factory.swap(quote, user_pubkey="USER123")
    assert spec.method == "POST"
    assert spec.path == "/swap/v1/swap"
    assert spec.json["quoteResponse"] == quote
    assert spec.json["userPublicKey"] == "USER123"
    assert spec.json["wrapAndUnwrapSol"] is True
    assert spec.json["dynamicComputeUnitLimit"] is True
    assert "prioritizationFeeLamports" not in spec.json
    assert spec.headers["X-API-KEY"] == "test-key"

    tipped = factory.swap(quote, "USER123", SwapOptions(prioritization_fee_lamports=5000))
    assert tipped.json["prioritizationFeeLamports"] == 5000


def test_request_spec_description():
    spec = JupiterRequestFactory(base_url="https://api.jup.ag").quote("AAA", "BBB", amount=1, slippage_bps=10)
    assert spec.describe() == (
        "GET https://api.jup.ag/swap/v1/quote"
        "?amount=1&inputMint=AAA&outputMint=BBB&slippageBps=10&swapMode=ExactIn"
    )


def test_quote_request_validation():
    factory = JupiterRequestFactory()
    with pytest.raises(JupiterRequestError):
        factory.quote("", "BBB", amount=1, slippage_bps=10)
    with pytest.raises(JupiterRequestError):
        factory.quote("AAA", "AAA", amount=1, slippage_bps=10)
    with pytest.raises(JupiterRequestError):
        factory.quote("AAA", "BBB", amount=0, slippage_bps=10)
    with pytest.raises(JupiterRequestError):
        factory.quote("AAA", "BBB", amount=1, slippage_bps=-1)
    with pytest.raises(JupiterRequestError):
        factory.swap({}, "USER")

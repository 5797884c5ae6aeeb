from swapbot.data.jupiter.provider import (
    JupiterProvider,
    JupiterSettings,
    JupiterSwapVenue,
    MockJupiterProvider,
    SOL_MINT,
    get_jupiter_provider,
)
from swapbot.data.jupiter.request_factory import JupiterRequestError, JupiterRequestFactory, SwapOptions
from swapbot.data.jupiter.schemas import JupiterQuoteResponse, JupiterSwapResponse

__all__ = [
    "JupiterProvider",
    "JupiterQuoteResponse",
    "JupiterRequestError",
    "JupiterRequestFactory",
    "JupiterSettings",
    "JupiterSwapResponse",
    "JupiterSwapVenue",
    "MockJupiterProvider",
    "SOL_MINT",
    "SwapOptions",
    "get_jupiter_provider",
]

from swapbot.core.exceptions import (
    AlreadyHeld,
    CircuitBreakerOpen,
    InvalidTick,
    NotFound,
    ProviderMisconfigured,
    ProviderOffline,
    QuoteExpired,
    SignerError,
    StateConflict,
    UpstreamBadResponse,
    UpstreamError,
    UpstreamRateLimited,
)
from swapbot.core.fixtures import load_fixture, load_json_fixture
from swapbot.core.http_client import CircuitBreaker, ResilientHttpClient, TokenBucket
from swapbot.core.request_spec import RequestSpec, canonicalize_query

__all__ = [
    "AlreadyHeld",
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "InvalidTick",
    "NotFound",
    "ProviderMisconfigured",
    "ProviderOffline",
    "QuoteExpired",
    "RequestSpec",
    "ResilientHttpClient",
    "SignerError",
    "StateConflict",
    "TokenBucket",
    "UpstreamBadResponse",
    "UpstreamError",
    "UpstreamRateLimited",
    "canonicalize_query",
    "load_fixture",
    "load_json_fixture",
]

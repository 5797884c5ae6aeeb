from __future__ import annotations

from typing import Optional


class ProviderMisconfigured(RuntimeError):
    pass


class ProviderOffline(RuntimeError):
    pass


class UpstreamError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamRateLimited(UpstreamError):
    pass


class UpstreamBadResponse(UpstreamError):
    pass


class CircuitBreakerOpen(UpstreamError):
    pass


class QuoteExpired(UpstreamError):
    """Submission rejected because the quote it was built from is stale."""


class SignerError(RuntimeError):
    pass


class InvalidTick(ValueError):
    pass


class StateConflict(RuntimeError):
    def __init__(self, mint: str, message: str) -> None:
        super().__init__(f"{mint}: {message}")
        self.mint = mint


class AlreadyHeld(StateConflict):
    def __init__(self, mint: str) -> None:
        super().__init__(mint, "position already open")


class NotFound(StateConflict):
    def __init__(self, mint: str) -> None:
        super().__init__(mint, "no open position")

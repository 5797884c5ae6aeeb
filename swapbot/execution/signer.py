from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Protocol

from swapbot.core.exceptions import ProviderMisconfigured, SignerError

TRADING_MODE_DRY_RUN = "dry_run"
TRADING_MODE_LIVE = "live"


class Signer(Protocol):
    async def sign_and_submit(self, unsigned_tx: str) -> str:
        ...


@dataclass(frozen=True)
class TradingModeSettings:
    trading_mode: str
    wallet_address: str
    keypair_path: str
    rpc_url: str

    @property
    def live(self) -> bool:
        return self.trading_mode == TRADING_MODE_LIVE

    @classmethod
    def from_env(cls) -> "TradingModeSettings":
        trading_mode = os.getenv("TRADING_MODE", TRADING_MODE_DRY_RUN).strip().lower()
        wallet = os.getenv("WALLET_ADDRESS", "").strip()
        keypair_path = os.getenv("SIGNER_KEYPAIR_PATH", "").strip()
        rpc_url = os.getenv("SOLANA_RPC_URL", "").strip()
        if trading_mode not in {TRADING_MODE_DRY_RUN, TRADING_MODE_LIVE}:
            raise ProviderMisconfigured(f"Unknown TRADING_MODE: {trading_mode}")
        if trading_mode == TRADING_MODE_LIVE:
            if not keypair_path:
                raise ProviderMisconfigured("SIGNER_KEYPAIR_PATH is required when TRADING_MODE=live")
            if not rpc_url:
                raise ProviderMisconfigured("SOLANA_RPC_URL is required when TRADING_MODE=live")
            if not wallet:
                raise ProviderMisconfigured("WALLET_ADDRESS is required when TRADING_MODE=live")
        return cls(
            trading_mode=trading_mode,
            wallet_address=wallet or "SIMULATED_WALLET",
            keypair_path=keypair_path,
            rpc_url=rpc_url,
        )


class SimulatedSigner:
    """Returns a deterministic fake signature for every transaction it is handed."""

    def __init__(self) -> None:
        self.submitted: List[str] = []

    async def sign_and_submit(self, unsigned_tx: str) -> str:
        if not unsigned_tx:
            raise SignerError("empty transaction")
        self.submitted.append(unsigned_tx)
        digest = hashlib.sha256(f"{len(self.submitted)}:{unsigned_tx}".encode("utf-8")).hexdigest()
        return f"SIMULATED_{digest[:16]}"


class KeypairSigner:
    """Server-side signer backed by a keypair JSON file.

    The keypair is validated on construction so a bad path fails at startup.
    """

    def __init__(self, keypair_path: str, rpc_url: str) -> None:
        self.keypair_path = keypair_path
        self.rpc_url = rpc_url
        self._secret = self.load_keypair()

    def load_keypair(self) -> List[int]:
        path = Path(self.keypair_path)
        if not path.exists():
            raise ProviderMisconfigured(f"Signer keypair not found: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ProviderMisconfigured(f"Signer keypair is not valid JSON: {path}") from exc
        if not isinstance(data, list) or len(data) != 64:
            raise ProviderMisconfigured("SIGNER_KEYPAIR_PATH must point to a 64-byte keypair JSON array")
        return data

    async def sign_and_submit(self, unsigned_tx: str) -> str:
        raise SignerError(
            "Transaction signing requires a Solana signing library; run with TRADING_MODE=dry_run or add signer support."
        )


def build_signer(settings: TradingModeSettings) -> Signer:
    if settings.live:
        return KeypairSigner(settings.keypair_path, settings.rpc_url)
    return SimulatedSigner()


__all__ = [
    "KeypairSigner",
    "Signer",
    "SimulatedSigner",
    "TRADING_MODE_DRY_RUN",
    "TRADING_MODE_LIVE",
    "TradingModeSettings",
    "build_signer",
]

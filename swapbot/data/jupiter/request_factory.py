from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from swapbot.core.request_spec import RequestSpec


class JupiterRequestError(ValueError):
    pass


@dataclass(frozen=True)
class SwapOptions:
    wrap_and_unwrap_sol: bool = True
    dynamic_compute_unit_limit: bool = True
    prioritization_fee_lamports: Optional[int] = None

    def as_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "wrapAndUnwrapSol": self.wrap_and_unwrap_sol,
            "dynamicComputeUnitLimit": self.dynamic_compute_unit_limit,
        }
        if self.prioritization_fee_lamports is not None:
            payload["prioritizationFeeLamports"] = int(self.prioritization_fee_lamports)
        return payload


@dataclass(frozen=True)
class JupiterRequestFactory:
    api_key: str = ""
    base_url: str = "https://api.jup.ag"
    quote_path: str = "/swap/v1/quote"
    swap_path: str = "/swap/v1/swap"

    def _headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self.api_key} if self.api_key else {}

    def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        only_direct_routes: Optional[bool] = None,
        max_accounts: Optional[int] = None,
    ) -> RequestSpec:
        if not input_mint or not output_mint:
            raise JupiterRequestError("input_mint and output_mint are required")
        if input_mint == output_mint:
            raise JupiterRequestError("input_mint and output_mint must differ")
        if amount <= 0:
            raise JupiterRequestError("amount must be positive")
        if not 0 <= slippage_bps <= 10_000:
            raise JupiterRequestError("slippage_bps must be between 0 and 10000")

        query: Dict[str, Any] = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": int(amount),
            "slippageBps": int(slippage_bps),
            "swapMode": "ExactIn",
        }
        if only_direct_routes is not None:
            query["onlyDirectRoutes"] = str(only_direct_routes).lower()
        if max_accounts is not None:
            query["maxAccounts"] = int(max_accounts)
        return RequestSpec("GET", self.base_url, self.quote_path, query=query, headers=self._headers())

    def swap(
        self,
        quote_response: Dict[str, Any],
        user_pubkey: str,
        options: Optional[SwapOptions] = None,
    ) -> RequestSpec:
        if not isinstance(quote_response, dict) or not quote_response:
            raise JupiterRequestError("quote_response must be a non-empty dict")
        if not user_pubkey:
            raise JupiterRequestError("user_pubkey is required")
        body: Dict[str, Any] = {"quoteResponse": quote_response, "userPublicKey": user_pubkey}
        body.update((options or SwapOptions()).as_payload())
        return RequestSpec("POST", self.base_url, self.swap_path, headers=self._headers(), json=body)


__all__ = ["JupiterRequestError", "JupiterRequestFactory", "SwapOptions"]

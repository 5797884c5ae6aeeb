from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlencode


def _join(base_url: str, path: str) -> str:
    base = base_url.rstrip("/")
    if not path:
        return base or "/"
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{base}{path}"


def canonicalize_query(query: Dict[str, Any]) -> Dict[str, str]:
    return {key: str(value) for key, value in query.items() if value is not None}


@dataclass(frozen=True)
class RequestSpec:
    """Transport-neutral description of one HTTP call."""

    method: str
    base_url: str
    path: str
    query: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    json: Optional[Dict[str, Any]] = None

    @property
    def url(self) -> str:
        return _join(self.base_url, self.path)

    def params(self) -> Dict[str, str]:
        return canonicalize_query(self.query)

    def full_url(self) -> str:
        params = self.params()
        if not params:
            return self.url
        return f"{self.url}?{urlencode(sorted(params.items()))}"

    def describe(self) -> str:
        body = ""
        if self.json is not None:
            body = " " + json.dumps(self.json, separators=(",", ":"), sort_keys=True)
        return f"{self.method} {self.full_url()}{body}"


__all__ = ["RequestSpec", "canonicalize_query"]

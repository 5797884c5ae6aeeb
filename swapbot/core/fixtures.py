from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional


def load_json_fixture(path: Path, expected_version: Optional[str] = None) -> Any:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if expected_version is None or not isinstance(payload, dict):
        return payload
    version = payload.pop("_fixture_version", None)
    if version is not None and version != expected_version:
        raise ValueError(f"Fixture version mismatch in {path.name}: expected {expected_version}, got {version}")
    return payload


def load_fixture(base_dir: Path, name: str, expected_version: Optional[str] = None) -> Any:
    return load_json_fixture(base_dir / name, expected_version=expected_version)


__all__ = ["load_fixture", "load_json_fixture"]

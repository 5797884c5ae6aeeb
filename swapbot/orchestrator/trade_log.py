from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table


class TradeLogger:
    """Keeps trade records in memory and optionally mirrors them to runs/<ts>/trades.jsonl."""

    def __init__(self, base_dir: Optional[Path] = None, persist: bool = True) -> None:
        self.run_dir: Optional[Path] = None
        self.path: Optional[Path] = None
        self._file = None
        if persist and base_dir is not None:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            self.run_dir = Path(base_dir) / timestamp
            self.run_dir.mkdir(parents=True, exist_ok=True)
            self.path = self.run_dir / "trades.jsonl"
            self._file = self.path.open("a", encoding="utf-8")
        self._entries: List[Dict[str, Any]] = []
        self.counters: Counter = Counter()

    def log(self, entry: Dict[str, Any]) -> None:
        record = {"ts": datetime.now(timezone.utc).isoformat(), **entry}
        self._entries.append(record)
        self.counters["total"] += 1
        self.counters["successful" if entry.get("success") else "failed"] += 1
        if entry.get("success"):
            self.counters[str(entry.get("action", "")).lower()] += 1
            if entry.get("forced"):
                self.counters["forced_exits"] += 1
        if self._file is not None:
            self._file.write(json.dumps(record, default=str) + "\n")
            self._file.flush()

    def entries(self) -> List[Dict[str, Any]]:
        return list(self._entries)

    def action_counts(self) -> Dict[str, int]:
        return dict(Counter(f"{e.get('action')}:{'ok' if e.get('success') else 'fail'}" for e in self._entries))

    def summarize(self, console: Optional[Console] = None) -> None:
        table = Table(title="Trade Summary")
        table.add_column("Action")
        table.add_column("Result")
        table.add_column("Count", justify="right")
        for key, count in sorted(self.action_counts().items()):
            action, result = key.split(":", 1)
            table.add_row(action, result, str(count))
        (console or Console()).print(table)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


__all__ = ["TradeLogger"]

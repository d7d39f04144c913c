"""Operational utilities for kidledger."""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Deque, Dict, Optional

from .clock import utcnow


class StructuredLogger:
    """Keep recent ledger events in memory and optionally append them as JSON lines."""

    def __init__(self, *, path: Path | None = None, limit: int = 500) -> None:
        self.path = path
        self._recent: Deque[dict] = deque(maxlen=limit)

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": utcnow().isoformat(), "event": event_type, **fields}
        self._recent.append(entry)
        if self.path is not None:
            self._append(entry)
        return entry

    def _append(self, entry: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)  # type: ignore[union-attr]
        with self.path.open("a", encoding="utf-8") as stream:  # type: ignore[union-attr]
            stream.write(json.dumps(entry, default=str, ensure_ascii=False))
            stream.write("\n")

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        return tuple(self._recent)[-limit:] if limit > 0 else ()

    def events(self, event_type: str) -> tuple[dict, ...]:
        return tuple(entry for entry in self._recent if entry["event"] == event_type)


class HealthMonitor:
    """Aggregate runtime health information for the status endpoint."""

    def __init__(self) -> None:
        self.store_online = True
        self.pending_documents: tuple[str, ...] = ()
        self.last_flush: Optional[datetime] = None
        self.last_maturity_check: Optional[datetime] = None
        self.scheduler_running = False

    def record_flush(self, *, pending: tuple[str, ...], at: datetime) -> None:
        self.pending_documents = pending
        self.store_online = not pending
        if not pending:
            self.last_flush = at

    def record_maturity_check(self, at: datetime) -> None:
        self.last_maturity_check = at

    def status(self) -> Dict[str, object]:
        return {
            "store": "ok" if self.store_online else "degraded",
            "saved": not self.pending_documents,
            "pending_documents": list(self.pending_documents),
            "last_flush": self.last_flush.isoformat() if self.last_flush else None,
            "last_maturity_check": self.last_maturity_check.isoformat() if self.last_maturity_check else None,
            "scheduler": "running" if self.scheduler_running else "stopped",
        }


__all__ = ["HealthMonitor", "StructuredLogger"]

"""Operational utilities for Money Pots."""

from __future__ import annotations

import json
from collections import deque
from pathlib import Path
from threading import Lock
from typing import Deque

from .models import utcnow


class StructuredLogger:
    """Write JSON lines log entries for ledger and approval events."""

    def __init__(self, *, path: Path | None = None, retain: int = 1000) -> None:
        self.path = path
        self._entries: Deque[dict] = deque(maxlen=retain)
        self._lock = Lock()

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": utcnow().isoformat(), "event": event_type, **fields}
        with self._lock:
            self._entries.append(entry)
            if self.path:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(entry, default=str) + "\n")
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        with self._lock:
            entries = list(self._entries)
        return tuple(entries[-limit:]) if limit > 0 else ()

    def events(self, event_type: str) -> tuple[dict, ...]:
        with self._lock:
            return tuple(entry for entry in self._entries if entry["event"] == event_type)


__all__ = ["StructuredLogger"]

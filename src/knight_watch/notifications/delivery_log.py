"""Delivery log: bounded in-memory history plus optional JSONL file."""

from __future__ import annotations

import logging
import threading
from collections import deque
from pathlib import Path

from ..watches.models import DeliveryRecord

logger = logging.getLogger("knight-watch")


class DeliveryLog:
    """Records every delivery attempt.  Never raises on write failure."""

    def __init__(self, max_size: int = 500, path: str = ""):
        self._records: deque[DeliveryRecord] = deque(maxlen=max_size)
        self._path = Path(path).expanduser() if path else None
        self._lock = threading.Lock()

    def record(self, entry: DeliveryRecord) -> None:
        with self._lock:
            self._records.append(entry)
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.warning(f"Could not append delivery log {self._path}: {e}")

    def recent(self, limit: int = 50, watch_id: str = "") -> list[DeliveryRecord]:
        with self._lock:
            records = list(self._records)
        if watch_id:
            records = [r for r in records if r.watch_id == watch_id]
        return records[-limit:]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

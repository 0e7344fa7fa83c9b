"""Watch persistence: in-memory, YAML file and SQLite backends.

Every backend shares the same contract, implemented once in ``WatchStore``:

- ``get`` / ``delete`` / owner-scoped ``deactivate`` check ownership and
  raise ``AccessDenied`` on mismatch, ``NotFound`` for unknown ids.
- ``update`` never reactivates a watch (``active`` only goes true -> false)
  and never moves ``last_evaluated_at`` backwards.
- ``list_due`` deactivates expired watches as a side effect.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path

import yaml

from ..exceptions import AccessDenied, NotFound
from .models import Watch

logger = logging.getLogger("knight-watch")


class WatchStore(ABC):
    """Domain-agnostic CRUD + query over persisted watches."""

    _lock: threading.RLock

    # ── Backend primitives ───────────────────────────────

    @abstractmethod
    def create(self, watch: Watch) -> str:
        """Persist a new watch and return its id."""

    @abstractmethod
    def get_by_id(self, watch_id: str) -> Watch | None:
        """Unchecked lookup (engine-internal)."""

    @abstractmethod
    def _write(self, watch: Watch) -> None:
        """Overwrite the stored record for ``watch.id``."""

    @abstractmethod
    def _remove(self, watch_id: str) -> None: ...

    @abstractmethod
    def list_by_owner(self, owner_id: str) -> list[Watch]: ...

    @abstractmethod
    def list_active(self, domain: str) -> list[Watch]: ...

    @abstractmethod
    def list_all(self) -> list[Watch]: ...

    def close(self) -> None:
        pass

    # ── Shared contract ──────────────────────────────────

    def _check_owner(self, watch_id: str, owner_id: str) -> Watch:
        watch = self.get_by_id(watch_id)
        if watch is None:
            raise NotFound(f"Watch {watch_id} not found")
        if watch.owner_id != owner_id:
            raise AccessDenied(f"Watch {watch_id} belongs to another owner")
        return watch

    def get(self, watch_id: str, owner_id: str) -> Watch:
        return self._check_owner(watch_id, owner_id)

    def update(self, watch: Watch) -> None:
        """Write engine bookkeeping back to the store.

        Raises NotFound if the watch was deleted in the meantime.
        """
        with self._lock:
            stored = self.get_by_id(watch.id)
            if stored is None:
                raise NotFound(f"Watch {watch.id} not found")
            merged = watch.model_copy(deep=True)
            if not stored.active:
                merged.active = False
            if stored.last_evaluated_at and (
                merged.last_evaluated_at is None
                or merged.last_evaluated_at < stored.last_evaluated_at
            ):
                merged.last_evaluated_at = stored.last_evaluated_at
            self._write(merged)

    def deactivate(self, watch_id: str, owner_id: str | None = None) -> None:
        with self._lock:
            if owner_id is not None:
                watch = self._check_owner(watch_id, owner_id)
            else:
                watch = self.get_by_id(watch_id)
                if watch is None:
                    raise NotFound(f"Watch {watch_id} not found")
            if not watch.active:
                return
            watch.active = False
            self._write(watch)
        logger.info(f"Deactivated watch {watch_id}")

    def delete(self, watch_id: str, owner_id: str) -> None:
        with self._lock:
            self._check_owner(watch_id, owner_id)
            self._remove(watch_id)
        logger.info(f"Deleted watch {watch_id}")

    def list_due(
        self,
        domain: str,
        now: datetime,
        cadence: timedelta = timedelta(0),
    ) -> list[Watch]:
        """Active watches of ``domain`` whose next evaluation has arrived."""
        due = []
        for watch in self.list_active(domain):
            if watch.is_expired(now):
                logger.info(f"Watch {watch.id} expired at {watch.expires_at}")
                self.deactivate(watch.id)
                continue
            if watch.next_run_at is not None and watch.next_run_at > now:
                continue
            if (
                watch.last_evaluated_at is not None
                and watch.last_evaluated_at + cadence > now
            ):
                continue
            due.append(watch)
        return due

    def purge_inactive(self, before: datetime) -> int:
        """Delete inactive watches whose last activity predates ``before``."""
        removed = 0
        with self._lock:
            for watch in self.list_all():
                if watch.active:
                    continue
                last = watch.last_evaluated_at or watch.created_at
                if last < before:
                    self._remove(watch.id)
                    removed += 1
        if removed:
            logger.info(f"Purged {removed} inactive watches")
        return removed


class MemoryWatchStore(WatchStore):
    """Process-local store.  Records are copied in and out."""

    def __init__(self) -> None:
        self._watches: dict[str, Watch] = {}
        self._lock = threading.RLock()

    def create(self, watch: Watch) -> str:
        with self._lock:
            self._watches[watch.id] = watch.model_copy(deep=True)
            self._changed()
        return watch.id

    def get_by_id(self, watch_id: str) -> Watch | None:
        with self._lock:
            watch = self._watches.get(watch_id)
            return watch.model_copy(deep=True) if watch else None

    def _write(self, watch: Watch) -> None:
        with self._lock:
            self._watches[watch.id] = watch.model_copy(deep=True)
            self._changed()

    def _remove(self, watch_id: str) -> None:
        with self._lock:
            self._watches.pop(watch_id, None)
            self._changed()

    def list_by_owner(self, owner_id: str) -> list[Watch]:
        with self._lock:
            return [
                w.model_copy(deep=True)
                for w in self._watches.values()
                if w.owner_id == owner_id
            ]

    def list_active(self, domain: str) -> list[Watch]:
        with self._lock:
            return [
                w.model_copy(deep=True)
                for w in self._watches.values()
                if w.active and w.domain == domain
            ]

    def list_all(self) -> list[Watch]:
        with self._lock:
            return [w.model_copy(deep=True) for w in self._watches.values()]

    def _changed(self) -> None:
        """Hook for persistent subclasses; called with the lock held."""


class YamlWatchStore(MemoryWatchStore):
    """Memory store mirrored to a YAML file after every mutation."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = Path(path).expanduser()
        for watch in self._load():
            self._watches[watch.id] = watch

    def _load(self) -> list[Watch]:
        if not self._path.exists():
            return []
        try:
            data = yaml.safe_load(self._path.read_text())
        except yaml.YAMLError as e:
            logger.warning(f"Could not parse {self._path}: {e}")
            return []
        if not isinstance(data, dict) or not data.get("watches"):
            return []
        watches = []
        for raw in data["watches"]:
            try:
                watches.append(Watch(**raw))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed watch in {self._path}: {e}")
        return watches

    def _changed(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {"watches": [w.model_dump(mode="json") for w in self._watches.values()]}
        self._path.write_text(
            yaml.dump(data, default_flow_style=False, sort_keys=False)
        )


_COLUMNS = (
    "id",
    "owner_id",
    "domain",
    "subject",
    "condition",
    "recurring",
    "interval",
    "expires_at",
    "active",
    "custom_message",
    "created_at",
    "last_evaluated_at",
    "last_triggered_at",
    "next_run_at",
    "trigger_count",
)


class SqliteWatchStore(WatchStore):
    """Single-table SQLite store; condition kept as JSON text."""

    def __init__(self, db_path: str) -> None:
        target = str(db_path)
        if target != ":memory:":
            path = Path(target).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            target = str(path)
        self.db_path = target
        self.conn = sqlite3.connect(target, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS watches(
                  id TEXT PRIMARY KEY,
                  owner_id TEXT NOT NULL,
                  domain TEXT NOT NULL,
                  subject TEXT NOT NULL,
                  condition TEXT NOT NULL,
                  recurring INTEGER NOT NULL DEFAULT 0,
                  interval TEXT,
                  expires_at TEXT,
                  active INTEGER NOT NULL DEFAULT 1,
                  custom_message TEXT,
                  created_at TEXT NOT NULL,
                  last_evaluated_at TEXT,
                  last_triggered_at TEXT,
                  next_run_at TEXT,
                  trigger_count INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_watches_domain_active "
                "ON watches(domain, active)"
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_watches_owner ON watches(owner_id)"
            )
            self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    @staticmethod
    def _to_row(watch: Watch) -> tuple:
        data = watch.model_dump(mode="json")
        data["condition"] = json.dumps(data["condition"])
        data["recurring"] = int(watch.recurring)
        data["active"] = int(watch.active)
        return tuple(data[c] for c in _COLUMNS)

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Watch:
        data = dict(row)
        data["condition"] = json.loads(data["condition"])
        data["recurring"] = bool(data["recurring"])
        data["active"] = bool(data["active"])
        return Watch(**data)

    def _select(self, where: str = "", params: tuple = ()) -> list[Watch]:
        with self._lock:
            cur = self.conn.execute(
                f"SELECT * FROM watches {where} ORDER BY created_at", params
            )
            rows = cur.fetchall()
        return [self._from_row(r) for r in rows]

    def create(self, watch: Watch) -> str:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._lock:
            self.conn.execute(
                f"INSERT INTO watches({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                self._to_row(watch),
            )
            self.conn.commit()
        return watch.id

    def get_by_id(self, watch_id: str) -> Watch | None:
        found = self._select("WHERE id = ?", (watch_id,))
        return found[0] if found else None

    def _write(self, watch: Watch) -> None:
        assignments = ", ".join(f"{c} = ?" for c in _COLUMNS[1:])
        row = self._to_row(watch)
        with self._lock:
            self.conn.execute(
                f"UPDATE watches SET {assignments} WHERE id = ?",
                row[1:] + (row[0],),
            )
            self.conn.commit()

    def _remove(self, watch_id: str) -> None:
        with self._lock:
            self.conn.execute("DELETE FROM watches WHERE id = ?", (watch_id,))
            self.conn.commit()

    def list_by_owner(self, owner_id: str) -> list[Watch]:
        return self._select("WHERE owner_id = ?", (owner_id,))

    def list_active(self, domain: str) -> list[Watch]:
        return self._select("WHERE domain = ? AND active = 1", (domain,))

    def list_all(self) -> list[Watch]:
        return self._select()

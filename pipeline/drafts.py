"""
Draft persistence.

A draft is one JSON document per form type, stored under ``fvu_draft_<type>``
with a 7 day expiry window. Storage is a small key/value interface so the same
DraftStore works against memory (tests), SQLite (single machine) or Redis
(shared deployment).
"""

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from redis import Redis

from pipeline.config import PipelineConfig
from pipeline.schema import Draft, FormType
from utils.formatting import plural

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...


class MemoryKeyValueStore:
    """Process-local store."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [key for key in self._data if key.startswith(prefix)]


class SqliteKeyValueStore:
    """Key/value table in a local SQLite file."""

    def __init__(self, db_path: Union[str, Path] = "drafts.db"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
                (key, value),
            )
            self._conn.commit()

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self._conn.commit()

    def keys(self, prefix: str = "") -> List[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\'", (f"{escaped}%",)
            ).fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        self._conn.close()


class RedisKeyValueStore:
    """Key/value store backed by Redis (string values)."""

    def __init__(self, client: Redis):
        self.client = client

    def get(self, key: str) -> Optional[str]:
        value = self.client.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        self.client.set(key, value)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def keys(self, prefix: str = "") -> List[str]:
        return [
            key.decode("utf-8") if isinstance(key, bytes) else key
            for key in self.client.scan_iter(match=f"{prefix}*")
        ]


def format_age(age_ms: int) -> str:
    """'3 days ago', '1 hour ago', '5 minutes ago' or 'Just now'."""
    minutes = age_ms // (60 * 1000)
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{plural(days, 'day')} ago"
    if hours > 0:
        return f"{plural(hours, 'hour')} ago"
    if minutes > 0:
        return f"{plural(minutes, 'minute')} ago"
    return "Just now"


class DraftStore:
    """
    Save and restore in-progress form data per form type.

    Storage failures are logged and reported as a False return; they never
    propagate to the caller.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: PipelineConfig,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.config = config
        self.clock = clock

    def key_for(self, form_type: Union[FormType, str]) -> str:
        return f"{self.config.draft_key_prefix}{FormType(form_type).value}"

    def save(self, form_type: Union[FormType, str], data: Dict[str, Any]) -> bool:
        """Write (overwrite) the draft for a form type and purge expired drafts."""
        timestamp = self.clock()
        draft = {
            "formType": FormType(form_type).value,
            "data": data,
            "timestamp": timestamp,
            "expires": timestamp + self.config.draft_expiry_days * DAY_MS,
        }
        try:
            self.store.set(self.key_for(form_type), json.dumps(draft))
        except Exception as e:
            logger.error(f"Error saving draft for {form_type}: {e}")
            return False
        self.cleanup_expired()
        return True

    def _read(self, form_type: Union[FormType, str]) -> Optional[Draft]:
        key = self.key_for(form_type)
        try:
            raw = self.store.get(key)
        except Exception as e:
            logger.error(f"Error loading draft {key}: {e}")
            return None
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
            draft = Draft(
                form_type=parsed["formType"],
                data=parsed["data"],
                saved_at_ms=parsed["timestamp"],
                expires_at_ms=parsed["expires"],
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding corrupt draft {key}: {e}")
            self._delete(key)
            return None
        if self.clock() > draft.expires_at_ms:
            self._delete(key)
            return None
        return draft

    def load(self, form_type: Union[FormType, str]) -> Optional[Dict[str, Any]]:
        """Field data of the current draft, or None if absent or expired."""
        draft = self._read(form_type)
        return draft.data if draft else None

    def has_draft(self, form_type: Union[FormType, str]) -> bool:
        return self._read(form_type) is not None

    def clear(self, form_type: Union[FormType, str]) -> bool:
        return self._delete(self.key_for(form_type))

    def age_of(self, form_type: Union[FormType, str]) -> Optional[str]:
        draft = self._read(form_type)
        if draft is None:
            return None
        return format_age(max(0, self.clock() - draft.saved_at_ms))

    def cleanup_expired(self) -> int:
        """Delete expired and unreadable drafts. Returns the number removed."""
        removed = 0
        try:
            keys = self.store.keys(self.config.draft_key_prefix)
        except Exception as e:
            logger.error(f"Error listing drafts: {e}")
            return 0
        now = self.clock()
        for key in keys:
            try:
                expires = json.loads(self.store.get(key) or "")["expires"]
                expired = now > expires
            except (ValueError, KeyError, TypeError):
                expired = True
            if expired and self._delete(key):
                removed += 1
        if removed:
            logger.info(f"Removed {removed} expired draft(s)")
        return removed

    def _delete(self, key: str) -> bool:
        try:
            self.store.delete(key)
            return True
        except Exception as e:
            logger.error(f"Error clearing draft {key}: {e}")
            return False

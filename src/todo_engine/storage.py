from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Dict, List, Optional

from .models import COMPLETION_FILTERS, EngineState, TodoEntity
from .settings import get_settings

logger = logging.getLogger(__name__)

TODOS_KEY = "todos"
COMPLETION_FILTER_KEY = "completionFilter"
LEGACY_HIDE_COMPLETED_KEY = "hideCompleted"
TAG_COLOR_MAP_KEY = "tagColorMap"


# PUBLIC_INTERFACE
class KeyValueStorage(ABC):
    """Abstract local key-value store holding one JSON document per key."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the raw JSON string stored under key, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store the raw JSON string under key, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete key if present."""


class InMemoryStorage(KeyValueStorage):
    """
    Thread-safe in-memory store suitable for testing and throwaway sessions.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._lock = RLock()
        self._items: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._items)


def _read_json(storage: KeyValueStorage, key: str) -> Any:
    raw = storage.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed JSON stored under %r", key)
        return None


def _normalize_todos(raw: Any) -> List[TodoEntity]:
    """
    Coerce stored records into entities.

    Records without an integer id are dropped, and so is any later record repeating an
    earlier id. The survivors are sorted by their stored 'order' and re-densified, and
    half-set schedule fields are cleared together.
    """
    if not isinstance(raw, list):
        return []
    records = []
    seen = set()
    for position, item in enumerate(raw):
        if not isinstance(item, dict) or not isinstance(item.get("id"), int):
            continue
        if item["id"] in seen:
            logger.warning("Dropping stored todo with duplicate id %s", item["id"])
            continue
        seen.add(item["id"])
        order = item.get("order")
        records.append((order if isinstance(order, int) else position, position, item))
    records.sort(key=lambda r: (r[0], r[1]))

    todos: List[TodoEntity] = []
    for index, (_, _, item) in enumerate(records):
        scheduled_at = item.get("scheduledAt")
        schedule_text = item.get("scheduleText")
        if not (isinstance(scheduled_at, str) and isinstance(schedule_text, str)):
            scheduled_at = schedule_text = None
        todos.append(
            {
                "id": item["id"],
                "text": str(item.get("text") or ""),
                "completed": bool(item.get("completed", False)),
                "order": index,
                "scheduledAt": scheduled_at,
                "scheduleText": schedule_text,
            }
        )
    return todos


def _load_completion_filter(storage: KeyValueStorage) -> str:
    stored = _read_json(storage, COMPLETION_FILTER_KEY)
    if storage.get(LEGACY_HIDE_COMPLETED_KEY) is None:
        return stored if stored in COMPLETION_FILTERS else "all"

    if stored in COMPLETION_FILTERS:
        mode = stored
    else:
        mode = "hideCompleted" if _read_json(storage, LEGACY_HIDE_COMPLETED_KEY) is True else "all"
    try:
        storage.set(COMPLETION_FILTER_KEY, json.dumps(mode))
        storage.remove(LEGACY_HIDE_COMPLETED_KEY)
    except Exception:
        logger.exception("Failed to migrate legacy %r flag", LEGACY_HIDE_COMPLETED_KEY)
    else:
        logger.info("Migrated legacy %r flag to completionFilter=%r", LEGACY_HIDE_COMPLETED_KEY, mode)
    return mode


# PUBLIC_INTERFACE
def load_state(storage: KeyValueStorage) -> EngineState:
    """
    Read the persisted engine state once at startup.

    - todos: normalized so 'order' is dense and matches list position
    - completionFilter: falls back to the legacy boolean 'hideCompleted' key, which is
      deleted after migration
    - tagColorMap: non-integer slots are discarded
    Selection and editing state always start fresh.
    """
    todos = _normalize_todos(_read_json(storage, TODOS_KEY))
    colors_raw = _read_json(storage, TAG_COLOR_MAP_KEY)
    colors: Dict[str, int] = {}
    if isinstance(colors_raw, dict):
        colors = {str(k): v for k, v in colors_raw.items() if isinstance(v, int) and not isinstance(v, bool)}
    return EngineState(
        todos=todos,
        completion_filter=_load_completion_filter(storage),
        tag_color_map=colors,
    )


# PUBLIC_INTERFACE
def get_storage() -> KeyValueStorage:
    """
    Factory to return the configured storage based on settings.
    - memory: InMemoryStorage
    - sqlite: SQLiteStorage at SQLITE_DB_PATH
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteStorage

        return SQLiteStorage(settings.sqlite_db_path)
    return InMemoryStorage()

"""Lazily invalidated cache of derived per-feature views.

Holds the requirement/task index and dependency graph built from a feature's
approved artifacts. Approving a Spec or Tasks revision drops the feature's
entries; nothing is rebuilt until the next read. Entries are keyed by the
source revisions as well, so a cache shared across store instances never
serves a view of superseded artifacts.
"""

import threading
from typing import Any, Hashable


class IndexCache:
    """Per-feature cache. Never a source of truth."""

    def __init__(self):
        self._entries: dict[str, dict[Hashable, Any]] = {}
        self._lock = threading.Lock()

    def get(self, feature_id: str, key: Hashable) -> Any | None:
        with self._lock:
            return self._entries.get(feature_id, {}).get(key)

    def put(self, feature_id: str, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries.setdefault(feature_id, {})[key] = value

    def invalidate(self, feature_id: str) -> None:
        with self._lock:
            self._entries.pop(feature_id, None)

    def __contains__(self, feature_id: str) -> bool:
        with self._lock:
            return bool(self._entries.get(feature_id))

# ============================================================
# File: live_cache.py - latest value per device tag
# ============================================================
# Written by the ingestion loop, read by the /api/live route.
# Last write wins per key.
# ============================================================

import threading
from typing import Any, Dict, Optional

_MISSING = object()


class LiveValueCache:
    """Thread-safe tag id -> last read value mapping"""

    def __init__(self):
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = {}

    def set(self, tag_id: str, value: Any) -> None:
        with self._lock:
            self._values[tag_id] = value

    def get(self, tag_id: str) -> Optional[Any]:
        with self._lock:
            return self._values.get(tag_id)

    def remove(self, tag_id: str) -> bool:
        """Evict a tag, returns whether it was present"""
        with self._lock:
            return self._values.pop(tag_id, _MISSING) is not _MISSING

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the current values"""
        with self._lock:
            return self._values.copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

"""
In-memory object store.

Keeps documents in a dict, useful for:
- Unit testing
- Development
- Ephemeral deployments
"""

import copy
import threading
from typing import Any

from storage.base import ObjectStore, StorageWriteError


class MemoryObjectStore(ObjectStore):
    """
    In-memory object store.

    All data is lost when the process exits. Thread-safe operations.
    """

    def __init__(self, public_url: str = ""):
        super().__init__(public_url)
        self._objects: dict[str, dict[str, Any]] = {}
        self._lock = threading.RLock()

    def put(self, key: str, body: dict[str, Any]) -> str:
        if not key:
            raise StorageWriteError("Object key must not be empty")
        with self._lock:
            # Store a deep copy to prevent external modification
            self._objects[key] = copy.deepcopy(body)
        return self.url_for(key)

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            body = self._objects.get(key)
            return copy.deepcopy(body) if body is not None else None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._objects.pop(key, None) is not None

    def list_keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._objects if k.startswith(prefix))

    def is_available(self) -> bool:
        """Memory storage is always available."""
        return True

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        with self._lock:
            info["object_count"] = len(self._objects)
        return info

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._objects.clear()

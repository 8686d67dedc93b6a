"""
JSON file object store.

Persists each document as a JSON file under a root directory, mirroring
the key layout (``chapters/abc.json`` -> ``<root>/chapters/abc.json``).
"""

import json
import os
import threading
from typing import Any

from storage.base import (
    ObjectStore,
    StorageError,
    StorageReadError,
    StorageWriteError,
)


class FileObjectStore(ObjectStore):
    """
    Directory-backed object store.

    Writes are atomic (temp file then rename). Thread-safe operations
    using a single lock.
    """

    def __init__(self, root_dir: str = "data", public_url: str = ""):
        """
        Initialize the file store.

        Args:
            root_dir: Directory holding the documents
            public_url: Base URL prefixed to keys in returned URLs
        """
        super().__init__(public_url)
        self.root_dir = os.path.abspath(root_dir)
        self._lock = threading.Lock()

    def _path_for(self, key: str) -> str:
        if not key:
            raise StorageError("Object key must not be empty")
        path = os.path.abspath(os.path.join(self.root_dir, key))
        if not path.startswith(self.root_dir + os.sep):
            raise StorageError(f"Object key escapes storage root: {key}")
        return path

    def put(self, key: str, body: dict[str, Any]) -> str:
        """
        Save a document.

        Raises:
            StorageWriteError: If writing fails
        """
        with self._lock:
            try:
                path = self._path_for(key)
                os.makedirs(os.path.dirname(path), exist_ok=True)

                data = json.dumps(body, indent=2, ensure_ascii=False)

                # Write to file atomically (write to temp, then rename)
                temp_path = f"{path}.tmp"
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(data)
                os.replace(temp_path, path)

            except StorageError as e:
                raise StorageWriteError(str(e)) from e
            except PermissionError as e:
                raise StorageWriteError(f"Permission denied: {key}") from e
            except (OSError, TypeError, ValueError) as e:
                raise StorageWriteError(f"Failed to save {key}: {e}") from e

        return self.url_for(key)

    def get(self, key: str) -> dict[str, Any] | None:
        """
        Load a document.

        Raises:
            StorageReadError: If reading fails
        """
        with self._lock:
            try:
                path = self._path_for(key)
                with open(path, encoding="utf-8") as f:
                    raw_data = f.read()

                if not raw_data.strip():
                    return None
                return json.loads(raw_data)

            except FileNotFoundError:
                return None
            except StorageError as e:
                raise StorageReadError(str(e)) from e
            except PermissionError as e:
                raise StorageReadError(f"Permission denied: {key}") from e
            except json.JSONDecodeError as e:
                raise StorageReadError(f"Invalid JSON format in {key}: {e}") from e
            except OSError as e:
                raise StorageReadError(f"Failed to load {key}: {e}") from e

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                os.remove(self._path_for(key))
                return True
            except (FileNotFoundError, StorageError):
                return False

    def list_keys(self, prefix: str = "") -> list[str]:
        keys = []
        with self._lock:
            for dirpath, _dirnames, filenames in os.walk(self.root_dir):
                for filename in filenames:
                    if filename.endswith(".tmp"):
                        continue
                    full_path = os.path.join(dirpath, filename)
                    key = os.path.relpath(full_path, self.root_dir).replace(os.sep, "/")
                    if key.startswith(prefix):
                        keys.append(key)
        return sorted(keys)

    def is_available(self) -> bool:
        """
        Check if the root directory is writable.

        Returns:
            True if documents can be written
        """
        if not os.path.exists(self.root_dir):
            parent = os.path.dirname(self.root_dir) or "."
            return os.path.isdir(parent) and os.access(parent, os.W_OK)
        return os.access(self.root_dir, os.W_OK)

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info["root_dir"] = self.root_dir
        return info

"""
Object storage layer for ChapterIP.

Pluggable JSON document stores keyed by path:

- File (default, directory tree of JSON files)
- Memory (for testing)

Usage:
    from storage import get_object_store

    store = get_object_store()
    url = store.put("chapters/abc.json", {"title": "..."})
    data = store.get("chapters/abc.json")
"""

import os

from storage.base import (
    ObjectStore,
    StorageConnectionError,
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from storage.json_file import FileObjectStore
from storage.memory import MemoryObjectStore

__all__ = [
    "FileObjectStore",
    "MemoryObjectStore",
    "ObjectStore",
    "StorageConnectionError",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "get_object_store",
]


def get_object_store(
    backend_type: str | None = None,
    storage_dir: str | None = None,
    public_url: str | None = None,
) -> ObjectStore:
    """
    Get an object store, defaulting to environment configuration.

    Environment variables:
        STORAGE_BACKEND: Backend type ("file", "memory")
        STORAGE_DIR: Root directory for file storage (default: data)
        STORAGE_PUBLIC_URL: Base URL returned for stored objects

    Returns:
        Configured ObjectStore instance
    """
    backend_type = (backend_type or os.getenv("STORAGE_BACKEND", "file")).lower()
    public_url = public_url if public_url is not None else os.getenv("STORAGE_PUBLIC_URL", "")

    if backend_type in ("file", "json"):
        root_dir = storage_dir or os.getenv("STORAGE_DIR", "data")
        return FileObjectStore(root_dir, public_url=public_url)

    elif backend_type == "memory":
        return MemoryObjectStore(public_url=public_url)

    else:
        raise StorageError(f"Unknown storage backend: {backend_type}")

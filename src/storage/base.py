"""
Abstract base class for object stores.

Chapter metadata, IP asset records, and derivative relationships are kept
as JSON documents addressed by key. The ledger is the source of truth;
the object store is a secondary index over it.
"""

from abc import ABC, abstractmethod
from typing import Any


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class StorageConnectionError(StorageError):
    """Raised when connection to the object store fails."""
    pass


class StorageReadError(StorageError):
    """Raised when reading from the object store fails."""
    pass


class StorageWriteError(StorageError):
    """Raised when writing to the object store fails."""
    pass


class ObjectStore(ABC):
    """
    Abstract base class for JSON object stores.

    Keys are slash-separated paths such as ``chapters/abc.json``.
    """

    def __init__(self, public_url: str = ""):
        self.public_url = public_url.rstrip("/")

    @abstractmethod
    def put(self, key: str, body: dict[str, Any]) -> str:
        """
        Store a JSON document.

        Args:
            key: Object key
            body: JSON-serializable document

        Returns:
            Public URL of the stored object

        Raises:
            StorageWriteError: If writing fails
        """
        pass

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """
        Fetch a JSON document.

        Returns:
            The document, or None if the key does not exist

        Raises:
            StorageReadError: If reading fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a document. Returns True if it existed."""
        pass

    @abstractmethod
    def list_keys(self, prefix: str = "") -> list[str]:
        """List keys under a prefix, sorted."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if the store is available and ready.

        Returns:
            True if storage is accessible, False otherwise
        """
        pass

    def url_for(self, key: str) -> str:
        """Public URL for a key."""
        if self.public_url:
            return f"{self.public_url}/{key}"
        return key

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the store.

        Returns:
            Dictionary with backend type, status, and configuration
        """
        return {
            "backend_type": self.__class__.__name__,
            "available": self.is_available(),
            "public_url": self.public_url,
        }

    def close(self) -> None:
        """Release resources. Default implementation does nothing."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes connection."""
        self.close()
        return False
